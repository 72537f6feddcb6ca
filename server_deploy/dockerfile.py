"""
dockerfile
----------

Dockerfile 안의 --env=<name> 플래그를 배포 환경에 맞게 바꾼다.
"""

from __future__ import annotations

import os
import re

from .logging_utils import get_logger


logger = get_logger(__name__)


DOCKERFILE = "Dockerfile"

_ENV_FLAG_RE = re.compile(r"--env=[a-z]*")


def rewrite_env_flag(text: str, environment: str) -> str:
    return _ENV_FLAG_RE.sub(lambda _m: f"--env={environment}", text)


def update_dockerfile(base_dir: str, environment: str, *, dry_run: bool = False) -> bool:
    """
    Dockerfile 의 모든 --env 플래그를 environment 로 바꾼다.

    Dockerfile 이 없으면 FileNotFoundError. 내용이 바뀌었는지 여부를 반환한다.
    """
    path = os.path.join(base_dir, DOCKERFILE)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Dockerfile 을 찾을 수 없습니다: {path}")

    with open(path, "r", encoding="utf-8", newline="") as f:
        original = f.read()

    updated = rewrite_env_flag(original, environment)
    if updated == original:
        logger.info("Dockerfile 변경 없음 (--env=%s)", environment)
        return False

    if dry_run:
        logger.info("[dry-run] Dockerfile 을 --env=%s 로 변경할 예정", environment)
        return True

    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(updated)
    logger.info("Dockerfile 갱신: --env=%s", environment)
    return True
