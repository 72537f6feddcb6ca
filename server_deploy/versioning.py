"""
versioning
----------

package.json 의 version 필드(VersionMarker)를 npm version 으로 올리는 모듈.
"""

from __future__ import annotations

import json
import os
from typing import Optional

from .config import DeploymentConfig, VERSION_BUMP_KINDS
from .logging_utils import get_logger
from .subprocess_utils import CommandRunner


logger = get_logger(__name__)


MANIFEST_FILE = "package.json"

# CLI 대화형 메뉴 번호 -> bump 종류
MENU_CHOICES = {
    "1": "major",
    "2": "minor",
    "3": "patch",
    "4": "manual",
}


def read_version(base_dir: str = ".") -> Optional[str]:
    """
    package.json 의 version 값을 읽는다. 파일이 없거나 값이 없으면 None.
    """
    path = os.path.join(base_dir, MANIFEST_FILE)
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("package.json 을 파싱할 수 없습니다: %s", path)
            return None
    version = data.get("version") if isinstance(data, dict) else None
    return str(version) if version else None


def build_version_command(bump: str) -> list[str]:
    # git 커밋/태그는 git_ops 단계에서 직접 처리하므로 npm 에는 맡기지 않는다.
    return ["npm", "version", bump, "--no-git-tag-version"]


def bump_version(runner: CommandRunner, cfg: DeploymentConfig) -> Optional[str]:
    """
    cfg.version_bump 에 따라 npm version 을 실행하고 새 버전을 반환한다.

    version_bump 가 None 이거나 "skip" 이면 아무것도 하지 않고 None 을 반환한다.
    npm 실패는 RuntimeError 로 올라간다.
    """
    bump = cfg.version_bump
    if not bump or bump == "skip":
        logger.info("버전 업데이트를 건너뜁니다.")
        return None

    if bump not in VERSION_BUMP_KINDS:
        logger.info("수동 버전 지정: %s", bump)

    runner.run(build_version_command(bump))
    return read_version(cfg.base_dir)
