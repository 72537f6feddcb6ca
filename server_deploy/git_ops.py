"""
git_ops
-------

버전 변경 커밋/푸시와 민감 파일의 git 인덱스 제거를 담당하는 모듈.
"""

from __future__ import annotations

from typing import Iterable

from .logging_utils import get_logger
from .subprocess_utils import CommandRunner


logger = get_logger(__name__)


COMMIT_MESSAGE = "Update version for deployment"


def commit_and_push(
    runner: CommandRunner,
    files: Iterable[str],
    message: str = COMMIT_MESSAGE,
) -> bool:
    """
    files 를 add/commit 한 뒤 origin HEAD 로 push 한다.

    커밋 실패(변경 사항 없음 등)는 경고만 남기고 False 를 반환한다.
    push 실패는 RuntimeError 로 올라간다.
    """
    runner.run(["git", "add", *files])

    commit = runner.run(["git", "commit", "-m", message], check=False)
    committed = commit.ok
    if not committed:
        logger.warning("git commit 실패 (커밋할 변경 사항이 없을 수 있음): exit=%s", commit.returncode)

    push(runner)
    return committed


def push(runner: CommandRunner) -> None:
    """
    현재 HEAD 를 origin 으로 push 한다. 실패 시 RuntimeError.
    """
    runner.run(["git", "push", "origin", "HEAD"])


def untrack_files(runner: CommandRunner, paths: Iterable[str]) -> None:
    """
    git rm --cached 로 인덱스에서만 제거한다. 추적 중이 아니면 실패해도 무시.
    """
    targets = [p for p in paths if p]
    if not targets:
        return
    result = runner.run(["git", "rm", "--cached", "--quiet", *targets], check=False)
    if not result.ok:
        logger.debug("git rm --cached 실패 (추적 중이 아닐 수 있음): %s", targets)
