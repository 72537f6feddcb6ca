"""
gcp_project
-----------

gcloud 의 활성 프로젝트를 설정하고 실제로 적용되었는지 확인하는 모듈.
"""

from __future__ import annotations

from .logging_utils import get_logger
from .subprocess_utils import CommandRunner


logger = get_logger(__name__)


class ProjectMismatchError(RuntimeError):
    def __init__(self, expected: str, found: str) -> None:
        self.expected = expected
        self.found = found
        super().__init__(
            f"Project ID 불일치. 기대값: {expected}, 현재값: {found or '(없음)'}"
        )


def set_active_project(runner: CommandRunner, project_id: str) -> None:
    logger.info("gcloud 프로젝트 설정: %s", project_id)
    runner.run(["gcloud", "config", "set", "project", project_id, "--quiet"])


def get_active_project(runner: CommandRunner) -> str:
    result = runner.run(["gcloud", "config", "get-value", "project", "--quiet"])
    return result.stdout.strip()


def ensure_active_project(runner: CommandRunner, project_id: str) -> str:
    """
    프로젝트를 설정한 뒤 get-value 로 다시 읽어 일치하는지 확인한다.
    일치하지 않으면 ProjectMismatchError.
    """
    set_active_project(runner, project_id)
    current = get_active_project(runner)
    if current != project_id:
        raise ProjectMismatchError(project_id, current)
    logger.info("Project ID 확인 완료: %s", current)
    return current
