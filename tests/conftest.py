"""
pytest 설정:

로컬 환경에 설치된 다른 버전의 server_deploy 패키지가 먼저 import 되지 않도록
repo root 를 sys.path 최상단에 고정한다.

외부 명령(git/npm/gcloud)은 FakeRunner 로 대체해 기록만 한다.
"""

from __future__ import annotations

import os
import sys
from typing import Callable, Dict, List, Sequence

import pytest


_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)


from server_deploy.subprocess_utils import RunResult  # noqa: E402


_DEPLOY_ENV_VARS = [
    "DEPLOY_ENVIRONMENT",
    "GCP_PROJECT_ID",
    "CLOUD_RUN_SERVICE",
    "GCP_REGION",
    "DEPLOY_SOURCE_PATH",
    "DEPLOY_SECRET_LABEL",
    "SERVICE_KEY_NAME",
    "DEPLOY_VERSION_BUMP",
    "DEPLOY_UPDATE_URL",
    "DEPLOY_UPDATE_TARGET",
]


class FakeRunner:
    """
    CommandRunner 대역. 명령을 history 에 기록하고,
    responder 가 있으면 그 결과를, 없으면 성공 결과를 돌려준다.
    """

    def __init__(self, responder: Callable[[List[str]], RunResult] | None = None) -> None:
        self.history: List[List[str]] = []
        self.dry_run = False
        self._responder = responder

    def run(self, cmd: Sequence[str], *, check: bool = True, stream_output: bool = False,
            timeout: float | None = 900.0) -> RunResult:  # noqa: ARG002
        cmd = list(cmd)
        self.history.append(cmd)
        result = self._responder(cmd) if self._responder else RunResult(0, "", "")
        if check and result.returncode != 0:
            raise RuntimeError(f"명령 실행 실패: {' '.join(cmd)} (exit={result.returncode})")
        return result

    def commands_starting_with(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.history if c[: len(prefix)] == list(prefix)]


@pytest.fixture(autouse=True)
def _clean_deploy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _DEPLOY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_runner_factory() -> Callable[..., FakeRunner]:
    return FakeRunner


@pytest.fixture
def project_dir(tmp_path) -> str:  # noqa: ANN001
    files: Dict[str, str] = {
        "Dockerfile": (
            "FROM node:20-slim\n"
            "WORKDIR /app\n"
            "COPY . .\n"
            'CMD ["node", "server.js", "--env=staging", "--port=8080"]\n'
        ),
        ".gitignore": "node_modules\n.npmrc\nkey.json\n.env\n",
        "package.json": '{\n  "name": "api-server",\n  "version": "1.4.2"\n}\n',
    }
    for name, content in files.items():
        (tmp_path / name).write_text(content, encoding="utf-8")
    return str(tmp_path)
