from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.deploy"]

DEFAULT_REGION = "europe-west1"
DEFAULT_SOURCE_PATH = "."

# .gitignore 에서 배포 중에만 주석 처리되는 고정 항목
ALWAYS_SENSITIVE_ENTRIES = [".npmrc"]

VERSION_BUMP_KINDS = ("major", "minor", "patch", "skip")
_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$")

# CLI 값이 없을 때 참고하는 환경변수 이름
_ENV_FALLBACKS = {
    "environment": "DEPLOY_ENVIRONMENT",
    "project_id": "GCP_PROJECT_ID",
    "service_name": "CLOUD_RUN_SERVICE",
    "region": "GCP_REGION",
    "source_path": "DEPLOY_SOURCE_PATH",
    "secret_label": "DEPLOY_SECRET_LABEL",
    "service_key_name": "SERVICE_KEY_NAME",
    "version_bump": "DEPLOY_VERSION_BUMP",
}

# 누락 시 사용자에게 보여줄 플래그 이름
_REQUIRED_FLAGS = {
    "environment": "-e/--environment",
    "project_id": "-p/--project-id",
    "service_name": "-n/--name",
}


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def is_valid_version_bump(value: str) -> bool:
    return value in VERSION_BUMP_KINDS or bool(_SEMVER_RE.match(value))


@dataclass(frozen=True)
class DeploymentConfig:
    # 필수
    environment: str
    project_id: str
    service_name: str

    region: str = DEFAULT_REGION
    source_path: str = DEFAULT_SOURCE_PATH
    secret_label: str = ""
    service_key_name: Optional[str] = None

    # 실행 옵션
    skip_confirmation: bool = False
    version_bump: Optional[str] = None
    dry_run: bool = False
    allow_unauthenticated: bool = True
    base_dir: str = "."

    sensitive_entries: List[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.secret_label:
            object.__setattr__(self, "secret_label", f"env={self.environment}")
        entries = list(ALWAYS_SENSITIVE_ENTRIES)
        if self.service_key_name:
            entries.append(self.service_key_name)
        object.__setattr__(self, "sensitive_entries", entries)

    @property
    def env_prefix(self) -> str:
        """secret 이름에서 제거할 환경 접두어 (예: STAGING_)"""
        return f"{self.environment.upper()}_"

    def path(self, name: str) -> str:
        return os.path.join(self.base_dir, name)

    @classmethod
    def resolve(cls, **values: Any) -> "DeploymentConfig":
        """
        CLI 값 -> 환경변수(.env 포함) 순서로 설정을 결정한다.

        필수값(environment/project_id/service_name)이 하나라도 없으면
        누락된 항목을 모두 나열한 ValueError 를 던진다.
        """
        def pick(name: str, default: Optional[str] = None) -> Optional[str]:
            val = values.get(name)
            if val:
                return val
            env_name = _ENV_FALLBACKS.get(name)
            if env_name and os.getenv(env_name):
                return os.getenv(env_name)
            return default

        missing: List[str] = [
            flag for name, flag in _REQUIRED_FLAGS.items() if not pick(name)
        ]
        if missing:
            raise ValueError(
                "필수 인자가 누락되었습니다: " + ", ".join(missing)
            )

        version_bump = pick("version_bump")
        if version_bump is not None and not is_valid_version_bump(version_bump):
            raise ValueError(
                f"잘못된 버전 값입니다: {version_bump!r} "
                "(major | minor | patch | skip | x.y.z 중 하나)"
            )

        return cls(
            environment=pick("environment") or "",
            project_id=pick("project_id") or "",
            service_name=pick("service_name") or "",
            region=pick("region", DEFAULT_REGION) or DEFAULT_REGION,
            source_path=pick("source_path", DEFAULT_SOURCE_PATH) or DEFAULT_SOURCE_PATH,
            secret_label=pick("secret_label") or "",
            service_key_name=pick("service_key_name"),
            skip_confirmation=bool(values.get("skip_confirmation", False)),
            version_bump=version_bump,
            dry_run=bool(values.get("dry_run", False)),
            allow_unauthenticated=bool(values.get("allow_unauthenticated", True)),
            base_dir=values.get("base_dir") or ".",
        )
