"""
gcp_secrets
-----------

Secret Manager 에서 라벨로 secret 목록을 가져오고,
Cloud Run 배포용 --set-secrets 플래그로 변환하는 모듈.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from google.cloud import secretmanager

from .logging_utils import get_logger


logger = get_logger(__name__)


SECRET_VERSION = "latest"


@dataclass(frozen=True)
class SecretFlag:
    env_var: str
    secret_name: str

    @property
    def reference(self) -> str:
        return f"{self.secret_name}:{SECRET_VERSION}"

    def as_flag(self) -> str:
        return f"--set-secrets={self.env_var}={self.reference}"


def label_filter(label: str) -> str:
    """
    'env=staging' 형태의 라벨을 Secret Manager list 필터로 바꾼다.
    """
    label = label.strip()
    if label.startswith("labels."):
        return label
    return f"labels.{label}"


def list_secret_names(project_id: str, label: str) -> List[str]:
    """
    label 이 붙은 secret 의 짧은 이름(secret id) 목록을 이름순으로 반환한다.
    """
    client = secretmanager.SecretManagerServiceClient()
    parent = f"projects/{project_id}"
    flt = label_filter(label)

    logger.info("Secret 목록 조회: parent=%s filter=%s", parent, flt)
    names: List[str] = []
    for secret in client.list_secrets(request={"parent": parent, "filter": flt}):
        # projects/<p>/secrets/<id>
        names.append(secret.name.rsplit("/", 1)[-1])
    return sorted(names)


def build_secret_flags(names: Iterable[str], environment: str) -> List[SecretFlag]:
    """
    secret 이름에서 '<ENVIRONMENT>_' 접두어를 떼어 환경변수 이름으로 사용한다.
    (STAGING_DB_URL -> DB_URL=STAGING_DB_URL:latest)
    """
    prefix = f"{environment.upper()}_"
    flags: List[SecretFlag] = []
    for name in names:
        env_var = name[len(prefix):] if name.startswith(prefix) else name
        flags.append(SecretFlag(env_var=env_var, secret_name=name))
    return flags
