"""
gcp_cloud_run
-------------

gcloud run deploy 로 소스 기반 Cloud Run 서비스 배포를 담당하는 모듈.
"""

from __future__ import annotations

from typing import Iterable, List

from .config import DeploymentConfig
from .gcp_secrets import SecretFlag
from .logging_utils import get_logger
from .subprocess_utils import CommandRunner, RunResult


logger = get_logger(__name__)


DEPLOY_TIMEOUT_SECONDS = 1800.0


def build_deploy_command(cfg: DeploymentConfig, secret_flags: Iterable[SecretFlag]) -> List[str]:
    cmd = [
        "gcloud",
        "run",
        "deploy",
        cfg.service_name,
        "--source",
        cfg.source_path,
        "--platform",
        "managed",
        "--region",
        cfg.region,
        f"--project={cfg.project_id}",
    ]
    if cfg.allow_unauthenticated:
        cmd.append("--allow-unauthenticated")
    cmd.extend(flag.as_flag() for flag in secret_flags)
    return cmd


def deploy_service(
    runner: CommandRunner,
    cfg: DeploymentConfig,
    secret_flags: Iterable[SecretFlag],
) -> RunResult:
    """
    Cloud Run 서비스를 배포한다. 실패해도 예외 없이 RunResult 를 반환한다.
    """
    logger.info("Cloud Run 배포: service=%s region=%s", cfg.service_name, cfg.region)
    return runner.run(
        build_deploy_command(cfg, secret_flags),
        check=False,
        stream_output=True,
        timeout=DEPLOY_TIMEOUT_SECONDS,
    )
