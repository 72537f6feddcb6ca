"""
pipeline
--------

배포 과정을 고정된 순서의 Step 목록으로 실행하는 모듈.

각 Step 은 run(cfg, state) -> StepResult 를 구현한다.
- FatalStepError 가 발생하면 나머지 본 단계는 중단된다.
- cleanup=True 인 단계는 중단 여부와 관계없이 마지막에 항상 실행된다.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import DeploymentConfig
from .logging_utils import get_logger
from .subprocess_utils import CommandRunner
from . import (
    dockerfile,
    gcp_cloud_run,
    gcp_project,
    gcp_secrets,
    git_ops,
    gitignore,
    versioning,
)


logger = get_logger(__name__)


class StepStatus(str, enum.Enum):
    OK = "ok"
    SKIPPED = "skipped"
    WARNING = "warning"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    name: str
    status: StepStatus
    message: str = ""


class FatalStepError(RuntimeError):
    """이후 단계를 진행할 수 없는 오류 (파일 없음, 프로젝트 불일치, push 실패 등)"""


class DeploymentCancelled(RuntimeError):
    """사용자가 배포 확인을 거절함"""


@dataclass
class DeploymentState:
    runner: CommandRunner
    old_version: Optional[str] = None
    new_version: Optional[str] = None
    commented_lines: Optional[List[int]] = None
    secret_flags: List[gcp_secrets.SecretFlag] = field(default_factory=list)
    deploy_succeeded: Optional[bool] = None


class Step(ABC):
    name: str = ""
    description: str = ""
    cleanup: bool = False

    @abstractmethod
    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        raise NotImplementedError

    def ok(self, message: str = "") -> StepResult:
        return StepResult(self.name, StepStatus.OK, message)

    def skipped(self, message: str = "") -> StepResult:
        return StepResult(self.name, StepStatus.SKIPPED, message)

    def warning(self, message: str) -> StepResult:
        return StepResult(self.name, StepStatus.WARNING, message)

    def failed(self, message: str) -> StepResult:
        return StepResult(self.name, StepStatus.FAILED, message)


class VersionBumpStep(Step):
    name = "version"
    description = "package.json 버전 업데이트 (npm version)"

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        state.old_version = versioning.read_version(cfg.base_dir)
        if not cfg.version_bump or cfg.version_bump == "skip":
            return self.skipped("버전 업데이트 건너뜀")
        try:
            state.new_version = versioning.bump_version(state.runner, cfg)
        except RuntimeError as e:
            return self.warning(f"버전 업데이트 실패: {e}")
        if cfg.dry_run:
            return self.ok(f"npm version {cfg.version_bump} (dry-run)")
        return self.ok(f"{state.old_version or '?'} -> {state.new_version or '?'}")


class GitCommitPushStep(Step):
    name = "git"
    description = "package.json 커밋 및 push"

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        if not cfg.version_bump or cfg.version_bump == "skip":
            try:
                git_ops.push(state.runner)
            except RuntimeError as e:
                raise FatalStepError(f"push 실패: {e}") from e
            return self.ok("버전 변경 없음, HEAD push 완료")
        try:
            committed = git_ops.commit_and_push(state.runner, [versioning.MANIFEST_FILE])
        except RuntimeError as e:
            raise FatalStepError(f"커밋/푸시 실패: {e}") from e
        if not committed:
            return self.warning("커밋할 변경 사항이 없어 push 만 수행")
        return self.ok("커밋 및 push 완료")


class ConfirmStep(Step):
    name = "confirm"
    description = "배포 확인"

    def __init__(self, confirm: Optional[Callable[[str], bool]] = None) -> None:
        self._confirm = confirm

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        if cfg.skip_confirmation:
            return self.skipped("-y 옵션으로 확인 생략")
        if self._confirm is None:
            return self.skipped("확인 함수 없음")
        question = f"'{cfg.service_name}' 을(를) '{cfg.project_id}' 에 배포할까요?"
        if not self._confirm(question):
            raise DeploymentCancelled("사용자가 배포를 취소했습니다.")
        return self.ok("확인됨")


class DockerfileEnvStep(Step):
    name = "dockerfile"
    description = "Dockerfile --env 플래그 교체"

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        try:
            changed = dockerfile.update_dockerfile(cfg.base_dir, cfg.environment, dry_run=cfg.dry_run)
        except FileNotFoundError as e:
            raise FatalStepError(str(e)) from e
        if not changed:
            return self.ok(f"이미 --env={cfg.environment}")
        return self.ok(f"--env={cfg.environment} 로 변경")


class IgnoreFileCommentStep(Step):
    name = "gitignore"
    description = ".gitignore 민감 항목 주석 처리"

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        try:
            state.commented_lines = gitignore.comment_out_file(
                cfg.base_dir, cfg.sensitive_entries, dry_run=cfg.dry_run
            )
        except FileNotFoundError as e:
            raise FatalStepError(str(e)) from e
        return self.ok(f"{len(state.commented_lines)} 줄 주석 처리 ({', '.join(cfg.sensitive_entries)})")


class ProjectStep(Step):
    name = "project"
    description = "gcloud 활성 프로젝트 설정 및 확인"

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        if cfg.dry_run:
            gcp_project.set_active_project(state.runner, cfg.project_id)
            return self.skipped("dry-run: 프로젝트 확인 생략")
        try:
            current = gcp_project.ensure_active_project(state.runner, cfg.project_id)
        except RuntimeError as e:
            raise FatalStepError(str(e)) from e
        return self.ok(f"Project ID 확인: {current}")


class SecretsStep(Step):
    name = "secrets"
    description = "Secret Manager 라벨 기반 secret 조회"

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        names = gcp_secrets.list_secret_names(cfg.project_id, cfg.secret_label)
        if not names:
            state.secret_flags = []
            return self.warning(f"라벨 {cfg.secret_label} 에 해당하는 secret 이 없습니다.")
        state.secret_flags = gcp_secrets.build_secret_flags(names, cfg.environment)
        logger.debug("Secret 플래그: %s", [f.as_flag() for f in state.secret_flags])
        return self.ok(", ".join(f"{f.env_var}={f.reference}" for f in state.secret_flags))


class DeployStep(Step):
    name = "deploy"
    description = "gcloud run deploy"

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        try:
            result = gcp_cloud_run.deploy_service(state.runner, cfg, state.secret_flags)
        except RuntimeError as e:
            state.deploy_succeeded = False
            return self.failed(f"{cfg.service_name} 배포 실패: {e}")
        state.deploy_succeeded = result.ok
        if not result.ok:
            return self.failed(f"{cfg.service_name} 배포 실패 (exit={result.returncode})")
        return self.ok(f"{cfg.service_name} 배포 성공")


class IgnoreFileRestoreStep(Step):
    name = "gitignore-restore"
    description = ".gitignore 주석 해제"
    cleanup = True

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        if state.commented_lines is None:
            return self.skipped(".gitignore 를 변경하지 않음")
        try:
            gitignore.uncomment_file(
                cfg.base_dir,
                cfg.sensitive_entries,
                only_lines=state.commented_lines,
                dry_run=cfg.dry_run,
            )
        except FileNotFoundError as e:
            return self.failed(str(e))
        return self.ok(f"{len(state.commented_lines)} 줄 복원")


class UntrackSensitiveFilesStep(Step):
    name = "untrack"
    description = "서비스 키/.npmrc 를 git 인덱스에서 제거"
    cleanup = True

    def run(self, cfg: DeploymentConfig, state: DeploymentState) -> StepResult:
        if not cfg.service_key_name:
            return self.skipped("서비스 키 미지정")
        if state.commented_lines is None:
            return self.skipped(".gitignore 를 변경하지 않음")
        git_ops.untrack_files(state.runner, cfg.sensitive_entries)
        return self.ok("git rm --cached 완료")


def default_steps(confirm: Optional[Callable[[str], bool]] = None) -> List[Step]:
    return [
        VersionBumpStep(),
        GitCommitPushStep(),
        ConfirmStep(confirm),
        DockerfileEnvStep(),
        IgnoreFileCommentStep(),
        ProjectStep(),
        SecretsStep(),
        DeployStep(),
        IgnoreFileRestoreStep(),
        UntrackSensitiveFilesStep(),
    ]


@dataclass
class PipelineReport:
    cfg: DeploymentConfig
    results: List[StepResult] = field(default_factory=list)
    fatal: Optional[str] = None
    cancelled: bool = False

    @property
    def has_failures(self) -> bool:
        return self.fatal is not None or any(r.status == StepStatus.FAILED for r in self.results)

    @property
    def exit_code(self) -> int:
        return 1 if self.has_failures else 0

    def summary(self) -> str:
        lines: List[str] = []
        lines.append("# Deploy summary")
        lines.append(f"- environment: {self.cfg.environment}")
        lines.append(f"- project: {self.cfg.project_id}")
        lines.append(f"- service: {self.cfg.service_name}")
        if self.cfg.dry_run:
            lines.append("- mode: dry-run")
        lines.append("")

        lines.append("## Steps")
        if self.results:
            for r in self.results:
                detail = f" - {r.message}" if r.message else ""
                lines.append(f"- {r.name}: {r.status.value.upper()}{detail}")
        else:
            lines.append("- (none)")

        if self.cancelled:
            lines.append("")
            lines.append("## Cancelled")
            lines.append("- 사용자가 배포를 취소했습니다.")

        if self.fatal:
            lines.append("")
            lines.append("## Fatal error")
            lines.append(f"- {self.fatal}")

        return "\n".join(lines)


def describe_plan(cfg: DeploymentConfig, steps: List[Step]) -> str:
    """
    실제 실행 없이 설정과 단계 목록을 요약한다.
    """
    lines: List[str] = []
    lines.append("# Deploy plan")
    lines.append(f"- environment: {cfg.environment}")
    lines.append(f"- project: {cfg.project_id}")
    lines.append(f"- service: {cfg.service_name}")
    lines.append(f"- region: {cfg.region}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- source_path: {cfg.source_path}")
    lines.append(f"- secret_label: {cfg.secret_label}")
    lines.append(f"- service_key_name: {cfg.service_key_name or '(not set)'}")
    lines.append(f"- version_bump: {cfg.version_bump or '(ask)'}")
    lines.append(f"- skip_confirmation: {cfg.skip_confirmation}")
    lines.append(f"- dry_run: {cfg.dry_run}")
    lines.append("")

    lines.append("## Steps")
    for idx, step in enumerate(steps, start=1):
        suffix = " (cleanup)" if step.cleanup else ""
        lines.append(f"{idx}. {step.name}: {step.description}{suffix}")

    return "\n".join(lines)


def run_pipeline(
    cfg: DeploymentConfig,
    steps: List[Step],
    runner: Optional[CommandRunner] = None,
    on_result: Optional[Callable[[StepResult], None]] = None,
) -> PipelineReport:
    """
    본 단계를 순서대로 실행하고, 중단되더라도 cleanup 단계는 모두 실행한다.
    """
    state = DeploymentState(runner=runner or CommandRunner(cwd=cfg.base_dir, dry_run=cfg.dry_run))
    report = PipelineReport(cfg=cfg)

    def record(result: StepResult) -> None:
        report.results.append(result)
        log = logger.warning if result.status in (StepStatus.WARNING, StepStatus.FAILED) else logger.info
        log("단계 %s: %s %s", result.name, result.status.value, result.message)
        if on_result is not None:
            on_result(result)

    main_steps = [s for s in steps if not s.cleanup]
    cleanup_steps = [s for s in steps if s.cleanup]

    for step in main_steps:
        logger.info("단계 실행: %s", step.name)
        try:
            record(step.run(cfg, state))
        except DeploymentCancelled as e:
            report.cancelled = True
            record(StepResult(step.name, StepStatus.SKIPPED, str(e)))
            break
        except FatalStepError as e:
            report.fatal = f"{step.name}: {e}"
            record(StepResult(step.name, StepStatus.FAILED, str(e)))
            break
        except Exception as e:  # noqa: BLE001
            logger.exception("단계 실행 중 예외: %s", step.name)
            report.fatal = f"{step.name}: {e}"
            record(StepResult(step.name, StepStatus.FAILED, str(e)))
            break

    for step in cleanup_steps:
        logger.info("정리 단계 실행: %s", step.name)
        try:
            record(step.run(cfg, state))
        except Exception as e:  # noqa: BLE001
            logger.exception("정리 단계 실패: %s", step.name)
            record(StepResult(step.name, StepStatus.FAILED, str(e)))

    return report
