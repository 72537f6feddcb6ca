import sys
from typing import Any, Callable, Optional

import click

from . import __version__
from .config import load_env_files, DeploymentConfig, is_valid_version_bump
from .logging_utils import setup_logging, get_logger
from .pipeline import StepResult, StepStatus, default_steps, describe_plan, run_pipeline
from .self_update import UpdateOutcome, check_for_updates, resolve_target, update_url
from .versioning import MENU_CHOICES


logger = get_logger(__name__)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

_STATUS_ICONS = {
    StepStatus.OK: ("✅", "green"),
    StepStatus.SKIPPED: ("⏭️ ", "yellow"),
    StepStatus.WARNING: ("⚠️ ", "yellow"),
    StepStatus.FAILED: ("❌", "red"),
}


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 올립니다. (-v: INFO, -vv: DEBUG)",
)
@click.version_option(__version__, prog_name="deploy-server")
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """Cloud Run 서버 배포 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose
    load_env_files(chdir)


def _config_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """deploy / plan 이 공유하는 설정 옵션"""
    options = [
        click.option("-e", "--environment", help="배포 환경 (예: staging, production)"),
        click.option("-p", "--project-id", help="Google Cloud Project ID"),
        click.option("-n", "--name", "service_name", help="Cloud Run 서비스 이름"),
        click.option("-r", "--region", help="배포 리전 (기본: europe-west1)"),
        click.option("-s", "--source", "source_path", help="소스 경로 (기본: 현재 디렉토리)"),
        click.option("-l", "--secret-label", help="Secret 라벨 (기본: env=<environment>)"),
        click.option("-k", "--service-key", "service_key_name", help="서비스 키 파일 이름"),
        click.option(
            "--bump",
            "version_bump",
            help="버전 업데이트 방식 (major | minor | patch | skip | x.y.z). 없으면 물어봅니다.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _resolve_config(ctx: click.Context, **values: Any) -> DeploymentConfig:
    """
    설정을 결정한다. 필수 인자가 없으면 usage 와 함께 exit 1.
    """
    try:
        return DeploymentConfig.resolve(base_dir=ctx.obj["chdir"], **values)
    except ValueError as e:
        click.echo(f"[ERROR] {e}", err=True)
        click.echo(ctx.get_usage(), err=True)
        click.echo("자세한 도움말은 -h 옵션을 사용하세요.", err=True)
        sys.exit(1)


def _ask_version_bump() -> str:
    click.echo("버전 업데이트 방식을 선택하세요:")
    click.echo("1) Major")
    click.echo("2) Minor")
    click.echo("3) Patch")
    click.echo("4) Manual")
    choice = click.prompt("선택 (1-4)", default="", show_default=False).strip()
    kind = MENU_CHOICES.get(choice)
    if kind is None:
        click.secho("잘못된 선택입니다. 버전 업데이트를 건너뜁니다.", fg="red")
        return "skip"
    if kind == "manual":
        manual = click.prompt("새 버전 번호").strip()
        if not is_valid_version_bump(manual):
            click.secho(f"잘못된 버전 번호입니다: {manual}. 버전 업데이트를 건너뜁니다.", fg="red")
            return "skip"
        return manual
    return kind


def _echo_result(result: StepResult) -> None:
    icon, color = _STATUS_ICONS[result.status]
    detail = f" {result.message}" if result.message else ""
    click.secho(f"{icon} [{result.name}]{detail}", fg=color)


def _run_update_check(base_dir: str, url: Optional[str], assume_yes: bool, target: Optional[str] = None) -> int:
    target_path = resolve_target(base_dir, target)
    click.secho(f"🔄 업데이트 확인 중... ({target_path})", fg="yellow")

    def confirm(remote_version: str) -> bool:
        click.secho(f"✅ 업데이트가 있습니다: {remote_version}", fg="green")
        return assume_yes or click.confirm("업데이트할까요?", default=False)

    result = check_for_updates(target_path, confirm, url=url)
    if result.outcome == UpdateOutcome.UP_TO_DATE:
        click.secho(f"✅ 최신 버전입니다. ({result.current_version})", fg="green")
    elif result.outcome == UpdateOutcome.UPDATED:
        click.secho("✅ 업데이트 완료. 명령을 다시 실행하세요.", fg="green")
    elif result.outcome == UpdateOutcome.DECLINED:
        click.secho("⚠️ 업데이트를 건너뛰었습니다.", fg="yellow")
    else:
        click.secho(f"❌ 업데이트 확인에 실패했습니다. {result.message}", fg="red", err=True)
    # 업데이트 실패는 안내만 하고 종료 코드는 0
    return 0


@main.command()
@_config_options
@click.option("-y", "--yes", "skip_confirmation", is_flag=True, help="배포 확인을 생략합니다.")
@click.option("-u", "--check-updates", is_flag=True, help="업데이트를 확인하고 종료합니다.")
@click.option("--dry-run", is_flag=True, help="외부 명령과 파일 변경 없이 실행 순서만 확인합니다.")
@click.option(
    "--no-allow-unauthenticated",
    "allow_unauthenticated",
    is_flag=True,
    flag_value=False,
    default=True,
    help="--allow-unauthenticated 플래그를 붙이지 않습니다.",
)
@click.pass_context
def deploy(ctx: click.Context, check_updates: bool, **values: Any) -> None:
    """버전 업데이트 -> git push -> Cloud Run 배포까지 순서대로 실행"""
    if check_updates:
        ctx.exit(_run_update_check(ctx.obj["chdir"], None, assume_yes=False))

    cfg = _resolve_config(ctx, **values)
    if cfg.version_bump is None:
        cfg = DeploymentConfig.resolve(
            base_dir=cfg.base_dir, **{**values, "version_bump": _ask_version_bump()}
        )
    logger.debug("Config resolved: %s", cfg)

    click.secho(f"🚀 배포를 시작합니다... ({cfg.environment})", fg="yellow")

    steps = default_steps(confirm=lambda question: click.confirm(f"🤔 {question}", default=False))
    try:
        report = run_pipeline(cfg, steps, on_result=_echo_result)
    except Exception as e:  # noqa: BLE001
        logger.exception("배포 중 오류 발생")
        click.echo(f"[ERROR] 배포 실패: {e}", err=True)
        sys.exit(1)

    click.echo("")
    click.echo(report.summary())

    if report.cancelled:
        click.secho("🛑 사용자가 배포를 취소했습니다.", fg="yellow")
    elif report.fatal:
        click.echo(f"[ERROR] {report.fatal}", err=True)

    sys.exit(report.exit_code)


@main.command()
@_config_options
@click.pass_context
def plan(ctx: click.Context, **values: Any) -> None:
    """설정을 해석하고 실행될 단계 목록을 출력 (아무것도 실행하지 않음)"""
    cfg = _resolve_config(ctx, **values)
    click.echo(describe_plan(cfg, default_steps()))


@main.command()
@click.option("--url", default=None, help="업데이트 URL (기본: DEPLOY_UPDATE_URL 또는 upstream deploy_server.sh)")
@click.option(
    "--target",
    default=None,
    help="교체할 스크립트 경로 (기본: DEPLOY_UPDATE_TARGET 또는 <작업 디렉토리>/deploy_server.sh)",
)
@click.option("-y", "--yes", "assume_yes", is_flag=True, help="묻지 않고 업데이트합니다.")
@click.pass_context
def update(ctx: click.Context, url: Optional[str], target: Optional[str], assume_yes: bool) -> None:
    """프로젝트의 deploy_server.sh 를 최신 버전으로 교체"""
    logger.debug("update url: %s", url or update_url())
    ctx.exit(_run_update_check(ctx.obj["chdir"], url, assume_yes, target))
