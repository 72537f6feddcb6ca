import os
from typing import Any, List

import pytest
from click.testing import CliRunner

from server_deploy import cli
from server_deploy.pipeline import PipelineReport, StepResult, StepStatus
from server_deploy.self_update import UpdateOutcome, UpdateResult


REQUIRED = ["-e", "staging", "-p", "test-project", "-n", "api-server"]


@pytest.mark.parametrize(
    "args",
    [
        [],
        ["-p", "test-project", "-n", "api-server"],
        ["-e", "staging", "-n", "api-server"],
        ["-e", "staging", "-p", "test-project"],
    ],
)
def test_missing_required_arguments_exit_1(args: List[str], project_dir: str) -> None:
    result = CliRunner().invoke(cli.main, ["-C", project_dir, "deploy", *args])

    assert result.exit_code == 1
    assert "필수 인자가 누락되었습니다" in result.output
    assert "Usage:" in result.output


def test_help_lists_flags() -> None:
    result = CliRunner().invoke(cli.main, ["deploy", "-h"])

    assert result.exit_code == 0
    for flag in ("--environment", "--project-id", "--name", "--region", "--source",
                 "--secret-label", "--service-key", "--yes", "--check-updates", "--dry-run"):
        assert flag in result.output


def test_check_updates_exits_without_deploying(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Any] = []

    def fake_check(target: str, confirm, url=None):  # noqa: ANN001, ANN202
        calls.append(target)
        return UpdateResult(UpdateOutcome.UP_TO_DATE, "2.0.0", "2.0.0")

    def fail_pipeline(*args: Any, **kwargs: Any) -> None:
        raise AssertionError("pipeline should not run")

    monkeypatch.setattr(cli, "check_for_updates", fake_check)
    monkeypatch.setattr(cli, "run_pipeline", fail_pipeline)

    result = CliRunner().invoke(cli.main, ["deploy", "-u"])

    assert result.exit_code == 0
    assert len(calls) == 1
    assert "최신 버전" in result.output


def test_update_command_declined(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_check(target: str, confirm, url=None):  # noqa: ANN001, ANN202
        assert confirm("2.1.0") is False
        return UpdateResult(UpdateOutcome.DECLINED, "2.0.0", "2.1.0")

    monkeypatch.setattr(cli, "check_for_updates", fake_check)

    result = CliRunner().invoke(cli.main, ["update"], input="n\n")

    assert result.exit_code == 0
    assert "건너뛰었습니다" in result.output


def test_update_targets_project_script_not_console_entry(
    monkeypatch: pytest.MonkeyPatch, project_dir: str
) -> None:
    calls: List[str] = []

    def fake_check(target: str, confirm, url=None):  # noqa: ANN001, ANN202
        calls.append(target)
        return UpdateResult(UpdateOutcome.UP_TO_DATE, "2.0.0", "2.0.0")

    monkeypatch.setattr(cli, "check_for_updates", fake_check)
    monkeypatch.setattr(cli.sys, "argv", ["/usr/local/bin/deploy-server", "update"])

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "update"])

    assert result.exit_code == 0, result.output
    assert calls == [os.path.abspath(os.path.join(project_dir, "deploy_server.sh"))]


def test_deploy_check_updates_uses_project_script(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    calls: List[str] = []

    def fake_check(target: str, confirm, url=None):  # noqa: ANN001, ANN202
        calls.append(target)
        return UpdateResult(UpdateOutcome.UP_TO_DATE, "2.0.0", "2.0.0")

    monkeypatch.setattr(cli, "check_for_updates", fake_check)

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "deploy", "-u"])

    assert result.exit_code == 0, result.output
    assert calls == [os.path.abspath(os.path.join(project_dir, "deploy_server.sh"))]


def test_update_target_option_overrides_default(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    calls: List[str] = []

    def fake_check(target: str, confirm, url=None):  # noqa: ANN001, ANN202
        calls.append(target)
        return UpdateResult(UpdateOutcome.UP_TO_DATE, "2.0.0", "2.0.0")

    monkeypatch.setattr(cli, "check_for_updates", fake_check)

    result = CliRunner().invoke(
        cli.main, ["-C", project_dir, "update", "--target", "scripts/deploy_staging_server.sh"]
    )

    assert result.exit_code == 0, result.output
    assert calls == [os.path.abspath(os.path.join(project_dir, "scripts", "deploy_staging_server.sh"))]


def _fake_report(status: StepStatus, fatal: str | None = None):  # noqa: ANN202
    captured: dict[str, Any] = {}

    def fake_run(cfg, steps, runner=None, on_result=None):  # noqa: ANN001, ANN202
        captured["cfg"] = cfg
        captured["steps"] = [s.name for s in steps]
        report = PipelineReport(cfg=cfg, fatal=fatal)
        result = StepResult("deploy", status, "")
        report.results.append(result)
        if on_result is not None:
            on_result(result)
        return report

    return fake_run, captured


def test_deploy_success_passes_resolved_config(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    fake_run, captured = _fake_report(StepStatus.OK)
    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    result = CliRunner().invoke(
        cli.main,
        ["-C", project_dir, "deploy", *REQUIRED, "-k", "key.json", "-y", "--bump", "minor", "-r", "us-central1"],
    )

    assert result.exit_code == 0, result.output
    cfg = captured["cfg"]
    assert cfg.environment == "staging"
    assert cfg.region == "us-central1"
    assert cfg.service_key_name == "key.json"
    assert cfg.skip_confirmation
    assert cfg.version_bump == "minor"
    assert cfg.base_dir == project_dir
    assert captured["steps"][0] == "version"
    assert "# Deploy summary" in result.output


def test_deploy_prompts_for_version_choice(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    fake_run, captured = _fake_report(StepStatus.OK)
    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "deploy", *REQUIRED, "-y"], input="3\n")

    assert result.exit_code == 0, result.output
    assert captured["cfg"].version_bump == "patch"


def test_deploy_manual_version_choice(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    fake_run, captured = _fake_report(StepStatus.OK)
    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "deploy", *REQUIRED, "-y"], input="4\n3.0.0\n")

    assert result.exit_code == 0, result.output
    assert captured["cfg"].version_bump == "3.0.0"


def test_invalid_version_choice_skips_bump(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    fake_run, captured = _fake_report(StepStatus.OK)
    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "deploy", *REQUIRED, "-y"], input="9\n")

    assert result.exit_code == 0, result.output
    assert captured["cfg"].version_bump == "skip"


def test_fatal_failure_exits_1(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    fake_run, _ = _fake_report(StepStatus.FAILED, fatal="project: Project ID 불일치")
    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "deploy", *REQUIRED, "-y", "--bump", "skip"])

    assert result.exit_code == 1
    assert "Project ID 불일치" in result.output


def test_failed_deploy_exits_1(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    fake_run, _ = _fake_report(StepStatus.FAILED)
    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "deploy", *REQUIRED, "-y", "--bump", "skip"])

    assert result.exit_code == 1


def test_env_file_supplies_required_values(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    with open(os.path.join(project_dir, ".env.deploy"), "w", encoding="utf-8") as f:
        f.write("DEPLOY_ENVIRONMENT=staging\nGCP_PROJECT_ID=env-project\nCLOUD_RUN_SERVICE=env-svc\n")

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "plan"])

    assert result.exit_code == 0, result.output
    assert "- project: env-project" in result.output
    assert "- service: env-svc" in result.output


def test_plan_does_not_run_anything(monkeypatch: pytest.MonkeyPatch, project_dir: str) -> None:
    def fail_pipeline(*args: Any, **kwargs: Any) -> None:
        raise AssertionError("pipeline should not run")

    monkeypatch.setattr(cli, "run_pipeline", fail_pipeline)

    result = CliRunner().invoke(cli.main, ["-C", project_dir, "plan", *REQUIRED])

    assert result.exit_code == 0
    assert "# Deploy plan" in result.output
    assert "secret_label: env=staging" in result.output
