"""
CLI 테스트
"""

from unittest.mock import patch
from click.testing import CliRunner

from ci_vpn_agent.cli import cli
from ci_vpn_agent.status import TailscaleStatus


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_up_passes_overrides(tmp_path, monkeypatch):
    """CLI 옵션이 설정에 반영되고 성공 시 종료 코드 0"""
    monkeypatch.chdir(tmp_path)
    with patch("ci_vpn_agent.cli.AgentOrchestrator") as orchestrator:
        orchestrator.return_value.run.return_value = True
        result = CliRunner().invoke(cli, [
            "up", "--authkey", "tskey-auth-1", "--tailscale-version", "latest",
            "--retry", "3", "--use-cache",
        ])

    assert result.exit_code == 0
    cfg = orchestrator.call_args.args[0]
    assert cfg.tailscale.authkey == "tskey-auth-1"
    assert cfg.tailscale.version == "latest"
    assert cfg.tailscale.retry == 3
    assert cfg.tailscale.use_cache is True


def test_up_failure_exit_code(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with patch("ci_vpn_agent.cli.AgentOrchestrator") as orchestrator:
        orchestrator.return_value.run.return_value = False
        result = CliRunner().invoke(cli, ["up", "--authkey", "tskey-auth-1"])
    assert result.exit_code == 1


def test_up_invalid_retry(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with patch("ci_vpn_agent.cli.AgentOrchestrator") as orchestrator:
        result = CliRunner().invoke(cli, ["up", "--authkey", "tskey-auth-1", "--retry", "0"])
    assert result.exit_code == 1
    orchestrator.assert_not_called()


def test_cleanup_always_exits_zero(tmp_path, monkeypatch):
    """정리 단계 오류는 종료 코드에 영향 없음"""
    monkeypatch.chdir(tmp_path)
    with patch("ci_vpn_agent.cli.CleanupRunner") as runner:
        runner.return_value.run.side_effect = RuntimeError("unexpected")
        result = CliRunner().invoke(cli, ["cleanup"])
    assert result.exit_code == 0


def test_cleanup_bad_config_exits_zero(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("- not\n- a mapping\n")
    with patch("ci_vpn_agent.cli.CleanupRunner") as runner:
        result = CliRunner().invoke(cli, ["cleanup", "--config", str(config_file), "--no-bugreport"])
    assert result.exit_code == 0
    assert runner.call_args.kwargs["bugreport"] is False


def test_logout_always_exits_zero(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with patch("ci_vpn_agent.cli.CleanupRunner") as runner:
        runner.return_value.run_logout_only.return_value = False
        result = CliRunner().invoke(cli, ["logout"])
    assert result.exit_code == 0


def test_status_running(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RUNNER_OS", "Linux")
    with patch("ci_vpn_agent.cli.LocalAPIClient") as client:
        client.return_value.get_status.return_value = TailscaleStatus("Running", ["100.64.0.1"])
        result = CliRunner().invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "100.64.0.1" in result.output


def test_status_not_running(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RUNNER_OS", "Linux")
    with patch("ci_vpn_agent.cli.LocalAPIClient") as client:
        client.return_value.get_status.return_value = TailscaleStatus("Stopped")
        result = CliRunner().invoke(cli, ["status"])
    assert result.exit_code == 1


def test_init_and_validate(tmp_path, monkeypatch):
    """샘플 생성 후 인증 정보가 없으면 검증 실패"""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RUNNER_OS", "Linux")
    output = tmp_path / "config.yaml"

    result = CliRunner().invoke(cli, ["init", str(output)])
    assert result.exit_code == 0
    assert output.exists()

    result = CliRunner().invoke(cli, ["validate", "--config", str(output)])
    assert result.exit_code == 1

    monkeypatch.setenv("INPUT_AUTHKEY", "tskey-auth-1")
    result = CliRunner().invoke(cli, ["validate", "--config", str(output)])
    assert result.exit_code == 0
