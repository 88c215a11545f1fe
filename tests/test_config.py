"""
설정 관리 모듈 테스트
"""

import os
import tempfile
import pytest

from ci_vpn_agent.config import Config, TailscaleConfig, TailscaleInputs, parse_bool, validate_auth
from ci_vpn_agent.errors import ConfigError
from ci_vpn_agent.platforms import RunnerOS


def test_default_config():
    """기본 설정 테스트"""
    config = Config(env={}, load_files=False)
    assert config.tailscale.version == "1.82.0"
    assert config.tailscale.timeout == "60s"
    assert config.tailscale.retry == 5
    assert config.tailscale.use_cache is False
    assert config.agent.install_method == "auto"


def test_config_load_yaml():
    """YAML 설정 파일 로드 테스트"""
    yaml_content = """
tailscale:
  authkey: "tskey-auth-abc"
  version: "latest"
  retry: 3
  use-cache: "true"

agent:
  prefer_service: yes
"""

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(yaml_content)
        temp_path = f.name

    try:
        config = Config(temp_path, env={})
        assert config.tailscale.authkey == "tskey-auth-abc"
        assert config.tailscale.version == "latest"
        assert config.tailscale.retry == 3
        assert config.tailscale.use_cache is True
        assert config.agent.prefer_service is True
    finally:
        os.unlink(temp_path)


def test_config_invalid_yaml(tmp_path):
    """잘못된 YAML은 ConfigError"""
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        Config(str(path), env={})


def test_config_save(tmp_path):
    """설정 저장 테스트"""
    config = Config(env={}, load_files=False)
    config.tailscale.hostname = "ci-box"
    temp_path = str(tmp_path / "saved.yaml")

    config.save(temp_path)

    config2 = Config(temp_path, env={})
    assert config2.tailscale.hostname == "ci-box"


def test_config_to_dict():
    """딕셔너리 변환 테스트"""
    data = Config(env={}, load_files=False).to_dict()

    assert "tailscale" in data
    assert "agent" in data
    assert data["tailscale"]["retry"] == 5


def test_action_inputs_override_file(tmp_path):
    """INPUT_* 환경변수가 설정 파일보다 우선"""
    path = tmp_path / "config.yaml"
    path.write_text('tailscale:\n  version: "1.80.0"\n  timeout: "30s"\n')
    env = {
        "INPUT_VERSION": "1.82.0",
        "INPUT_OAUTH-CLIENT-SECRET": "tskey-client-xyz",
        "INPUT_TAGS": "tag:ci",
        "INPUT_USE-CACHE": "TRUE",
        "INPUT_RETRY": "2",
        "INPUT_HOSTNAME": "",
    }

    config = Config(str(path), env=env)

    assert config.tailscale.version == "1.82.0"
    assert config.tailscale.timeout == "30s"
    assert config.tailscale.oauth_secret == "tskey-client-xyz"
    assert config.tailscale.tags == "tag:ci"
    assert config.tailscale.use_cache is True
    assert config.tailscale.retry == 2
    assert config.tailscale.hostname == ""


def test_cli_overrides_ignore_none():
    config = Config(env={}, load_files=False)
    config.apply_overrides(authkey="tskey-auth-1", retry=None, use_cache=True)
    assert config.tailscale.authkey == "tskey-auth-1"
    assert config.tailscale.retry == 5
    assert config.tailscale.use_cache is True


def test_invalid_boolean_and_retry():
    with pytest.raises(ConfigError):
        parse_bool("maybe", "use-cache")
    with pytest.raises(ConfigError):
        Config(env={"INPUT_RETRY": "0"}, load_files=False)
    with pytest.raises(ConfigError):
        Config(env={"INPUT_RETRY": "many"}, load_files=False)


@pytest.mark.parametrize("inputs", [
    TailscaleInputs(authkey="tskey-auth-1"),
    TailscaleInputs(oauth_secret="tskey-client-1", tags="tag:ci"),
])
def test_validate_auth_accepts_one_mode(inputs):
    validate_auth(inputs)


@pytest.mark.parametrize("inputs", [
    TailscaleInputs(),
    TailscaleInputs(oauth_secret="tskey-client-1"),
    TailscaleInputs(tags="tag:ci"),
    TailscaleInputs(authkey="tskey-auth-1", oauth_secret="tskey-client-1", tags="tag:ci"),
])
def test_validate_auth_rejects(inputs):
    with pytest.raises(ConfigError):
        validate_auth(inputs)


def test_install_method_only_on_macos():
    config = Config(env={"INPUT_AUTHKEY": "tskey-auth-1"}, load_files=False)
    config.agent.install_method = "brew"
    with pytest.raises(ConfigError):
        config.validate(RunnerOS.LINUX)
    config.validate(RunnerOS.MACOS)


def test_brew_verify_requires_hash():
    config = Config(env={"INPUT_AUTHKEY": "tskey-auth-1"}, load_files=False)
    config.agent.install_method = "brew"
    config.agent.package_manager_policy = "verify"
    with pytest.raises(ConfigError):
        config.validate(RunnerOS.MACOS)


def test_resolved_config_is_frozen():
    config = Config(env={"INPUT_AUTHKEY": "tskey-auth-1"}, load_files=False)
    resolved = TailscaleConfig.build(config, RunnerOS.LINUX, "amd64", "1.82.0")

    assert resolved.authkey == "tskey-auth-1"
    assert resolved.resolved_version == "1.82.0"
    assert resolved.moving_target is False
    with pytest.raises(Exception):
        resolved.retry = 10


def test_moving_target():
    config = Config(env={"INPUT_AUTHKEY": "k", "INPUT_VERSION": "latest"}, load_files=False)
    resolved = TailscaleConfig.build(config, RunnerOS.LINUX, "amd64", "1.84.2")
    assert resolved.moving_target is True


def test_create_sample(tmp_path):
    output = tmp_path / "sample" / "config.yaml"
    Config(env={}, load_files=False).create_sample(str(output))

    config = Config(str(output), env={})
    assert config.tailscale.version == "1.82.0"
    assert config.agent.package_manager_policy == "trust"


def test_missing_config_file_raises(tmp_path):
    """명시한 설정 파일이 없으면 ConfigError"""
    with pytest.raises(ConfigError):
        Config(str(tmp_path / "missing.yaml"), env={})
