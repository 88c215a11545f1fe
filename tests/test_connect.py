"""
VPN 연결 모듈 테스트
"""

import subprocess
import pytest
from unittest.mock import MagicMock, patch

from conftest import completed
from ci_vpn_agent.connect import (
    ConnectionNegotiator, build_hostname, build_up_args, parse_timeout,
)
from ci_vpn_agent.errors import CommandError, CommandTimeoutError, VPNConnectionError
from ci_vpn_agent.platforms import RunnerOS, get_platform


@pytest.mark.parametrize("value,expected", [
    ("30", 30000),
    ("30s", 30000),
    ("2m", 120000),
    ("1h", 3600000),
    ("garbage", 120000),
    ("", 120000),
    ("1.5m", 120000),
])
def test_parse_timeout(value, expected):
    """타임아웃 문자열 -> 밀리초"""
    assert parse_timeout(value) == expected


def test_build_hostname():
    assert build_hostname("", "runner01") == "github-runner01"
    assert build_hostname("my-node", "runner01") == "my-node"


def test_build_hostname_truncated():
    """DNS 레이블 최대 길이 63자"""
    hostname = build_hostname("", "r" * 100)
    assert len(hostname) == 63
    assert hostname.startswith("github-")


def test_up_args_authkey(make_config):
    args = build_up_args(make_config(args="--ssh --accept-dns=false"), "github-runner01")
    assert args == [
        "up",
        "--authkey=tskey-auth-test",
        "--hostname=github-runner01",
        "--accept-routes",
        "--ssh",
        "--accept-dns=false",
    ]


def test_up_args_oauth_windows(make_config):
    """OAuth는 태그와 ephemeral 파라미터, Windows는 --unattended"""
    config = make_config(runner_os=RunnerOS.WINDOWS, authkey="",
                         oauth_secret="tskey-client-abc", tags="tag:ci")
    args = build_up_args(config, "github-win")
    assert args[:2] == ["up", "--advertise-tags=tag:ci"]
    assert "--authkey=tskey-client-abc?preauthorized=true&ephemeral=true" in args
    assert args[-1] == "--unattended"


def test_connect_success(make_config):
    platform = get_platform(RunnerOS.LINUX)
    negotiator = ConnectionNegotiator(platform, sleep=MagicMock())

    with patch("ci_vpn_agent.process.subprocess.run", return_value=completed()) as run:
        negotiator.connect(make_config(timeout="30s"), "github-runner01")

    cmd = run.call_args.args[0]
    assert cmd[:4] == ["sudo", "-E", "tailscale", "up"]
    assert run.call_args.kwargs["timeout"] == 30
    assert [a.outcome for a in negotiator.attempts] == ["succeeded"]


def test_connect_retries_then_raises_last_error(make_config):
    """3회 모두 실패하면 2초, 4초 대기 후 마지막 오류 전파"""
    sleep = MagicMock()
    negotiator = ConnectionNegotiator(get_platform(RunnerOS.LINUX), sleep=sleep)
    failures = [completed(returncode=1, stderr=f"backend error {n}") for n in (1, 2, 3)]

    with patch("ci_vpn_agent.process.subprocess.run", side_effect=failures) as run:
        with pytest.raises(VPNConnectionError) as exc_info:
            negotiator.connect(make_config(retry=3), "github-runner01")

    assert run.call_count == 3
    assert [c.args[0] for c in sleep.call_args_list] == [2, 4]
    assert isinstance(exc_info.value.__cause__, CommandError)
    assert "backend error 3" in str(exc_info.value)
    assert len(negotiator.attempts) == 3


def test_connect_fail_then_succeed(make_config):
    sleep = MagicMock()
    negotiator = ConnectionNegotiator(get_platform(RunnerOS.LINUX), sleep=sleep)

    with patch("ci_vpn_agent.process.subprocess.run",
               side_effect=[completed(returncode=1, stderr="not ready"), completed()]):
        negotiator.connect(make_config(retry=3), "github-runner01")

    sleep.assert_called_once_with(2)
    assert [a.outcome for a in negotiator.attempts] == ["failed", "succeeded"]


def test_connect_timeout_counts_as_failure(make_config):
    """타임아웃도 일반 실패와 같이 재시도"""
    sleep = MagicMock()
    negotiator = ConnectionNegotiator(get_platform(RunnerOS.LINUX), sleep=sleep)
    timeout = subprocess.TimeoutExpired(["tailscale", "up"], 1)

    with patch("ci_vpn_agent.process.subprocess.run", side_effect=[timeout, timeout]):
        with pytest.raises(VPNConnectionError) as exc_info:
            negotiator.connect(make_config(retry=2, timeout="1s"), "github-runner01")

    assert isinstance(exc_info.value.__cause__, CommandTimeoutError)
    sleep.assert_called_once_with(2)
    assert [a.outcome for a in negotiator.attempts] == ["timeout", "timeout"]
