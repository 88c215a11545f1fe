"""
VPN 연결 모듈
tailscale up 명령 구성 및 타임아웃/재시도 처리
"""

import re
import socket
from dataclasses import dataclass
from typing import Callable, List, Optional

from rich.console import Console

from .config import TailscaleConfig, split_args
from .errors import CommandError, CommandTimeoutError, VPNConnectionError
from .logger import get_logger
from .platforms import PlatformInfo, RunnerOS
from .process import run_command
from .retry import linear_backoff, retry_call

console = Console()

DEFAULT_TIMEOUT_MS = 120000
HOSTNAME_PREFIX = "github-"
MAX_HOSTNAME_LENGTH = 63
RETRY_BACKOFF_BASE = 2

_TIMEOUT_PATTERN = re.compile(r"^(\d+)([smh]?)$")
_UNIT_MS = {"s": 1000, "m": 60 * 1000, "h": 60 * 60 * 1000}


def parse_timeout(timeout: str) -> int:
    """'30', '30s', '2m', '1h' -> 밀리초 (형식 오류 시 120000)"""
    match = _TIMEOUT_PATTERN.match((timeout or "").strip())
    if not match:
        return DEFAULT_TIMEOUT_MS
    value, unit = match.groups()
    return int(value) * _UNIT_MS[unit or "s"]


def build_hostname(configured: str = "", raw_hostname: Optional[str] = None,
                   prefix: str = HOSTNAME_PREFIX) -> str:
    """설정값 또는 prefix+머신 호스트명, DNS 레이블 길이(63)로 자름"""
    hostname = configured
    if not hostname:
        raw = raw_hostname if raw_hostname is not None else socket.gethostname()
        hostname = f"{prefix}{raw.strip()}"
    return hostname[:MAX_HOSTNAME_LENGTH]


def build_auth_key(config: TailscaleConfig) -> str:
    if config.uses_oauth:
        return f"{config.oauth_secret}?preauthorized=true&ephemeral=true"
    return config.authkey


def build_up_args(config: TailscaleConfig, hostname: str) -> List[str]:
    """tailscale up 인자 (사용자 인자는 마지막에 붙여 덮어쓸 수 있게 함)"""
    args = ["up"]
    if config.uses_oauth and config.tags:
        args.append(f"--advertise-tags={config.tags}")
    args.append(f"--authkey={build_auth_key(config)}")
    args.append(f"--hostname={hostname}")
    args.append("--accept-routes")
    if config.runner_os == RunnerOS.WINDOWS:
        args.append("--unattended")
    args.extend(split_args(config.args))
    return args


@dataclass
class ConnectionAttempt:
    """재시도 루프 1회분"""
    number: int
    args: List[str]
    timeout_ms: int
    outcome: str = "pending"


class ConnectionNegotiator:
    """tailscale up 실행, 실패/타임아웃 시 attempt*2초 후 재시도"""

    def __init__(self, platform: PlatformInfo,
                 sleep: Optional[Callable[[float], None]] = None,
                 backoff: Callable[[int], float] = linear_backoff(RETRY_BACKOFF_BASE)):
        self.platform = platform
        self.sleep = sleep
        self.backoff = backoff
        self.attempts: List[ConnectionAttempt] = []
        self.logger = get_logger()

    def connect(self, config: TailscaleConfig, hostname: Optional[str] = None):
        hostname = build_hostname(config.hostname) if hostname is None else hostname
        timeout_ms = parse_timeout(config.timeout)
        self.attempts = []

        console.print("\n[bold cyan]Tailscale 연결 시작...[/bold cyan]\n")
        retry_call(
            lambda number: self._attempt(config, hostname, timeout_ms, number),
            max_attempts=config.retry,
            backoff=self.backoff,
            retryable=(VPNConnectionError,),
            sleep=self.sleep,
            label="Tailscale up",
        )

    def _attempt(self, config: TailscaleConfig, hostname: str, timeout_ms: int, number: int):
        attempt = ConnectionAttempt(number, build_up_args(config, hostname), timeout_ms)
        self.attempts.append(attempt)
        console.print(f"[cyan]Tailscale 연결 시도 {number}/{config.retry}...[/cyan]")
        self.logger.info(f"Attempt {number} to bring up Tailscale...")

        cmd = ["tailscale", *attempt.args]
        self.logger.info(f"Running: {' '.join([*self.platform.elevate, *cmd])} (timeout: {timeout_ms}ms)")
        try:
            run_command(cmd, elevate=self.platform.elevate, timeout=timeout_ms / 1000)
        except CommandError as e:
            # 재시도 판단에서는 타임아웃과 명령 실패를 구분하지 않음
            attempt.outcome = "timeout" if isinstance(e, CommandTimeoutError) else "failed"
            raise VPNConnectionError(str(e)) from e

        attempt.outcome = "succeeded"
        console.print("[green]✓ Tailscale 연결 성공![/green]")
        self.logger.info(f"Tailscale up command completed successfully on attempt {number}")
