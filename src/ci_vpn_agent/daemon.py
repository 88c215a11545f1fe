"""
tailscaled 데몬 관리 모듈
분리된 백그라운드 실행 및 로컬 API 준비 대기
"""

import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console

from .config import TailscaleConfig, split_args
from .errors import AgentError, CommandError, DaemonTimeoutError, ParseError, StatusError
from .logger import get_logger
from .platforms import PlatformInfo, RunnerOS
from .process import run_command
from .status import LocalAPIClient, TailscaleStatus

console = Console()

POLL_INTERVAL = 0.5
READY_TIMEOUT = 15.0
DAEMON_BINARY = "tailscaled"


def daemon_args(config: TailscaleConfig) -> List[str]:
    """--statedir=<path> 또는 --state=mem: + 사용자 인자"""
    if config.statedir:
        Path(config.statedir).mkdir(parents=True, exist_ok=True)
        state_args = [f"--statedir={config.statedir}"]
    else:
        state_args = ["--state=mem:"]
    return [*state_args, *split_args(config.tailscaled_args)]


class DaemonSupervisor:
    """tailscaled 시작 및 준비 대기 (Windows는 서비스가 담당하므로 no-op)"""

    def __init__(self, platform: PlatformInfo, client: LocalAPIClient,
                 poll_interval: float = POLL_INTERVAL,
                 ready_timeout: float = READY_TIMEOUT,
                 sleep: Optional[Callable[[float], None]] = None):
        self.platform = platform
        self.client = client
        self.poll_interval = poll_interval
        self.ready_timeout = ready_timeout
        self.sleep = sleep or time.sleep
        self.logger = get_logger()

    def start(self, config: TailscaleConfig):
        if not self.platform.manages_daemon:
            self.logger.info("Tailscale service manages the daemon on this platform")
            return

        if config.prefer_service and self.platform.runner_os == RunnerOS.LINUX:
            if self._start_service():
                self.wait_until_ready()
                return

        self.spawn(config)
        self.wait_until_ready()
        console.print("[green]✓ tailscaled 데몬 실행 중[/green]")
        self.logger.info("tailscaled daemon is up and running")

    def _start_service(self) -> bool:
        """systemctl start tailscaled, 실패 시 수동 실행으로 대체"""
        try:
            run_command(["systemctl", "start", DAEMON_BINARY], elevate=self.platform.elevate, timeout=30)
        except CommandError as e:
            self.logger.warning(f"systemctl start tailscaled failed, starting manually: {e}")
            return False
        self.logger.info("tailscaled started via systemd")
        return True

    def spawn(self, config: TailscaleConfig) -> int:
        """부모와 분리된 프로세스로 tailscaled 실행, pid 반환"""
        args = daemon_args(config)
        cmd = [*self.platform.elevate, DAEMON_BINARY, *args]
        console.print("[cyan]tailscaled 데몬 시작 중...[/cyan]")
        self.logger.info(f"Starting tailscaled: {' '.join(cmd)}")

        log_path = Path(config.daemon_log) if config.daemon_log else None
        if log_path:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            stderr = open(log_path, "wb")
        else:
            stderr = subprocess.DEVNULL

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=stderr,
                start_new_session=True,
                close_fds=True,
            )
        except OSError as e:
            raise AgentError(f"Failed to start tailscaled: {e}", stage="daemon") from e
        finally:
            # 자식이 파일 디스크립터를 물려받았으므로 부모 쪽은 닫음
            if stderr is not subprocess.DEVNULL:
                stderr.close()

        if config.pid_file:
            write_pid_file(config.pid_file, process.pid)
        self.logger.debug(f"tailscaled pid {process.pid}")
        return process.pid

    def wait_until_ready(self) -> TailscaleStatus:
        """로컬 API가 JSON을 돌려줄 때까지 대기 (상태값은 무관)"""
        self.logger.info("Waiting for tailscaled daemon to become ready...")
        waited = 0.0
        while waited < self.ready_timeout:
            try:
                status = self.client.get_status()
                self.logger.info(f"Daemon ready! Initial state: {status.backend_state}")
                return status
            except (StatusError, ParseError) as e:
                self.logger.debug(f"Waiting for daemon... ({int(waited * 1000)}ms elapsed): {e}")
            self.sleep(self.poll_interval)
            waited += self.poll_interval

        raise DaemonTimeoutError(
            f"tailscaled daemon did not become ready within {self.ready_timeout:g}s"
        )


def write_pid_file(path: str, pid: int):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(f"{pid}\n", encoding="utf-8")


def read_pid_file(path: str) -> Optional[int]:
    try:
        return int(Path(path).read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None
