"""
정리 모듈 (post 단계)
각 단계는 실패해도 다음 단계를 계속 진행하며 예외를 전파하지 않음
"""

import shutil
from typing import Callable, List, Tuple

from rich.console import Console

from .daemon import DAEMON_BINARY, read_pid_file
from .errors import AgentError
from .logger import get_logger
from .platforms import PlatformInfo, RunnerOS
from .process import run_command

console = Console()

MACOS_NETWORK_SERVICE = "Ethernet"


class CleanupRunner:
    """tailscale down/logout 및 데몬 종료"""

    def __init__(self, platform: PlatformInfo, pid_file: str = "", bugreport: bool = True):
        self.platform = platform
        self.pid_file = pid_file
        self.bugreport = bugreport
        self.logger = get_logger()
        self.results: List[Tuple[str, bool, str]] = []

    def _tailscale(self, *args: str):
        return run_command(["tailscale", *args], elevate=self.platform.elevate, timeout=60)

    def _step(self, name: str, func: Callable[[], str]) -> Tuple[bool, str]:
        try:
            message = func()
            self.logger.info(f"{name}: {message}")
            result = (True, message)
        except (AgentError, OSError) as e:
            self.logger.warning(f"Failed to {name}: {e}")
            result = (False, str(e))
        self.results.append((name, *result))
        return result

    def tailscale_available(self) -> bool:
        return shutil.which("tailscale") is not None

    def reset_dns(self) -> Tuple[bool, str]:
        """macOS DNS 설정 초기화 (러너 후처리가 끝날 수 있도록)"""
        def reset():
            run_command(["networksetup", "-setdnsservers", MACOS_NETWORK_SERVICE, "Empty"])
            run_command(["networksetup", "-setsearchdomains", MACOS_NETWORK_SERVICE, "Empty"])
            return "DNS settings reset"
        return self._step("reset DNS settings", reset)

    def generate_bugreport(self) -> Tuple[bool, str]:
        def report():
            result = self._tailscale("bugreport")
            return f"Bug report marker: {result.stdout.strip()}" if result.stdout.strip() else "Bug report generated"
        return self._step("generate bug report", report)

    def disconnect(self) -> Tuple[bool, str]:
        def down():
            self._tailscale("down")
            return "Disconnected from Tailscale"
        return self._step("disconnect", down)

    def logout(self) -> Tuple[bool, str]:
        def logout():
            self._tailscale("logout")
            return "Logged out of Tailscale"
        ok, message = self._step("logout", logout)
        if not ok:
            console.print("[yellow]Ephemeral 노드는 Tailscale이 자동으로 정리합니다.[/yellow]")
        return ok, message

    def stop_daemon(self) -> Tuple[bool, str]:
        if self.platform.runner_os == RunnerOS.WINDOWS:
            message = "Tailscale service will continue running on Windows"
            self.results.append(("stop daemon", True, message))
            self.logger.info(message)
            return True, message

        def stop():
            pid = read_pid_file(self.pid_file) if self.pid_file else None
            if pid:
                result = run_command(["kill", str(pid)], elevate=self.platform.elevate, check=False)
                if result.returncode == 0:
                    return f"Stopped tailscaled (pid {pid})"
                self.logger.debug(f"kill {pid} failed, falling back to pkill")
            run_command(["pkill", "-f", DAEMON_BINARY], elevate=self.platform.elevate, check=False)
            return "Tailscale daemon stopped"
        return self._step("stop daemon", stop)

    def run(self) -> bool:
        """전체 정리. 반환값은 모든 단계 성공 여부 (종료 코드에는 영향 없음)"""
        console.print("\n[bold cyan]Tailscale 정리 시작...[/bold cyan]\n")
        self.logger.info("Starting Tailscale post-action cleanup...")

        if self.platform.runner_os == RunnerOS.MACOS:
            self.reset_dns()

        if not self.tailscale_available():
            self.logger.info("Tailscale not found or not accessible, skipping cleanup")
            return True

        if self.bugreport:
            self.generate_bugreport()
        self.disconnect()
        self.logout()
        self.stop_daemon()

        self.logger.info("Tailscale post-action cleanup completed")
        return all(ok for _, ok, _ in self.results)

    def run_logout_only(self) -> bool:
        if self.platform.runner_os == RunnerOS.MACOS:
            self.reset_dns()
        if not self.tailscale_available():
            self.logger.info("Tailscale not found or not accessible, skipping logout")
            return True
        ok, _ = self.logout()
        return ok
