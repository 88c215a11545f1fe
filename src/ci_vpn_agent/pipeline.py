"""
실행 오케스트레이터
버전 해석 -> 설치(캐시) -> 데몬 -> 연결 -> 상태 확인
"""

import os
from typing import Callable, Dict, List, Mapping, Optional

import requests
from jinja2 import Template
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .actions import append_step_summary
from .cache import CacheBackend, CacheGate, LocalDirectoryCache, generate_cache_key
from .config import Config, TailscaleConfig
from .connect import ConnectionNegotiator, build_hostname
from .daemon import DaemonSupervisor
from .download import ArtifactFetcher
from .errors import AgentError
from .installer import Installer, select_installer
from .logger import get_logger
from .platforms import detect_runner_arch, detect_runner_os, get_platform, resolve_arch
from .status import LocalAPIClient, StatusChecker
from .version import resolve_version

console = Console()

SUMMARY_TEMPLATE = """## Tailscale

| Step | Status | Message |
|------|--------|---------|
{% for step in steps -%}
| {{ step.step }} | {{ '✅' if step.status == 'success' else '❌' }} | {{ step.message | replace('|', '\\\\|') }} |
{% endfor %}
{% if config %}
- Version: `{{ config.resolved_version }}` ({{ config.runner_os.value }}-{{ config.arch }})
{% if backend_state %}- Backend state: `{{ backend_state }}`
{% endif %}{% endif %}
"""


class AgentOrchestrator:
    """에이전트 오케스트레이터"""

    def __init__(self, config: Config,
                 env: Optional[Mapping[str, str]] = None,
                 session: Optional[requests.Session] = None,
                 cache_backend: Optional[CacheBackend] = None,
                 installer: Optional[Installer] = None,
                 api_client: Optional[LocalAPIClient] = None,
                 sleep: Optional[Callable[[float], None]] = None,
                 hostname: Optional[str] = None):
        self.config = config
        self.env = os.environ if env is None else env
        self.session = session
        self.cache_backend = cache_backend
        self.installer = installer
        self.api_client = api_client
        self.sleep = sleep
        self.raw_hostname = hostname
        self.logger = get_logger()
        self.execution_log: List[Dict[str, str]] = []
        self.resolved: Optional[TailscaleConfig] = None
        self.backend_state: Optional[str] = None

    def log_step(self, step: str, status: str, message: str = ""):
        """실행 단계 기록"""
        self.execution_log.append({
            "step": step,
            "status": status,
            "message": message
        })

    def show_summary(self):
        """실행 결과 요약 표시"""
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("단계", style="cyan", width=20)
        table.add_column("상태", width=6)
        table.add_column("메시지")

        for log in self.execution_log:
            status_icon = "✓" if log["status"] == "success" else "✗"
            status_color = "green" if log["status"] == "success" else "red"
            table.add_row(
                log["step"],
                f"[{status_color}]{status_icon}[/{status_color}]",
                log["message"]
            )

        console.print(table)
        log_files = self.logger.get_log_files()
        console.print(f"\n[bold]로그 파일:[/bold] {log_files['main_log']}")

    def render_summary(self) -> str:
        """GITHUB_STEP_SUMMARY용 Markdown"""
        template = Template(SUMMARY_TEMPLATE)
        return template.render(
            steps=self.execution_log,
            config=self.resolved,
            backend_state=self.backend_state,
        )

    def write_summary(self):
        try:
            append_step_summary(self.render_summary(), self.env)
        except OSError as e:
            self.logger.warning(f"Failed to write step summary: {e}")

    def _stage(self, name: str, func: Callable, success_message: Callable = lambda result: "완료"):
        try:
            result = func()
        except AgentError as e:
            self.log_step(name, "failed", self.logger.mask(str(e)))
            raise
        self.log_step(name, "success", success_message(result))
        return result

    def run(self) -> bool:
        """메인 실행 로직 (성공 시 True)"""
        console.print(Panel.fit(
            "[bold cyan]CI VPN Agent[/bold cyan]\n"
            "러너에 Tailscale을 설치하고 tailnet에 연결합니다.",
            border_style="cyan"
        ))
        self.logger.info("=== Agent execution started ===")

        try:
            success = self._run_stages()
        except AgentError as e:
            console.print(f"\n[red]✗ {e.stage} 단계 실패: {self.logger.mask(str(e))}[/red]")
            self.logger.error(f"[{e.stage}] {e}")
            success = False
        except KeyboardInterrupt:
            console.print("\n[yellow]사용자에 의해 중단되었습니다.[/yellow]")
            self.logger.warning("Execution interrupted by user")
            success = False
        except Exception as e:
            console.print(f"\n[red]예상치 못한 오류 발생: {self.logger.mask(str(e))}[/red]")
            self.logger.exception("Unexpected error occurred")
            success = False

        self.show_summary()
        self.write_summary()
        return success

    def _run_stages(self) -> bool:
        runner_os = self._stage("러너 확인", lambda: detect_runner_os(self.env),
                                lambda value: value.value)
        platform = get_platform(runner_os)

        self._stage("설정 검증", lambda: self.config.validate(runner_os))
        inputs = self.config.tailscale
        self.logger.add_secrets([inputs.authkey, inputs.oauth_secret])

        resolved_version = self._stage(
            "버전 확인",
            lambda: resolve_version(inputs.version, runner_os,
                                    self.config.agent.install_method, session=self.session),
            lambda value: value,
        )
        self.logger.info(f"Resolved Tailscale version: {resolved_version}")

        arch = resolve_arch(runner_os, detect_runner_arch(self.env))
        config = TailscaleConfig.build(self.config, runner_os, arch, resolved_version)
        self.resolved = config

        installer = self.installer or select_installer(
            config, platform, ArtifactFetcher(session=self.session)
        )
        backend = self.cache_backend or LocalDirectoryCache(config.cache_dir)
        gate = CacheGate(backend, installer)
        self._stage("설치", lambda: gate.install(config, generate_cache_key(config)),
                    lambda path: str(path))

        client = self.api_client or LocalAPIClient(platform)
        supervisor = DaemonSupervisor(platform, client, sleep=self.sleep)
        self._stage("데몬 시작", lambda: supervisor.start(config))

        hostname = build_hostname(config.hostname, self.raw_hostname)
        negotiator = ConnectionNegotiator(platform, sleep=self.sleep)
        self._stage("연결", lambda: negotiator.connect(config, hostname),
                    lambda _: f"{hostname} ({len(negotiator.attempts)}회 시도)")

        result = StatusChecker(client).check()
        self.backend_state = result.backend_state
        self.log_step("상태 확인", "success" if result.success else "failed", result.message)

        if result.success:
            console.print(f"\n[bold green]✓ {result.message}[/bold green]")
            self.logger.info(result.message)
            self.logger.info("=== Agent execution completed successfully ===")
        else:
            console.print(f"\n[bold red]✗ {result.message}[/bold red]")
            self.logger.error(result.message)
        return result.success
