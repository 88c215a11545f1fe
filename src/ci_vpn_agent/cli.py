"""
CLI 메인 인터페이스
Click 및 Rich 기반 CLI
"""

import sys
import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .cleanup import CleanupRunner
from .config import Config
from .errors import AgentError
from .logger import init_logger, get_logger
from .pipeline import AgentOrchestrator
from .platforms import detect_runner_os, get_platform
from .status import LocalAPIClient

console = Console()


def load_config(config_path, debug: bool, strict: bool = True) -> Config:
    """설정 로드 및 로거 초기화

    strict이면 설정 오류 시 종료 코드 1, 아니면 기본값으로 계속 진행
    """
    try:
        cfg = Config(config_path)
    except AgentError as e:
        if strict:
            console.print(f"[red]✗ 설정 파일 오류: {e}[/red]")
            sys.exit(1)
        console.print(f"[yellow]⚠ 설정 파일 오류, 기본값 사용: {e}[/yellow]")
        cfg = Config(env={}, load_files=False)
    init_logger(cfg.agent.log_dir, cfg.agent.log_level, debug)
    return cfg


@click.group()
@click.version_option(version=__version__)
def cli():
    """CI VPN Agent

    CI 러너에 Tailscale을 설치하고 tailnet에 연결/해제합니다.
    """
    pass


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--debug', is_flag=True, help='디버그 모드')
@click.option('--authkey', default=None, help='Tailscale auth key')
@click.option('--oauth-secret', default=None, help='OAuth client secret')
@click.option('--tags', default=None, help='광고할 태그 (OAuth 사용 시)')
@click.option('--tailscale-version', 'version', default=None, help='버전, latest 또는 unstable')
@click.option('--sha256sum', default=None, help='아티팩트 SHA256')
@click.option('--args', 'args', default=None, help='tailscale up 추가 인자')
@click.option('--tailscaled-args', default=None, help='tailscaled 추가 인자')
@click.option('--hostname', default=None, help='노드 호스트명')
@click.option('--statedir', default=None, help='tailscaled 상태 디렉토리')
@click.option('--timeout', default=None, help='시도당 타임아웃 (예: 30s, 2m)')
@click.option('--retry', default=None, type=int, help='최대 시도 횟수')
@click.option('--use-cache/--no-cache', default=None, help='설치 캐시 사용 여부')
def up(config_path, debug, **overrides):
    """Tailscale 설치 후 연결"""
    cfg = load_config(config_path, debug)
    try:
        cfg.apply_overrides(**overrides)
    except AgentError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    logger = get_logger()
    logger.info(f"Starting up command (debug={debug})")

    orchestrator = AgentOrchestrator(cfg)
    success = orchestrator.run()

    sys.exit(0 if success else 1)


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--debug', is_flag=True, help='디버그 모드')
@click.option('--bugreport/--no-bugreport', default=None, help='tailscale bugreport 생성 여부')
def cleanup(config_path, debug, bugreport):
    """연결 해제, 로그아웃, 데몬 종료 (항상 종료 코드 0)"""
    try:
        cfg = load_config(config_path, debug, strict=False)
        platform = get_platform(detect_runner_os())
        runner = CleanupRunner(
            platform,
            pid_file=cfg.agent.pid_file,
            bugreport=cfg.agent.bugreport if bugreport is None else bugreport,
        )
        runner.run()
    except Exception as e:
        console.print(f"[yellow]⚠ 정리 중 오류: {e}[/yellow]")
    sys.exit(0)


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--debug', is_flag=True, help='디버그 모드')
def logout(config_path, debug):
    """tailnet에서 로그아웃만 수행 (항상 종료 코드 0)"""
    try:
        load_config(config_path, debug, strict=False)
        platform = get_platform(detect_runner_os())
        CleanupRunner(platform).run_logout_only()
    except Exception as e:
        console.print(f"[yellow]⚠ 로그아웃 중 오류: {e}[/yellow]")
    sys.exit(0)


@cli.command()
@click.option('--debug', is_flag=True, help='디버그 모드')
def status(debug):
    """로컬 API로 현재 상태 조회"""
    load_config(None, debug)
    try:
        platform = get_platform(detect_runner_os())
        result = LocalAPIClient(platform).get_status()
    except AgentError as e:
        console.print(f"[red]✗ 상태 조회 실패: {e}[/red]")
        sys.exit(1)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")
    table.add_row("Backend state", result.backend_state)
    table.add_row("Tailscale IPs", ", ".join(result.tailscale_ips) or "-")
    table.add_row("DNS name", result.dns_name or "-")
    console.print(table)
    get_logger().debug(f"Status: {result}")

    sys.exit(0 if result.running else 1)


@cli.command()
@click.argument('output', type=click.Path(), default='./.ci-vpn-agent.yaml')
def init(output):
    """샘플 설정 파일 생성"""
    Config(env={}, load_files=False).create_sample(output)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output}[/green]")
    console.print(f"[cyan]설정 파일을 편집한 후 다음 명령어로 실행하세요:[/cyan]")
    console.print(f"[cyan]  ci-vpn-agent up --config {output}[/cyan]")


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
def validate(config_path):
    """설정 유효성 검사"""
    try:
        cfg = Config(config_path)
        cfg.validate(detect_runner_os())
    except AgentError as e:
        console.print(f"[red]✗ 설정 오류: {e}[/red]")
        sys.exit(1)

    console.print("[green]✓ 설정이 유효합니다.[/green]")

    ts = cfg.tailscale
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")
    table.add_row("인증 방식", "OAuth" if ts.oauth_secret else "Auth key")
    table.add_row("버전", ts.version)
    table.add_row("타임아웃", ts.timeout)
    table.add_row("재시도", str(ts.retry))
    table.add_row("캐시", "예" if ts.use_cache else "아니오")
    table.add_row("설치 방식", cfg.agent.install_method)
    console.print(table)


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()
