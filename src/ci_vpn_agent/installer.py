"""
설치 모듈
OS별 설치 전략 (바이너리 복사, MSI, 소스 빌드, 패키지 매니저)
"""

import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from rich.console import Console

from .actions import add_path
from .config import TailscaleConfig
from .download import BINARIES, MSI_NAME, ArtifactFetcher, sha256_file
from .errors import CommandError, ConfigError, IntegrityError, InstallError
from .logger import get_logger
from .platforms import PlatformInfo, RunnerOS
from .process import run_command
from .version import SOURCE_UNSTABLE_REF

console = Console()

TAILSCALE_REPO = "https://github.com/tailscale/tailscale.git"
SOURCE_COMMIT_FILE = "SOURCE_COMMIT"


class Installer:
    """설치 전략 기본 클래스

    prepare()는 target(tool cache 디렉토리)을 채우고
    place()는 target에서 시스템 위치로 설치한다.
    """

    cacheable = True

    def __init__(self, platform: PlatformInfo, fetcher: Optional[ArtifactFetcher] = None):
        self.platform = platform
        self.fetcher = fetcher
        self.logger = get_logger()

    def install(self, config: TailscaleConfig, target: Path):
        self.prepare(config, target)
        self.place(config, target)

    def install_cached(self, config: TailscaleConfig, target: Path):
        self.place(config, target)

    def prepare(self, config: TailscaleConfig, target: Path):
        raise NotImplementedError

    def place(self, config: TailscaleConfig, target: Path):
        raise NotImplementedError

    def run(self, args, elevated: bool = False, **kwargs):
        elevate = self.platform.elevate if elevated else ()
        try:
            return run_command(args, elevate=elevate, **kwargs)
        except CommandError as e:
            raise InstallError(str(e)) from e


class BinaryInstaller(Installer):
    """tailscale/tailscaled를 /usr/local/bin에 복사"""

    def prepare(self, config: TailscaleConfig, target: Path):
        self.fetcher.fetch(config, target)

    def place(self, config: TailscaleConfig, target: Path):
        sources = [target / binary for binary in BINARIES]
        missing = [str(path) for path in sources if not path.exists()]
        if missing:
            raise InstallError(f"Binaries not found in {target}: {', '.join(missing)}")

        bin_dir = self.platform.bin_dir
        self.run(["cp", *[str(path) for path in sources], bin_dir], elevated=True)
        for binary in BINARIES:
            self.run(["chmod", "+x", os.path.join(bin_dir, binary)], elevated=True)

        console.print(f"[green]✓ Tailscale 바이너리 설치 완료: {bin_dir}[/green]")
        self.logger.info(f"Installed {', '.join(BINARIES)} to {bin_dir}")


class WindowsInstaller(Installer):
    """MSI 무인 설치 후 PATH 등록"""

    def prepare(self, config: TailscaleConfig, target: Path):
        self.fetcher.fetch(config, target)

    def place(self, config: TailscaleConfig, target: Path):
        msi_path = target / MSI_NAME
        if not msi_path.exists():
            raise InstallError(f"MSI not found at {msi_path}")

        log_path = os.path.join(os.environ.get("RUNNER_TEMP", tempfile.gettempdir()), "tailscale.log")
        self.logger.info(f"Installing MSI from {msi_path}")
        self.run(["msiexec.exe", "/quiet", "/l*v", log_path, "/i", str(msi_path)])
        add_path(self.platform.bin_dir)
        console.print("[green]✓ Tailscale MSI 설치 완료[/green]")


@contextmanager
def source_checkout(ref: str, runner) -> Iterator[Path]:
    """얕은 clone 후 종료 시 (실패 포함) 삭제"""
    workdir = Path(tempfile.mkdtemp(prefix="ci-vpn-agent-src-"))
    checkout = workdir / "tailscale"
    try:
        runner(["git", "clone", "--depth", "1", "--branch", ref, TAILSCALE_REPO, str(checkout)])
        yield checkout
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


class SourceBuildInstaller(BinaryInstaller):
    """macOS: 태그를 clone 하여 build_dist.sh로 빌드"""

    def prepare(self, config: TailscaleConfig, target: Path):
        version = config.resolved_version
        ref = version if version == SOURCE_UNSTABLE_REF else f"v{version}"
        console.print(f"[cyan]소스에서 Tailscale {ref} 빌드 중...[/cyan]")
        self.logger.info(f"Building tailscale {ref} from source")

        target.mkdir(parents=True, exist_ok=True)
        env = {**os.environ, "TS_USE_TOOLCHAIN": "1"}

        with source_checkout(ref, self.run) as checkout:
            commit = self.run(["git", "rev-parse", "HEAD"], cwd=str(checkout)).stdout.strip()
            for binary in BINARIES:
                self.run(
                    ["./build_dist.sh", "-o", str(target / binary), f"./cmd/{binary}"],
                    cwd=str(checkout),
                    env=env,
                )

        (target / SOURCE_COMMIT_FILE).write_text(f"{commit}\n", encoding="utf-8")
        self.logger.info(f"Built tailscale from commit {commit}")


class PackageManagerInstaller(Installer):
    """macOS: brew install tailscale

    패키지 매니저가 버전을 고르므로 기본(trust)은 무결성 검증이 없다.
    verify 정책이면 설치된 tailscale 바이너리를 sha256sum과 비교한다.
    """

    cacheable = False

    def prepare(self, config: TailscaleConfig, target: Path):
        pass

    def install_cached(self, config: TailscaleConfig, target: Path):
        raise InstallError("Package manager installs are never restored from cache")

    def place(self, config: TailscaleConfig, target: Path):
        console.print("[cyan]Homebrew로 Tailscale 설치 중...[/cyan]")
        self.run(["brew", "install", "tailscale"])

        if config.package_manager_policy != "verify":
            self.logger.warning("Installed tailscale via Homebrew without integrity verification")
            return

        if not config.sha256sum:
            raise ConfigError("Package manager policy 'verify' requires sha256sum")
        prefix = self.run(["brew", "--prefix", "tailscale"]).stdout.strip()
        binary = Path(prefix) / "bin" / "tailscale"
        expected = config.sha256sum.strip().lower()
        actual = sha256_file(binary)
        if actual != expected:
            raise IntegrityError(expected, actual, stage="install")
        self.logger.info(f"Verified {binary} sha256 {actual}")


def select_installer(config: TailscaleConfig, platform: PlatformInfo,
                     fetcher: Optional[ArtifactFetcher] = None) -> Installer:
    """OS와 install_method로 설치 전략 선택"""
    fetcher = fetcher or ArtifactFetcher()
    if config.runner_os == RunnerOS.WINDOWS:
        return WindowsInstaller(platform, fetcher)
    if config.runner_os == RunnerOS.MACOS:
        if config.install_method == "brew":
            return PackageManagerInstaller(platform, fetcher)
        return SourceBuildInstaller(platform, fetcher)
    return BinaryInstaller(platform, fetcher)
