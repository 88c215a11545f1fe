"""
아티팩트 다운로드 모듈
다운로드 URL 구성, SHA256 검증, tool cache 디렉토리 스테이징
"""

import hashlib
import os
import shutil
import tarfile
import tempfile
import requests
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from rich.console import Console

from .config import TailscaleConfig
from .errors import IntegrityError, InstallError, NetworkError
from .logger import get_logger
from .platforms import RunnerOS
from .version import USER_AGENT, channel_for_version, channel_url

console = Console()

TOOL_NAME = "tailscale"
BINARIES = ("tailscale", "tailscaled")
MSI_NAME = "tailscale.msi"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ArtifactDescriptor:
    """다운로드 대상 (생성 후 변경하지 않음)"""
    url: str
    filename: str
    sha256: str = ""

    @property
    def checksum_url(self) -> str:
        return f"{self.url}.sha256"

    @property
    def is_archive(self) -> bool:
        return self.filename.endswith(".tgz")


def artifact_filename(runner_os: RunnerOS, version: str, arch: str) -> str:
    if runner_os == RunnerOS.WINDOWS:
        return f"tailscale-setup-{version}-{arch}.msi"
    return f"tailscale_{version}_{arch}.tgz"


def build_descriptor(config: TailscaleConfig) -> ArtifactDescriptor:
    """설정에서 다운로드 정보 생성"""
    channel = channel_for_version(config.resolved_version)
    filename = artifact_filename(config.runner_os, config.resolved_version, config.arch)
    return ArtifactDescriptor(
        url=f"{channel_url(channel)}/{filename}",
        filename=filename,
        sha256=config.sha256sum.strip().lower(),
    )


def tool_path(config: TailscaleConfig) -> Path:
    """<toolCacheRoot>/tailscale/<version>/<os>-<arch>"""
    root = config.tool_cache or os.environ.get("RUNNER_TOOL_CACHE", "")
    if not root:
        get_logger().warning("Expected RUNNER_TOOL_CACHE to be defined")
        root = os.path.join(tempfile.gettempdir(), "ci-vpn-agent", "tool-cache")
    return Path(root) / TOOL_NAME / config.resolved_version / f"{config.runner_os.value}-{config.arch}"


def sha256_file(path: Path) -> str:
    """파일 SHA256 (스트리밍, 소문자 hex)"""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest().lower()


def verify_sha256(path: Path, expected: str):
    """대소문자 구분 없이 비교, 불일치 시 IntegrityError"""
    logger = get_logger()
    expected = expected.strip().lower()
    actual = sha256_file(path)
    logger.info(f"Expected sha256: {expected}")
    logger.info(f"Actual sha256: {actual}")
    if actual != expected:
        raise IntegrityError(expected, actual)


class ArtifactFetcher:
    """아티팩트 다운로드 및 검증"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60):
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = USER_AGENT
        self.timeout = timeout
        self.logger = get_logger()

    def fetch_checksum(self, descriptor: ArtifactDescriptor) -> str:
        """<artifact-url>.sha256 본문"""
        url = descriptor.checksum_url
        self.logger.debug(f"Fetching checksum from {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Failed to fetch checksum {url}: {e}") from e
        checksum = response.text.strip().split()[0] if response.text.strip() else ""
        if not checksum:
            raise NetworkError(f"Checksum resource {url} is empty")
        return checksum.lower()

    def download(self, url: str, dest: Path) -> Path:
        """URL을 dest로 스트리밍 다운로드"""
        console.print(f"[cyan]다운로드 중: {url}[/cyan]")
        self.logger.info(f"Downloading {url}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Failed to download {url}: {e}") from e
        return dest

    def fetch_and_verify(self, descriptor: ArtifactDescriptor, staging_dir: Path) -> Path:
        """다운로드 후 SHA256 검증, 검증된 로컬 경로 반환"""
        if not descriptor.sha256:
            descriptor = replace(descriptor, sha256=self.fetch_checksum(descriptor))

        path = self.download(descriptor.url, staging_dir / descriptor.filename)
        try:
            verify_sha256(path, descriptor.sha256)
        except IntegrityError:
            path.unlink(missing_ok=True)
            raise
        return path

    def stage(self, artifact: Path, descriptor: ArtifactDescriptor, target: Path) -> Path:
        """검증된 아티팩트를 tool cache 디렉토리에 배치"""
        target.mkdir(parents=True, exist_ok=True)

        if not descriptor.is_archive:
            shutil.copyfile(artifact, target / MSI_NAME)
            return target

        with tempfile.TemporaryDirectory(prefix="ci-vpn-agent-") as extract_dir:
            with tarfile.open(artifact, "r:gz") as archive:
                if hasattr(tarfile, "data_filter"):
                    archive.extractall(extract_dir, filter="data")
                else:
                    archive.extractall(extract_dir)

            extracted = Path(extract_dir) / descriptor.filename[: -len(".tgz")]
            for binary in BINARIES:
                source = extracted / binary
                if not source.exists():
                    raise InstallError(f"{binary} not found in {descriptor.filename}")
                shutil.copyfile(source, target / binary)
                os.chmod(target / binary, 0o755)
        return target

    def fetch(self, config: TailscaleConfig, target: Path) -> Path:
        """다운로드 + 검증 + 스테이징"""
        descriptor = build_descriptor(config)
        with tempfile.TemporaryDirectory(prefix="ci-vpn-agent-dl-") as staging:
            artifact = self.fetch_and_verify(descriptor, Path(staging))
            return self.stage(artifact, descriptor, target)
