"""
플랫폼 판별 모듈
러너 OS/아키텍처를 Tailscale 배포 명명 규칙으로 변환
"""

import os
import platform
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Tuple

from .errors import ConfigError


class RunnerOS(str, Enum):
    """지원하는 러너 OS"""
    LINUX = "Linux"
    WINDOWS = "Windows"
    MACOS = "macOS"


class RunnerArch(str, Enum):
    """GitHub Actions RUNNER_ARCH 값"""
    X64 = "X64"
    ARM64 = "ARM64"
    ARM = "ARM"
    X86 = "X86"


# 알 수 없는 아키텍처는 각 OS의 기본값으로 처리
ARCH_TABLE = {
    RunnerOS.LINUX: {"ARM64": "arm64", "ARM": "arm", "X86": "386"},
    RunnerOS.WINDOWS: {"ARM64": "arm64", "X86": "x86"},
    RunnerOS.MACOS: {"ARM64": "arm64"},
}
DEFAULT_ARCH = "amd64"

_SYSTEM_NAMES = {
    "Linux": RunnerOS.LINUX,
    "Windows": RunnerOS.WINDOWS,
    "Darwin": RunnerOS.MACOS,
}

_MACHINE_NAMES = {
    "x86_64": RunnerArch.X64,
    "amd64": RunnerArch.X64,
    "aarch64": RunnerArch.ARM64,
    "arm64": RunnerArch.ARM64,
    "armv7l": RunnerArch.ARM,
    "armv6l": RunnerArch.ARM,
    "i386": RunnerArch.X86,
    "i686": RunnerArch.X86,
    "x86": RunnerArch.X86,
}


@dataclass(frozen=True)
class PlatformInfo:
    """OS별 경로와 명령 규칙"""
    runner_os: RunnerOS
    status_socket: Optional[str]
    elevate: Tuple[str, ...]
    bin_dir: str
    manages_daemon: bool


PLATFORMS = {
    RunnerOS.LINUX: PlatformInfo(
        runner_os=RunnerOS.LINUX,
        status_socket="/run/tailscale/tailscaled.sock",
        elevate=("sudo", "-E"),
        bin_dir="/usr/local/bin",
        manages_daemon=True,
    ),
    RunnerOS.MACOS: PlatformInfo(
        runner_os=RunnerOS.MACOS,
        status_socket="/var/run/tailscaled.socket",
        elevate=("sudo", "-E"),
        bin_dir="/usr/local/bin",
        manages_daemon=True,
    ),
    # Windows는 서비스가 데몬을 관리하고 상태는 CLI로 조회
    RunnerOS.WINDOWS: PlatformInfo(
        runner_os=RunnerOS.WINDOWS,
        status_socket=None,
        elevate=(),
        bin_dir="C:\\Program Files\\Tailscale\\",
        manages_daemon=False,
    ),
}


def resolve_arch(runner_os: RunnerOS, raw_arch: str) -> str:
    """러너 아키텍처를 Tailscale 아티팩트 아키텍처 토큰으로 변환"""
    table = ARCH_TABLE.get(RunnerOS(runner_os), {})
    return table.get((raw_arch or "").upper(), DEFAULT_ARCH)


def detect_runner_os(env: Optional[Mapping[str, str]] = None) -> RunnerOS:
    """RUNNER_OS 또는 현재 시스템에서 OS 판별"""
    env = os.environ if env is None else env
    name = env.get("RUNNER_OS", "")
    if not name:
        detected = _SYSTEM_NAMES.get(platform.system())
        if detected is None:
            raise ConfigError(f"Unsupported OS: {platform.system()}")
        return detected

    try:
        return RunnerOS(name)
    except ValueError:
        raise ConfigError("Support Linux, Windows, and macOS Only") from None


def detect_runner_arch(env: Optional[Mapping[str, str]] = None) -> str:
    """RUNNER_ARCH 또는 현재 머신에서 아키텍처 판별"""
    env = os.environ if env is None else env
    arch = env.get("RUNNER_ARCH", "")
    if arch:
        return arch
    machine = _MACHINE_NAMES.get(platform.machine().lower(), RunnerArch.X64)
    return machine.value


def get_platform(runner_os: RunnerOS) -> PlatformInfo:
    return PLATFORMS[RunnerOS(runner_os)]
