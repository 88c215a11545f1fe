"""
버전 해석 모듈
latest/unstable 선택자를 pkgs.tailscale.com 메타데이터로 해석
"""

import requests
from dataclasses import dataclass
from typing import Optional

from .config import VERSION_LATEST, VERSION_UNSTABLE
from .errors import NetworkError, ParseError
from .logger import get_logger
from .platforms import RunnerOS

PKGS_BASE_URL = "https://pkgs.tailscale.com"
USER_AGENT = "ci-vpn-agent"
STABLE = "stable"
UNSTABLE = "unstable"

# 소스 빌드 플랫폼은 unstable이 움직이는 브랜치를 따라감
SOURCE_UNSTABLE_REF = "main"


@dataclass(frozen=True)
class VersionInfo:
    """메타데이터 응답 중 사용하는 필드"""
    version: str


def channel_for_version(version: str) -> str:
    """마이너 버전이 짝수면 stable, 홀수면 unstable"""
    parts = version.split(".")
    try:
        minor = int(parts[1])
    except (IndexError, ValueError):
        raise ParseError(f"Cannot determine release channel for version '{version}'") from None
    return STABLE if minor % 2 == 0 else UNSTABLE


def channel_url(channel: str) -> str:
    return f"{PKGS_BASE_URL}/{channel}"


def fetch_version_info(channel: str, session: Optional[requests.Session] = None,
                       timeout: float = 30) -> VersionInfo:
    """채널 메타데이터(?mode=json)에서 Version 조회"""
    http = session or requests
    url = f"{channel_url(channel)}/?mode=json"
    try:
        response = http.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Failed to fetch version metadata from {url}: {e}", stage="version") from e

    try:
        data = response.json()
    except ValueError as e:
        raise ParseError(f"Version metadata from {url} is not valid JSON: {e}", stage="version") from e

    version = data.get("Version") if isinstance(data, dict) else None
    if not isinstance(version, str) or not version:
        raise ParseError(f"Version metadata from {url} has no 'Version' field", stage="version")
    return VersionInfo(version=version)


def resolve_version(selector: str, runner_os: RunnerOS, install_method: str = "auto",
                    session: Optional[requests.Session] = None) -> str:
    """버전 선택자를 실제 버전 문자열로 변환

    명시 버전은 그대로 반환하고 네트워크를 사용하지 않는다.
    """
    logger = get_logger()

    if selector == VERSION_UNSTABLE and builds_from_source(runner_os, install_method):
        logger.debug(f"Using '{SOURCE_UNSTABLE_REF}' branch for unstable source build")
        return SOURCE_UNSTABLE_REF

    if selector in (VERSION_LATEST, VERSION_UNSTABLE):
        channel = UNSTABLE if selector == VERSION_UNSTABLE else STABLE
        info = fetch_version_info(channel, session=session)
        logger.debug(f"Channel {channel} resolved to {info.version}")
        return info.version

    return selector


def builds_from_source(runner_os: RunnerOS, install_method: str) -> bool:
    return runner_os == RunnerOS.MACOS and install_method in ("auto", "source")
