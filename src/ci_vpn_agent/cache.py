"""
캐시 모듈
(도구, 버전, OS, 아키텍처[, 해시]) 키 기반 설치 캐시
"""

import hashlib
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console

from .config import TailscaleConfig
from .download import TOOL_NAME, tool_path
from .errors import CacheError, CacheReserveError, CacheValidationError
from .logger import get_logger

console = Console()

CACHE_PREFIX = "ci-vpn-agent"
MAX_KEY_LENGTH = 512


@dataclass(frozen=True)
class CacheKey:
    """캐시 식별자 (같은 키 = 같은 바이트로 간주)"""
    tool: str
    version: str
    runner_os: str
    arch: str
    content_id: str = ""

    def __str__(self) -> str:
        key = f"{CACHE_PREFIX}/{self.tool}/{self.version}/{self.runner_os}-{self.arch}"
        if self.content_id:
            key = f"{key}/{self.content_id}"
        return key


def generate_cache_key(config: TailscaleConfig) -> Optional[CacheKey]:
    """캐시 비활성화 또는 움직이는 버전이면 None"""
    if not config.use_cache:
        return None
    if config.moving_target:
        get_logger().warning(
            f"Caching is disabled for moving version selector '{config.version}'"
        )
        return None
    return CacheKey(
        tool=TOOL_NAME,
        version=config.resolved_version,
        runner_os=config.runner_os.value,
        arch=config.arch,
        content_id=config.sha256sum.strip().lower()[:16],
    )


class CacheBackend:
    """키 -> 경로 캐시 서비스 인터페이스"""

    def restore(self, paths: Sequence[Path], key: str) -> bool:
        raise NotImplementedError

    def save(self, paths: Sequence[Path], key: str):
        raise NotImplementedError


def validate_key(key: str, paths: Sequence[Path]):
    if not key:
        raise CacheValidationError("Cache key must not be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise CacheValidationError(f"Key Validation Error: {key} cannot be larger than {MAX_KEY_LENGTH} characters.")
    if "," in key:
        raise CacheValidationError(f"Key Validation Error: {key} cannot contain commas.")
    if not paths:
        raise CacheValidationError("Path Validation Error: At least one directory or file path is required")


class LocalDirectoryCache(CacheBackend):
    """로컬 디렉토리에 복사본을 저장하는 캐시"""

    def __init__(self, root: str):
        self.root = Path(os.path.expanduser(root))
        self.logger = get_logger()

    def entry_dir(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]+", "_", key)
        suffix = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
        return self.root / f"{safe}-{suffix}"

    def restore(self, paths: Sequence[Path], key: str) -> bool:
        validate_key(key, paths)
        entry = self.entry_dir(key)
        if not entry.is_dir():
            self.logger.debug(f"Cache miss: {key}")
            return False

        for index, path in enumerate(paths):
            stored = entry / str(index)
            if not stored.exists():
                self.logger.warning(f"Cache entry {key} is incomplete, ignoring")
                return False
            Path(path).mkdir(parents=True, exist_ok=True)
            shutil.copytree(stored, path, dirs_exist_ok=True)
        self.logger.debug(f"Cache hit: {key}")
        return True

    def save(self, paths: Sequence[Path], key: str):
        validate_key(key, paths)
        for path in paths:
            if not Path(path).is_dir():
                raise CacheValidationError(f"Path Validation Error: {path} does not exist")

        entry = self.entry_dir(key)
        if entry.exists():
            raise CacheReserveError(f"Unable to reserve cache with key {key}, another job may be creating this cache.")

        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".saving-", dir=self.root))
        try:
            for index, path in enumerate(paths):
                shutil.copytree(path, staging / str(index))
            try:
                staging.rename(entry)
            except OSError as e:
                if entry.exists():
                    raise CacheReserveError(
                        f"Unable to reserve cache with key {key}, another job may be creating this cache."
                    ) from e
                raise CacheError(f"Failed to save cache {key}: {e}") from e
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)


class CacheGate:
    """캐시 조회 후 설치, 미스 시 새로 설치하고 저장"""

    def __init__(self, backend: CacheBackend, installer):
        self.backend = backend
        self.installer = installer
        self.logger = get_logger()

    def install(self, config: TailscaleConfig, key: Optional[CacheKey]) -> Path:
        target = tool_path(config)
        paths: List[Path] = [target]
        use_cache = key is not None and config.use_cache and self.installer.cacheable

        if use_cache and self.restore(paths, key):
            console.print(f"[green]✓ 캐시에서 Tailscale {config.resolved_version} 복원[/green]")
            self.logger.info(f"Found Tailscale {config.resolved_version} in cache: {target}")
            self.installer.install_cached(config, target)
            return target

        self.installer.install(config, target)

        if use_cache:
            self.save(paths, key)
        return target

    def restore(self, paths: Sequence[Path], key: CacheKey) -> bool:
        """복원 실패는 경고 후 미스로 처리 (키/경로 검증 오류만 예외)"""
        try:
            return self.backend.restore(paths, str(key))
        except CacheValidationError:
            raise
        except (CacheError, OSError) as e:
            self.logger.warning(f"Cache restore failed: {e}")
            return False

    def save(self, paths: Sequence[Path], key: CacheKey):
        try:
            self.backend.save(paths, str(key))
            self.logger.info(f"Cached Tailscale at: {paths[0]} ({key})")
        except CacheValidationError:
            raise
        except CacheReserveError as e:
            self.logger.info(str(e))
        except (CacheError, OSError) as e:
            self.logger.warning(f"Cache save failed: {e}")
