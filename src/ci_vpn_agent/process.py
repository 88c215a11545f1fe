"""
외부 명령 실행 모듈
"""

import subprocess
from typing import Mapping, Optional, Sequence

from .errors import CommandError, CommandTimeoutError
from .logger import get_logger


def run_command(args: Sequence[str],
                elevate: Sequence[str] = (),
                timeout: Optional[float] = None,
                cwd: Optional[str] = None,
                env: Optional[Mapping[str, str]] = None,
                check: bool = True) -> subprocess.CompletedProcess:
    """명령 실행 (실패 시 CommandError)

    elevate가 주어지면 명령 앞에 붙임 (예: sudo -E).
    timeout을 넘기면 CommandTimeoutError.
    """
    logger = get_logger()
    cmd = [*elevate, *args]
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except subprocess.TimeoutExpired:
        raise CommandTimeoutError(cmd, timeout) from None
    except FileNotFoundError:
        raise CommandError(cmd, 127, f"{cmd[0]}: command not found") from None

    if result.stdout:
        logger.debug(result.stdout.rstrip())
    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr or result.stdout or "")
    return result
