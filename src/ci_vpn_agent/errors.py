"""
예외 정의 모듈
파이프라인 단계별 오류 분류
"""

from typing import Optional


class AgentError(Exception):
    """에이전트 오류의 최상위 클래스"""

    stage = "agent"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage:
            self.stage = stage


class ConfigError(AgentError):
    """설정 누락/오류 (재시도 없음)"""

    stage = "config"


class NetworkError(AgentError):
    """메타데이터/체크섬/아티팩트 다운로드 실패"""

    stage = "download"


class ParseError(AgentError):
    """원격 또는 로컬 API 응답 파싱 실패"""

    stage = "parse"


class IntegrityError(AgentError):
    """SHA256 불일치"""

    stage = "verify"

    def __init__(self, expected: str, actual: str, stage: Optional[str] = None):
        super().__init__(
            f"SHA256 checksum mismatch (expected {expected}, got {actual})", stage
        )
        self.expected = expected
        self.actual = actual


class InstallError(AgentError):
    """설치/빌드 명령 실패"""

    stage = "install"


class DaemonTimeoutError(AgentError):
    """tailscaled 준비 대기 시간 초과"""

    stage = "daemon"


class StatusError(AgentError):
    """로컬 상태 API 조회 실패"""

    stage = "status"


class VPNConnectionError(AgentError):
    """tailscale up 실패 또는 타임아웃"""

    stage = "connect"


class CacheError(AgentError):
    """캐시 저장/복원 오류 (경고로 처리)"""

    stage = "cache"


class CacheValidationError(CacheError):
    """잘못된 캐시 키/경로 (치명적)"""


class CacheReserveError(CacheError):
    """이미 다른 작업이 같은 키로 캐시함"""


class CommandError(AgentError):
    """외부 명령이 0이 아닌 코드로 종료"""

    stage = "command"

    def __init__(self, args, returncode: int, output: str = ""):
        detail = output.strip().splitlines()[-1] if output.strip() else ""
        message = f"Command '{' '.join(args)}' exited with code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.args_list = list(args)
        self.returncode = returncode
        self.output = output


class CommandTimeoutError(CommandError):
    """외부 명령 타임아웃"""

    def __init__(self, args, timeout: float):
        AgentError.__init__(self, f"Command '{' '.join(args)}' timed out after {timeout:g}s")
        self.args_list = list(args)
        self.returncode = -1
        self.output = ""
        self.timeout = timeout
