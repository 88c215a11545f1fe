"""
상태 조회 모듈
tailscaled 로컬 API(/localapi/v0/status) 조회
"""

import http.client
import json
import socket
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .errors import CommandError, ParseError, StatusError
from .logger import get_logger
from .platforms import PlatformInfo
from .process import run_command

STATUS_PATH = "/localapi/v0/status"
LOCALAPI_HOST = "local-tailscaled.sock"
BACKEND_RUNNING = "Running"
UNKNOWN_STATE = "Unknown"


class UnixHTTPConnection(http.client.HTTPConnection):
    """Unix 도메인 소켓 위의 HTTP 연결"""

    def __init__(self, socket_path: str, timeout: float = 5.0):
        super().__init__(LOCALAPI_HOST, timeout=timeout)
        self.socket_path = socket_path

    def connect(self):
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self.socket_path)
        except OSError:
            sock.close()
            raise
        self.sock = sock


@dataclass(frozen=True)
class TailscaleStatus:
    """상태 응답 중 사용하는 필드"""
    backend_state: str
    tailscale_ips: List[str] = field(default_factory=list)
    dns_name: str = ""

    @property
    def running(self) -> bool:
        return self.backend_state == BACKEND_RUNNING

    @classmethod
    def from_json(cls, data: Any) -> "TailscaleStatus":
        if not isinstance(data, dict):
            # 형식이 맞는 JSON이면 응답한 것으로 보고 상태만 Unknown
            return cls(backend_state=UNKNOWN_STATE)
        state = data.get("BackendState")
        if not isinstance(state, str) or not state:
            state = UNKNOWN_STATE
        ips = data.get("TailscaleIPs")
        if not isinstance(ips, list):
            ips = []
        self_info = data.get("Self")
        dns_name = self_info.get("DNSName", "") if isinstance(self_info, dict) else ""
        return cls(
            backend_state=state,
            tailscale_ips=[ip for ip in ips if isinstance(ip, str)],
            dns_name=dns_name if isinstance(dns_name, str) else "",
        )


class LocalAPIClient:
    """OS별 로컬 상태 조회 (소켓 또는 tailscale status --json)"""

    def __init__(self, platform: PlatformInfo, timeout: float = 5.0):
        self.platform = platform
        self.timeout = timeout
        self.logger = get_logger()

    def get_status(self) -> TailscaleStatus:
        if self.platform.status_socket:
            body = self._query_socket(self.platform.status_socket)
        else:
            body = self._query_cli()

        try:
            data = json.loads(body)
        except ValueError as e:
            raise ParseError(f"Invalid status JSON: {e}", stage="status") from e
        return TailscaleStatus.from_json(data)

    def _query_socket(self, socket_path: str) -> str:
        conn = UnixHTTPConnection(socket_path, timeout=self.timeout)
        try:
            conn.request("GET", STATUS_PATH, headers={"Host": LOCALAPI_HOST})
            response = conn.getresponse()
            body = response.read().decode("utf-8", errors="replace")
        except (OSError, http.client.HTTPException) as e:
            raise StatusError(f"Local API request to {socket_path} failed: {e}") from e
        finally:
            conn.close()
        return body

    def _query_cli(self) -> str:
        try:
            result = run_command(["tailscale", "status", "--json"], timeout=self.timeout)
        except CommandError as e:
            raise StatusError(f"tailscale status failed: {e}") from e
        return result.stdout


@dataclass(frozen=True)
class StatusResult:
    """최종 상태 확인 결과"""
    success: bool
    backend_state: Optional[str]
    message: str


class StatusChecker:
    """연결 후 1회 상태 확인 (Running이 아니면 실패)"""

    def __init__(self, client: LocalAPIClient):
        self.client = client
        self.logger = get_logger()

    def check(self) -> StatusResult:
        try:
            status = self.client.get_status()
        except (StatusError, ParseError) as e:
            # up 명령 성공을 근거로 성공 처리
            self.logger.warning(f"Failed to get Tailscale status: {e}")
            return StatusResult(True, None, "Tailscale connection completed successfully")

        self.logger.debug(f"Tailscale status: {status}")
        if status.running:
            return StatusResult(True, status.backend_state, "Tailscale is running and connected")
        return StatusResult(False, status.backend_state, f"Tailscale backend state: {status.backend_state}")
