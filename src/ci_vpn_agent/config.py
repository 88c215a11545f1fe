"""
설정 관리 모듈
YAML/JSON 설정 파일, GitHub Actions 입력(INPUT_*) 및 기본값 관리
"""

import os
import re
import tempfile
import yaml
import json
from typing import Dict, Any, Optional, Mapping
from dataclasses import dataclass, asdict, fields

from .errors import ConfigError
from .platforms import RunnerOS

VERSION_LATEST = "latest"
VERSION_UNSTABLE = "unstable"

INSTALL_METHODS = ("auto", "source", "brew")
PACKAGE_MANAGER_POLICIES = ("trust", "verify")

_TRUE_VALUES = ("true", "yes", "y", "on", "1")
_FALSE_VALUES = ("false", "no", "n", "off", "0", "")

_VERSION_PATTERN = re.compile(r"^\d+\.\d+(\.\d+)?$")


@dataclass
class TailscaleInputs:
    """Tailscale 입력값 (action 입력과 1:1 대응)"""
    authkey: str = ""
    oauth_client_id: str = ""
    oauth_secret: str = ""
    tags: str = ""
    version: str = "1.82.0"
    sha256sum: str = ""
    args: str = ""
    tailscaled_args: str = ""
    hostname: str = ""
    statedir: str = ""
    timeout: str = "60s"
    retry: int = 5
    use_cache: bool = False


@dataclass
class AgentSettings:
    """에이전트 설정"""
    log_dir: str = os.path.join(tempfile.gettempdir(), "ci-vpn-agent")
    log_level: str = "INFO"
    tool_cache: str = ""
    cache_dir: str = "~/.cache/ci-vpn-agent"
    install_method: str = "auto"
    package_manager_policy: str = "trust"
    prefer_service: bool = False
    daemon_log: str = "~/tailscaled.log"
    pid_file: str = os.path.join(tempfile.gettempdir(), "ci-vpn-agent", "tailscaled.pid")
    bugreport: bool = True


# GitHub Actions 입력 이름 -> TailscaleInputs 필드
ACTION_INPUTS = {
    "authkey": "authkey",
    "oauth-client-id": "oauth_client_id",
    "oauth-client-secret": "oauth_secret",
    "tags": "tags",
    "version": "version",
    "sha256sum": "sha256sum",
    "args": "args",
    "tailscaled-args": "tailscaled_args",
    "hostname": "hostname",
    "statedir": "statedir",
    "timeout": "timeout",
    "retry": "retry",
    "use-cache": "use_cache",
}


def parse_bool(value: Any, name: str = "value") -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"Input '{name}' does not meet YAML 1.2 boolean spec: {value!r}")


def parse_retry(value: Any) -> int:
    try:
        retry = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Input 'retry' must be an integer: {value!r}") from None
    if retry < 1:
        raise ConfigError(f"Input 'retry' must be at least 1: {retry}")
    return retry


def split_args(value: str) -> list:
    """공백으로 분리, 빈 토큰 제거"""
    return [token for token in (value or "").split(" ") if token]


def is_concrete_version(version: str) -> bool:
    return bool(_VERSION_PATTERN.match(version or ""))


class Config:
    """전체 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "./.ci-vpn-agent.yaml",
        "~/.ci-vpn-agent/config.yaml",
        "/etc/ci-vpn-agent/config.yaml",
    ]

    def __init__(self, config_path: Optional[str] = None, env: Optional[Mapping[str, str]] = None,
                 load_files: bool = True):
        self.config_path = config_path
        self.tailscale = TailscaleInputs()
        self.agent = AgentSettings()

        if config_path:
            self.load(config_path)
        elif load_files:
            self._load_from_default_paths()

        self.load_action_inputs(os.environ if env is None else env)

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            raise ConfigError(f"설정 파일을 찾을 수 없습니다: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            try:
                if path.endswith('.json'):
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f) or {}
            except (ValueError, yaml.YAMLError) as e:
                raise ConfigError(f"Invalid config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file {path}: top level must be a mapping")

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트"""
        for section_name in ("tailscale", "agent"):
            section = getattr(self, section_name)
            for key, value in (data.get(section_name) or {}).items():
                key = key.replace("-", "_")
                if hasattr(section, key):
                    self.set_value(section, key, value)

    def set_value(self, section, key: str, value: Any):
        """타입에 맞게 값 설정"""
        if key == "retry":
            value = parse_retry(value)
        elif key in ("use_cache", "prefer_service", "bugreport"):
            value = parse_bool(value, key)
        elif value is None:
            value = ""
        else:
            value = str(value)
        setattr(section, key, value)

    def load_action_inputs(self, env: Mapping[str, str]):
        """GitHub Actions INPUT_* 환경변수 반영"""
        for input_name, attr in ACTION_INPUTS.items():
            env_name = f"INPUT_{input_name.replace(' ', '_').upper()}"
            value = env.get(env_name, "").strip()
            if value:
                self.set_value(self.tailscale, attr, value)

    def apply_overrides(self, **overrides):
        """CLI 옵션 반영 (None은 무시)"""
        for key, value in overrides.items():
            if value is None:
                continue
            if hasattr(self.tailscale, key):
                self.set_value(self.tailscale, key, value)
            elif hasattr(self.agent, key):
                self.set_value(self.agent, key, value)

    def validate(self, runner_os: RunnerOS):
        """네트워크 작업 전 설정 검증"""
        validate_auth(self.tailscale)

        if self.agent.install_method not in INSTALL_METHODS:
            raise ConfigError(f"Unknown install method: {self.agent.install_method}")
        if self.agent.install_method != "auto" and runner_os != RunnerOS.MACOS:
            raise ConfigError(
                f"Install method '{self.agent.install_method}' is only supported on macOS runners"
            )
        if self.agent.package_manager_policy not in PACKAGE_MANAGER_POLICIES:
            raise ConfigError(f"Unknown package manager policy: {self.agent.package_manager_policy}")
        if (self.agent.install_method == "brew"
                and self.agent.package_manager_policy == "verify"
                and not self.tailscale.sha256sum):
            raise ConfigError("Package manager policy 'verify' requires sha256sum")

    def save(self, path: Optional[str] = None):
        """설정 파일 저장"""
        save_path = path or self.config_path or self.DEFAULT_CONFIG_PATHS[0]
        save_path = os.path.expanduser(save_path)

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(save_path, 'w', encoding='utf-8') as f:
            if save_path.endswith('.json'):
                json.dump(self.to_dict(), f, indent=2)
            else:
                yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {
            'tailscale': asdict(self.tailscale),
            'agent': asdict(self.agent),
        }

    def create_sample(self, output_path: str):
        """샘플 설정 파일 생성"""
        template = """# ci-vpn-agent configuration
# GitHub Actions에서는 INPUT_* 환경변수가 이 파일보다 우선합니다

tailscale:
  authkey: ""               # tskey-auth-... (oauth 사용 시 비워둠)
  oauth_client_id: ""
  oauth_secret: ""          # tskey-client-...
  tags: ""                  # 예: "tag:ci" (oauth 사용 시 필수)
  version: "1.82.0"         # 명시 버전, latest 또는 unstable
  sha256sum: ""             # 비워두면 .sha256 파일에서 조회
  args: ""                  # tailscale up 추가 인자
  tailscaled_args: ""       # tailscaled 추가 인자
  hostname: ""              # 비워두면 github-<hostname>
  statedir: ""              # 비워두면 메모리 상태(--state=mem:)
  timeout: "60s"            # 시도당 타임아웃 (\\d+[smh]?)
  retry: 5
  use_cache: false

agent:
  log_level: "INFO"
  tool_cache: ""            # 비워두면 RUNNER_TOOL_CACHE
  cache_dir: "~/.cache/ci-vpn-agent"
  install_method: "auto"    # auto, source, brew (source/brew는 macOS 전용)
  package_manager_policy: "trust"   # trust 또는 verify
  prefer_service: false     # Linux에서 systemctl start tailscaled 먼저 시도
  daemon_log: "~/tailscaled.log"
  bugreport: true
"""

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template)


def validate_auth(inputs: TailscaleInputs):
    """인증키 또는 (OAuth secret + tags) 중 하나 필수"""
    if not inputs.authkey and (not inputs.oauth_secret or not inputs.tags):
        raise ConfigError(
            "OAuth identity empty, please provide either an auth key or OAuth secret and tags."
        )
    if inputs.authkey and inputs.oauth_secret:
        raise ConfigError(
            "Both an auth key and an OAuth secret were provided, please provide only one."
        )


@dataclass(frozen=True)
class TailscaleConfig:
    """버전/아키텍처가 확정된 불변 설정"""
    runner_os: RunnerOS
    version: str
    resolved_version: str
    arch: str
    authkey: str = ""
    oauth_secret: str = ""
    tags: str = ""
    hostname: str = ""
    args: str = ""
    tailscaled_args: str = ""
    statedir: str = ""
    timeout: str = "60s"
    retry: int = 5
    use_cache: bool = False
    sha256sum: str = ""
    tool_cache: str = ""
    cache_dir: str = ""
    install_method: str = "auto"
    package_manager_policy: str = "trust"
    prefer_service: bool = False
    daemon_log: str = ""
    pid_file: str = ""

    @property
    def uses_oauth(self) -> bool:
        return bool(self.oauth_secret)

    @property
    def moving_target(self) -> bool:
        """latest/unstable 또는 브랜치 이름으로 해석된 버전"""
        return (self.version in (VERSION_LATEST, VERSION_UNSTABLE)
                or not is_concrete_version(self.resolved_version))

    @classmethod
    def build(cls, config: Config, runner_os: RunnerOS, arch: str,
              resolved_version: str) -> "TailscaleConfig":
        inputs = config.tailscale
        agent = config.agent
        values = {f.name: getattr(inputs, f.name) for f in fields(inputs) if f.name in _RESOLVED_FIELDS}
        return cls(
            runner_os=runner_os,
            resolved_version=resolved_version,
            arch=arch,
            tool_cache=agent.tool_cache,
            cache_dir=os.path.expanduser(agent.cache_dir),
            install_method=agent.install_method,
            package_manager_policy=agent.package_manager_policy,
            prefer_service=agent.prefer_service,
            daemon_log=os.path.expanduser(agent.daemon_log),
            pid_file=os.path.expanduser(agent.pid_file),
            **values,
        )


_RESOLVED_FIELDS = {
    "version", "authkey", "oauth_secret", "tags", "hostname", "args",
    "tailscaled_args", "statedir", "timeout", "retry", "use_cache", "sha256sum",
}
