"""
로깅 시스템
파일 및 콘솔 로깅, GitHub Actions 어노테이션 지원
"""

import logging
import os
import tempfile
from datetime import datetime
from typing import Iterable, Optional
from rich.logging import RichHandler
from rich.console import Console

console = Console()

DEFAULT_LOG_DIR = os.path.join(tempfile.gettempdir(), "ci-vpn-agent")


def running_in_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


class GitHubActionsHandler(logging.Handler):
    """경고/오류를 워크플로 커맨드(::warning::, ::error::)로 출력"""

    COMMANDS = {
        logging.WARNING: "warning",
        logging.ERROR: "error",
        logging.CRITICAL: "error",
    }

    def __init__(self, stream=None):
        super().__init__(level=logging.WARNING)
        self.stream = stream

    def emit(self, record: logging.LogRecord):
        command = self.COMMANDS.get(record.levelno)
        if command is None:
            return
        try:
            # 워크플로 커맨드는 한 줄이어야 함
            message = self.format(record).replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
            stream = self.stream or console.file
            stream.write(f"::{command}::{message}\n")
            stream.flush()
        except Exception:
            self.handleError(record)


class AgentLogger:
    """에이전트 로거"""

    def __init__(self, log_dir: str = DEFAULT_LOG_DIR, log_level: str = "INFO", debug: bool = False):
        self.log_dir = log_dir
        self.log_level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)
        self.debug_mode = debug
        self._secrets = set()

        os.makedirs(log_dir, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = os.path.join(log_dir, f"agent_{timestamp}.log")
        self.error_file = os.path.join(log_dir, f"error_{timestamp}.log")

        self.logger = logging.getLogger("ci_vpn_agent")
        self.logger.setLevel(self.log_level)
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
        file_handler.setLevel(self.log_level)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        self.logger.addHandler(file_handler)

        error_handler = logging.FileHandler(self.error_file, encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        self.logger.addHandler(error_handler)

        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=False,
            show_path=debug
        )
        rich_handler.setLevel(self.log_level)
        self.logger.addHandler(rich_handler)

        if running_in_github_actions():
            actions_handler = GitHubActionsHandler()
            actions_handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(actions_handler)

    def add_secrets(self, values: Iterable[str]):
        """로그에서 가릴 비밀값 등록"""
        for value in values:
            if not value:
                continue
            self._secrets.add(value)
            if running_in_github_actions():
                console.file.write(f"::add-mask::{value}\n")

    def mask(self, message: str) -> str:
        for secret in sorted(self._secrets, key=len, reverse=True):
            message = message.replace(secret, "***")
        return message

    def debug(self, message: str):
        self.logger.debug(self.mask(message))

    def info(self, message: str):
        self.logger.info(self.mask(message))

    def warning(self, message: str):
        self.logger.warning(self.mask(message))

    def error(self, message: str):
        self.logger.error(self.mask(message))

    def critical(self, message: str):
        self.logger.critical(self.mask(message))

    def exception(self, message: str):
        """예외 로그 (트레이스백 포함)"""
        self.logger.exception(self.mask(message))

    def get_log_files(self) -> dict:
        """로그 파일 경로 반환"""
        return {
            "main_log": self.log_file,
            "error_log": self.error_file,
            "log_dir": self.log_dir
        }


_logger: Optional[AgentLogger] = None


def get_logger(log_dir: str = DEFAULT_LOG_DIR,
               log_level: str = "INFO",
               debug: bool = False) -> AgentLogger:
    """로거 인스턴스 가져오기"""
    global _logger
    if _logger is None:
        _logger = AgentLogger(log_dir, log_level, debug)
    return _logger


def init_logger(log_dir: str, log_level: str, debug: bool) -> AgentLogger:
    """로거 초기화"""
    global _logger
    _logger = AgentLogger(log_dir, log_level, debug)
    return _logger
