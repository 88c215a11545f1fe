"""
GitHub Actions 연동 모듈
GITHUB_PATH, GITHUB_STEP_SUMMARY 파일 처리
"""

import os
from typing import Mapping, Optional

from .logger import get_logger


def add_path(directory: str, env: Optional[Mapping[str, str]] = None):
    """이후 스텝과 현재 프로세스 PATH에 디렉토리 추가"""
    env = os.environ if env is None else env
    github_path = env.get("GITHUB_PATH", "")
    if github_path:
        with open(github_path, "a", encoding="utf-8") as f:
            f.write(f"{directory}\n")
    os.environ["PATH"] = f"{directory}{os.pathsep}{os.environ.get('PATH', '')}"
    get_logger().debug(f"Added {directory} to PATH")


def append_step_summary(markdown: str, env: Optional[Mapping[str, str]] = None) -> bool:
    """GITHUB_STEP_SUMMARY가 있으면 Markdown 추가"""
    env = os.environ if env is None else env
    summary_path = env.get("GITHUB_STEP_SUMMARY", "")
    if not summary_path:
        return False
    with open(summary_path, "a", encoding="utf-8") as f:
        f.write(markdown)
        if not markdown.endswith("\n"):
            f.write("\n")
    return True
