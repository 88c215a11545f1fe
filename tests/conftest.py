"""
공용 테스트 픽스처
"""

import hashlib
import io
import json
import subprocess
import tarfile
import pytest
import requests

from ci_vpn_agent.config import TailscaleConfig
from ci_vpn_agent.logger import init_logger
from ci_vpn_agent.platforms import RunnerOS


@pytest.fixture(autouse=True)
def agent_logger(tmp_path, monkeypatch):
    """테스트마다 임시 디렉토리에 로그"""
    monkeypatch.delenv("GITHUB_ACTIONS", raising=False)
    monkeypatch.delenv("GITHUB_STEP_SUMMARY", raising=False)
    monkeypatch.delenv("GITHUB_PATH", raising=False)
    return init_logger(str(tmp_path / "logs"), "DEBUG", False)


@pytest.fixture
def make_config(tmp_path):
    """TailscaleConfig 생성 헬퍼"""
    def factory(**overrides):
        values = dict(
            runner_os=RunnerOS.LINUX,
            version="1.82.0",
            resolved_version="1.82.0",
            arch="amd64",
            authkey="tskey-auth-test",
            retry=3,
            tool_cache=str(tmp_path / "toolcache"),
            cache_dir=str(tmp_path / "cache"),
            daemon_log=str(tmp_path / "tailscaled.log"),
            pid_file=str(tmp_path / "tailscaled.pid"),
        )
        values.update(overrides)
        return TailscaleConfig(**values)
    return factory


class FakeResponse:
    """requests.Response 대용"""

    def __init__(self, content=b"", status_code=200, json_data=None):
        self.content = content if isinstance(content, bytes) else content.encode("utf-8")
        self.status_code = status_code
        self._json = json_data

    @property
    def text(self):
        return self.content.decode("utf-8")

    def json(self):
        if self._json is not None:
            return self._json
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """URL -> FakeResponse 라우팅 세션"""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.headers = {}
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        if url not in self.routes:
            raise requests.exceptions.ConnectionError(f"no route to {url}")
        return self.routes[url]


def build_tailscale_tgz(version="1.82.0", arch="amd64") -> bytes:
    """tailscale_<v>_<arch>/{tailscale,tailscaled} 구조의 tgz"""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for binary in ("tailscale", "tailscaled"):
            data = f"#!/bin/sh\necho {binary} {version}\n".encode("utf-8")
            info = tarfile.TarInfo(f"tailscale_{version}_{arch}/{binary}")
            info.size = len(data)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def tailscale_tgz():
    content = build_tailscale_tgz()
    return content, hashlib.sha256(content).hexdigest()


def completed(args=None, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args or [], returncode, stdout=stdout, stderr=stderr)
