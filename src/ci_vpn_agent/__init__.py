"""
CI VPN Agent
CI 러너에 Tailscale을 설치하고 tailnet에 연결/해제하는 에이전트

Features:
- OS/아키텍처별 Tailscale 설치 (바이너리, MSI, 소스 빌드, Homebrew)
- SHA256 검증 및 tool cache 기반 설치 캐시
- tailscaled 데몬 실행 및 준비 대기
- 타임아웃/재시도 기반 tailscale up
- 실패와 무관하게 동작하는 정리(cleanup) 단계
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"
