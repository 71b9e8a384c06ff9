"""
git 작업 패키지

외부 git 클라이언트 호출을 담당합니다.
"""

from .sync import GitSync

__all__ = ["GitSync"]
