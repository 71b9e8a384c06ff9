"""
캐시 저장소 패키지

캐시 루트 디렉토리와 프로세스 간 잠금을 관리합니다.
"""

from .store import CacheStore

__all__ = ["CacheStore"]
