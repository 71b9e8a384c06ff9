"""
설정 관리 패키지

캐시 시스템 전체의 설정을 관리합니다.
"""

from .settings import ConfigResolver, Settings, resolve_settings, write_default_config

__all__ = ["ConfigResolver", "Settings", "resolve_settings", "write_default_config"]
