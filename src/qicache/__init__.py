"""
qi 스크립트 저장소 캐시

git 저장소를 로컬 캐시에 복제해 두고 그 안의 스크립트를 이름으로 찾아 실행합니다.
"""

from .config.settings import ConfigResolver, Settings, resolve_settings
from .exceptions import QiCacheException, exit_code_for
from .service import QiCache, open_cache

__version__ = "1.0.0"

__all__ = [
    "ConfigResolver",
    "Settings",
    "resolve_settings",
    "QiCache",
    "open_cache",
    "QiCacheException",
    "exit_code_for",
]
