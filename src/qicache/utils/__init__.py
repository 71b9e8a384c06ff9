"""
유틸리티 패키지

공통으로 사용되는 유틸리티 함수들을 포함합니다.
"""

from .logging import get_logger, setup_logging
from .helpers import atomic_write_text, derive_repo_name, normalize_git_url, validate_git_url

__all__ = [
    "setup_logging",
    "get_logger",
    "atomic_write_text",
    "derive_repo_name",
    "normalize_git_url",
    "validate_git_url",
]
