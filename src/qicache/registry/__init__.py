"""
저장소 레지스트리 패키지
"""

from .metadata import MetadataParser
from .repository import RepositoryRegistry

__all__ = ["MetadataParser", "RepositoryRegistry"]
