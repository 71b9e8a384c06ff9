"""
데이터 모델 패키지

캐시 시스템의 핵심 데이터 모델들을 정의합니다.
"""

from .base import (
    CacheStats,
    CloneResult,
    ExecutionResult,
    LockHandle,
    RepositoryEntry,
    RepoStatus,
    ScriptEntry,
    SyncResult,
    UpdateOutcome,
    ValidationIssue,
)
from .enums import ListGrouping, RepoSyncState, UpdateStatus, ValidationIssueType

__all__ = [
    "CacheStats",
    "CloneResult",
    "ExecutionResult",
    "LockHandle",
    "RepositoryEntry",
    "RepoStatus",
    "ScriptEntry",
    "SyncResult",
    "UpdateOutcome",
    "ValidationIssue",
    "ListGrouping",
    "RepoSyncState",
    "UpdateStatus",
    "ValidationIssueType",
]
