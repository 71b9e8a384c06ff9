"""
열거형 정의 모듈

캐시 시스템에서 사용되는 상수 값들을 열거형으로 정의합니다.
"""

from enum import Enum


class RepoSyncState(Enum):
    """작업 사본과 업스트림 비교 상태 열거형"""
    CLEAN = "clean"
    MODIFIED = "modified"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"


class ListGrouping(Enum):
    """스크립트 목록 그룹화 기준 열거형"""
    NAME = "name"
    REPOSITORY = "repository"


class ValidationIssueType(Enum):
    """캐시 검증 문제 유형 열거형"""
    ORPHANED_METADATA = "orphaned_metadata"
    ORPHANED_DIRECTORY = "orphaned_directory"
    MISSING_VCS = "missing_vcs"
    CORRUPTED_METADATA = "corrupted_metadata"
    NAME_MISMATCH = "name_mismatch"


class UpdateStatus(Enum):
    """저장소 일괄 업데이트 결과 열거형"""
    UPDATED = "updated"
    CURRENT = "current"
    SKIPPED = "skipped"
    FAILED = "failed"
