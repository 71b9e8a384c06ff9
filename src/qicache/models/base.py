"""
기본 데이터 모델 모듈

캐시 시스템의 핵심 데이터 구조들을 정의합니다.
"""

import os
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import RepoSyncState, UpdateStatus, ValidationIssueType


class RepositoryEntry(BaseModel):
    """캐시된 저장소 데이터 모델"""

    name: str = Field(
        ...,
        description="캐시 내 고유 저장소 이름",
        min_length=1,
        max_length=255
    )
    source_url: str = Field(
        ...,
        description="정규화된 저장소 URL (.git 접미사 포함)"
    )
    local_path: str = Field(
        ...,
        description="작업 사본 경로 (이름에서 결정됨)"
    )
    default_branch: str = Field(
        default="main",
        description="복제 시 사용한 브랜치"
    )
    added_at: datetime = Field(
        default_factory=datetime.now,
        description="저장소 추가 시간"
    )
    last_synced_at: Optional[datetime] = Field(
        default=None,
        description="마지막 동기화 시간"
    )
    script_count: int = Field(
        default=0,
        description="발견된 스크립트 수 (캐시된 값)",
        ge=0
    )
    extra: Dict[str, str] = Field(
        default_factory=dict,
        description="알 수 없는 메타데이터 키 (재기록 시 보존)"
    )


class ScriptEntry(BaseModel):
    """발견된 스크립트 데이터 모델"""

    model_config = ConfigDict(frozen=True)

    script_name: str = Field(
        ...,
        description="확장자를 제외한 파일 이름",
        min_length=1
    )
    relative_path: str = Field(
        ...,
        description="저장소 루트 기준 상대 경로"
    )
    repository_name: str = Field(
        ...,
        description="스크립트를 포함한 저장소 이름"
    )

    @property
    def sort_key(self) -> tuple:
        """결정적 정렬 키 (이름, 저장소, 경로)"""
        return (self.script_name, self.repository_name, self.relative_path)

    def absolute_path(self, cache_dir: str) -> str:
        """캐시 디렉토리 기준 절대 경로"""
        return os.path.join(cache_dir, self.repository_name, self.relative_path)


class LockHandle(BaseModel):
    """보유 중인 캐시 잠금 데이터 모델"""

    pid: int = Field(
        default_factory=os.getpid,
        description="잠금 소유 프로세스 ID"
    )
    acquired_at: datetime = Field(
        default_factory=datetime.now,
        description="잠금 획득 시간"
    )
    token: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="획득마다 고유한 토큰"
    )
    lock_path: str = Field(
        ...,
        description="잠금 파일 경로"
    )


class CloneResult(BaseModel):
    """저장소 복제 결과 데이터 모델"""

    path: str = Field(..., description="복제된 경로")
    branch: str = Field(..., description="실제로 체크아웃된 브랜치")
    requested_branch: str = Field(..., description="요청한 브랜치")
    warning: Optional[str] = Field(
        default=None,
        description="브랜치 대체 등 경고 메시지"
    )


class SyncResult(BaseModel):
    """저장소 동기화 결과 데이터 모델"""

    updated: bool = Field(default=False, description="새 커밋을 받았는지 여부")
    already_current: bool = Field(default=False, description="이미 최신인지 여부")
    commit_delta: int = Field(default=0, description="받은 커밋 수", ge=0)
    stashed: bool = Field(default=False, description="로컬 변경을 stash 했는지 여부")
    branch: str = Field(default="", description="동기화한 브랜치")
    before_commit: str = Field(default="", description="동기화 전 HEAD")
    after_commit: str = Field(default="", description="동기화 후 HEAD")
    modified_paths: List[str] = Field(
        default_factory=list,
        description="stash 된 로컬 변경 파일 목록"
    )


class RepoStatus(BaseModel):
    """작업 사본 상태 데이터 모델"""

    state: RepoSyncState = Field(..., description="비교 상태")
    branch: str = Field(default="unknown", description="현재 브랜치")
    commit_summary: str = Field(default="", description="최신 커밋 요약")
    upstream: Optional[str] = Field(default=None, description="비교한 업스트림 참조")
    remote_url: Optional[str] = Field(default=None, description="origin URL")
    ahead: int = Field(default=0, description="업스트림보다 앞선 커밋 수", ge=0)
    behind: int = Field(default=0, description="업스트림보다 뒤처진 커밋 수", ge=0)
    modified_paths: List[str] = Field(
        default_factory=list,
        description="로컬 변경 파일 목록"
    )


class ValidationIssue(BaseModel):
    """캐시 검증 문제 데이터 모델"""

    issue_type: ValidationIssueType = Field(..., description="문제 유형")
    repository_name: str = Field(..., description="관련 저장소 이름")
    path: str = Field(..., description="관련 경로")
    message: str = Field(..., description="문제 설명")


class UpdateOutcome(BaseModel):
    """일괄 업데이트에서 저장소별 결과 데이터 모델"""

    repository_name: str = Field(..., description="저장소 이름")
    status: UpdateStatus = Field(..., description="결과 상태")
    message: str = Field(default="", description="결과 설명")
    result: Optional[SyncResult] = Field(default=None, description="동기화 결과")


class CacheStats(BaseModel):
    """캐시 통계 데이터 모델"""

    cache_dir: str = Field(..., description="캐시 루트 경로")
    repository_count: int = Field(default=0, ge=0, description="저장소 수")
    total_size_bytes: int = Field(default=0, ge=0, description="전체 크기 (바이트)")
    total_size: str = Field(default="0 B", description="읽기 쉬운 전체 크기")
    last_updated: Optional[str] = Field(default=None, description="마지막 변경 시간")


class ExecutionResult(BaseModel):
    """스크립트 실행 결과 데이터 모델"""

    script_path: str = Field(..., description="실행한 스크립트 경로")
    exit_code: Optional[int] = Field(default=None, description="종료 코드 (백그라운드면 None)")
    pid: Optional[int] = Field(default=None, description="백그라운드 프로세스 ID")
    log_file: Optional[str] = Field(default=None, description="백그라운드 로그 파일")
    duration: float = Field(default=0.0, ge=0, description="실행 시간 (초)")
    preview: Optional[str] = Field(default=None, description="dry-run 미리보기")
