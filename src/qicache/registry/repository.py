"""
저장소 레지스트리 모듈

캐시된 저장소의 추가, 삭제, 조회, 검증을 담당합니다. 저장소별 메타데이터 파일은
이 모듈만 기록합니다.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..cache.store import CacheStore
from ..config.settings import Settings
from ..exceptions import (
    CacheIOException,
    ConflictException,
    NotFoundException,
    QiCacheException,
    ValidationException,
    io_error,
)
from ..git.sync import GitSync
from ..models.base import RepositoryEntry, ValidationIssue
from ..models.enums import ValidationIssueType
from ..utils.helpers import (
    atomic_write_text,
    derive_repo_name,
    normalize_git_url,
    remove_tree,
    validate_git_url,
    validate_repo_name,
)
from ..utils.logging import get_logger
from .metadata import METADATA_FILE_NAME, MetadataParser

logger = get_logger(__name__)


class RepositoryRegistry:
    """캐시된 저장소 레지스트리"""

    def __init__(
        self,
        settings: Settings,
        store: CacheStore,
        git_sync: GitSync,
        parser: Optional[MetadataParser] = None
    ):
        """
        레지스트리 초기화

        Args:
            settings: 해석된 설정
            store: 캐시 저장소 (잠금 제공)
            git_sync: git 작업 관리자
            parser: 메타데이터 파서 (선택사항)
        """
        self.settings = settings
        self.store = store
        self.git_sync = git_sync
        self.parser = parser or MetadataParser(settings)
        self.logger = logger

    def path_for(self, name: str) -> Path:
        """저장소 이름에 해당하는 작업 사본 경로"""
        return self.store.root / name

    def metadata_path(self, name: str) -> Path:
        """저장소 메타데이터 파일 경로"""
        return self.path_for(name) / METADATA_FILE_NAME

    def exists(self, name: str) -> bool:
        """
        저장소 존재 여부 (작업 사본과 메타데이터가 모두 있어야 함)

        Args:
            name: 저장소 이름

        Returns:
            bool: 존재 여부
        """
        if not validate_repo_name(name):
            return False
        path = self.path_for(name)
        return (
            path.is_dir()
            and self.git_sync.is_working_copy(path)
            and self.metadata_path(name).is_file()
        )

    def get(self, name: str) -> RepositoryEntry:
        """
        저장소 항목 조회

        Args:
            name: 저장소 이름

        Returns:
            RepositoryEntry: 저장소 항목

        Raises:
            NotFoundException: 저장소가 없을 때
            CacheIOException: 메타데이터를 읽을 수 없을 때
        """
        if not self.exists(name):
            raise NotFoundException("저장소", name)
        path = self.path_for(name)
        try:
            return self.parser.read(path)
        except OSError as e:
            raise io_error(self.metadata_path(name), e) from e
        except ValueError as e:
            raise CacheIOException(str(self.metadata_path(name)), f"메타데이터 손상: {e}") from e

    def list(self) -> List[RepositoryEntry]:
        """
        등록된 저장소 목록 (이름순, 손상된 항목은 경고 후 제외)

        Returns:
            List[RepositoryEntry]: 저장소 항목 목록
        """
        entries = []
        for path in self.store.repository_dirs():
            if not self.exists(path.name):
                continue
            try:
                entries.append(self.parser.read(path))
            except (OSError, ValueError) as e:
                self.logger.warning(f"저장소 메타데이터를 읽을 수 없습니다: {path.name} - {e}")
        return entries

    def add(self, url: str, name: Optional[str] = None, branch: Optional[str] = None) -> RepositoryEntry:
        """
        저장소 추가

        URL을 검증하고 이름을 결정한 뒤 잠금을 잡은 상태에서 복제와 메타데이터 기록을
        수행합니다. 메타데이터 기록에 실패하면 복제한 디렉토리를 삭제합니다.

        Args:
            url: 저장소 URL
            name: 저장소 이름 (None이면 URL에서 추출)
            branch: 복제할 브랜치 (None이면 설정의 기본 브랜치)

        Returns:
            RepositoryEntry: 추가된 저장소 항목

        Raises:
            ValidationException: URL 또는 이름이 잘못되었을 때
            ConflictException: 같은 이름의 저장소나 디렉토리가 있을 때
            GitOperationException: 복제 실패 시
        """
        url = (url or "").strip()
        if not validate_git_url(url):
            raise ValidationException("저장소 URL", url, "지원하지 않는 URL 형식입니다")

        if name is None:
            name = derive_repo_name(url)
            self.logger.debug(f"URL에서 저장소 이름 추출: {name}")
        elif not validate_repo_name(name):
            raise ValidationException(
                "저장소 이름", name, "영문자, 숫자, '.', '_', '-'만 사용할 수 있으며 '.'으로 시작할 수 없습니다"
            )

        with self.store.locked():
            dest = self.path_for(name)
            if self.exists(name):
                raise ConflictException(name, "이미 존재하는 저장소입니다")
            if dest.exists():
                raise ConflictException(name, "같은 이름의 디렉토리가 이미 존재합니다 (검증 필요)")

            result = self.git_sync.clone(url, dest, branch)
            now = datetime.now().replace(microsecond=0)
            entry = RepositoryEntry(
                name=name,
                source_url=normalize_git_url(url),
                local_path=str(dest),
                default_branch=result.branch,
                added_at=now,
                last_synced_at=now,
            )
            try:
                self.update(entry)
            except QiCacheException:
                self.logger.error(f"메타데이터 기록 실패, 복제본 삭제: {dest}")
                remove_tree(dest)
                raise

            self.store.touch()

        self.logger.info(f"저장소 추가 완료: {name} ({entry.source_url})")
        return entry

    def remove(self, name: str) -> None:
        """
        저장소 삭제

        디렉토리가 있으면 일부 손상된 경우에도 삭제합니다.

        Args:
            name: 저장소 이름

        Raises:
            ValidationException: 이름이 잘못되었을 때
            NotFoundException: 디렉토리가 없을 때
            CacheIOException: 삭제 실패 시
        """
        if not validate_repo_name(name):
            raise ValidationException("저장소 이름", name, "잘못된 저장소 이름입니다")

        with self.store.locked():
            path = self.path_for(name)
            if not path.exists() and not path.is_symlink():
                raise NotFoundException("저장소", name)
            try:
                remove_tree(path)
            except OSError as e:
                raise io_error(path, e) from e
            self.store.touch()

        self.logger.info(f"저장소 삭제 완료: {name}")

    def update(self, entry: RepositoryEntry) -> None:
        """
        저장소 메타데이터 기록 (임시 파일 후 rename)

        Args:
            entry: 기록할 저장소 항목

        Raises:
            CacheIOException: 기록 실패 시
        """
        target = self.metadata_path(entry.name)
        with self.store.locked():
            try:
                atomic_write_text(target, self.parser.render(entry))
            except OSError as e:
                raise io_error(target, e) from e
        self.logger.debug(f"메타데이터 기록: {target}")

    def mark_synced(self, name: str) -> RepositoryEntry:
        """마지막 동기화 시간을 현재 시간으로 갱신"""
        entry = self.get(name).model_copy(
            update={"last_synced_at": datetime.now().replace(microsecond=0)}
        )
        self.update(entry)
        return entry

    def set_script_count(self, name: str, count: int) -> RepositoryEntry:
        """캐시된 스크립트 수 갱신 (변경이 없으면 기록하지 않음)"""
        entry = self.get(name)
        if entry.script_count == count:
            return entry
        entry = entry.model_copy(update={"script_count": count})
        self.update(entry)
        return entry

    def validate(self) -> List[ValidationIssue]:
        """
        캐시 일관성 검증 (상태를 변경하지 않음)

        Returns:
            List[ValidationIssue]: 발견된 문제 목록
        """
        issues: List[ValidationIssue] = []
        for path in self.store.repository_dirs():
            name = path.name
            has_vcs = self.git_sync.is_working_copy(path)
            metadata_path = path / METADATA_FILE_NAME
            has_metadata = metadata_path.is_file()

            if has_metadata and not has_vcs:
                others = [p for p in path.iterdir() if p.name != METADATA_FILE_NAME]
                if others:
                    issues.append(ValidationIssue(
                        issue_type=ValidationIssueType.MISSING_VCS,
                        repository_name=name,
                        path=str(path),
                        message="git 작업 사본 데이터가 없습니다",
                    ))
                else:
                    issues.append(ValidationIssue(
                        issue_type=ValidationIssueType.ORPHANED_METADATA,
                        repository_name=name,
                        path=str(metadata_path),
                        message="저장소 디렉토리 없이 메타데이터만 남아 있습니다",
                    ))
                continue

            if not has_metadata:
                issues.append(ValidationIssue(
                    issue_type=ValidationIssueType.ORPHANED_DIRECTORY,
                    repository_name=name,
                    path=str(path),
                    message="메타데이터가 없는 디렉토리입니다",
                ))
                continue

            if not (path / ".git" / "HEAD").exists() and (path / ".git").is_dir():
                issues.append(ValidationIssue(
                    issue_type=ValidationIssueType.MISSING_VCS,
                    repository_name=name,
                    path=str(path / ".git"),
                    message="git 데이터가 손상되었습니다 (HEAD 없음)",
                ))
                continue

            try:
                self.parser.read(path)
            except (OSError, ValueError) as e:
                issues.append(ValidationIssue(
                    issue_type=ValidationIssueType.CORRUPTED_METADATA,
                    repository_name=name,
                    path=str(metadata_path),
                    message=f"메타데이터를 해석할 수 없습니다: {e}",
                ))
                continue

            recorded_name = self.parser.recorded_name(path)
            if recorded_name and recorded_name != name:
                issues.append(ValidationIssue(
                    issue_type=ValidationIssueType.NAME_MISMATCH,
                    repository_name=name,
                    path=str(metadata_path),
                    message=f"기록된 이름 '{recorded_name}'이 디렉토리 이름과 다릅니다",
                ))

        for issue in issues:
            self.logger.warning(f"검증 문제 [{issue.issue_type.value}] {issue.repository_name}: {issue.message}")
        return issues
