"""
캐시 서비스 모듈

하나의 설정으로 모든 구성 요소를 연결하고 명령 디스패처가 호출하는 작업들을 제공합니다.
변경 작업은 모두 캐시 잠금 안에서 수행되며, 잠금을 놓기 전에 스크립트 인덱스를 갱신합니다.
"""

from typing import Any, Dict, List, Optional, Sequence

from .cache.store import CacheStore
from .config.settings import Settings, resolve_settings
from .exceptions import (
    ConflictException,
    GitOperationException,
    NotFoundException,
    QiCacheException,
    ValidationException,
)
from .git.sync import GitSync
from .models.base import (
    CacheStats,
    ExecutionResult,
    RepositoryEntry,
    RepoStatus,
    ScriptEntry,
    SyncResult,
    UpdateOutcome,
    ValidationIssue,
)
from .models.enums import ListGrouping, UpdateStatus
from .registry.repository import RepositoryRegistry
from .scripts.executor import ScriptExecutor
from .scripts.indexer import ScriptIndexer
from .scripts.resolver import ConflictResolver
from .scripts.selectors import Confirmer, Selector, default_confirmer
from .utils.helpers import derive_repo_name, validate_git_url, validate_repo_name
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


class QiCache:
    """스크립트 저장소 캐시 서비스"""

    def __init__(
        self,
        settings: Settings,
        git_sync: Optional[GitSync] = None,
        selector: Optional[Selector] = None,
        executor: Optional[ScriptExecutor] = None
    ):
        """
        캐시 서비스 초기화 (캐시 디렉토리 생성 포함)

        Args:
            settings: 해석된 설정
            git_sync: git 작업 관리자 (선택사항)
            selector: 기본 스크립트 선택기 (선택사항)
            executor: 스크립트 실행기 (선택사항)
        """
        self.settings = settings
        self.logger = logger

        self.store = CacheStore(settings)
        self.store.init()

        self.git_sync = git_sync or GitSync(settings)
        self.registry = RepositoryRegistry(settings, self.store, self.git_sync)
        self.indexer = ScriptIndexer(settings, self.store, self.registry)
        self.resolver = ConflictResolver(selector)
        self.executor = executor or ScriptExecutor(settings)

    # ------------------------------------------------------------------
    # 저장소 작업
    # ------------------------------------------------------------------

    def add_repository(
        self,
        url: str,
        name: Optional[str] = None,
        branch: Optional[str] = None
    ) -> Optional[RepositoryEntry]:
        """
        저장소 추가 후 해당 저장소의 스크립트 인덱스 갱신

        Args:
            url: 저장소 URL
            name: 저장소 이름 (None이면 URL에서 추출)
            branch: 복제할 브랜치

        Returns:
            Optional[RepositoryEntry]: 추가된 저장소 (dry-run이면 None)
        """
        if self.settings.dry_run:
            if not validate_git_url(url.strip()):
                raise ValidationException("저장소 URL", url, "지원하지 않는 URL 형식입니다")
            target = name or derive_repo_name(url)
            if self.registry.exists(target):
                raise ConflictException(target, "이미 존재하는 저장소입니다")
            self.logger.info(f"[DRY RUN] 저장소 추가 예정: {url} -> {self.registry.path_for(target)}")
            return None

        with self.store.locked():
            entry = self.registry.add(url, name, branch)
            self.indexer.refresh([entry.name])
        return self.registry.get(entry.name)

    def remove_repository(self, name: str, confirmer: Optional[Confirmer] = None) -> bool:
        """
        확인 후 저장소 삭제

        Args:
            name: 저장소 이름
            confirmer: 확인기 (None이면 force 설정과 터미널 여부로 결정)

        Returns:
            bool: 삭제했는지 여부 (취소 또는 dry-run이면 False)
        """
        if not validate_repo_name(name):
            raise ValidationException("저장소 이름", name, "잘못된 저장소 이름입니다")
        if not self.registry.path_for(name).exists():
            raise NotFoundException("저장소", name)

        confirmer = confirmer or default_confirmer(self.settings.force)
        if not confirmer.confirm(f"저장소 '{name}'를 삭제하시겠습니까?", default=False):
            self.logger.info(f"저장소 삭제 취소: {name}")
            return False

        if self.settings.dry_run:
            self.logger.info(f"[DRY RUN] 저장소 삭제 예정: {self.registry.path_for(name)}")
            return False

        with self.store.locked():
            self.registry.remove(name)
            self.indexer.refresh([name])
        return True

    def update_repository(self, name: str, force: Optional[bool] = None) -> SyncResult:
        """
        저장소 하나 동기화

        Args:
            name: 저장소 이름
            force: 로컬 변경 stash 여부 (None이면 설정값)

        Returns:
            SyncResult: 동기화 결과 (dry-run이면 빈 결과)
        """
        force = self.settings.force if force is None else force
        entry = self.registry.get(name)

        if self.settings.dry_run:
            self.logger.info(f"[DRY RUN] 저장소 업데이트 예정: {entry.name} (force={force})")
            return SyncResult(branch=entry.default_branch)

        self.logger.info(f"저장소 업데이트 중: {name}")
        with self.store.locked():
            result = self.git_sync.sync(self.registry.path_for(name), force)
            self.registry.mark_synced(name)
            self.indexer.refresh([name])
            self.store.touch()
        return result

    def update_all(self, force: Optional[bool] = None) -> List[UpdateOutcome]:
        """
        모든 저장소 동기화

        로컬 변경으로 건너뛴 저장소는 기존 인덱스 항목을 유지하며, 실패한 저장소가
        있어도 나머지를 계속 처리합니다.

        Args:
            force: 로컬 변경 stash 여부 (None이면 설정값)

        Returns:
            List[UpdateOutcome]: 저장소별 결과
        """
        force = self.settings.force if force is None else force
        entries = self.registry.list()
        if not entries:
            self.logger.info("캐시에 저장소가 없습니다")
            return []

        if self.settings.dry_run:
            for entry in entries:
                self.logger.info(f"[DRY RUN] 저장소 업데이트 예정: {entry.name}")
            return [
                UpdateOutcome(repository_name=entry.name, status=UpdateStatus.SKIPPED, message="dry-run")
                for entry in entries
            ]

        outcomes: List[UpdateOutcome] = []
        synced: List[str] = []
        self.logger.info(f"{len(entries)}개 저장소 업데이트 중...")

        with self.store.locked():
            for entry in entries:
                try:
                    result = self.git_sync.sync(self.registry.path_for(entry.name), force)
                except ConflictException as e:
                    self.logger.warning(f"로컬 변경으로 건너뜀: {entry.name}")
                    outcomes.append(UpdateOutcome(
                        repository_name=entry.name, status=UpdateStatus.SKIPPED, message=e.message
                    ))
                    continue
                except QiCacheException as e:
                    self.logger.error(f"저장소 업데이트 실패: {entry.name} - {e.message}")
                    outcomes.append(UpdateOutcome(
                        repository_name=entry.name, status=UpdateStatus.FAILED, message=e.message
                    ))
                    continue

                self.registry.mark_synced(entry.name)
                synced.append(entry.name)
                status = UpdateStatus.UPDATED if result.updated else UpdateStatus.CURRENT
                outcomes.append(UpdateOutcome(
                    repository_name=entry.name, status=status, result=result
                ))

            if synced:
                self.indexer.refresh(synced)
            self.store.touch()

        return outcomes

    def list_repositories(self) -> List[RepositoryEntry]:
        """등록된 저장소 목록 (잠금 없음)"""
        return self.registry.list()

    def repository_status(self, name: str, refresh: bool = False) -> RepoStatus:
        """
        저장소 작업 사본 상태

        Args:
            name: 저장소 이름
            refresh: 비교 전 fetch 여부

        Returns:
            RepoStatus: 상태 정보
        """
        self.registry.get(name)
        return self.git_sync.status(self.registry.path_for(name), refresh=refresh)

    # ------------------------------------------------------------------
    # 스크립트 작업
    # ------------------------------------------------------------------

    def find_scripts(self, name: str) -> List[ScriptEntry]:
        """이름이 일치하는 스크립트 목록 (잠금 없음)"""
        return self.indexer.find_by_name(name)

    def resolve_script(self, name: str, selector: Optional[Selector] = None) -> ScriptEntry:
        """
        스크립트 이름을 하나의 항목으로 결정

        Args:
            name: 스크립트 이름
            selector: 후보가 여럿일 때 사용할 선택기

        Returns:
            ScriptEntry: 선택된 스크립트

        Raises:
            NotFoundException: 일치하는 스크립트가 없을 때
            CancelledException: 선택이 취소되었을 때
        """
        candidates = self.find_scripts(name)
        if not candidates:
            raise NotFoundException("스크립트", name)
        return self.resolver.resolve(candidates, selector)

    def run_script(
        self,
        name: str,
        args: Sequence[str] = (),
        selector: Optional[Selector] = None,
        background: bool = False
    ) -> ExecutionResult:
        """
        스크립트 실행

        auto_update 설정이면 실행 전에 소유 저장소를 동기화합니다 (force 없이,
        로컬 변경이나 git 오류는 경고 후 계속).

        Args:
            name: 스크립트 이름
            args: 스크립트 인자
            selector: 후보가 여럿일 때 사용할 선택기
            background: 백그라운드 실행 여부

        Returns:
            ExecutionResult: 실행 결과
        """
        entry = self.resolve_script(name, selector)

        if self.settings.auto_update and not self.settings.dry_run:
            self._auto_update(entry.repository_name)

        script_path = entry.absolute_path(str(self.store.root))
        return self.executor.run(script_path, args, background=background)

    def _auto_update(self, repository_name: str) -> None:
        try:
            result = self.update_repository(repository_name, force=False)
        except ConflictException:
            self.logger.warning(f"로컬 변경이 있어 자동 업데이트를 건너뜁니다: {repository_name}")
        except GitOperationException as e:
            self.logger.warning(f"자동 업데이트 실패, 현재 버전으로 실행합니다: {repository_name} - {e.message}")
        else:
            if result.updated:
                self.logger.info(f"자동 업데이트 완료: {repository_name} ({result.commit_delta}개 커밋)")

    def list_scripts(self, group_by: ListGrouping = ListGrouping.NAME) -> str:
        """출력용 스크립트 목록 (잠금 없음)"""
        return self.indexer.list_all(group_by)

    def rebuild_index(self) -> int:
        """
        스크립트 인덱스 강제 재구성

        Returns:
            int: 인덱스 항목 수
        """
        if self.settings.dry_run:
            self.logger.info("[DRY RUN] 스크립트 인덱스 재구성 예정")
        else:
            self.indexer.discover(force_rebuild=True)
        return self.indexer.count()

    # ------------------------------------------------------------------
    # 캐시 정보
    # ------------------------------------------------------------------

    def validate(self) -> List[ValidationIssue]:
        """캐시 일관성 검증 (상태를 변경하지 않음)"""
        return self.registry.validate()

    def stats(self) -> CacheStats:
        """캐시 통계"""
        return self.store.stats()


def open_cache(cli_overrides: Optional[Dict[str, Any]] = None, **kwargs) -> QiCache:
    """
    편의 함수: 설정 해석, 로깅 설정 후 캐시 서비스 생성

    Args:
        cli_overrides: CLI 플래그 값
        **kwargs: QiCache 추가 인자 (selector, git_sync 등)

    Returns:
        QiCache: 캐시 서비스
    """
    settings = resolve_settings(cli_overrides)
    setup_logging(settings)
    return QiCache(settings, **kwargs)
