"""
스크립트 인덱스 모듈

등록된 저장소에서 스크립트 파일을 찾아 재구성 가능한 인덱스 파일로 기록하고,
이름 기준 조회와 목록 출력을 제공합니다.
"""

import fnmatch
import os
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..cache.store import CacheStore
from ..config.settings import Settings
from ..exceptions import QiCacheException, io_error
from ..models.base import ScriptEntry
from ..models.enums import ListGrouping
from ..registry.repository import RepositoryRegistry
from ..utils.helpers import atomic_write_text
from ..utils.logging import get_logger

logger = get_logger(__name__)

INDEX_SEPARATOR = "|"


def sort_entries(entries: Iterable[ScriptEntry]) -> List[ScriptEntry]:
    """중복 제거 후 (이름, 저장소, 경로) 순으로 정렬"""
    unique = {entry.sort_key: entry for entry in entries}
    return [unique[key] for key in sorted(unique)]


class ScriptIndexer:
    """스크립트 탐색 및 인덱스 관리자"""

    def __init__(self, settings: Settings, store: CacheStore, registry: RepositoryRegistry):
        """
        스크립트 인덱서 초기화

        Args:
            settings: 해석된 설정 (패턴, 제외 디렉토리)
            store: 캐시 저장소
            registry: 저장소 레지스트리
        """
        self.settings = settings
        self.store = store
        self.registry = registry
        self.logger = logger

    @property
    def index_path(self) -> Path:
        return self.store.index_path

    # ------------------------------------------------------------------
    # 탐색
    # ------------------------------------------------------------------

    def discover(self, force_rebuild: bool = False) -> bool:
        """
        전체 저장소 탐색 후 인덱스 기록

        인덱스가 이미 있고 강제 재구성이 아니면 건너뜁니다.

        Args:
            force_rebuild: 강제 재구성 여부

        Returns:
            bool: 인덱스를 새로 기록했는지 여부
        """
        if not force_rebuild and self.index_path.exists():
            self.logger.debug("기존 스크립트 인덱스 사용")
            return False

        with self.store.locked():
            names = [entry.name for entry in self.registry.list()]
            entries: List[ScriptEntry] = []
            counts: Dict[str, int] = {}
            for name in names:
                found = self.scan_repository(name)
                counts[name] = len(found)
                entries.extend(found)

            written = self._write_index(entries)
            self._update_script_counts(counts)

        self.logger.info(f"스크립트 인덱스 구성 완료: {len(written)}개 스크립트 ({len(names)}개 저장소)")
        return True

    def refresh(self, repository_names: Iterable[str]) -> None:
        """
        지정한 저장소만 다시 탐색

        다른 저장소의 인덱스 항목은 그대로 유지하며, 삭제된 저장소의 항목은 제거합니다.
        인덱스가 없으면 전체를 재구성합니다.

        Args:
            repository_names: 다시 탐색할 저장소 이름들
        """
        targets = set(repository_names)
        with self.store.locked():
            existing = self._read_index()
            if existing is None:
                self.discover(force_rebuild=True)
                return

            registered = {entry.name for entry in self.registry.list()}
            entries = [
                entry for entry in existing
                if entry.repository_name in registered and entry.repository_name not in targets
            ]
            counts: Dict[str, int] = {}
            for name in sorted(targets & registered):
                found = self.scan_repository(name)
                counts[name] = len(found)
                entries.extend(found)

            self._write_index(entries)
            self._update_script_counts(counts)

        self.logger.debug(f"스크립트 인덱스 부분 갱신: {', '.join(sorted(targets)) or '-'}")

    def scan_repository(self, repository_name: str) -> List[ScriptEntry]:
        """
        저장소 하나의 스크립트 탐색 (인덱스를 기록하지 않음)

        Args:
            repository_name: 저장소 이름

        Returns:
            List[ScriptEntry]: 정렬된 스크립트 항목
        """
        repo_path = self.registry.path_for(repository_name)
        search_root = repo_path / self.settings.script_root if self.settings.script_root else repo_path
        if not search_root.is_dir():
            self.logger.debug(f"스크립트 디렉토리 없음: {search_root}")
            return []

        patterns = self.settings.script_pattern_list
        excluded = self.settings.excluded_dir_set
        found: List[ScriptEntry] = []

        for dirpath, dirnames, filenames in os.walk(search_root):
            # 제외 디렉토리는 내려가지 않음
            dirnames[:] = sorted(d for d in dirnames if d not in excluded)

            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                if not any(fnmatch.fnmatchcase(filename, pattern) for pattern in patterns):
                    continue

                full_path = Path(dirpath) / filename
                if not full_path.is_file():
                    continue

                relative_path = full_path.relative_to(repo_path).as_posix()
                if INDEX_SEPARATOR in relative_path or "\n" in relative_path:
                    self.logger.warning(f"인덱스에 기록할 수 없는 경로를 건너뜁니다: {relative_path}")
                    continue

                found.append(ScriptEntry(
                    script_name=Path(filename).stem,
                    relative_path=relative_path,
                    repository_name=repository_name,
                ))
                self.logger.debug(f"스크립트 발견: {filename} ({repository_name}: {relative_path})")

        return sort_entries(found)

    def _update_script_counts(self, counts: Dict[str, int]) -> None:
        for name, count in counts.items():
            try:
                self.registry.set_script_count(name, count)
            except QiCacheException as e:
                self.logger.warning(f"스크립트 수 갱신 실패: {name} - {e.message}")

    # ------------------------------------------------------------------
    # 인덱스 파일
    # ------------------------------------------------------------------

    def _write_index(self, entries: Iterable[ScriptEntry]) -> List[ScriptEntry]:
        ordered = sort_entries(entries)
        lines = [
            INDEX_SEPARATOR.join((e.script_name, e.repository_name, e.relative_path))
            for e in ordered
        ]
        content = "\n".join(lines) + "\n" if lines else ""
        try:
            atomic_write_text(self.index_path, content)
        except OSError as e:
            raise io_error(self.index_path, e) from e
        return ordered

    def _read_index(self) -> Optional[List[ScriptEntry]]:
        """인덱스 파일 읽기 (없으면 None, 잘못된 줄은 건너뜀)"""
        try:
            text = self.index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            self.logger.warning(f"스크립트 인덱스를 읽을 수 없습니다: {e}")
            return None

        entries = []
        for line_num, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            parts = line.split(INDEX_SEPARATOR)
            if len(parts) < 3 or not parts[0]:
                self.logger.warning(f"잘못된 인덱스 줄 {line_num}: {line}")
                continue
            entries.append(ScriptEntry(
                script_name=parts[0],
                repository_name=parts[1],
                relative_path=parts[2],
            ))
        return entries

    def _load_entries(self) -> List[ScriptEntry]:
        """현재 인덱스 항목 (인덱스가 없으면 기록 없이 메모리에서 탐색)"""
        entries = self._read_index()
        if entries is None:
            self.logger.debug("스크립트 인덱스 없음, 메모리에서 탐색합니다")
            entries = []
            for repo in self.registry.list():
                entries.extend(self.scan_repository(repo.name))
        return sort_entries(entries)

    def invalidate(self) -> None:
        """인덱스 삭제 (다음 discover에서 재구성)"""
        with self.store.locked():
            try:
                self.index_path.unlink()
                self.logger.debug("스크립트 인덱스 무효화")
            except FileNotFoundError:
                pass
            except OSError as e:
                raise io_error(self.index_path, e) from e

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def find_by_name(self, name: str) -> List[ScriptEntry]:
        """
        이름이 정확히 일치하는 스크립트 조회 (잠금 없음)

        Args:
            name: 스크립트 이름

        Returns:
            List[ScriptEntry]: 일치하는 항목 (없으면 빈 목록)
        """
        return [entry for entry in self._load_entries() if entry.script_name == name]

    def grouped(self, group_by: ListGrouping = ListGrouping.NAME) -> "OrderedDict[str, List[ScriptEntry]]":
        """
        그룹별 스크립트 목록

        Args:
            group_by: 그룹화 기준

        Returns:
            OrderedDict[str, List[ScriptEntry]]: 정렬된 그룹
        """
        entries = self._load_entries()
        if group_by == ListGrouping.REPOSITORY:
            entries = sorted(
                entries, key=lambda e: (e.repository_name, e.script_name, e.relative_path)
            )
            key_attr = "repository_name"
        else:
            key_attr = "script_name"

        groups: "OrderedDict[str, List[ScriptEntry]]" = OrderedDict()
        for entry in entries:
            groups.setdefault(getattr(entry, key_attr), []).append(entry)
        return groups

    def list_all(self, group_by: ListGrouping = ListGrouping.NAME) -> str:
        """
        출력용 스크립트 목록

        Args:
            group_by: 그룹화 기준 (이름별 소유 저장소 또는 저장소별 스크립트)

        Returns:
            str: 형식화된 목록 (스크립트가 없으면 빈 문자열)
        """
        lines = []
        for key, entries in self.grouped(group_by).items():
            lines.append(f"{key}:")
            for entry in entries:
                if group_by == ListGrouping.REPOSITORY:
                    lines.append(f"  {entry.script_name} ({entry.relative_path})")
                else:
                    lines.append(f"  {entry.repository_name} ({entry.relative_path})")
        return "\n".join(lines)

    def count(self) -> int:
        """전체 스크립트 항목 수"""
        return len(self._load_entries())

    def unique_count(self) -> int:
        """서로 다른 스크립트 이름 수"""
        return len({entry.script_name for entry in self._load_entries()})
