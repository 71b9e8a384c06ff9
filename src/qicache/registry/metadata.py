"""
저장소 메타데이터 관리 모듈

저장소별 key=value 메타데이터 레코드와 RepositoryEntry 사이의 변환을 제공합니다.
"""

from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from ..cache.store import parse_key_values, render_key_values
from ..models.base import RepositoryEntry
from ..utils.helpers import parse_non_negative_int, parse_timestamp
from ..utils.logging import get_logger

logger = get_logger(__name__)

METADATA_FILE_NAME = ".meta"

# 지원하는 키 (기록 순서)
KNOWN_KEYS = ("name", "url", "branch", "added", "last_updated", "script_count")


def _format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.replace(microsecond=0).isoformat()


class MetadataParser:
    """저장소 메타데이터 파서"""

    def __init__(self, settings=None):
        """
        메타데이터 파서 초기화

        Args:
            settings: 시스템 설정 객체 (선택사항)
        """
        self.settings = settings
        self.logger = logger

    def parse(self, text: str, local_path: Path) -> RepositoryEntry:
        """
        메타데이터 텍스트 파싱

        알 수 없는 키는 extra에 보존합니다. 이름은 항상 디렉토리 이름이며 기록된 name 키와
        다르면 무시합니다 (불일치는 validate에서 보고).

        Args:
            text: key=value 텍스트
            local_path: 저장소 작업 사본 경로

        Returns:
            RepositoryEntry: 파싱된 저장소 항목

        Raises:
            ValueError: 필수 필드(url)가 없을 때
        """
        values = parse_key_values(text)
        url = values.get("url", "")
        if not url:
            raise ValueError(f"필수 필드 누락: url ({local_path})")

        added_at = parse_timestamp(values.get("added")) or datetime.now()
        script_count = parse_non_negative_int(values.get("script_count", "0"))

        recorded_name = values.get("name")
        if recorded_name and recorded_name != local_path.name:
            self.logger.debug(f"기록된 이름 무시: {recorded_name} (디렉토리: {local_path.name})")

        return RepositoryEntry(
            name=local_path.name,
            source_url=url,
            local_path=str(local_path),
            default_branch=values.get("branch") or "main",
            added_at=added_at,
            last_synced_at=parse_timestamp(values.get("last_updated")),
            script_count=script_count or 0,
            extra={k: v for k, v in values.items() if k not in KNOWN_KEYS},
        )

    def render(self, entry: RepositoryEntry) -> str:
        """
        RepositoryEntry를 key=value 텍스트로 변환

        Args:
            entry: 저장소 항목

        Returns:
            str: 메타데이터 텍스트
        """
        values: Dict[str, str] = {
            "name": entry.name,
            "url": entry.source_url,
            "branch": entry.default_branch,
            "added": _format_timestamp(entry.added_at),
            "last_updated": _format_timestamp(entry.last_synced_at),
            "script_count": str(entry.script_count),
        }
        for key, value in entry.extra.items():
            if key not in values:
                values[key] = value
        return render_key_values(values, header="Repository metadata")

    def read(self, repo_path: Path) -> RepositoryEntry:
        """
        저장소 디렉토리의 메타데이터 파일 읽기

        Args:
            repo_path: 저장소 작업 사본 경로

        Returns:
            RepositoryEntry: 저장소 항목

        Raises:
            FileNotFoundError: 메타데이터 파일이 없을 때
            ValueError: 메타데이터 형식이 잘못되었을 때
        """
        metadata_path = repo_path / METADATA_FILE_NAME
        if not metadata_path.is_file():
            raise FileNotFoundError(f"메타데이터 파일을 찾을 수 없습니다: {metadata_path}")
        try:
            text = metadata_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ValueError(f"메타데이터 인코딩 오류: {e}") from e
        return self.parse(text, repo_path)

    def recorded_name(self, repo_path: Path) -> Optional[str]:
        """
        메타데이터 파일에 기록된 name 값 (검증용)

        Args:
            repo_path: 저장소 작업 사본 경로

        Returns:
            Optional[str]: 기록된 이름 (없거나 읽을 수 없으면 None)
        """
        try:
            text = (repo_path / METADATA_FILE_NAME).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None
        return parse_key_values(text).get("name") or None
