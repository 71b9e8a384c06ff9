"""
데이터 모델 테스트 모듈

데이터 모델과 저장소 메타데이터 변환을 테스트합니다.
"""

from datetime import datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from qicache.models import RepositoryEntry, ScriptEntry
from qicache.registry.metadata import METADATA_FILE_NAME, MetadataParser


def sample_entry(**overrides) -> RepositoryEntry:
    values = dict(
        name="tools",
        source_url="https://example.com/org/tools.git",
        local_path="/cache/tools",
        default_branch="develop",
        added_at=datetime(2024, 1, 2, 3, 4, 5),
        last_synced_at=datetime(2024, 2, 3, 4, 5, 6),
        script_count=7,
    )
    values.update(overrides)
    return RepositoryEntry(**values)


class TestScriptEntry:
    """스크립트 항목 모델 테스트"""

    def test_정렬_키(self):
        """이름, 저장소, 경로 순 정렬"""
        entries = [
            ScriptEntry(script_name="deploy", relative_path="qi/deploy.bash", repository_name="beta"),
            ScriptEntry(script_name="build", relative_path="build.bash", repository_name="zeta"),
            ScriptEntry(script_name="deploy", relative_path="qi/deploy.bash", repository_name="alpha"),
        ]

        ordered = sorted(entries, key=lambda e: e.sort_key)

        assert [(e.script_name, e.repository_name) for e in ordered] == [
            ("build", "zeta"), ("deploy", "alpha"), ("deploy", "beta"),
        ]

    def test_불변_및_해시(self):
        entry = ScriptEntry(script_name="deploy", relative_path="deploy.bash", repository_name="alpha")
        same = ScriptEntry(script_name="deploy", relative_path="deploy.bash", repository_name="alpha")

        assert entry == same
        assert len({entry, same}) == 1
        with pytest.raises(ValidationError):
            entry.script_name = "other"

    def test_absolute_path(self):
        entry = ScriptEntry(script_name="deploy", relative_path="qi/deploy.bash", repository_name="alpha")
        assert entry.absolute_path("/cache") == str(Path("/cache/alpha/qi/deploy.bash"))

    def test_빈_이름_거부(self):
        with pytest.raises(ValidationError):
            ScriptEntry(script_name="", relative_path="x.bash", repository_name="alpha")


class TestRepositoryEntry:
    """저장소 항목 모델 테스트"""

    def test_기본값(self):
        entry = RepositoryEntry(name="tools", source_url="https://x/tools.git", local_path="/c/tools")

        assert entry.default_branch == "main"
        assert entry.script_count == 0
        assert entry.last_synced_at is None
        assert entry.extra == {}

    def test_음수_스크립트_수_거부(self):
        with pytest.raises(ValidationError):
            sample_entry(script_count=-1)


class TestMetadataParser:
    """메타데이터 파서 테스트"""

    def test_왕복_변환(self, tmp_path):
        """기록 후 다시 읽으면 모든 지원 필드가 동일"""
        parser = MetadataParser()
        entry = sample_entry(local_path=str(tmp_path / "tools"))

        parsed = parser.parse(parser.render(entry), tmp_path / "tools")

        assert parsed.name == entry.name
        assert parsed.source_url == entry.source_url
        assert parsed.local_path == entry.local_path
        assert parsed.default_branch == entry.default_branch
        assert parsed.added_at == entry.added_at
        assert parsed.last_synced_at == entry.last_synced_at
        assert parsed.script_count == entry.script_count

    def test_렌더링_형식(self):
        """key=value 형식과 키 순서"""
        text = MetadataParser().render(sample_entry())
        lines = [line for line in text.splitlines() if not line.startswith("#")]

        assert lines == [
            "name=tools",
            "url=https://example.com/org/tools.git",
            "branch=develop",
            "added=2024-01-02T03:04:05",
            "last_updated=2024-02-03T04:05:06",
            "script_count=7",
        ]

    def test_알_수_없는_키_보존(self):
        """알 수 없는 키는 재기록 시 보존"""
        parser = MetadataParser()
        text = "name=tools\nurl=https://x/tools.git\nowner=ops\nfuture_flag=on\n"

        parsed = parser.parse(text, Path("/cache/tools"))
        rendered = parser.render(parsed)

        assert parsed.extra == {"owner": "ops", "future_flag": "on"}
        assert "owner=ops" in rendered
        assert "future_flag=on" in rendered

    def test_누락된_선택_필드(self):
        """선택 필드가 없으면 기본값 사용"""
        parsed = MetadataParser().parse("url=https://x/tools.git\nscript_count=abc\n", Path("/cache/tools"))

        assert parsed.name == "tools"
        assert parsed.default_branch == "main"
        assert parsed.last_synced_at is None
        assert parsed.script_count == 0

    def test_기록된_이름보다_디렉토리_이름_우선(self):
        parsed = MetadataParser().parse("name=other\nurl=https://x/tools.git\n", Path("/cache/tools"))

        assert parsed.name == "tools"
        assert "name" not in parsed.extra

    def test_url_누락(self):
        with pytest.raises(ValueError):
            MetadataParser().parse("name=tools\n", Path("/cache/tools"))

    def test_파일_읽기(self, tmp_path):
        repo_path = tmp_path / "tools"
        repo_path.mkdir()
        (repo_path / METADATA_FILE_NAME).write_text(MetadataParser().render(sample_entry()), encoding="utf-8")

        parsed = MetadataParser().read(repo_path)

        assert parsed.local_path == str(repo_path)
        assert parsed.script_count == 7

    def test_파일_없음(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            MetadataParser().read(tmp_path)
