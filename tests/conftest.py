"""
공통 테스트 픽스처

환경 변수 격리, 임시 캐시 설정, 로컬 git 원격 저장소 생성 기능을 제공합니다.
"""

import os
from pathlib import Path
from typing import Dict

import git
import pytest

from qicache.config.settings import Settings

TEST_ACTOR = git.Actor("qi test", "qi-test@example.com")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """사용자 설정 파일과 QI_ 환경 변수가 테스트에 섞이지 않도록 격리"""
    for key in list(os.environ):
        if key.startswith("QI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("QI_CONFIG_FILE", str(tmp_path / "qi-config-missing"))

    # stash 등 커밋 작성자가 필요한 git 명령용
    monkeypatch.setenv("GIT_AUTHOR_NAME", TEST_ACTOR.name)
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", TEST_ACTOR.email)
    monkeypatch.setenv("GIT_COMMITTER_NAME", TEST_ACTOR.name)
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", TEST_ACTOR.email)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """임시 캐시 디렉토리를 사용하는 설정"""
    return Settings(
        cache_dir=str(tmp_path / "cache"),
        lock_timeout=2,
        network_retries=0,
        retry_delay=0,
        git_timeout=60,
    )


def commit_files(repo: git.Repo, files: Dict[str, str], message: str) -> str:
    """파일을 쓰고 커밋한 뒤 커밋 해시 반환"""
    work_tree = Path(repo.working_tree_dir)
    for relative_path, content in files.items():
        target = work_tree / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    repo.index.add(list(files))
    commit = repo.index.commit(message, author=TEST_ACTOR, committer=TEST_ACTOR)
    return commit.hexsha


@pytest.fixture
def make_origin(tmp_path):
    """
    로컬 원격 저장소 생성 팩토리

    Returns:
        Callable: (이름, 파일 딕셔너리) -> git.Repo (main 브랜치)
    """
    origins_dir = tmp_path / "origins"

    def factory(name: str, files: Dict[str, str]) -> git.Repo:
        repo = git.Repo.init(origins_dir / name)
        commit_files(repo, files, "initial commit")
        repo.git.branch("-M", "main")
        return repo

    return factory


def file_url(repo: git.Repo) -> str:
    """저장소의 file:// URL"""
    return Path(repo.working_tree_dir).resolve().as_uri()


@pytest.fixture
def origin_url():
    return file_url


@pytest.fixture
def commit():
    return commit_files


@pytest.fixture
def cached_repo(settings):
    """
    git 없이 캐시 디렉토리 구조만 만든 저장소 팩토리

    Returns:
        Callable: (이름, 파일 딕셔너리, ...) -> 저장소 경로
    """
    def factory(
        name: str,
        files: Dict[str, str] = None,
        url: str = "https://example.com/org/x.git",
        with_git: bool = True,
        with_meta: bool = True
    ) -> Path:
        path = Path(settings.cache_dir) / name
        path.mkdir(parents=True)
        if with_git:
            (path / ".git").mkdir()
            (path / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        if with_meta:
            (path / ".meta").write_text(f"name={name}\nurl={url}\n", encoding="utf-8")
        for relative_path, content in (files or {}).items():
            target = path / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return path

    return factory
