"""
캐시 저장소 테스트 모듈

캐시 디렉토리 초기화, 프로세스 간 잠금, 캐시 통계를 테스트합니다.
"""

import os
import subprocess
import sys
import time
from unittest.mock import patch

import pytest

from qicache.cache.store import CacheStore, parse_key_values, render_key_values
from qicache.exceptions import LockTimeoutException
from qicache.models.base import LockHandle


def dead_pid() -> int:
    """종료된 프로세스의 PID"""
    process = subprocess.Popen([sys.executable, "-c", "pass"])
    process.wait()
    return process.pid


def write_lock(store: CacheStore, pid: int, token: str = "other-token") -> None:
    store.lock_path.write_text(
        render_key_values({"pid": str(pid), "acquired_at": "2024-01-01T00:00:00", "token": token}),
        encoding="utf-8",
    )


@pytest.fixture
def store(settings):
    cache_store = CacheStore(settings)
    cache_store.init()
    return cache_store


class TestKeyValues:
    """key=value 변환 테스트"""

    def test_parse_key_values(self):
        text = "# header\npid=12\n\nbroken line\ntoken = abc \n"
        assert parse_key_values(text) == {"pid": "12", "token": "abc"}

    def test_render_key_values(self):
        assert render_key_values({"a": "1", "b": "2"}, header="h") == "# h\na=1\nb=2\n"


class TestCacheInit:
    """캐시 초기화 테스트"""

    def test_디렉토리_생성(self, settings):
        store = CacheStore(settings)
        store.init()

        assert store.root.is_dir()
        assert store.meta_dir.is_dir()
        info = store.read_cache_info()
        assert info["version"]
        assert info["created"]

    def test_멱등성(self, store):
        created = store.read_cache_info()["created"]

        store.init()

        assert store.read_cache_info()["created"] == created

    def test_죽은_프로세스_잠금_정리(self, settings):
        store = CacheStore(settings)
        store.meta_dir.mkdir(parents=True)
        write_lock(store, dead_pid())

        store.init()

        assert not store.lock_path.exists()

    def test_살아있는_프로세스_잠금_유지(self, settings):
        store = CacheStore(settings)
        store.meta_dir.mkdir(parents=True)
        write_lock(store, os.getpid())

        store.init()

        assert store.lock_path.exists()


class TestLocking:
    """잠금 테스트"""

    def test_획득과_해제(self, store):
        handle = store.acquire_lock()

        owner = parse_key_values(store.lock_path.read_text())
        assert owner["pid"] == str(os.getpid())
        assert owner["token"] == handle.token

        store.release_lock(handle)
        assert not store.lock_path.exists()

    def test_상호_배제(self, store):
        """살아있는 소유자의 잠금은 제한 시간 전에 회수되지 않음"""
        handle = store.acquire_lock()
        other = CacheStore(store.settings)

        start = time.monotonic()
        with pytest.raises(LockTimeoutException) as exc_info:
            other.acquire_lock(timeout=0.3)

        assert time.monotonic() - start >= 0.3
        assert exc_info.value.owner_pid == os.getpid()
        assert store.lock_path.exists()
        store.release_lock(handle)

    def test_죽은_프로세스_잠금_즉시_회수(self, store):
        """소유 프로세스가 없는 잠금은 제한 시간보다 훨씬 빨리 획득"""
        write_lock(store, dead_pid())

        start = time.monotonic()
        handle = store.acquire_lock(timeout=2)
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert parse_key_values(store.lock_path.read_text())["token"] == handle.token
        store.release_lock(handle)

    def test_해석할_수_없는_잠금은_오래되면_회수(self, store):
        store.lock_path.write_text("garbage", encoding="utf-8")
        old = time.time() - store.settings.stale_lock_age - 10
        os.utime(store.lock_path, (old, old))

        handle = store.acquire_lock(timeout=1)

        store.release_lock(handle)
        assert not store.lock_path.exists()

    def test_해석할_수_없는_새_잠금은_유지(self, store):
        store.lock_path.write_text("garbage", encoding="utf-8")

        with pytest.raises(LockTimeoutException):
            store.acquire_lock(timeout=0.2)
        assert store.lock_path.read_text() == "garbage"

    def test_다른_소유자_잠금은_해제하지_않음(self, store):
        """해제는 PID와 토큰이 일치할 때만 수행"""
        write_lock(store, os.getpid(), token="someone-else")
        stranger = LockHandle(lock_path=str(store.lock_path))

        store.release_lock(stranger)

        assert store.lock_path.exists()

    def test_해제는_예외를_발생시키지_않음(self, store):
        store.release_lock(None)
        store.release_lock(LockHandle(lock_path=str(store.lock_path)))

    def test_범위_잠금_예외_시_해제(self, store):
        with pytest.raises(RuntimeError):
            with store.locked():
                assert store.lock_path.exists()
                raise RuntimeError("boom")

        assert not store.lock_path.exists()
        assert store.is_locked_by_me is False

    def test_범위_잠금_재진입(self, store):
        with store.locked() as outer:
            with store.locked() as inner:
                assert inner.token == outer.token
            assert store.lock_path.exists()

        assert not store.lock_path.exists()

    def test_다른_인스턴스는_재진입하지_않음(self, store):
        other = CacheStore(store.settings)
        with store.locked():
            with pytest.raises(LockTimeoutException):
                with other.locked(timeout=0.2):
                    pass

    def test_생존_확인_실패는_살아있다고_가정(self, store):
        write_lock(store, 999999)

        with patch("qicache.cache.store.psutil.pid_exists", side_effect=OSError("denied")):
            with pytest.raises(LockTimeoutException):
                store.acquire_lock(timeout=0.2)


class TestCacheStats:
    """캐시 통계 테스트"""

    def test_빈_캐시(self, store):
        stats = store.stats()

        assert stats.repository_count == 0
        assert stats.cache_dir == str(store.root)
        assert stats.last_updated == store.read_cache_info()["last_updated"]

    def test_저장소_수와_크기(self, store):
        repo = store.root / "tools"
        repo.mkdir()
        (repo / ".meta").write_text("url=https://x/tools.git\n")
        (repo / "run.bash").write_bytes(b"x" * 100)
        (store.root / "orphan").mkdir()

        stats = store.stats()

        assert stats.repository_count == 1
        assert stats.total_size_bytes >= 100
        assert stats.total_size.endswith("B")

    def test_touch(self, store):
        info = store.read_cache_info()
        info["last_updated"] = "2000-01-01T00:00:00"
        store._write_cache_info(info)

        store.touch()

        assert store.read_cache_info()["last_updated"] != "2000-01-01T00:00:00"
