"""
캐시 저장소 관리 모듈

캐시 루트 디렉토리, 메타데이터 디렉토리, 프로세스 간 잠금 파일을 관리합니다.
"""

import os
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

import psutil

from ..config.settings import Settings
from ..exceptions import LockTimeoutException, io_error
from ..models.base import CacheStats, LockHandle
from ..utils.helpers import (
    atomic_write_text,
    directory_size,
    format_file_size,
    now_iso,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

META_DIR_NAME = ".meta"
LOCK_FILE_NAME = "lock"
SCRIPT_INDEX_FILE_NAME = "script-index"
CACHE_INFO_FILE_NAME = "cache-info"
CACHE_FORMAT_VERSION = "1.0.0"

# 잠금 재시도 간격 (초)
LOCK_POLL_INTERVAL = 0.1


def parse_key_values(text: str) -> Dict[str, str]:
    """
    줄 단위 key=value 텍스트 해석 (주석과 잘못된 줄은 무시)

    Args:
        text: 해석할 텍스트

    Returns:
        Dict[str, str]: 키와 값
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if sep and key.strip():
            values[key.strip()] = value.strip()
    return values


def render_key_values(values: Dict[str, str], header: Optional[str] = None) -> str:
    """
    key=value 텍스트 생성

    Args:
        values: 키와 값 (입력 순서 유지)
        header: 첫 줄 주석 (선택사항)

    Returns:
        str: 렌더링된 텍스트
    """
    lines = [f"# {header}"] if header else []
    lines.extend(f"{key}={value}" for key, value in values.items())
    return "\n".join(lines) + "\n"


def process_alive(pid: int) -> bool:
    """
    프로세스 생존 여부 확인

    Args:
        pid: 프로세스 ID

    Returns:
        bool: 살아 있는지 여부
    """
    if pid <= 0:
        return False
    try:
        return psutil.pid_exists(pid)
    except (OSError, psutil.Error):
        # 확인할 수 없으면 살아 있다고 가정 (잠금을 빼앗지 않음)
        return True


class CacheStore:
    """캐시 루트와 잠금 관리자"""

    def __init__(self, settings: Settings):
        """
        캐시 저장소 초기화 (디렉토리는 init()에서 생성)

        Args:
            settings: 해석된 설정
        """
        self.settings = settings
        self.logger = logger
        self.root = Path(settings.cache_dir)
        self.meta_dir = self.root / META_DIR_NAME
        self.lock_path = self.meta_dir / LOCK_FILE_NAME
        self.index_path = self.meta_dir / SCRIPT_INDEX_FILE_NAME
        self.cache_info_path = self.meta_dir / CACHE_INFO_FILE_NAME

        # 같은 인스턴스 안에서 재진입 가능한 잠금
        self._held: Optional[LockHandle] = None
        self._depth = 0

    def init(self) -> None:
        """
        캐시 루트와 메타데이터 디렉토리 생성 (멱등)

        Raises:
            CacheIOException: 디렉토리를 만들 수 없거나 쓸 수 없을 때
        """
        self.logger.debug(f"캐시 초기화: {self.root}")
        try:
            self.meta_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise io_error(self.meta_dir, e) from e

        if not os.access(self.root, os.W_OK | os.X_OK):
            raise io_error(self.root, PermissionError("캐시 디렉토리에 쓸 수 없습니다"))

        if not self.cache_info_path.exists():
            now = now_iso()
            self._write_cache_info({
                "version": CACHE_FORMAT_VERSION,
                "created": now,
                "last_updated": now,
            })
            self.logger.info(f"캐시 디렉토리 생성: {self.root}")

        # 죽은 프로세스가 남긴 잠금 정리 (최선 노력)
        if self.lock_path.exists():
            owner = self._read_lock_owner()
            if self._is_stale(owner):
                self._reclaim_stale_lock(owner)

    # ------------------------------------------------------------------
    # 잠금
    # ------------------------------------------------------------------

    def acquire_lock(self, timeout: Optional[float] = None) -> LockHandle:
        """
        캐시 잠금 획득

        O_CREAT|O_EXCL 로 잠금 파일을 원자적으로 생성합니다. 이미 있으면 소유 프로세스를
        확인하여 죽은 프로세스의 잠금은 즉시 회수하고, 살아 있으면 제한 시간까지 대기합니다.

        Args:
            timeout: 대기 시간 (초, None이면 설정의 lock_timeout)

        Returns:
            LockHandle: 잠금 핸들

        Raises:
            LockTimeoutException: 제한 시간 내에 잠금을 얻지 못했을 때
            CacheIOException: 잠금 파일을 만들 수 없을 때
        """
        timeout = self.settings.lock_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        owner_pid: Optional[int] = None

        self.logger.debug(f"캐시 잠금 획득 시도: {self.lock_path}")
        while True:
            handle = self._try_create_lock()
            if handle is not None:
                self.logger.debug(f"캐시 잠금 획득 (PID: {handle.pid})")
                return handle

            owner = self._read_lock_owner()
            owner_pid = self._owner_pid(owner)
            if self._is_stale(owner):
                self.logger.warning(f"오래된 잠금 회수: {self.lock_path} (PID: {owner_pid})")
                self._reclaim_stale_lock(owner)
                continue

            if time.monotonic() >= deadline:
                raise LockTimeoutException(str(self.lock_path), timeout, owner_pid)
            time.sleep(LOCK_POLL_INTERVAL)

    def release_lock(self, handle: Optional[LockHandle]) -> None:
        """
        캐시 잠금 해제

        잠금 파일의 소유자(PID와 토큰)가 핸들과 같을 때만 삭제합니다. 어떤 경우에도
        예외를 발생시키지 않으므로 모든 정리 경로에서 호출할 수 있습니다.

        Args:
            handle: acquire_lock()이 반환한 핸들
        """
        if handle is None:
            return
        try:
            owner = self._read_lock_owner()
            if owner.get("token") != handle.token or self._owner_pid(owner) != handle.pid:
                self.logger.debug("다른 소유자의 잠금이므로 해제하지 않습니다")
                return
            os.unlink(self.lock_path)
            self.logger.debug(f"캐시 잠금 해제 (PID: {handle.pid})")
        except OSError as e:
            self.logger.debug(f"잠금 해제 무시: {e}")

    @contextmanager
    def locked(self, timeout: Optional[float] = None) -> Iterator[LockHandle]:
        """
        범위 기반 잠금 (획득 후 모든 종료 경로에서 해제)

        같은 CacheStore 인스턴스 안에서는 재진입이 가능합니다.

        Args:
            timeout: 대기 시간 (초)

        Yields:
            LockHandle: 잠금 핸들
        """
        if self._held is not None:
            self._depth += 1
            try:
                yield self._held
            finally:
                self._depth -= 1
            return

        handle = self.acquire_lock(timeout)
        self._held = handle
        self._depth = 1
        try:
            yield handle
        finally:
            self._held = None
            self._depth = 0
            self.release_lock(handle)

    @property
    def is_locked_by_me(self) -> bool:
        """현재 인스턴스가 잠금을 보유 중인지 여부"""
        return self._held is not None

    def _try_create_lock(self) -> Optional[LockHandle]:
        """잠금 파일 원자적 생성 시도 (이미 있으면 None)"""
        handle = LockHandle(lock_path=str(self.lock_path))
        content = render_key_values({
            "pid": str(handle.pid),
            "acquired_at": handle.acquired_at.isoformat(),
            "token": handle.token,
        })
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return None
        except OSError as e:
            raise io_error(self.lock_path, e) from e

        try:
            os.write(fd, content.encode("utf-8"))
        finally:
            os.close(fd)
        return handle

    def _read_lock_owner(self, path: Optional[Path] = None) -> Dict[str, str]:
        """잠금 파일 내용 읽기 (없거나 읽을 수 없으면 빈 딕셔너리)"""
        path = path or self.lock_path
        try:
            return parse_key_values(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError):
            return {}

    @staticmethod
    def _owner_pid(owner: Dict[str, str]) -> Optional[int]:
        try:
            return int(owner["pid"])
        except (KeyError, ValueError):
            return None

    def _is_stale(self, owner: Dict[str, str]) -> bool:
        """
        잠금이 오래된 것인지 판단

        기록된 PID가 살아 있지 않으면 오래된 잠금입니다. PID를 읽을 수 없는 경우
        (다른 프로세스가 쓰는 중일 수 있음) 파일이 stale_lock_age보다 오래됐을 때만
        오래된 것으로 봅니다.
        """
        pid = self._owner_pid(owner)
        if pid is not None:
            return not process_alive(pid)

        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except OSError:
            # 그 사이 해제됨
            return False
        return age > self.settings.stale_lock_age

    def _reclaim_stale_lock(self, observed_owner: Dict[str, str]) -> None:
        """
        오래된 잠금 회수

        잠금 파일을 고유한 이름으로 옮긴 뒤 내용을 다시 확인합니다. 그 사이 다른 대기자가
        새 잠금을 만들었다면(살아 있는 소유자) 원래 자리로 되돌립니다.
        """
        aside = self.meta_dir / f"{LOCK_FILE_NAME}.stale.{uuid.uuid4().hex}"
        try:
            os.rename(self.lock_path, aside)
        except FileNotFoundError:
            return
        except OSError as e:
            self.logger.warning(f"오래된 잠금 회수 실패: {e}")
            return

        moved_owner = self._read_lock_owner(aside)
        if moved_owner != observed_owner and not self._is_stale_content(moved_owner):
            try:
                # 대상이 이미 있으면 실패하므로 새 잠금을 덮어쓰지 않음
                os.link(aside, self.lock_path)
            except OSError:
                self.logger.warning("회수 중 다른 프로세스의 잠금과 경합했습니다")
        try:
            os.unlink(aside)
        except OSError as e:
            self.logger.debug(f"회수한 잠금 파일 삭제 실패: {e}")

    def _is_stale_content(self, owner: Dict[str, str]) -> bool:
        pid = self._owner_pid(owner)
        return pid is not None and not process_alive(pid)

    # ------------------------------------------------------------------
    # 캐시 정보
    # ------------------------------------------------------------------

    def read_cache_info(self) -> Dict[str, str]:
        """캐시 정보 레코드 읽기"""
        try:
            return parse_key_values(self.cache_info_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError):
            return {}

    def touch(self) -> None:
        """캐시 변경 시간 갱신 (최선 노력)"""
        info = self.read_cache_info()
        info.setdefault("version", CACHE_FORMAT_VERSION)
        info.setdefault("created", now_iso())
        info["last_updated"] = now_iso()
        try:
            self._write_cache_info(info)
        except OSError as e:
            self.logger.warning(f"캐시 정보 갱신 실패: {e}")

    def _write_cache_info(self, info: Dict[str, str]) -> None:
        atomic_write_text(self.cache_info_path, render_key_values(info, header="qi cache metadata"))

    def repository_dirs(self) -> list:
        """캐시 루트의 저장소 후보 디렉토리 목록 (숨김 디렉토리 제외, 이름순)"""
        if not self.root.is_dir():
            return []
        return sorted(
            (p for p in self.root.iterdir() if p.is_dir() and not p.name.startswith(".")),
            key=lambda p: p.name
        )

    def stats(self) -> CacheStats:
        """
        캐시 통계 정보 조회

        Returns:
            CacheStats: 캐시 통계
        """
        total_size = directory_size(self.root) if self.root.is_dir() else 0
        repository_count = sum(
            1 for path in self.repository_dirs() if (path / META_DIR_NAME).is_file()
        )
        return CacheStats(
            cache_dir=str(self.root),
            repository_count=repository_count,
            total_size_bytes=total_size,
            total_size=format_file_size(total_size),
            last_updated=self.read_cache_info().get("last_updated"),
        )
