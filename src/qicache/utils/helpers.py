"""
공통 유틸리티 함수 모듈

캐시 시스템에서 공통으로 사용되는 헬퍼 함수들을 제공합니다.
"""

import math
import os
import re
import shutil
import stat
import sys
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..utils.logging import get_logger

logger = get_logger(__name__)

# 허용되는 저장소 URL 형식
URL_PATTERNS = [
    re.compile(r'^https?://[A-Za-z0-9._-]+(?::\d+)?/[A-Za-z0-9._~/-]+$'),
    re.compile(r'^ssh://(?:[A-Za-z0-9._-]+@)?[A-Za-z0-9._-]+(?::\d+)?/[A-Za-z0-9._~/-]+$'),
    re.compile(r'^[A-Za-z0-9._-]+@[A-Za-z0-9._-]+:[A-Za-z0-9._~/-]+$'),
    re.compile(r'^file://\S+$'),
]

VCS_SUFFIX = ".git"
REPO_NAME_PATTERN = re.compile(r'^[A-Za-z0-9._-]+$')
FALLBACK_REPO_NAME = "repo"

TRUE_VALUES = {"true", "yes", "1"}
FALSE_VALUES = {"false", "no", "0"}

DEFAULT_FILE_MODE = 0o644


def validate_git_url(url: str) -> bool:
    """
    저장소 URL 형식 검증

    https, http, ssh, git@host:path, file 형식만 허용합니다.

    Args:
        url: 검증할 URL

    Returns:
        bool: 허용되는 URL인지 여부
    """
    if not url or any(ch.isspace() for ch in url):
        return False
    return any(pattern.match(url) for pattern in URL_PATTERNS)


def normalize_git_url(url: str) -> str:
    """
    저장소 URL 정규화 (끝의 / 제거, .git 접미사 보장)

    Args:
        url: 원본 URL

    Returns:
        str: 정규화된 URL
    """
    url = url.strip().rstrip('/')
    if not url.endswith(VCS_SUFFIX):
        url = f"{url}{VCS_SUFFIX}"
    return url


def sanitize_repo_name(name: str) -> str:
    """
    저장소 이름 정리

    [A-Za-z0-9._-] 이외의 문자는 _로 바꾸고 앞뒤의 . 과 _ 를 제거합니다.

    Args:
        name: 원본 이름

    Returns:
        str: 정리된 이름 (비어 있으면 "repo")
    """
    name = re.sub(r'[^A-Za-z0-9._-]', '_', name)
    name = name.strip('._')
    return name or FALLBACK_REPO_NAME


def derive_repo_name(url: str) -> str:
    """
    URL에서 저장소 이름 추출

    예: https://example.com/org/tools.git -> tools, git@host:org/tools.git -> tools

    Args:
        url: 저장소 URL

    Returns:
        str: 추출된 저장소 이름
    """
    normalized = normalize_git_url(url)
    # scp 형식(git@host:path)의 : 도 경로 구분자로 취급
    segment = re.split(r'[/:]', normalized)[-1]
    if segment.endswith(VCS_SUFFIX):
        segment = segment[:-len(VCS_SUFFIX)]
    return sanitize_repo_name(segment)


def validate_repo_name(name: str) -> bool:
    """
    저장소 이름 검증 (숨김 이름과 예약 이름 거부)

    Args:
        name: 저장소 이름

    Returns:
        bool: 유효한 이름인지 여부
    """
    if not name or not REPO_NAME_PATTERN.match(name):
        return False
    if name in (".", "..") or name.startswith("."):
        return False
    return True


def parse_bool(value: Any) -> Optional[bool]:
    """
    불리언 문자열 해석 (true/false/yes/no/1/0, 대소문자 무시)

    Args:
        value: 해석할 값

    Returns:
        Optional[bool]: 해석 결과 (해석 불가면 None)
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def parse_non_negative_int(value: Any) -> Optional[int]:
    """
    음이 아닌 정수 해석

    Args:
        value: 해석할 값

    Returns:
        Optional[int]: 해석 결과 (해석 불가면 None)
    """
    if isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number >= 0 else None


def parse_non_negative_float(value: Any) -> Optional[float]:
    """
    음이 아닌 실수 해석

    Args:
        value: 해석할 값

    Returns:
        Optional[float]: 해석 결과 (해석 불가, 음수, nan/inf면 None)
    """
    if isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


def now_iso() -> str:
    """초 단위 ISO 형식 현재 시간"""
    return datetime.now().replace(microsecond=0).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    ISO 형식 시간 문자열 해석

    Args:
        value: 시간 문자열 (비어 있으면 None)

    Returns:
        Optional[datetime]: 해석된 시간 (해석 불가면 None)
    """
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        logger.debug(f"시간 형식 해석 실패: {value}")
        return None


def _current_umask() -> int:
    """현재 프로세스 umask (조회를 위해 잠시 변경 후 복원)"""
    mask = os.umask(0)
    os.umask(mask)
    return mask


def atomic_write_text(path: Union[str, Path], content: str) -> None:
    """
    임시 파일에 쓴 뒤 rename 하여 원자적으로 파일 기록

    중간에 프로세스가 종료되어도 다음 읽기에 절반만 쓰인 파일이 보이지 않습니다.
    기록된 파일 권한은 umask를 적용한 0644이며, 실패 시 임시 파일을 남기지 않습니다.

    Args:
        path: 대상 파일 경로
        content: 기록할 내용
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_file = tempfile.NamedTemporaryFile(
        mode='w',
        encoding='utf-8',
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False
    )
    temp_path = Path(temp_file.name)
    try:
        with temp_file:
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        # NamedTemporaryFile은 0600으로 생성됨
        os.chmod(temp_path, DEFAULT_FILE_MODE & ~_current_umask())
        os.replace(temp_path, target)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def _make_writable_and_retry(func: Callable, path: str, exc) -> None:
    """읽기 전용 파일(git 객체 등) 삭제 실패 시 권한 변경 후 재시도"""
    error = exc[1] if isinstance(exc, tuple) else exc
    try:
        os.chmod(path, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
    except OSError:
        raise error
    func(path)


def remove_tree(path: Union[str, Path]) -> None:
    """
    디렉토리 트리 삭제 (읽기 전용 파일 포함)

    Args:
        path: 삭제할 디렉토리
    """
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    if not path.exists():
        return
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=_make_writable_and_retry)


def directory_size(path: Union[str, Path]) -> int:
    """
    디렉토리 전체 크기 계산 (바이트)

    Args:
        path: 디렉토리 경로

    Returns:
        int: 전체 크기
    """
    total = 0
    for root, _dirs, files in os.walk(path):
        for filename in files:
            try:
                total += os.lstat(os.path.join(root, filename)).st_size
            except OSError:
                # 동시 변경 중 사라진 파일
                continue
    return total


def retry_call(
    func: Callable[[], Any],
    max_retries: int = 3,
    delay: float = 1.0,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    exceptions: tuple = (Exception,),
    description: str = "작업"
) -> Any:
    """
    고정 지연을 두고 함수 재시도

    Args:
        func: 재시도할 함수
        max_retries: 최대 재시도 횟수 (첫 시도 제외)
        delay: 재시도 사이 지연 시간 (초)
        should_retry: 예외별 재시도 여부 판단 함수
        exceptions: 재시도할 예외 타입들
        description: 로그용 작업 설명

    Returns:
        Any: 함수 실행 결과

    Raises:
        Exception: 모든 재시도 실패 시 마지막 예외
    """
    attempt = 0
    while True:
        try:
            return func()
        except exceptions as e:
            if attempt >= max_retries or (should_retry and not should_retry(e)):
                raise
            attempt += 1
            logger.warning(f"{description} 실패, {delay:.1f}초 후 재시도 ({attempt}/{max_retries}): {e}")
            if delay > 0:
                time.sleep(delay)


def format_file_size(size_bytes: int) -> str:
    """
    파일 크기를 사람이 읽기 쉬운 형태로 변환

    Args:
        size_bytes: 바이트 단위 크기

    Returns:
        str: 형식화된 크기 문자열
    """
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    size_value = float(size_bytes)

    while size_value >= 1024 and i < len(size_names) - 1:
        size_value = size_value / 1024
        i += 1

    return f"{size_value:.1f} {size_names[i]}"


def format_duration(seconds: float) -> str:
    """
    지속 시간을 사람이 읽기 쉬운 형태로 변환

    Args:
        seconds: 초 단위 시간

    Returns:
        str: 형식화된 시간 문자열
    """
    if seconds < 60:
        return f"{seconds:.1f}초"
    elif seconds < 3600:
        minutes = seconds // 60
        seconds = seconds % 60
        return f"{int(minutes)}분 {seconds:.1f}초"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        seconds = seconds % 60
        return f"{int(hours)}시간 {int(minutes)}분 {seconds:.1f}초"
