"""
예외 클래스 정의 모듈

스크립트 저장소 캐시에서 사용되는 커스텀 예외들과 종료 코드 매핑을 정의합니다.
"""

from typing import List, Optional


# 디스패처에 노출되는 종료 코드
EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_INVALID_USAGE = 2
EXIT_NOT_FOUND = 3
EXIT_CONFLICT = 4
EXIT_GIT_ERROR = 5
EXIT_PERMISSION_ERROR = 6
EXIT_CANCELLED = 130


class QiCacheException(Exception):
    """캐시 시스템 기본 예외 클래스"""

    exit_code = EXIT_GENERAL_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        identifier: Optional[str] = None,
        detail: Optional[str] = None
    ):
        """
        예외 초기화

        Args:
            message: 한 줄 오류 메시지
            error_code: 오류 코드 (선택사항)
            identifier: 문제가 된 저장소/스크립트/경로 식별자
            detail: 하위 프로세스 진단 메시지 등 상세 정보 (상세 모드에서만 출력)
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.identifier = identifier
        self.detail = detail

    def describe(self, verbose: bool = False) -> str:
        """
        사용자에게 보여줄 메시지 생성

        Args:
            verbose: 상세 정보 포함 여부

        Returns:
            str: 출력용 메시지
        """
        if verbose and self.detail:
            return f"{self.message}\n{self.detail.rstrip()}"
        return self.message


class ValidationException(QiCacheException):
    """잘못된 URL, 이름, 설정 값에 대한 예외 (재시도하지 않음)"""

    exit_code = EXIT_INVALID_USAGE

    def __init__(self, field_name: str, value: str, reason: str):
        message = f"유효하지 않은 {field_name}: {value} - {reason}"
        super().__init__(message, "VALIDATION_ERROR", identifier=value)
        self.field_name = field_name
        self.value = value
        self.reason = reason


class ConfigurationException(QiCacheException):
    """설정 오류 시 발생하는 예외"""

    exit_code = EXIT_INVALID_USAGE

    def __init__(self, config_key: str, error_detail: str):
        """
        설정 예외 초기화

        Args:
            config_key: 설정 키
            error_detail: 오류 상세 정보
        """
        message = f"설정 오류: {config_key} - {error_detail}"
        super().__init__(message, "CONFIGURATION_ERROR", identifier=config_key)
        self.config_key = config_key
        self.error_detail = error_detail


class ConflictException(QiCacheException):
    """이름 충돌 또는 커밋되지 않은 로컬 변경 사항이 있을 때 발생하는 예외"""

    exit_code = EXIT_CONFLICT

    def __init__(self, identifier: str, reason: str, modified_paths: Optional[List[str]] = None):
        """
        충돌 예외 초기화

        Args:
            identifier: 충돌한 저장소 이름 또는 경로
            reason: 충돌 사유
            modified_paths: 로컬 변경 파일 목록 (동기화 충돌일 때)
        """
        modified_paths = list(modified_paths or [])
        message = f"충돌: {identifier} - {reason}"
        detail = "\n".join(modified_paths) if modified_paths else None
        super().__init__(message, "CONFLICT", identifier=identifier, detail=detail)
        self.reason = reason
        self.modified_paths = modified_paths


class NotFoundException(QiCacheException):
    """저장소나 스크립트를 찾을 수 없을 때 발생하는 예외"""

    exit_code = EXIT_NOT_FOUND

    def __init__(self, kind: str, name: str):
        """
        찾기 실패 예외 초기화

        Args:
            kind: 대상 종류 ("저장소" 또는 "스크립트")
            name: 대상 이름
        """
        message = f"{kind}를 찾을 수 없습니다: {name}"
        super().__init__(message, "NOT_FOUND", identifier=name)
        self.kind = kind
        self.name = name


class LockTimeoutException(QiCacheException):
    """캐시 잠금을 제한 시간 내에 얻지 못했을 때 발생하는 예외"""

    def __init__(self, lock_path: str, timeout_seconds: float, owner_pid: Optional[int] = None):
        owner_info = f", 소유 프로세스: {owner_pid}" if owner_pid else ""
        message = f"캐시가 사용 중입니다 ({timeout_seconds}초 대기{owner_info})"
        super().__init__(message, "LOCK_TIMEOUT", identifier=lock_path)
        self.lock_path = lock_path
        self.timeout_seconds = timeout_seconds
        self.owner_pid = owner_pid


class GitOperationException(QiCacheException):
    """git 하위 프로세스 실패 시 발생하는 예외"""

    exit_code = EXIT_GIT_ERROR

    def __init__(
        self,
        operation: str,
        target: str,
        error_detail: str,
        stderr: Optional[str] = None,
        retryable: bool = True
    ):
        """
        git 예외 초기화

        Args:
            operation: git 작업 이름 (clone, fetch, pull 등)
            target: 작업 대상 (URL 또는 경로)
            error_detail: 오류 요약
            stderr: git 진단 출력
            retryable: 네트워크 재시도 대상 여부
        """
        message = f"git {operation} 실패: {target} - {error_detail}"
        super().__init__(message, "GIT_ERROR", identifier=target, detail=stderr)
        self.operation = operation
        self.stderr = stderr or ""
        self.retryable = retryable


class CacheIOException(QiCacheException):
    """파일 시스템 작업 실패 시 발생하는 예외"""

    def __init__(self, path: str, error_detail: str):
        message = f"파일 시스템 오류: {path} - {error_detail}"
        super().__init__(message, "IO_ERROR", identifier=path)
        self.path = path
        self.error_detail = error_detail


class CachePermissionException(CacheIOException):
    """권한 부족으로 파일 시스템 작업이 실패했을 때 발생하는 예외"""

    exit_code = EXIT_PERMISSION_ERROR

    def __init__(self, path: str, error_detail: str):
        super().__init__(path, error_detail)
        self.error_code = "PERMISSION_ERROR"


class CancelledException(QiCacheException):
    """사용자가 작업을 취소했을 때 발생하는 예외"""

    exit_code = EXIT_CANCELLED

    def __init__(self, operation: str):
        message = f"사용자가 작업을 취소했습니다: {operation}"
        super().__init__(message, "CANCELLED", identifier=operation)
        self.operation = operation


def exit_code_for(error: BaseException) -> int:
    """
    예외를 디스패처 종료 코드로 변환

    Args:
        error: 발생한 예외

    Returns:
        int: 종료 코드
    """
    if isinstance(error, QiCacheException):
        return error.exit_code
    if isinstance(error, KeyboardInterrupt):
        return EXIT_CANCELLED
    if isinstance(error, PermissionError):
        return EXIT_PERMISSION_ERROR
    return EXIT_GENERAL_ERROR


def io_error(path, error: OSError) -> CacheIOException:
    """
    OSError를 캐시 예외로 변환 (권한 오류는 별도 타입)

    Args:
        path: 작업 대상 경로
        error: 원본 OSError

    Returns:
        CacheIOException: 변환된 예외
    """
    if isinstance(error, PermissionError):
        return CachePermissionException(str(path), str(error))
    return CacheIOException(str(path), str(error))
