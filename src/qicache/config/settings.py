"""
설정 관리 모듈

기본값, 설정 파일, 환경 변수, CLI 플래그를 하나의 불변 설정으로 병합합니다.
우선순위(높은 순): CLI 플래그 > 환경 변수 > 설정 파일 > 기본값
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import Field, ValidationInfo, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ..exceptions import ConfigurationException, ConflictException, io_error
from ..utils.helpers import atomic_write_text, parse_bool, parse_non_negative_float, parse_non_negative_int
from ..utils.logging import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "QI_"
DEFAULT_CONFIG_FILE = "~/.qi/config"

BOOL_FIELDS = ("auto_update", "verbose", "dry_run", "force")
INT_FIELDS = ("git_timeout", "network_retries", "lock_timeout", "stale_lock_age")
FLOAT_FIELDS = ("retry_delay",)
PATH_FIELDS = ("cache_dir", "config_file", "log_file")

# 기본 설정 파일에 기록하는 항목
CONFIG_TEMPLATE_FIELDS = ("cache_dir", "default_branch", "auto_update", "verbose")


def load_config_file(config_path: Path) -> Dict[str, str]:
    """
    key=value 형식 설정 파일 읽기

    # 또는 ; 로 시작하는 줄은 주석, 빈 줄은 무시하며 값의 따옴표는 제거합니다.
    형식이 잘못된 줄과 알 수 없는 키는 경고 후 건너뜁니다.

    Args:
        config_path: 설정 파일 경로

    Returns:
        Dict[str, str]: 설정 키와 값
    """
    values: Dict[str, str] = {}
    if not config_path.is_file():
        logger.debug(f"설정 파일 없음: {config_path}")
        return values

    known_keys = set(Settings.model_fields)
    try:
        lines = config_path.read_text(encoding='utf-8').splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"설정 파일을 읽을 수 없습니다: {config_path} - {e}")
        return values

    for line_num, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith(("#", ";")):
            continue

        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.warning(f"잘못된 설정 줄 {line_num} ({config_path}): {line}")
            continue

        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        if key not in known_keys or key == "config_file":
            logger.warning(f"알 수 없는 설정 키 '{key}' (줄 {line_num}, {config_path})")
            continue

        values[key] = value
        logger.debug(f"설정 파일: {key} = {value}")

    return values


class ConfigFileSettingsSource(PydanticBaseSettingsSource):
    """key=value 설정 파일 소스"""

    def __init__(self, settings_cls: Type[BaseSettings], config_path: Path):
        super().__init__(settings_cls)
        self.config_path = config_path
        self.values = load_config_file(config_path)

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self.values.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return dict(self.values)


class Settings(BaseSettings):
    """해석된 불변 설정 (ConfigSet)"""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        validate_default=True,
        env_ignore_empty=True,
    )

    # 캐시 설정
    cache_dir: str = Field(
        default="~/.qi/cache",
        description="저장소 캐시 루트 디렉토리"
    )
    config_file: str = Field(
        default=DEFAULT_CONFIG_FILE,
        description="설정 파일 경로"
    )
    lock_timeout: int = Field(
        default=30,
        description="캐시 잠금 대기 시간 (초)"
    )
    stale_lock_age: int = Field(
        default=3600,
        description="소유자를 알 수 없는 잠금 파일을 오래된 것으로 보는 시간 (초)"
    )

    # git 설정
    default_branch: str = Field(
        default="main",
        description="복제 시 기본 브랜치"
    )
    auto_update: bool = Field(
        default=False,
        description="스크립트 실행 전 저장소 자동 업데이트"
    )
    git_timeout: int = Field(
        default=300,
        description="git 작업별 타임아웃 (초, 0이면 무제한)"
    )
    network_retries: int = Field(
        default=3,
        description="네트워크 작업(clone, fetch, pull) 재시도 횟수"
    )
    retry_delay: float = Field(
        default=1.0,
        description="재시도 사이 지연 시간 (초)"
    )

    # 스크립트 탐색 설정
    script_patterns: str = Field(
        default="*.bash",
        description="스크립트 파일 패턴 (쉼표 구분)"
    )
    script_root: str = Field(
        default="",
        description="저장소 내 스크립트 탐색 하위 디렉토리 (비어 있으면 전체)"
    )
    excluded_dirs: str = Field(
        default=".git,.hg,.svn,node_modules,vendor,__pycache__,.venv,venv",
        description="탐색에서 제외할 디렉토리 이름 (쉼표 구분)"
    )

    # 실행 모드
    verbose: bool = Field(
        default=False,
        description="상세 출력"
    )
    dry_run: bool = Field(
        default=False,
        description="변경 없이 수행할 작업만 출력"
    )
    force: bool = Field(
        default=False,
        description="로컬 변경 stash 및 확인 생략"
    )

    # 로깅 설정
    log_level: str = Field(
        default="INFO",
        description="로그 레벨"
    )
    log_format: str = Field(
        default="%(levelname)s: %(message)s",
        description="로그 포맷"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="로그 파일 경로"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        init_kwargs = getattr(init_settings, "init_kwargs", {}) or {}
        config_path = (
            init_kwargs.get("config_file")
            or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")
            or DEFAULT_CONFIG_FILE
        )
        config_source = ConfigFileSettingsSource(settings_cls, Path(config_path).expanduser())
        return init_settings, env_settings, config_source

    @field_validator(*BOOL_FIELDS, mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any, info: ValidationInfo) -> bool:
        parsed = parse_bool(value)
        if parsed is None:
            default = cls.model_fields[info.field_name].default
            logger.warning(f"잘못된 불리언 값 {info.field_name}={value!r}, 기본값 {default} 사용")
            return default
        return parsed

    @field_validator(*INT_FIELDS, mode="before")
    @classmethod
    def _coerce_non_negative_int(cls, value: Any, info: ValidationInfo) -> int:
        parsed = parse_non_negative_int(value)
        if parsed is None:
            default = cls.model_fields[info.field_name].default
            logger.warning(f"잘못된 숫자 값 {info.field_name}={value!r}, 기본값 {default} 사용")
            return default
        return parsed

    @field_validator(*FLOAT_FIELDS, mode="before")
    @classmethod
    def _coerce_non_negative_float(cls, value: Any, info: ValidationInfo) -> float:
        parsed = parse_non_negative_float(value)
        if parsed is None:
            default = cls.model_fields[info.field_name].default
            logger.warning(f"잘못된 숫자 값 {info.field_name}={value!r}, 기본값 {default} 사용")
            return default
        return parsed

    @field_validator(*PATH_FIELDS)
    @classmethod
    def _expand_user(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return os.path.expanduser(str(value).strip())

    @field_validator("default_branch")
    @classmethod
    def _non_empty_branch(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("기본 브랜치는 비어 있을 수 없습니다")
        return value

    @property
    def cache_path(self) -> Path:
        """캐시 루트 경로 객체"""
        return Path(self.cache_dir)

    @property
    def script_pattern_list(self) -> List[str]:
        """스크립트 패턴 목록"""
        return [p.strip() for p in self.script_patterns.split(",") if p.strip()]

    @property
    def excluded_dir_set(self) -> set:
        """제외 디렉토리 이름 집합"""
        return {d.strip() for d in self.excluded_dirs.split(",") if d.strip()}

    def validate_configuration(self) -> None:
        """
        설정 유효성 검증

        캐시 디렉토리의 상위 경로를 만들고, 캐시 디렉토리를 만들 수 있는지 확인합니다.

        Raises:
            ConfigurationException: 캐시 디렉토리를 만들거나 쓸 수 없을 때
        """
        if not self.cache_dir:
            raise ConfigurationException("cache_dir", "캐시 디렉토리는 비어 있을 수 없습니다")

        cache_path = Path(self.cache_dir).absolute()
        if cache_path.exists() and not cache_path.is_dir():
            raise ConfigurationException("cache_dir", f"디렉토리가 아닙니다: {cache_path}")

        try:
            cache_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationException("cache_dir", f"상위 디렉토리를 만들 수 없습니다: {e}") from e

        writable_target = cache_path if cache_path.exists() else cache_path.parent
        if not os.access(writable_target, os.W_OK | os.X_OK):
            raise ConfigurationException("cache_dir", f"쓰기 권한이 없습니다: {writable_target}")


def render_default_config() -> str:
    """주석이 포함된 기본 설정 파일 내용"""
    lines = [
        "# qi 설정 파일",
        "# 형식: key=value, # 또는 ; 로 시작하는 줄은 주석",
        "# 우선순위: CLI 플래그 > QI_ 환경 변수 > 이 파일 > 기본값",
    ]
    for name in CONFIG_TEMPLATE_FIELDS:
        field = Settings.model_fields[name]
        default = field.default
        value = str(default).lower() if isinstance(default, bool) else str(default)
        lines.extend([
            "",
            f"# {field.description}",
            f"# 기본값: {value}",
            f"{name}={value}",
        ])
    return "\n".join(lines) + "\n"


def write_default_config(config_path: Path) -> Path:
    """
    기본 설정 파일 생성

    Args:
        config_path: 생성할 설정 파일 경로

    Returns:
        Path: 생성된 파일 경로

    Raises:
        ConflictException: 파일이 이미 있을 때 (덮어쓰지 않음)
        CacheIOException: 기록 실패 시
    """
    config_path = Path(config_path).expanduser()
    if config_path.exists():
        raise ConflictException(str(config_path), "설정 파일이 이미 존재합니다")

    try:
        atomic_write_text(config_path, render_default_config())
    except OSError as e:
        raise io_error(config_path, e) from e

    logger.info(f"기본 설정 파일 생성: {config_path}")
    return config_path


class ConfigResolver:
    """설정 계층 병합기"""

    def init_config_file(self, config_path: Optional[str] = None) -> Path:
        """
        기본 설정 파일 생성 (qi config --init)

        Args:
            config_path: 설정 파일 경로 (None이면 QI_CONFIG_FILE 또는 기본 경로)

        Returns:
            Path: 생성된 파일 경로
        """
        target = (
            config_path
            or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")
            or DEFAULT_CONFIG_FILE
        )
        return write_default_config(Path(target))

    def resolve(self, cli_overrides: Optional[Dict[str, Any]] = None) -> Settings:
        """
        설정 해석

        Args:
            cli_overrides: CLI 플래그 값 (None 값은 지정되지 않은 플래그로 간주)

        Returns:
            Settings: 불변 설정

        Raises:
            ConfigurationException: 알 수 없는 키, 잘못된 값, 쓸 수 없는 캐시 디렉토리
        """
        overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
        unknown = sorted(set(overrides) - set(Settings.model_fields))
        if unknown:
            raise ConfigurationException(", ".join(unknown), "알 수 없는 설정 키입니다")

        try:
            settings = Settings(**overrides)
        except ValueError as e:
            # pydantic ValidationError는 ValueError의 하위 클래스
            raise ConfigurationException("settings", str(e)) from e

        settings.validate_configuration()
        logger.debug(f"캐시 디렉토리: {settings.cache_dir}")
        logger.debug(f"기본 브랜치: {settings.default_branch}")
        return settings


def resolve_settings(cli_overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """
    편의 함수: 설정 해석

    Args:
        cli_overrides: CLI 플래그 값

    Returns:
        Settings: 불변 설정
    """
    return ConfigResolver().resolve(cli_overrides)
