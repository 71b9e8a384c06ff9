"""
로깅 시스템 모듈

한국어 로그 레벨을 지원하는 캐시 시스템 로깅을 제공합니다.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..config.settings import Settings

ROOT_LOGGER_NAME = "qicache"

LEVEL_NAMES = {
    'DEBUG': '디버그',
    'INFO': '정보',
    'WARNING': '경고',
    'ERROR': '오류',
    'CRITICAL': '치명적'
}


class KoreanFormatter(logging.Formatter):
    """한국어 로그 레벨명을 사용하는 포맷터"""

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        record.levelname = LEVEL_NAMES.get(original_levelname, original_levelname)
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def setup_logging(settings: "Settings") -> logging.Logger:
    """
    캐시 시스템 로깅 설정

    상세 모드(verbose)이면 DEBUG 레벨을, 아니면 설정의 log_level을 사용합니다.

    Args:
        settings: 해석된 설정 객체

    Returns:
        logging.Logger: 설정된 루트 로거
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level_name = "DEBUG" if settings.verbose else settings.log_level.upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # 중복 핸들러 방지
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = KoreanFormatter(fmt=settings.log_format, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.log_file:
        log_file_path = Path(settings.log_file).expanduser()
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        # 10MB, 5개 백업
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    logger.debug("로깅 시스템이 초기화되었습니다")
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    캐시 시스템 하위 로거 반환

    Args:
        name: 로거 이름 (보통 __name__)

    Returns:
        logging.Logger: 로거 객체
    """
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
