"""
스크립트 실행 모듈

선택된 bash 스크립트를 포그라운드 또는 백그라운드 하위 프로세스로 실행합니다.
"""

import os
import stat
import subprocess
import tempfile
import time
from itertools import islice
from pathlib import Path
from typing import Optional, Sequence, Union

from ..config.settings import Settings
from ..exceptions import NotFoundException, io_error
from ..models.base import ExecutionResult
from ..utils.helpers import format_duration
from ..utils.logging import get_logger

logger = get_logger(__name__)

PREVIEW_LINES = 20
SCRIPT_INTERPRETER = "bash"


class ScriptExecutor:
    """스크립트 실행기"""

    def __init__(self, settings: Settings, log_dir: Optional[Union[str, Path]] = None):
        """
        스크립트 실행기 초기화

        Args:
            settings: 해석된 설정
            log_dir: 백그라운드 실행 로그 디렉토리 (기본값 시스템 임시 디렉토리)
        """
        self.settings = settings
        self.logger = logger
        self.log_dir = Path(log_dir) if log_dir else Path(tempfile.gettempdir())

    def preview(self, script_path: Path, lines: int = PREVIEW_LINES) -> str:
        """스크립트 앞부분 미리보기"""
        try:
            with open(script_path, encoding="utf-8", errors="replace") as f:
                return "".join(islice(f, lines))
        except OSError as e:
            raise io_error(script_path, e) from e

    def _ensure_executable(self, script_path: Path) -> None:
        """실행 권한이 없으면 추가"""
        mode = script_path.stat().st_mode
        if mode & stat.S_IXUSR:
            return
        self.logger.warning(f"스크립트에 실행 권한을 추가합니다: {script_path}")
        try:
            script_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as e:
            raise io_error(script_path, e) from e

    def run(
        self,
        script_path: Union[str, Path],
        args: Sequence[str] = (),
        background: bool = False,
        cwd: Optional[Union[str, Path]] = None
    ) -> ExecutionResult:
        """
        스크립트 실행

        Args:
            script_path: 스크립트 경로
            args: 스크립트 인자
            background: 백그라운드 실행 여부 (새 세션, 로그 파일로 출력)
            cwd: 작업 디렉토리 (기본값 스크립트 디렉토리)

        Returns:
            ExecutionResult: 실행 결과 (백그라운드면 PID와 로그 파일)

        Raises:
            NotFoundException: 스크립트 파일이 없을 때
            CacheIOException: 실행 권한 변경 또는 프로세스 생성 실패 시
        """
        script_path = Path(script_path)
        if not script_path.is_file():
            raise NotFoundException("스크립트", str(script_path))

        if self.settings.dry_run:
            self.logger.info(f"[DRY RUN] 실행 예정: {SCRIPT_INTERPRETER} {script_path} {' '.join(args)}".rstrip())
            return ExecutionResult(script_path=str(script_path), preview=self.preview(script_path))

        self._ensure_executable(script_path)
        command = [SCRIPT_INTERPRETER, str(script_path), *args]
        workdir = Path(cwd) if cwd else script_path.parent

        if background:
            return self._run_background(script_path, command, workdir)

        self.logger.debug(f"스크립트 실행: {' '.join(command)} (작업 디렉토리: {workdir})")
        start_time = time.monotonic()
        try:
            completed = subprocess.run(command, cwd=workdir, check=False)
        except OSError as e:
            raise io_error(script_path, e) from e
        duration = time.monotonic() - start_time

        self.logger.info(
            f"스크립트 실행 완료: {script_path.name} "
            f"(종료코드: {completed.returncode}, {format_duration(duration)})"
        )
        return ExecutionResult(
            script_path=str(script_path),
            exit_code=completed.returncode,
            duration=duration,
        )

    def _run_background(self, script_path: Path, command: Sequence[str], workdir: Path) -> ExecutionResult:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.log_dir / f"qi-{script_path.stem}-{os.getpid()}-{int(time.time())}.log"
        try:
            with open(log_file, "ab") as log:
                process = subprocess.Popen(
                    command,
                    cwd=workdir,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True  # 새 세션으로 시작하여 시그널 격리
                )
        except OSError as e:
            raise io_error(script_path, e) from e

        self.logger.info(f"백그라운드 실행 시작: {script_path.name} (PID: {process.pid}, 로그: {log_file})")
        return ExecutionResult(
            script_path=str(script_path),
            pid=process.pid,
            log_file=str(log_file),
        )
