"""
Git 동기화 모듈

모든 git 하위 프로세스 호출을 한 곳에서 처리합니다. 각 호출은 설정된 타임아웃으로
제한되며, 네트워크 작업(clone, fetch, pull)만 재시도합니다.
"""

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import git
from git.exc import GitCommandError, GitCommandNotFound

from ..config.settings import Settings
from ..exceptions import ConflictException, GitOperationException, NotFoundException
from ..models.base import CloneResult, RepoStatus, SyncResult
from ..models.enums import RepoSyncState
from ..utils.helpers import now_iso, remove_tree, retry_call
from ..utils.logging import get_logger

logger = get_logger(__name__)

# 자격 증명 프롬프트로 멈추지 않도록 함
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}

BRANCH_MISSING_MARKERS = (
    "not found in upstream",
    "could not find remote branch",
)

# 재시도해도 결과가 같은 오류
NON_RETRYABLE_MARKERS = BRANCH_MISSING_MARKERS + (
    "not possible to fast-forward",
    "diverging branches",
    "authentication failed",
    "not a git repository",
    "already exists and is not an empty directory",
)

FALLBACK_UPSTREAMS = ("origin/main", "origin/master")
METADATA_EXCLUDE_PATTERN = "/.meta"
STASH_MESSAGE_PREFIX = "qi auto-stash"

PathLike = Union[str, Path]


class GitSync:
    """git 작업 관리자"""

    def __init__(self, settings: Settings):
        """
        git 작업 관리자 초기화

        Args:
            settings: 해석된 설정 (타임아웃, 재시도 횟수)
        """
        self.settings = settings
        self.logger = logger

    # ------------------------------------------------------------------
    # 공통 실행
    # ------------------------------------------------------------------

    def _run(
        self,
        args: Sequence[str],
        cwd: Optional[PathLike] = None,
        network: bool = False,
        operation: Optional[str] = None,
        target: Optional[str] = None,
        prepare: Optional[Callable[[], None]] = None
    ) -> str:
        """
        git 명령 실행

        Args:
            args: git 하위 명령과 인자
            cwd: 작업 디렉토리
            network: 네트워크 작업 여부 (재시도 대상)
            operation: 로그와 예외에 쓰일 작업 이름
            target: 예외에 쓰일 대상 (URL 또는 경로)
            prepare: 매 시도 전에 호출할 함수 (부분 결과 정리 등)

        Returns:
            str: 표준 출력 (끝의 줄바꿈 제외)

        Raises:
            GitOperationException: git 실행 실패 시
        """
        operation = operation or args[0]
        target = str(target or cwd or "")
        timeout = self.settings.git_timeout or None

        def invoke() -> str:
            if prepare:
                prepare()
            return self._execute(args, cwd, timeout, operation, target)

        if not network:
            return invoke()

        return retry_call(
            invoke,
            max_retries=self.settings.network_retries,
            delay=self.settings.retry_delay,
            should_retry=lambda e: getattr(e, "retryable", False),
            exceptions=(GitOperationException,),
            description=f"git {operation}"
        )

    def _execute(
        self,
        args: Sequence[str],
        cwd: Optional[PathLike],
        timeout: Optional[int],
        operation: str,
        target: str
    ) -> str:
        self.logger.debug(f"git 실행: git {' '.join(args)} ({cwd or '.'})")
        try:
            _status, stdout, _stderr = git.cmd.Git(str(cwd) if cwd else None).execute(
                ["git", *args],
                kill_after_timeout=timeout,
                with_extended_output=True,
                env=GIT_ENV
            )
        except GitCommandNotFound as e:
            raise GitOperationException(
                operation, target, "git 실행 파일을 찾을 수 없습니다", str(e), retryable=False
            ) from e
        except GitCommandError as e:
            stderr = self._clean_stderr(e.stderr)
            lowered = stderr.lower()
            raise GitOperationException(
                operation,
                target,
                self._summarize(e.status, stderr),
                stderr,
                retryable=not any(marker in lowered for marker in NON_RETRYABLE_MARKERS)
            ) from e
        return stdout

    def _try(self, args: Sequence[str], cwd: PathLike) -> Optional[str]:
        """실패해도 되는 로컬 git 조회 (실패 시 None)"""
        try:
            return self._run(args, cwd=cwd)
        except GitOperationException as e:
            self.logger.debug(f"git 조회 실패 무시: git {' '.join(args)} - {e.message}")
            return None

    @staticmethod
    def _clean_stderr(raw) -> str:
        text = str(raw or "").strip()
        if text.startswith("stderr:"):
            text = text[len("stderr:"):].strip()
        if len(text) >= 2 and text[0] == text[-1] == "'":
            text = text[1:-1]
        return text.strip()

    @staticmethod
    def _summarize(status, stderr: str) -> str:
        lines = [line.strip() for line in stderr.splitlines() if line.strip()]
        if lines:
            return lines[-1]
        return f"종료 코드 {status}"

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def check_available(self) -> str:
        """
        git 실행 파일 확인

        Returns:
            str: git 버전 문자열

        Raises:
            GitOperationException: git을 실행할 수 없을 때
        """
        return self._run(["--version"], operation="version", target="git")

    @staticmethod
    def is_working_copy(path: PathLike) -> bool:
        """git 작업 사본인지 여부 (.git 디렉토리 또는 파일 존재)"""
        return (Path(path) / ".git").exists()

    def current_branch(self, dest: PathLike) -> str:
        """현재 브랜치 이름 (분리된 HEAD면 "HEAD")"""
        branch = self._try(["rev-parse", "--abbrev-ref", "HEAD"], dest)
        return branch.strip() if branch else "unknown"

    def head_commit(self, dest: PathLike) -> str:
        """HEAD 커밋 해시 (커밋이 없으면 빈 문자열)"""
        commit = self._try(["rev-parse", "HEAD"], dest)
        return commit.strip() if commit else ""

    def modified_paths(self, dest: PathLike) -> List[str]:
        """
        추적 중인 파일의 로컬 변경 목록 (추적되지 않는 파일 제외)

        Args:
            dest: 작업 사본 경로

        Returns:
            List[str]: 변경된 파일 경로
        """
        output = self._run(
            ["status", "--porcelain", "--untracked-files=no"], cwd=dest, operation="status"
        )
        paths = []
        for line in output.splitlines():
            if len(line) < 4:
                continue
            path = line[3:]
            if " -> " in path:
                path = path.split(" -> ", 1)[1]
            paths.append(path.strip('"'))
        return paths

    def _upstream_ref(self, dest: PathLike) -> Optional[str]:
        """비교할 업스트림 참조 (@{u}, 없으면 origin/main, origin/master)"""
        upstream = self._try(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], dest)
        if upstream and upstream.strip():
            return upstream.strip()
        for candidate in FALLBACK_UPSTREAMS:
            if self._try(["rev-parse", "--verify", "--quiet", f"refs/remotes/{candidate}"], dest):
                return candidate
        return None

    def _ahead_behind(self, dest: PathLike, upstream: str) -> Tuple[int, int]:
        output = self._run(
            ["rev-list", "--left-right", "--count", f"HEAD...{upstream}"],
            cwd=dest,
            operation="rev-list"
        )
        parts = output.split()
        if len(parts) != 2:
            return 0, 0
        return int(parts[0]), int(parts[1])

    def _fetch(self, dest: PathLike) -> None:
        self._run(["fetch", "origin"], cwd=dest, network=True, operation="fetch")

    def status(self, dest: PathLike, refresh: bool = False) -> RepoStatus:
        """
        작업 사본 상태 조회

        로컬 변경이 있으면 modified, 아니면 업스트림과 비교하여 ahead/behind/diverged/clean
        중 하나를 반환합니다.

        Args:
            dest: 작업 사본 경로
            refresh: 비교 전에 fetch 수행 여부

        Returns:
            RepoStatus: 상태 정보

        Raises:
            NotFoundException: 작업 사본이 아닐 때
            GitOperationException: git 실행 실패 시
        """
        dest = Path(dest)
        if not self.is_working_copy(dest):
            raise NotFoundException("저장소 작업 사본", str(dest))

        if refresh:
            self._fetch(dest)

        modified = self.modified_paths(dest)
        upstream = self._upstream_ref(dest)
        ahead, behind = self._ahead_behind(dest, upstream) if upstream else (0, 0)

        if modified:
            state = RepoSyncState.MODIFIED
        elif ahead and behind:
            state = RepoSyncState.DIVERGED
        elif ahead:
            state = RepoSyncState.AHEAD
        elif behind:
            state = RepoSyncState.BEHIND
        else:
            state = RepoSyncState.CLEAN

        summary = self._try(["log", "-1", "--format=%h %s"], dest)
        remote_url = self._try(["config", "--get", "remote.origin.url"], dest)

        return RepoStatus(
            state=state,
            branch=self.current_branch(dest),
            commit_summary=(summary or "").strip(),
            upstream=upstream,
            remote_url=remote_url.strip() if remote_url else None,
            ahead=ahead,
            behind=behind,
            modified_paths=modified,
        )

    def needs_update(self, dest: PathLike) -> bool:
        """
        원격에 받을 커밋이 있는지 확인 (fetch 수행)

        Args:
            dest: 작업 사본 경로

        Returns:
            bool: 업데이트 필요 여부
        """
        self._fetch(dest)
        upstream = self._upstream_ref(dest)
        if not upstream:
            return False
        _ahead, behind = self._ahead_behind(dest, upstream)
        return behind > 0

    # ------------------------------------------------------------------
    # 변경 작업
    # ------------------------------------------------------------------

    def clone(self, url: str, dest: PathLike, branch: Optional[str] = None) -> CloneResult:
        """
        저장소 복제

        요청한 브랜치를 먼저 시도하고, 원격에 없으면 기본 브랜치로 복제한 뒤 경고를
        남깁니다. 그 밖의 실패 시 부분적으로 생성된 디렉토리를 삭제합니다.

        Args:
            url: 저장소 URL
            dest: 복제할 경로 (존재하지 않아야 함)
            branch: 요청 브랜치 (None이면 설정의 기본 브랜치)

        Returns:
            CloneResult: 복제 결과

        Raises:
            ConflictException: 대상 경로가 이미 존재할 때
            GitOperationException: 복제 실패 시
        """
        dest = Path(dest)
        requested = branch or self.settings.default_branch
        if dest.exists():
            raise ConflictException(str(dest), "대상 경로가 이미 존재합니다")
        dest.parent.mkdir(parents=True, exist_ok=True)

        def clear_partial() -> None:
            if dest.exists():
                remove_tree(dest)

        warning = None
        actual = requested
        self.logger.info(f"저장소 복제 중: {url} (브랜치: {requested})")
        try:
            try:
                self._run(
                    ["clone", "--branch", requested, "--single-branch", url, str(dest)],
                    cwd=dest.parent,
                    network=True,
                    operation="clone",
                    target=url,
                    prepare=clear_partial
                )
            except GitOperationException as e:
                if not self._is_branch_missing(e):
                    raise
                warning = f"브랜치 '{requested}'를 찾을 수 없어 기본 브랜치를 사용합니다"
                self.logger.warning(f"{warning}: {url}")
                self._run(
                    ["clone", url, str(dest)],
                    cwd=dest.parent,
                    network=True,
                    operation="clone",
                    target=url,
                    prepare=clear_partial
                )
                actual = self.current_branch(dest)
        except GitOperationException:
            clear_partial()
            raise

        self._exclude_metadata(dest)
        self.logger.info(f"저장소 복제 완료: {dest} (브랜치: {actual})")
        return CloneResult(path=str(dest), branch=actual, requested_branch=requested, warning=warning)

    @staticmethod
    def _is_branch_missing(error: GitOperationException) -> bool:
        stderr = error.stderr.lower()
        return any(marker in stderr for marker in BRANCH_MISSING_MARKERS)

    def _exclude_metadata(self, dest: Path) -> None:
        """메타데이터 파일을 git 상태에서 제외 (.git/info/exclude)"""
        git_dir = dest / ".git"
        if not git_dir.is_dir():
            return
        exclude_path = git_dir / "info" / "exclude"
        try:
            exclude_path.parent.mkdir(parents=True, exist_ok=True)
            existing = exclude_path.read_text(encoding="utf-8") if exclude_path.exists() else ""
            if METADATA_EXCLUDE_PATTERN in existing.splitlines():
                return
            with open(exclude_path, "a", encoding="utf-8") as f:
                if existing and not existing.endswith("\n"):
                    f.write("\n")
                f.write(f"{METADATA_EXCLUDE_PATTERN}\n")
        except OSError as e:
            self.logger.warning(f"메타데이터 제외 설정 실패: {exclude_path} - {e}")

    def sync(self, dest: PathLike, force: bool = False) -> SyncResult:
        """
        작업 사본 동기화 (fetch 후 fast-forward pull)

        추적 중인 파일에 로컬 변경이 있고 force가 아니면 아무것도 바꾸지 않고
        ConflictException을 발생시킵니다. force면 변경을 stash 한 뒤 진행합니다.

        Args:
            dest: 작업 사본 경로
            force: 로컬 변경 stash 여부

        Returns:
            SyncResult: 동기화 결과

        Raises:
            NotFoundException: 작업 사본이 아닐 때
            ConflictException: 로컬 변경이 있고 force가 아닐 때
            GitOperationException: git 실행 실패 또는 브랜치가 갈라졌을 때
        """
        dest = Path(dest)
        if not self.is_working_copy(dest):
            raise NotFoundException("저장소 작업 사본", str(dest))

        branch = self.current_branch(dest)
        if branch in ("HEAD", "unknown"):
            raise GitOperationException(
                "pull", str(dest), "분리된 HEAD 상태에서는 동기화할 수 없습니다", retryable=False
            )

        modified = self.modified_paths(dest)
        stashed = False
        if modified:
            if not force:
                raise ConflictException(dest.name, "커밋되지 않은 로컬 변경 사항이 있습니다", modified)
            message = f"{STASH_MESSAGE_PREFIX} {now_iso()}"
            self._run(["stash", "push", "-m", message], cwd=dest, operation="stash")
            stashed = True
            self.logger.warning(f"로컬 변경 사항을 stash 했습니다: {dest.name} ({len(modified)}개 파일)")

        before = self.head_commit(dest)
        self._fetch(dest)

        upstream = self._upstream_ref(dest)
        ahead, behind = self._ahead_behind(dest, upstream) if upstream else (0, 0)
        if ahead and behind:
            raise GitOperationException(
                "pull",
                str(dest),
                f"로컬 브랜치와 {upstream}가 갈라졌습니다 (앞섬 {ahead}, 뒤처짐 {behind})",
                retryable=False
            )

        if upstream and behind == 0:
            self.logger.info(f"이미 최신 상태입니다: {dest.name}")
            return SyncResult(
                already_current=True,
                stashed=stashed,
                branch=branch,
                before_commit=before,
                after_commit=before,
                modified_paths=modified,
            )

        self._run(["pull", "--ff-only", "origin", branch], cwd=dest, network=True, operation="pull")
        after = self.head_commit(dest)

        delta = 0
        if before and after and before != after:
            count = self._run(["rev-list", "--count", f"{before}..{after}"], cwd=dest, operation="rev-list")
            delta = int(count.strip() or 0)

        updated = before != after
        if updated:
            self.logger.info(f"저장소 업데이트 완료: {dest.name} ({delta}개 커밋)")
        else:
            self.logger.info(f"이미 최신 상태입니다: {dest.name}")

        return SyncResult(
            updated=updated,
            already_current=not updated,
            commit_delta=delta,
            stashed=stashed,
            branch=branch,
            before_commit=before,
            after_commit=after,
            modified_paths=modified,
        )
