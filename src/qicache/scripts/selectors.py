"""
사용자 선택 및 확인 모듈

스크립트 후보 선택과 예/아니오 확인을 주입 가능한 객체로 제공합니다.
대화형 터미널, 자동화용 정책, 테스트용 고정 응답을 같은 인터페이스로 다룹니다.
"""

import sys
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional, Sequence, TextIO

from ..exceptions import CancelledException
from ..models.base import ScriptEntry
from ..utils.logging import get_logger

logger = get_logger(__name__)

YES_ANSWERS = {"y", "yes", "예"}
NO_ANSWERS = {"n", "no", "아니오"}


def stdin_is_interactive() -> bool:
    """표준 입력이 터미널인지 여부"""
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except ValueError:
        # 닫힌 스트림
        return False


class Selector(ABC):
    """후보 선택기 추상 클래스"""

    @abstractmethod
    def choose(self, script_name: str, candidates: Sequence[ScriptEntry]) -> Optional[str]:
        """
        후보 중 하나를 1부터 시작하는 번호 문자열로 선택 (추상 메서드)

        Args:
            script_name: 스크립트 이름
            candidates: 정렬된 후보 목록

        Returns:
            Optional[str]: 선택 응답 (None이면 취소)
        """
        pass

    def reject(self, response: Optional[str], candidate_count: int) -> None:
        """잘못된 응답 알림 (기본 동작은 로그만 남김)"""
        logger.debug(f"잘못된 선택 응답: {response!r} (1-{candidate_count})")


class InteractiveSelector(Selector):
    """터미널 번호 메뉴 선택기"""

    def __init__(self, input_func: Callable[[str], str] = input, output: Optional[TextIO] = None):
        """
        대화형 선택기 초기화

        Args:
            input_func: 입력 함수 (기본값 input)
            output: 메뉴 출력 스트림 (기본값 표준 에러)
        """
        self.input_func = input_func
        self.output = output

    def _write(self, text: str) -> None:
        stream = self.output or sys.stderr
        stream.write(text + "\n")
        stream.flush()

    def choose(self, script_name: str, candidates: Sequence[ScriptEntry]) -> Optional[str]:
        self._write(f"'{script_name}' 이름의 스크립트가 여러 저장소에 있습니다:")
        for number, entry in enumerate(candidates, start=1):
            self._write(f"  {number}. {entry.repository_name} ({entry.relative_path})")
        return self.input_func(f"저장소 선택 [1-{len(candidates)}]: ")

    def reject(self, response: Optional[str], candidate_count: int) -> None:
        self._write(f"1에서 {candidate_count} 사이의 번호를 입력하세요")


class FirstMatchSelector(Selector):
    """항상 첫 번째 후보를 고르는 선택기 (비대화형 자동화용)"""

    def choose(self, script_name: str, candidates: Sequence[ScriptEntry]) -> Optional[str]:
        logger.warning(f"비대화형 모드: '{script_name}'의 첫 번째 후보 사용 ({candidates[0].repository_name})")
        return "1"


class ScriptedSelector(Selector):
    """미리 정한 응답을 차례로 반환하는 선택기"""

    def __init__(self, responses: Iterable[Optional[str]]):
        self.responses = list(responses)
        self.prompts: List[str] = []
        self.rejected: List[Optional[str]] = []

    def choose(self, script_name: str, candidates: Sequence[ScriptEntry]) -> Optional[str]:
        self.prompts.append(script_name)
        if not self.responses:
            raise CancelledException("스크립트 선택")
        return self.responses.pop(0)

    def reject(self, response: Optional[str], candidate_count: int) -> None:
        self.rejected.append(response)


def default_selector() -> Selector:
    """
    환경에 맞는 기본 선택기

    Returns:
        Selector: 터미널이면 대화형 선택기, 아니면 첫 번째 후보 선택기
    """
    if stdin_is_interactive():
        return InteractiveSelector()
    return FirstMatchSelector()


class Confirmer(ABC):
    """예/아니오 확인 추상 클래스"""

    @abstractmethod
    def confirm(self, message: str, default: bool = False) -> bool:
        """
        사용자 확인 (추상 메서드)

        Args:
            message: 확인 메시지
            default: 빈 응답일 때 기본값

        Returns:
            bool: 승인 여부
        """
        pass


class InteractiveConfirmer(Confirmer):
    """터미널 확인기"""

    def __init__(self, input_func: Callable[[str], str] = input):
        self.input_func = input_func

    def confirm(self, message: str, default: bool = False) -> bool:
        hint = "[Y/n]" if default else "[y/N]"
        while True:
            try:
                answer = self.input_func(f"{message} {hint}: ").strip().lower()
            except (KeyboardInterrupt, EOFError) as e:
                raise CancelledException(message) from e
            if not answer:
                return default
            if answer in YES_ANSWERS:
                return True
            if answer in NO_ANSWERS:
                return False


class AutoConfirmer(Confirmer):
    """고정 응답 확인기 (--force 또는 비대화형)"""

    def __init__(self, answer: bool = True):
        self.answer = answer

    def confirm(self, message: str, default: bool = False) -> bool:
        logger.debug(f"자동 확인 ({'예' if self.answer else '아니오'}): {message}")
        return self.answer


def default_confirmer(assume_yes: bool = False) -> Confirmer:
    """
    환경에 맞는 기본 확인기

    Args:
        assume_yes: 묻지 않고 승인할지 여부

    Returns:
        Confirmer: 확인기
    """
    if assume_yes:
        return AutoConfirmer(True)
    if stdin_is_interactive():
        return InteractiveConfirmer()
    return AutoConfirmer(False)
