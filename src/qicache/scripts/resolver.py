"""
스크립트 이름 충돌 해결 모듈
"""

import re
from typing import Optional, Sequence

from ..exceptions import CancelledException, ValidationException
from ..models.base import ScriptEntry
from ..utils.logging import get_logger
from .indexer import sort_entries
from .selectors import Selector, default_selector

logger = get_logger(__name__)

CHOICE_PATTERN = re.compile(r"^\d+$", re.ASCII)


class ConflictResolver:
    """같은 이름의 스크립트 후보 중 하나를 고르는 해결기"""

    def __init__(self, selector: Optional[Selector] = None, max_attempts: Optional[int] = None):
        """
        충돌 해결기 초기화

        Args:
            selector: 기본 선택기 (None이면 환경에 맞게 결정)
            max_attempts: 잘못된 응답 허용 횟수 (None이면 무제한)
        """
        self.selector = selector
        self.max_attempts = max_attempts
        self.logger = logger

    @staticmethod
    def parse_choice(response: Optional[str], candidate_count: int) -> Optional[int]:
        """
        선택 응답 해석

        Args:
            response: 선택 응답
            candidate_count: 후보 수

        Returns:
            Optional[int]: 1부터 시작하는 번호 (범위를 벗어나거나 숫자가 아니면 None)
        """
        if response is None:
            return None
        text = str(response).strip()
        if not CHOICE_PATTERN.match(text):
            return None
        choice = int(text)
        if 1 <= choice <= candidate_count:
            return choice
        return None

    def resolve(self, candidates: Sequence[ScriptEntry], selector: Optional[Selector] = None) -> ScriptEntry:
        """
        후보 중 하나 선택

        후보가 하나면 선택기를 호출하지 않습니다. 잘못된 응답은 보정하지 않고 다시 묻습니다.

        Args:
            candidates: 비어 있지 않은 후보 목록
            selector: 이번 호출에 사용할 선택기

        Returns:
            ScriptEntry: 선택된 항목

        Raises:
            ValueError: 후보가 비어 있을 때
            CancelledException: 사용자가 취소했을 때
            ValidationException: 허용 횟수를 넘도록 잘못 응답했을 때
        """
        if not candidates:
            raise ValueError("후보 목록이 비어 있습니다")

        ordered = sort_entries(candidates)
        if len(ordered) == 1:
            return ordered[0]

        selector = selector or self.selector or default_selector()
        script_name = ordered[0].script_name
        attempts = 0

        while True:
            attempts += 1
            try:
                response = selector.choose(script_name, ordered)
            except (KeyboardInterrupt, EOFError) as e:
                raise CancelledException(f"스크립트 선택: {script_name}") from e

            if response is None:
                raise CancelledException(f"스크립트 선택: {script_name}")

            choice = self.parse_choice(response, len(ordered))
            if choice is not None:
                selected = ordered[choice - 1]
                self.logger.debug(f"선택됨: {selected.repository_name} ({selected.relative_path})")
                return selected

            selector.reject(response, len(ordered))
            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise ValidationException(
                    "선택", str(response), f"1에서 {len(ordered)} 사이의 번호가 아닙니다"
                )
