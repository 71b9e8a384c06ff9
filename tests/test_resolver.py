"""
충돌 해결 및 선택기 테스트 모듈

같은 이름의 스크립트 후보 선택, 입력 검증, 취소 처리를 테스트합니다.
"""

import io
from unittest.mock import Mock

import pytest

from qicache.exceptions import CancelledException, ValidationException
from qicache.models.base import ScriptEntry
from qicache.scripts.resolver import ConflictResolver
from qicache.scripts.selectors import (
    AutoConfirmer,
    FirstMatchSelector,
    InteractiveConfirmer,
    InteractiveSelector,
    ScriptedSelector,
    default_confirmer,
)


def entry(repository: str, path: str = "deploy.bash", name: str = "deploy") -> ScriptEntry:
    return ScriptEntry(script_name=name, relative_path=path, repository_name=repository)


@pytest.fixture
def candidates():
    # 입력 순서와 무관하게 저장소 이름순으로 번호가 매겨져야 함
    return [entry("beta", "qi/deploy.bash"), entry("alpha")]


class TestParseChoice:
    """선택 응답 해석 테스트"""

    @pytest.mark.parametrize("response,expected", [
        ("1", 1),
        ("2", 2),
        (" 2 ", 2),
        ("0", None),
        ("3", None),
        ("-1", None),
        ("abc", None),
        ("1.5", None),
        ("", None),
        (None, None),
        ("２", None),
    ])
    def test_parse_choice(self, response, expected):
        assert ConflictResolver.parse_choice(response, 2) == expected


class TestConflictResolver:
    """충돌 해결기 테스트"""

    def test_후보_하나는_선택기를_호출하지_않음(self):
        selector = Mock()

        selected = ConflictResolver(selector).resolve([entry("alpha")])

        assert selected.repository_name == "alpha"
        selector.choose.assert_not_called()

    def test_번호로_선택(self, candidates):
        selector = ScriptedSelector(["2"])

        selected = ConflictResolver(selector).resolve(candidates)

        assert selected.repository_name == "beta"
        assert selector.prompts == ["deploy"]

    def test_잘못된_입력은_다시_묻기(self, candidates):
        """범위를 벗어나거나 숫자가 아닌 응답은 보정 없이 다시 요청"""
        selector = ScriptedSelector(["3", "abc", "0", "1"])

        selected = ConflictResolver(selector).resolve(candidates)

        assert selected.repository_name == "alpha"
        assert selector.rejected == ["3", "abc", "0"]
        assert len(selector.prompts) == 4

    def test_None_응답은_취소(self, candidates):
        with pytest.raises(CancelledException) as exc_info:
            ConflictResolver(ScriptedSelector([None])).resolve(candidates)

        assert exc_info.value.exit_code == 130

    def test_키보드_인터럽트는_취소(self, candidates):
        selector = Mock()
        selector.choose.side_effect = KeyboardInterrupt

        with pytest.raises(CancelledException):
            ConflictResolver(selector).resolve(candidates)

    def test_입력_종료는_취소(self, candidates):
        selector = Mock()
        selector.choose.side_effect = EOFError

        with pytest.raises(CancelledException):
            ConflictResolver(selector).resolve(candidates)

    def test_허용_횟수_초과(self, candidates):
        selector = ScriptedSelector(["9", "9", "1"])

        with pytest.raises(ValidationException):
            ConflictResolver(selector, max_attempts=2).resolve(candidates)

        assert selector.rejected == ["9", "9"]

    def test_빈_후보(self):
        with pytest.raises(ValueError):
            ConflictResolver(ScriptedSelector([])).resolve([])

    def test_호출별_선택기_우선(self, candidates):
        default = ScriptedSelector(["1"])
        override = ScriptedSelector(["2"])

        selected = ConflictResolver(default).resolve(candidates, selector=override)

        assert selected.repository_name == "beta"
        assert default.prompts == []

    def test_첫_번째_후보_선택기(self, candidates):
        selected = ConflictResolver(FirstMatchSelector()).resolve(candidates)

        assert selected.repository_name == "alpha"


class TestInteractiveSelector:
    """대화형 선택기 테스트"""

    def test_메뉴_출력과_재요청(self, candidates):
        answers = iter(["5", "2"])
        prompts = []

        def fake_input(prompt):
            prompts.append(prompt)
            return next(answers)

        output = io.StringIO()
        selector = InteractiveSelector(input_func=fake_input, output=output)

        selected = ConflictResolver(selector).resolve(candidates)

        assert selected.repository_name == "beta"
        menu = output.getvalue()
        assert "  1. alpha (deploy.bash)" in menu
        assert "  2. beta (qi/deploy.bash)" in menu
        assert "1에서 2 사이의 번호를 입력하세요" in menu
        assert prompts == ["저장소 선택 [1-2]: "] * 2


class TestConfirmers:
    """확인기 테스트"""

    @pytest.mark.parametrize("answer,expected", [
        ("y", True),
        ("YES", True),
        ("예", True),
        ("n", False),
        ("아니오", False),
    ])
    def test_응답_해석(self, answer, expected):
        assert InteractiveConfirmer(lambda prompt: answer).confirm("삭제할까요?") is expected

    def test_빈_응답은_기본값(self):
        assert InteractiveConfirmer(lambda prompt: "").confirm("삭제할까요?", default=True) is True
        assert InteractiveConfirmer(lambda prompt: "").confirm("삭제할까요?") is False

    def test_알_수_없는_응답은_다시_묻기(self):
        answers = iter(["maybe", "y"])

        assert InteractiveConfirmer(lambda prompt: next(answers)).confirm("삭제할까요?") is True

    def test_인터럽트는_취소(self):
        def interrupted(prompt):
            raise KeyboardInterrupt

        with pytest.raises(CancelledException):
            InteractiveConfirmer(interrupted).confirm("삭제할까요?")

    def test_자동_확인(self):
        assert AutoConfirmer().confirm("x") is True
        assert AutoConfirmer(False).confirm("x") is False

    def test_기본_확인기(self):
        assert isinstance(default_confirmer(assume_yes=True), AutoConfirmer)
