"""
스크립트 관리 패키지

스크립트 탐색, 이름 충돌 해결, 실행 기능을 포함합니다.
"""

from .executor import ScriptExecutor
from .indexer import ScriptIndexer
from .resolver import ConflictResolver
from .selectors import (
    AutoConfirmer,
    Confirmer,
    FirstMatchSelector,
    InteractiveConfirmer,
    InteractiveSelector,
    ScriptedSelector,
    Selector,
    default_confirmer,
    default_selector,
)

__all__ = [
    "ScriptExecutor",
    "ScriptIndexer",
    "ConflictResolver",
    "Selector",
    "InteractiveSelector",
    "FirstMatchSelector",
    "ScriptedSelector",
    "default_selector",
    "Confirmer",
    "InteractiveConfirmer",
    "AutoConfirmer",
    "default_confirmer",
]
