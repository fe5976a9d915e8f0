"""Territoire matching module.

Resolves free-text names to official INSEE/SIREN codes through code
validation, alias lookup and fuzzy name search.
"""

from .alias import AliasResolver
from .codes import CodeValidator, candidate_categories
from .matcher import TerritoireMatcher
from .normalize import normalize_nom
from .search import FuzzySearch, calculate_confidence, categories_for_type
from .sql_store import SqlReferenceStore
from .store import InMemoryReferenceStore, ReferenceStore
from .types import (
    AliasMatch,
    AliasRecord,
    CATEGORY_ORDER,
    MatchAlternative,
    MatchFailed,
    MatchHints,
    MatchRequest,
    MatchResult,
    MatchSource,
    MatchSuccess,
    MatchSuggestions,
    TerritoireCategory,
    TerritoireRecord,
)

__all__ = [
    "AliasMatch",
    "AliasRecord",
    "AliasResolver",
    "CATEGORY_ORDER",
    "CodeValidator",
    "FuzzySearch",
    "InMemoryReferenceStore",
    "MatchAlternative",
    "MatchFailed",
    "MatchHints",
    "MatchRequest",
    "MatchResult",
    "MatchSource",
    "MatchSuccess",
    "MatchSuggestions",
    "ReferenceStore",
    "SqlReferenceStore",
    "TerritoireCategory",
    "TerritoireMatcher",
    "TerritoireRecord",
    "calculate_confidence",
    "candidate_categories",
    "categories_for_type",
    "normalize_nom",
]
