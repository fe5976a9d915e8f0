"""Fuzzy name search across reference categories.

Performs a case-insensitive substring search in every category allowed
by the ``type`` hint, scores each hit and merges the results.

Confidence per hit:
- 1.0  exact name (case-insensitive)
- 0.95 equal after normalization
- 0.85 one contains the other after normalization
- 0.80 candidate starts with the query
- 0.70 any other substring hit
"""

from .normalize import normalize_nom
from .store import ReferenceStore
from .types import (
    CATEGORY_ORDER,
    MatchAlternative,
    MatchHints,
    TerritoireCategory,
)

DEFAULT_LIMIT = 5


def calculate_confidence(query: str, hit_nom: str) -> float:
    """Score how well a candidate name matches the query."""
    if query.lower() == hit_nom.lower():
        return 1.0

    normalized_query = normalize_nom(query)
    normalized_hit = normalize_nom(hit_nom)

    if normalized_query == normalized_hit:
        return 0.95

    if normalized_query in normalized_hit or normalized_hit in normalized_query:
        return 0.85

    if normalized_hit.startswith(normalized_query):
        return 0.8

    return 0.7


def categories_for_type(type_hint: str | None) -> list[TerritoireCategory]:
    """Categories to search for a ``type`` hint.

    No hint searches everything. ``region``, ``departement`` and
    ``commune`` select their own category; any other type (epci_*,
    syndicat*, petr, pays, pnr ...) is a groupement nature.
    """
    if not type_hint:
        return list(CATEGORY_ORDER)

    normalized = type_hint.strip().lower()
    for category in (
        TerritoireCategory.REGION,
        TerritoireCategory.DEPARTEMENT,
        TerritoireCategory.COMMUNE,
    ):
        if normalized == category.value:
            return [category]

    return [TerritoireCategory.GROUPEMENT]


class FuzzySearch:
    """Substring search with confidence scoring."""

    def __init__(self, store: ReferenceStore):
        self.store = store

    async def search(
        self,
        query: str,
        hints: MatchHints | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[MatchAlternative]:
        """Search territoires by name.

        Store errors propagate to the caller.

        Args:
            query: Name (or fragment) to search for
            hints: Optional departement/region/type restrictions
            limit: Maximum number of results

        Returns:
            Alternatives sorted by non-increasing confidence, at most
            ``limit``. Ties keep category order.
        """
        hints = hints or MatchHints()
        results: list[MatchAlternative] = []

        for category in categories_for_type(hints.type):
            records = await self.store.search_by_name(
                category,
                query,
                departement=hints.departement if category == TerritoireCategory.COMMUNE else None,
                region=hints.region if category != TerritoireCategory.REGION else None,
                limit=limit,
            )
            results.extend(
                MatchAlternative(
                    code=record.code,
                    nom=record.nom,
                    type=record.display_type,
                    departement=record.departement,
                    region=record.region,
                    confidence=calculate_confidence(query, record.nom),
                )
                for record in records
            )

        # sorted() is stable, so equal confidences stay in category order
        return sorted(results, key=lambda r: r.confidence, reverse=True)[:limit]
