"""Territoire matching orchestrator.

Resolves a free-text query to an official code by trying, in order:
1. Direct code lookup -> matched, confidence 1.0, source "direct"
2. Alias table -> matched with the alias confidence, source "alias"
3. Fuzzy name search -> matched (single hit or top hit >= 0.9),
   suggestions (several weaker hits) or failed (no hit)

Certain sources are always tried before the probabilistic scan, so an
exact code or alias outranks any fuzzy hit.
"""

from ..logging import get_context_logger, log_match_result
from .alias import AliasResolver
from .codes import CodeValidator
from .search import DEFAULT_LIMIT, FuzzySearch
from .store import ReferenceStore
from .types import (
    MatchFailed,
    MatchHints,
    MatchRequest,
    MatchResult,
    MatchSource,
    MatchSuccess,
    MatchSuggestions,
)

logger = get_context_logger(__name__)

QUERY_REQUIRED_MESSAGE = "Query is required"
SEARCH_UNAVAILABLE_MESSAGE = "Search service temporarily unavailable"
HIGH_CONFIDENCE_THRESHOLD = 0.9


class TerritoireMatcher:
    """One-shot resolution of a query into a single match outcome.

    Never raises: store failures during the fuzzy search become a
    ``failed`` result.
    """

    def __init__(
        self,
        store: ReferenceStore,
        search_limit: int = DEFAULT_LIMIT,
        high_confidence: float = HIGH_CONFIDENCE_THRESHOLD,
    ):
        self.codes = CodeValidator(store)
        self.aliases = AliasResolver(store)
        self.search = FuzzySearch(store)
        self.search_limit = search_limit
        self.high_confidence = high_confidence

    async def match(self, request: MatchRequest) -> MatchResult:
        """Match a territoire query to its official code."""
        result = await self._match(request.query, request.hints)

        if isinstance(result, MatchSuccess):
            log_match_result(
                request.query, result.status, result.code, result.confidence, result.match_source.value
            )
        else:
            log_match_result(request.query, result.status)

        return result

    async def match_query(self, query: str, hints: MatchHints | None = None) -> MatchResult:
        """Convenience wrapper around :meth:`match`."""
        return await self.match(MatchRequest(query=query, hints=hints))

    async def _match(self, query: str, hints: MatchHints | None) -> MatchResult:
        if not query or not query.strip():
            return MatchFailed(message=QUERY_REQUIRED_MESSAGE)

        query = query.strip()

        direct = await self.codes.find_by_code(query)
        if direct:
            return MatchSuccess(
                code=direct.code,
                nom=direct.nom,
                type=direct.display_type,
                confidence=1.0,
                match_source=MatchSource.DIRECT,
            )

        alias = await self.aliases.resolve(query)
        if alias:
            territoire = await self.codes.find_by_code(alias.code)
            if territoire:
                return MatchSuccess(
                    code=territoire.code,
                    nom=territoire.nom,
                    type=territoire.display_type,
                    confidence=alias.confidence,
                    match_source=MatchSource.ALIAS,
                )
            # Stale alias: target code no longer exists, fall through to search
            logger.debug(f"Alias for {query!r} points at missing code {alias.code}")

        try:
            results = await self.search.search(query, hints, self.search_limit)
        except Exception as e:
            logger.error(f"Match search error for {query!r}: {e}")
            return MatchFailed(message=SEARCH_UNAVAILABLE_MESSAGE)

        if not results:
            return MatchFailed(message=f'No territoire found matching "{query}"')

        top_hit = results[0]
        if len(results) == 1 or top_hit.confidence >= self.high_confidence:
            return MatchSuccess(
                code=top_hit.code,
                nom=top_hit.nom,
                type=top_hit.type,
                confidence=top_hit.confidence,
                match_source=MatchSource.DATABASE,
                departement=top_hit.departement,
                region=top_hit.region,
            )

        return MatchSuggestions(alternatives=results)
