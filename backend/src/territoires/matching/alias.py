"""Alias resolution for non-standard territoire names.

Search order, first hit wins:
1. Exact match on alias text -> confidence 1.0
2. Match on normalized alias text -> confidence 0.95
3. Case-insensitive name equality on region, departement, commune,
   groupement (in that order) -> confidence 1.0

Aliases only carry the target code; callers re-resolve it through the
CodeValidator to get the authoritative name and type.
"""

from ..logging import get_context_logger
from .normalize import normalize_nom
from .store import ReferenceStore
from .types import CATEGORY_ORDER, AliasMatch

logger = get_context_logger(__name__)

EXACT_ALIAS_CONFIDENCE = 1.0
NORMALIZED_ALIAS_CONFIDENCE = 0.95
DIRECT_NAME_CONFIDENCE = 1.0


class AliasResolver:
    """Looks up free text against the curated alias table."""

    def __init__(self, store: ReferenceStore):
        self.store = store

    async def resolve(self, nom: str) -> AliasMatch | None:
        """Find a territoire code by alias or exact name.

        Args:
            nom: The name to search for

        Returns:
            AliasMatch, or None if nothing matched or the store failed
        """
        if not nom or not nom.strip():
            return None

        try:
            return await self._resolve(nom)
        except Exception as e:
            logger.warning(f"Alias lookup failed for {nom!r}: {e}")
            return None

    async def _resolve(self, nom: str) -> AliasMatch | None:
        exact = await self.store.find_alias(nom)
        if exact:
            return AliasMatch(
                code=exact.code_officiel,
                confidence=EXACT_ALIAS_CONFIDENCE,
                match_type="exact",
                source=exact.source,
                type=exact.type,
            )

        normalized = await self.store.find_alias_normalized(normalize_nom(nom))
        if normalized:
            return AliasMatch(
                code=normalized.code_officiel,
                confidence=NORMALIZED_ALIAS_CONFIDENCE,
                match_type="normalized",
                source=normalized.source,
                type=normalized.type,
            )

        for category in CATEGORY_ORDER:
            record = await self.store.find_by_name(category, nom)
            if record:
                return AliasMatch(
                    code=record.code,
                    confidence=DIRECT_NAME_CONFIDENCE,
                    match_type="exact",
                    type=record.display_type,
                )

        return None
