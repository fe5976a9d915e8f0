"""Official code validation.

Classifies a token by length and checks whether it exists in the
reference store:

- 2 characters: region (INSEE), then departement
- 3 characters or fewer: departement (INSEE, e.g. "2A", "974")
- 5 characters: commune (INSEE)
- 9 characters: groupement (SIREN)
"""

from ..logging import get_context_logger
from .store import ReferenceStore
from .types import TerritoireCategory, TerritoireRecord

logger = get_context_logger(__name__)


def candidate_categories(code: str) -> list[TerritoireCategory]:
    """Categories whose code format fits ``code``, in probing order."""
    length = len(code)
    categories = []

    if length == 2:
        categories.append(TerritoireCategory.REGION)
    if length <= 3:
        categories.append(TerritoireCategory.DEPARTEMENT)
    if length == 5:
        categories.append(TerritoireCategory.COMMUNE)
    if length == 9:
        categories.append(TerritoireCategory.GROUPEMENT)

    return categories


class CodeValidator:
    """Resolves official codes (INSEE or SIREN) to reference entities."""

    def __init__(self, store: ReferenceStore):
        self.store = store

    async def find_by_code(self, code: str) -> TerritoireRecord | None:
        """Find a territoire by official code.

        Returns the first hit in category priority order, or None when
        the code does not exist or the store cannot be read.
        """
        if not code or not code.strip():
            return None

        code = code.strip()

        for category in candidate_categories(code):
            try:
                record = await self.store.get_by_code(category, code)
            except Exception as e:
                logger.warning(f"Code lookup failed for {category.value} {code}: {e}")
                return None
            if record:
                return record

        return None

    async def code_exists(self, code: str) -> bool:
        """Check whether a code exists in any category."""
        return await self.find_by_code(code) is not None
