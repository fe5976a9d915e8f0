"""Reference store interface for territoire lookups.

The reference data (regions, departements, communes, groupements and
aliases) is owned by an external store. Matching only ever reads it,
through the async interface defined here.
"""

from abc import ABC, abstractmethod

from .normalize import normalize_nom
from .types import AliasRecord, TerritoireCategory, TerritoireRecord


class ReferenceStore(ABC):
    """Abstract read-only access to reference territoires and aliases."""

    @abstractmethod
    async def get_by_code(
        self, category: TerritoireCategory, code: str
    ) -> TerritoireRecord | None:
        """Look up an entity by its official code within one category."""
        ...

    @abstractmethod
    async def find_by_name(
        self, category: TerritoireCategory, name: str
    ) -> TerritoireRecord | None:
        """Find the first entity whose name equals ``name`` (case-insensitive)."""
        ...

    @abstractmethod
    async def search_by_name(
        self,
        category: TerritoireCategory,
        query: str,
        departement: str | None = None,
        region: str | None = None,
        limit: int = 5,
    ) -> list[TerritoireRecord]:
        """Find entities whose name contains ``query`` (case-insensitive).

        Args:
            category: Category to search
            query: Substring to look for
            departement: Restrict to this departement code
            region: Restrict to this region code
            limit: Maximum records to return

        Returns:
            Matching records, at most ``limit``
        """
        ...

    @abstractmethod
    async def find_alias(self, alias: str) -> AliasRecord | None:
        """Find an alias by exact text."""
        ...

    @abstractmethod
    async def find_alias_normalized(self, alias_norm: str) -> AliasRecord | None:
        """Find an alias by its normalized text."""
        ...


class InMemoryReferenceStore(ReferenceStore):
    """Dictionary-backed reference store for development and testing.

    Records keep insertion order, which stands in for database order.
    """

    def __init__(self):
        self._records: dict[TerritoireCategory, dict[str, TerritoireRecord]] = {
            category: {} for category in TerritoireCategory
        }
        self._aliases: list[AliasRecord] = []

    # =========================
    # Seeding
    # =========================

    def add_region(self, code: str, nom: str) -> TerritoireRecord:
        return self._add(
            TerritoireRecord(
                category=TerritoireCategory.REGION, code=code, nom=nom, type="region"
            )
        )

    def add_departement(self, code: str, nom: str, region: str | None = None) -> TerritoireRecord:
        return self._add(
            TerritoireRecord(
                category=TerritoireCategory.DEPARTEMENT,
                code=code,
                nom=nom,
                type="departement",
                region=region,
            )
        )

    def add_commune(
        self,
        code: str,
        nom: str,
        departement: str | None = None,
        region: str | None = None,
    ) -> TerritoireRecord:
        return self._add(
            TerritoireRecord(
                category=TerritoireCategory.COMMUNE,
                code=code,
                nom=nom,
                type="commune",
                departement=departement,
                region=region,
            )
        )

    def add_groupement(
        self,
        siren: str,
        nom: str,
        type: str,
        region: str | None = None,
    ) -> TerritoireRecord:
        return self._add(
            TerritoireRecord(
                category=TerritoireCategory.GROUPEMENT,
                code=siren,
                nom=nom,
                type=type,
                region=region,
            )
        )

    def add_alias(
        self,
        alias: str,
        code_officiel: str,
        type: str | None = None,
        source: str = "manual",
    ) -> AliasRecord:
        record = AliasRecord(
            alias=alias,
            alias_norm=normalize_nom(alias),
            code_officiel=code_officiel,
            type=type,
            source=source,
        )
        self._aliases.append(record)
        return record

    def _add(self, record: TerritoireRecord) -> TerritoireRecord:
        self._records[record.category][record.code] = record
        return record

    # =========================
    # ReferenceStore
    # =========================

    async def get_by_code(
        self, category: TerritoireCategory, code: str
    ) -> TerritoireRecord | None:
        return self._records[category].get(code)

    async def find_by_name(
        self, category: TerritoireCategory, name: str
    ) -> TerritoireRecord | None:
        target = name.lower()
        for record in self._records[category].values():
            if record.nom.lower() == target:
                return record
        return None

    async def search_by_name(
        self,
        category: TerritoireCategory,
        query: str,
        departement: str | None = None,
        region: str | None = None,
        limit: int = 5,
    ) -> list[TerritoireRecord]:
        needle = query.lower()
        results = []
        for record in self._records[category].values():
            if needle not in record.nom.lower():
                continue
            if departement and record.departement != departement:
                continue
            if region and record.region != region:
                continue
            results.append(record)
            if len(results) >= limit:
                break
        return results

    async def find_alias(self, alias: str) -> AliasRecord | None:
        return next((a for a in self._aliases if a.alias == alias), None)

    async def find_alias_normalized(self, alias_norm: str) -> AliasRecord | None:
        return next((a for a in self._aliases if a.alias_norm == alias_norm), None)
