"""PostgreSQL-backed reference store.

Reads the reference tables created by migration 001_initial using
raw SQL through SQLAlchemy's async session.
"""

from typing import Any, Callable

from sqlalchemy import text

from ..db import get_db_session
from .store import ReferenceStore
from .types import AliasRecord, TerritoireCategory, TerritoireRecord

# Per-category table layout. Column expressions are aliased to the
# TerritoireRecord field names.
_TABLES: dict[TerritoireCategory, dict[str, str]] = {
    TerritoireCategory.REGION: {
        "table": "regions",
        "key": "code",
        "columns": "code, nom, 'region' AS type, NULL AS departement, NULL AS region",
    },
    TerritoireCategory.DEPARTEMENT: {
        "table": "departements",
        "key": "code",
        "columns": "code, nom, 'departement' AS type, NULL AS departement, code_region AS region",
    },
    TerritoireCategory.COMMUNE: {
        "table": "communes",
        "key": "code",
        "columns": (
            "code, nom, 'commune' AS type, code_departement AS departement, "
            "code_region AS region"
        ),
    },
    TerritoireCategory.GROUPEMENT: {
        "table": "groupements",
        "key": "siren",
        "columns": "siren AS code, nom, type, NULL AS departement, code_region AS region",
    },
}

# Filters each category table supports
_FILTER_COLUMNS: dict[TerritoireCategory, dict[str, str]] = {
    TerritoireCategory.REGION: {},
    TerritoireCategory.DEPARTEMENT: {"region": "code_region"},
    TerritoireCategory.COMMUNE: {
        "departement": "code_departement",
        "region": "code_region",
    },
    TerritoireCategory.GROUPEMENT: {"region": "code_region"},
}


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so the query is matched literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlReferenceStore(ReferenceStore):
    """Reference store reading from PostgreSQL."""

    def __init__(self, session_factory: Callable[[], Any] = get_db_session):
        self._session = session_factory

    def _to_record(self, category: TerritoireCategory, row) -> TerritoireRecord:
        return TerritoireRecord(
            category=category,
            code=row.code,
            nom=row.nom,
            type=row.type,
            departement=row.departement,
            region=row.region,
        )

    async def get_by_code(
        self, category: TerritoireCategory, code: str
    ) -> TerritoireRecord | None:
        layout = _TABLES[category]
        query = text(f"""
            SELECT {layout["columns"]}
            FROM {layout["table"]}
            WHERE {layout["key"]} = :code
        """)

        async with self._session() as db:
            result = await db.execute(query, {"code": code})
            row = result.fetchone()

        return self._to_record(category, row) if row else None

    async def find_by_name(
        self, category: TerritoireCategory, name: str
    ) -> TerritoireRecord | None:
        layout = _TABLES[category]
        query = text(f"""
            SELECT {layout["columns"]}
            FROM {layout["table"]}
            WHERE nom ILIKE :name ESCAPE '\\'
            LIMIT 1
        """)

        async with self._session() as db:
            result = await db.execute(query, {"name": _escape_like(name)})
            row = result.fetchone()

        return self._to_record(category, row) if row else None

    async def search_by_name(
        self,
        category: TerritoireCategory,
        query: str,
        departement: str | None = None,
        region: str | None = None,
        limit: int = 5,
    ) -> list[TerritoireRecord]:
        layout = _TABLES[category]
        filter_columns = _FILTER_COLUMNS[category]

        filters = ["nom ILIKE :pattern ESCAPE '\\'"]
        params: dict[str, Any] = {
            "pattern": f"%{_escape_like(query)}%",
            "limit": limit,
        }

        if departement and "departement" in filter_columns:
            filters.append(f"{filter_columns['departement']} = :departement")
            params["departement"] = departement
        if region and "region" in filter_columns:
            filters.append(f"{filter_columns['region']} = :region")
            params["region"] = region

        sql = text(f"""
            SELECT {layout["columns"]}
            FROM {layout["table"]}
            WHERE {" AND ".join(filters)}
            LIMIT :limit
        """)

        async with self._session() as db:
            result = await db.execute(sql, params)
            rows = result.fetchall()

        return [self._to_record(category, row) for row in rows]

    async def find_alias(self, alias: str) -> AliasRecord | None:
        return await self._find_alias_where("alias = :value", alias)

    async def find_alias_normalized(self, alias_norm: str) -> AliasRecord | None:
        return await self._find_alias_where("alias_norm = :value", alias_norm)

    async def _find_alias_where(self, condition: str, value: str) -> AliasRecord | None:
        query = text(f"""
            SELECT alias, alias_norm, code_officiel, source, type
            FROM aliases
            WHERE {condition}
            LIMIT 1
        """)

        async with self._session() as db:
            result = await db.execute(query, {"value": value})
            row = result.fetchone()

        if not row:
            return None

        return AliasRecord(
            alias=row.alias,
            alias_norm=row.alias_norm,
            code_officiel=row.code_officiel,
            source=row.source,
            type=row.type,
        )
