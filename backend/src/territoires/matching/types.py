"""Data models for territoire matching.

Match outcomes are a tagged union discriminated on ``status``:
``matched`` | ``suggestions`` | ``failed``. Exactly one variant is
produced per resolution.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TerritoireCategory(str, Enum):
    """Reference categories held by the reference store."""

    REGION = "region"
    DEPARTEMENT = "departement"
    COMMUNE = "commune"
    GROUPEMENT = "groupement"


# Enumeration order used for probing and for tie-breaking between categories
CATEGORY_ORDER: tuple[TerritoireCategory, ...] = (
    TerritoireCategory.REGION,
    TerritoireCategory.DEPARTEMENT,
    TerritoireCategory.COMMUNE,
    TerritoireCategory.GROUPEMENT,
)


class MatchSource(str, Enum):
    """Which resolution tier produced a match."""

    DIRECT = "direct"
    ALIAS = "alias"
    DATABASE = "database"


class MatchHints(CamelModel):
    """Caller-supplied context narrowing the fuzzy search scope."""

    departement: str | None = None
    region: str | None = None
    type: str | None = None

    def cleaned(self) -> "MatchHints | None":
        """Trimmed copy with blank fields dropped, or None if nothing is left."""
        values = {}
        for name in ("departement", "region", "type"):
            value = (getattr(self, name) or "").strip()
            if value:
                values[name] = value
        return MatchHints(**values) if values else None


class MatchRequest(CamelModel):
    """A single resolution request."""

    query: str
    hints: MatchHints | None = None


class TerritoireRecord(BaseModel):
    """A reference entity as returned by the reference store.

    ``type`` is the category name for regions, departements and communes,
    and the groupement nature (``EPCI_CC``, ``SYNDICAT`` ...) for groupements.
    """

    category: TerritoireCategory
    code: str
    nom: str
    type: str
    departement: str | None = None
    region: str | None = None

    @property
    def display_type(self) -> str:
        """Type as exposed to API callers (always lowercase)."""
        return self.type.lower()


class AliasRecord(BaseModel):
    """A curated non-canonical name pointing at one official code."""

    alias: str
    alias_norm: str
    code_officiel: str
    source: str | None = None
    type: str | None = None


class AliasMatch(BaseModel):
    """Successful alias lookup. Only the target code is authoritative."""

    code: str
    confidence: float = Field(ge=0.0, le=1.0)
    match_type: Literal["exact", "normalized"]
    source: str | None = None
    type: str | None = None


class MatchAlternative(CamelModel):
    """A fuzzy search candidate with its confidence."""

    code: str
    nom: str
    confidence: float = Field(ge=0.0, le=1.0)
    type: str
    departement: str | None = None
    region: str | None = None


class MatchSuccess(CamelModel):
    """Query resolved to a single official code."""

    status: Literal["matched"] = "matched"
    code: str
    nom: str
    type: str
    confidence: float = Field(ge=0.0, le=1.0)
    match_source: MatchSource
    departement: str | None = None
    region: str | None = None


class MatchSuggestions(CamelModel):
    """Query is ambiguous; ranked candidates are returned instead."""

    status: Literal["suggestions"] = "suggestions"
    alternatives: list[MatchAlternative]


class MatchFailed(CamelModel):
    """Query could not be resolved."""

    status: Literal["failed"] = "failed"
    message: str


MatchResult = Annotated[
    Union[MatchSuccess, MatchSuggestions, MatchFailed],
    Field(discriminator="status"),
]
