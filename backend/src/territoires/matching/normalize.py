"""Text canonicalization for territoire name comparison."""

import re
import unicodedata

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_nom(nom: str) -> str:
    """Normalize a name for matching.

    Lowercases, strips diacritics and removes every non-alphanumeric
    character, so "Côtes-d'Armor" and "cotes d armor" both become
    "cotesdarmor". Idempotent.
    """
    if not nom:
        return ""

    decomposed = unicodedata.normalize("NFD", nom.lower())
    without_accents = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub("", without_accents).strip()
