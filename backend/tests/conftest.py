"""Shared pytest fixtures for API Territoires tests."""

from datetime import datetime, timedelta, timezone

import pytest

from territoires.matching import InMemoryReferenceStore, TerritoireMatcher


class FakeClock:
    """Controllable replacement for ``datetime.now(timezone.utc)``."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reference_store() -> InMemoryReferenceStore:
    """A small slice of the French reference data."""
    store = InMemoryReferenceStore()

    store.add_region("84", "Auvergne-Rhône-Alpes")
    store.add_region("53", "Bretagne")
    store.add_region("11", "Île-de-France")
    store.add_region("75", "Nouvelle-Aquitaine")

    store.add_departement("69", "Rhône", region="84")
    store.add_departement("22", "Côtes-d'Armor", region="53")
    store.add_departement("75", "Paris", region="11")
    store.add_departement("79", "Deux-Sèvres", region="75")
    store.add_departement("2A", "Corse-du-Sud", region="94")

    store.add_commune("69123", "Lyon", departement="69", region="84")
    store.add_commune("75056", "Paris", departement="75", region="11")
    store.add_commune("79202", "Parthenay", departement="79", region="75")
    store.add_commune("22278", "Saint-Brieuc", departement="22", region="53")

    store.add_groupement("200046977", "Métropole de Lyon", "EPCI_METROPOLE", region="84")
    store.add_groupement("200040715", "CC du Pays de Gex", "EPCI_CC", region="84")
    store.add_groupement("252200539", "Syndicat Départemental d'Énergie 22", "SYNDICAT_MIXTE", region="53")

    store.add_alias("Grand Lyon", "200046977", type="epci_metropole")
    store.add_alias("ARA", "84", type="region", source="insee")

    return store


@pytest.fixture
def matcher(reference_store) -> TerritoireMatcher:
    return TerritoireMatcher(reference_store)
