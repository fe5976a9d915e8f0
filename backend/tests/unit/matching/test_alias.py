"""Unit tests for alias resolution."""

import pytest
from unittest.mock import AsyncMock

from territoires.matching import AliasRecord, AliasResolver, InMemoryReferenceStore


class TestAliasResolver:
    """Tests for AliasResolver.resolve."""

    @pytest.mark.asyncio
    async def test_exact_alias(self, reference_store):
        match = await AliasResolver(reference_store).resolve("Grand Lyon")

        assert match.code == "200046977"
        assert match.confidence == 1.0
        assert match.match_type == "exact"
        assert match.source == "manual"

    @pytest.mark.asyncio
    async def test_normalized_alias(self, reference_store):
        match = await AliasResolver(reference_store).resolve("grand-lyon")

        assert match.code == "200046977"
        assert match.confidence == 0.95
        assert match.match_type == "normalized"

    @pytest.mark.asyncio
    async def test_exact_alias_outranks_normalized(self):
        store = InMemoryReferenceStore()
        # Same normalized text, different targets
        store.add_alias("st brieuc", "11111")
        store.add_alias("St-Brieuc", "22278")

        match = await AliasResolver(store).resolve("St-Brieuc")

        assert match.code == "22278"
        assert match.confidence == 1.0

    @pytest.mark.asyncio
    async def test_exact_name_in_reference_tables(self, reference_store):
        match = await AliasResolver(reference_store).resolve("côtes-d'armor")

        assert match.code == "22"
        assert match.confidence == 1.0
        assert match.type == "departement"

    @pytest.mark.asyncio
    async def test_groupement_name_type_is_lowercased(self, reference_store):
        match = await AliasResolver(reference_store).resolve("CC du Pays de Gex")

        assert match.code == "200040715"
        assert match.type == "epci_cc"

    @pytest.mark.asyncio
    async def test_no_match(self, reference_store):
        assert await AliasResolver(reference_store).resolve("Atlantide") is None

    @pytest.mark.asyncio
    async def test_blank_input(self, reference_store):
        assert await AliasResolver(reference_store).resolve("  ") is None

    @pytest.mark.asyncio
    async def test_store_error_returns_none(self):
        store = AsyncMock()
        store.find_alias.side_effect = ConnectionError("database unreachable")

        assert await AliasResolver(store).resolve("Grand Lyon") is None

    @pytest.mark.asyncio
    async def test_uses_alias_source_and_type(self):
        store = AsyncMock()
        store.find_alias.return_value = AliasRecord(
            alias="ARA", alias_norm="ara", code_officiel="84", source="insee", type="region"
        )

        match = await AliasResolver(store).resolve("ARA")

        assert match.source == "insee"
        assert match.type == "region"
        store.find_alias_normalized.assert_not_called()
