"""Unit tests for the match orchestrator.

Run with: pytest tests/unit/matching/test_matcher.py -v
"""

import pytest
from unittest.mock import AsyncMock

from territoires.matching import (
    MatchFailed,
    MatchHints,
    MatchRequest,
    MatchSource,
    MatchSuccess,
    MatchSuggestions,
    TerritoireMatcher,
)
from territoires.matching.matcher import QUERY_REQUIRED_MESSAGE, SEARCH_UNAVAILABLE_MESSAGE


def _failing_search_store() -> AsyncMock:
    """Store whose exact lookups miss and whose name search is down."""
    store = AsyncMock()
    store.get_by_code.return_value = None
    store.find_alias.return_value = None
    store.find_alias_normalized.return_value = None
    store.find_by_name.return_value = None
    store.search_by_name.side_effect = ConnectionError("database unreachable")
    return store


class TestDirectCodes:
    """Tests for the code tier."""

    @pytest.mark.asyncio
    async def test_region_code(self, matcher):
        result = await matcher.match_query("84")

        assert isinstance(result, MatchSuccess)
        assert result.nom == "Auvergne-Rhône-Alpes"
        assert result.type == "region"
        assert result.confidence == 1.0
        assert result.match_source == MatchSource.DIRECT

    @pytest.mark.asyncio
    async def test_groupement_type_is_lowercase(self, matcher):
        result = await matcher.match_query("200046977")

        assert result.type == "epci_metropole"

    @pytest.mark.asyncio
    async def test_unknown_siren_continues_to_other_tiers(self, matcher):
        result = await matcher.match_query("999999999")

        assert isinstance(result, MatchFailed)
        assert result.message == 'No territoire found matching "999999999"'


class TestAliases:
    """Tests for the alias tier."""

    @pytest.mark.asyncio
    async def test_exact_alias(self, matcher):
        result = await matcher.match_query("Grand Lyon")

        assert isinstance(result, MatchSuccess)
        assert result.code == "200046977"
        assert result.nom == "Métropole de Lyon"
        assert result.confidence == 1.0
        assert result.match_source == MatchSource.ALIAS

    @pytest.mark.asyncio
    async def test_normalized_alias(self, matcher):
        result = await matcher.match_query("GRAND-LYON")

        assert result.match_source == MatchSource.ALIAS
        assert result.confidence == 0.95

    @pytest.mark.asyncio
    async def test_exact_reference_name_resolves_through_alias_tier(self, matcher):
        result = await matcher.match_query("lyon")

        assert result.code == "69123"
        assert result.match_source == MatchSource.ALIAS

    @pytest.mark.asyncio
    async def test_stale_alias_falls_through_to_search(self, reference_store):
        reference_store.add_alias("Ancienne CC du Gexois", "999999999")

        result = await TerritoireMatcher(reference_store).match_query("Ancienne CC du Gexois")

        assert isinstance(result, MatchFailed)
        assert result.message == 'No territoire found matching "Ancienne CC du Gexois"'


class TestFuzzyTier:
    """Tests for the search tier."""

    @pytest.mark.asyncio
    async def test_single_commune_matches_from_database(self, matcher):
        matcher.aliases.resolve = AsyncMock(return_value=None)

        result = await matcher.match(MatchRequest(query="Lyon"))

        assert isinstance(result, MatchSuccess)
        assert result.code == "69123"
        assert result.match_source == MatchSource.DATABASE
        assert result.departement == "69"
        assert result.region == "84"

    @pytest.mark.asyncio
    async def test_single_weak_hit_still_matches(self, matcher):
        result = await matcher.match_query("Brieuc")

        assert isinstance(result, MatchSuccess)
        assert result.code == "22278"
        assert result.confidence == 0.85
        assert result.match_source == MatchSource.DATABASE

    @pytest.mark.asyncio
    async def test_ambiguous_query_returns_suggestions(self, matcher):
        result = await matcher.match_query("Par")

        assert isinstance(result, MatchSuggestions)
        assert len(result.alternatives) >= 2
        assert all(alt.confidence < 0.9 for alt in result.alternatives)

    @pytest.mark.asyncio
    async def test_type_hint(self, matcher):
        result = await matcher.match_query("Métropole", MatchHints(type="epci_metropole"))

        assert isinstance(result, MatchSuccess)
        assert result.code == "200046977"

    @pytest.mark.asyncio
    async def test_no_result(self, matcher):
        result = await matcher.match_query("Atlantide")

        assert isinstance(result, MatchFailed)
        assert result.message == 'No territoire found matching "Atlantide"'


class TestFailures:
    """Tests for invalid input and store failures."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_empty_query(self, matcher, query):
        result = await matcher.match_query(query)

        assert isinstance(result, MatchFailed)
        assert result.message == QUERY_REQUIRED_MESSAGE

    @pytest.mark.asyncio
    async def test_search_error_becomes_failed_result(self):
        result = await TerritoireMatcher(_failing_search_store()).match_query("Lyon")

        assert isinstance(result, MatchFailed)
        assert result.message == SEARCH_UNAVAILABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_result_serializes_camel_case(self, matcher):
        result = await matcher.match_query("84")

        payload = result.model_dump(by_alias=True, exclude_none=True)
        assert payload["status"] == "matched"
        assert payload["matchSource"] == "direct"
