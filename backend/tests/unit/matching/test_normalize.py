"""Unit tests for name normalization."""

import pytest

from territoires.matching import normalize_nom


class TestNormalizeNom:
    """Tests for normalize_nom."""

    def test_accents_case_and_punctuation(self):
        assert normalize_nom("Côtes-d'Armor") == "cotesdarmor"
        assert normalize_nom("Côtes-d'Armor") == normalize_nom("cotes d armor")

    def test_idempotent(self):
        for name in ["Île-de-France", "Saint-Étienne", "CC du Pays de Gex", "2A"]:
            once = normalize_nom(name)
            assert normalize_nom(once) == once

    def test_keeps_digits(self):
        assert normalize_nom("Syndicat d'Énergie 22") == "syndicatdenergie22"

    @pytest.mark.parametrize("value", ["", "   ", "-'-"])
    def test_empty_after_normalization(self, value):
        assert normalize_nom(value) == ""
