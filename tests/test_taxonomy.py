"""
Tests for category and product-type resolution.
"""

import pytest

from feedsync.catalog import taxonomy
from feedsync.catalog.taxonomy import (
    category_terms,
    derive_product_type,
    match_term,
    resolve_category,
)


class TestCategoryTerms:
    def test_splits_on_separators(self):
        assert category_terms(" Jewelry > Rings / Bands | Men ") == ["jewelry", "rings", "bands", "men"]

    def test_drops_empty_terms(self):
        assert category_terms("Rings >> ") == ["rings"]


class TestMatchTerm:
    def test_exact(self):
        assert match_term("earrings") == taxonomy.EARRINGS

    def test_substring_either_direction(self):
        assert match_term("hoop earrings") == taxonomy.EARRINGS
        assert match_term("pendan") == taxonomy.CHARMS_PENDANTS

    def test_table_order_decides_substring_ties(self):
        # "anklet" comes before "bracelet" in the table
        assert match_term("anklet bracelet") == taxonomy.ANKLETS

    def test_no_match(self):
        assert match_term("xyzzy") is None


class TestResolveCategory:
    """Tests for the full precedence chain."""

    def test_empty_uses_default(self):
        assert resolve_category("") == taxonomy.DEFAULT_CATEGORY
        assert resolve_category(None) == taxonomy.DEFAULT_CATEGORY
        assert resolve_category("   ") == taxonomy.DEFAULT_CATEGORY

    def test_most_specific_term_wins(self):
        assert resolve_category("Jewelry > Rings > Watch Bands") == taxonomy.WATCH_BANDS

    def test_first_matching_segment_wins(self):
        assert resolve_category("Gifts > Misc; Jewelry > Earrings; Jewelry > Rings") == taxonomy.EARRINGS

    def test_cable_chain_maps_to_necklaces(self):
        assert resolve_category("Chains > Cable Chain") == taxonomy.NECKLACES

    def test_unknown_uses_default(self):
        assert resolve_category("Misc > Widgets") == taxonomy.DEFAULT_CATEGORY

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("Jewelry > Earrings > Hoops", taxonomy.EARRINGS),
            ("Watches > Smart Watches", taxonomy.SMART_WATCHES),
            ("Brooches", taxonomy.BROOCHES),
            ("Anklets", taxonomy.ANKLETS),
        ],
    )
    def test_known_paths(self, path, expected):
        assert resolve_category(path) == expected


class TestProductType:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("Jewelry > Chains > Rope Chains", "Necklaces"),
            ("Jewelry > Earrings", "Earrings"),
            ("Pendants & Charms", "Pendants & Charms"),
            ("Watches", "Watches"),
            ("Misc", "Jewelry"),
            ("", "Jewelry"),
        ],
    )
    def test_rules(self, path, expected):
        assert derive_product_type(path) == expected

    def test_only_first_segment_is_considered(self):
        assert derive_product_type("Misc; Earrings") == "Jewelry"
