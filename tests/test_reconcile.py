"""
Tests for reconciliation against a catalog snapshot.
"""

from dataclasses import replace

import pytest

from fakes import FakeCatalog, existing_from, make_row
from feedsync.catalog.normalizer import normalize
from feedsync.dispatch import DispatchOptions, build_update_patch, dispatch
from feedsync.models import ChangeAction, ExistingVariant
from feedsync.reconcile import CHANGE_FIELDS, SnapshotIndex, compare_fields, reconcile


def _with_variant(existing, **changes):
    return replace(existing, variants=(replace(existing.variants[0], **changes),))


class TestScenarios:
    """End-to-end classification scenarios."""

    @pytest.mark.asyncio
    async def test_identical_existing_record_is_skipped(self):
        product = normalize(make_row(Item="Q1"))
        changeset = reconcile([product], [existing_from(product)])

        assert changeset.items == []
        assert changeset.skipped == [product]

        catalog = FakeCatalog()
        result = await dispatch(changeset, catalog, DispatchOptions())
        assert (result.created, result.updated, result.skipped) == (0, 0, 1)
        assert catalog.writes == 0

    @pytest.mark.asyncio
    async def test_new_sku_is_created(self):
        other = normalize(make_row(Item="OTHER", Description="Silver Hoop Earrings"))
        product = normalize(make_row(Item="Q2"))
        changeset = reconcile([product], [existing_from(other)])

        assert [i.action for i in changeset.items] == [ChangeAction.CREATE]

        catalog = FakeCatalog()
        result = await dispatch(changeset, catalog, DispatchOptions())
        assert result.created == 1
        assert catalog.created[0].to_payload()["title"] == product.title

    def test_inventory_only_change(self):
        product = normalize(make_row())
        existing = _with_variant(existing_from(product), inventory_quantity=2)

        changeset = reconcile([product], [existing])
        (item,) = changeset.items
        assert item.action is ChangeAction.UPDATE
        assert item.changed_fields == {"inventory"}
        assert build_update_patch(item) == {"id": 1, "variants": [{"id": 11, "inventory_quantity": 5}]}


class TestCompareFields:
    """Tests for field comparison rules."""

    def test_identical(self):
        product = normalize(make_row())
        assert compare_fields(product, existing_from(product)) == frozenset()

    def test_prices_compare_numerically(self):
        product = normalize(make_row())
        existing = _with_variant(existing_from(product), price="1299.5", compare_at_price="1299.500")
        assert compare_fields(product, existing) == frozenset()

    def test_price_change(self):
        product = normalize(make_row())
        existing = _with_variant(existing_from(product), price="999.00")
        assert compare_fields(product, existing) == {"price"}

    def test_compare_price_ignored_without_canonical_value(self):
        product = normalize(make_row(MSRP=""))
        existing = _with_variant(existing_from(product), compare_at_price="10.00")
        assert "compare_price" not in compare_fields(product, existing)

    def test_compare_price_missing_on_existing_counts_as_zero(self):
        product = normalize(make_row())
        existing = _with_variant(existing_from(product), compare_at_price=None)
        assert compare_fields(product, existing) == {"compare_price"}

    def test_variant_fields_skipped_without_existing_variant(self):
        product = normalize(make_row())
        existing = replace(existing_from(product), variants=())
        assert compare_fields(product, existing) == frozenset()

    def test_images_compare_as_sorted_sets(self):
        product = normalize(make_row())
        existing = existing_from(product)
        existing = replace(existing, image_urls=tuple(reversed(existing.image_urls)))
        assert compare_fields(product, existing) == frozenset()

    def test_images_change(self):
        product = normalize(make_row())
        existing = replace(existing_from(product), image_urls=("https://img.example.com/old.jpg",))
        assert compare_fields(product, existing) == {"images"}

    def test_product_level_changes(self):
        product = normalize(make_row())
        existing = replace(
            existing_from(product),
            title="Old title",
            description="<p>old</p>",
            tags="Gold",
            status="draft",
            product_type="Jewelry",
            category_id="gid://shopify/TaxonomyCategory/aa-6-9",
        )
        assert compare_fields(product, existing) == {
            "title",
            "description",
            "tags",
            "status",
            "product_type",
            "category",
        }

    def test_changed_fields_use_known_names(self):
        product = normalize(make_row())
        existing = replace(
            existing_from(product),
            title="x",
            variants=(ExistingVariant(id=5, sku="x", barcode="x", price="1", inventory_quantity=0, weight_grams=1),),
            image_urls=(),
        )
        changed = compare_fields(product, existing)
        assert changed <= CHANGE_FIELDS
        assert {"price", "compare_price", "inventory", "sku", "barcode", "weight", "images"} <= changed


class TestMatching:
    """Tests for SKU/title lookup."""

    def test_sku_match_is_case_insensitive(self):
        product = normalize(make_row(Item="qg123"))
        existing = existing_from(normalize(make_row(Item="QG123")))
        changeset = reconcile([product], [existing])
        assert changeset.creates == []

    def test_sku_indexed_across_all_variants(self):
        product = normalize(make_row(Item="SECOND"))
        base = existing_from(normalize(make_row(Item="FIRST")), title="Different title")
        existing = replace(base, variants=(base.variants[0], replace(base.variants[0], id=12, sku="SECOND")))
        changeset = reconcile([product], [existing])
        assert changeset.updates[0].existing.id == 1

    def test_title_fallback(self):
        product = normalize(make_row(Item="NEW-SKU"))
        existing = _with_variant(existing_from(product), sku="")
        existing = replace(existing, title=product.title.upper())
        changeset = reconcile([product], [existing])
        (item,) = changeset.items
        assert item.action is ChangeAction.UPDATE
        assert {"title", "sku"} <= item.changed_fields

    def test_last_write_wins_on_collision(self):
        product = normalize(make_row())
        first = existing_from(product, product_id=1, title="Older")
        second = existing_from(product, product_id=2, title="Newer")
        index = SnapshotIndex.build([first, second])

        assert index.match(product).id == 2
        assert index.sku_collisions == 1

    def test_updates_disabled_skips_matches(self):
        product = normalize(make_row())
        existing = replace(existing_from(product), title="Old title")
        changeset = reconcile([product], [existing], enable_updates=False)
        assert changeset.items == []
        assert changeset.skipped == [product]

    def test_classification_is_exhaustive(self):
        products = [normalize(make_row(Item=f"SKU{i}", Description=f"Item {i}")) for i in range(6)]
        snapshot = [
            existing_from(products[0]),
            replace(existing_from(products[1], product_id=2), title="Changed"),
            existing_from(products[2], product_id=3),
        ]
        changeset = reconcile(products, snapshot)

        assert len(changeset.creates) == 3
        assert len(changeset.updates) == 1
        assert len(changeset.skipped) == 2
        assert changeset.total == len(products)
        seen = [i.canonical for i in changeset.items] + changeset.skipped
        assert sorted(p.sku for p in seen) == sorted(p.sku for p in products)


class TestMalformedSnapshot:
    """Snapshot values that are not usable numbers."""

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", "sNaN", "lots"])
    def test_bad_inventory_counts_as_zero(self, value):
        product = normalize(make_row())
        existing = _with_variant(existing_from(product), inventory_quantity=value)

        (item,) = reconcile([product], [existing]).items

        assert item.changed_fields == {"inventory"}

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "heavy"])
    def test_bad_weight_counts_as_zero(self, value):
        product = normalize(make_row())
        existing = _with_variant(existing_from(product), weight_grams=value)
        assert compare_fields(product, existing) == {"weight"}

    @pytest.mark.parametrize("value", ["NaN", "-Infinity", "1E+40"])
    def test_bad_price_counts_as_zero(self, value):
        product = normalize(make_row())
        existing = _with_variant(existing_from(product), price=value, compare_at_price=value)
        assert compare_fields(product, existing) == {"price", "compare_price"}

    def test_bad_price_matches_zero_price(self):
        product = normalize(make_row(MSRP="", ContractPrice=""))
        existing = _with_variant(existing_from(product), price="NaN")
        assert "price" not in compare_fields(product, existing)


class TestPlaceholderTitle:
    def test_untitled_row_does_not_match_by_title(self):
        product = normalize(make_row(Item="", Description=""))
        unrelated = existing_from(normalize(make_row(Item="OTHER")), product_id=77, title=product.title)

        changeset = reconcile([product], [unrelated])

        assert product.title_from_feed is False
        assert [i.action for i in changeset.items] == [ChangeAction.CREATE]

    def test_item_number_title_still_matches(self):
        product = normalize(make_row(Item="QG9", Description=""))
        existing = _with_variant(existing_from(product, product_id=78), sku="")

        (item,) = reconcile([product], [existing]).items

        assert item.action is ChangeAction.UPDATE
        assert item.existing.id == 78
