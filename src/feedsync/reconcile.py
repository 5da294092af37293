"""
Reconciliation of canonical feed products against a catalog snapshot.

Matching is SKU first (every variant of every existing product is indexed),
then title, both case-insensitive. When two existing products share a key the
later one in snapshot order wins; collisions are only counted and logged.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from feedsync.models import (
    CanonicalProduct,
    ChangeAction,
    ChangeSet,
    ChangeSetItem,
    ExistingRecord,
)
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.reconcile")

VARIANT_FIELDS = frozenset({"price", "compare_price", "inventory", "sku", "barcode", "weight"})
PRODUCT_FIELDS = frozenset({"title", "description", "product_type", "tags", "status", "category", "images"})
CHANGE_FIELDS = VARIANT_FIELDS | PRODUCT_FIELDS

_CENTS = Decimal("0.01")


@dataclass
class SnapshotIndex:
    """Lookup tables over the existing catalog, keyed by lowercased SKU and title."""

    by_sku: dict[str, ExistingRecord] = field(default_factory=dict)
    by_title: dict[str, ExistingRecord] = field(default_factory=dict)
    sku_collisions: int = 0
    title_collisions: int = 0

    @classmethod
    def build(cls, snapshot: Iterable[ExistingRecord]) -> SnapshotIndex:
        index = cls()
        for record in snapshot:
            for variant in record.variants:
                if not variant.sku:
                    continue
                key = variant.sku.lower()
                previous = index.by_sku.get(key)
                if previous is not None and previous.id != record.id:
                    index.sku_collisions += 1
                index.by_sku[key] = record
            if record.title:
                key = record.title.lower()
                if key in index.by_title:
                    index.title_collisions += 1
                index.by_title[key] = record

        if index.sku_collisions or index.title_collisions:
            logger.debug(
                f"Snapshot index collisions: {index.sku_collisions} SKU, {index.title_collisions} title "
                "(last product wins)"
            )
        return index

    def match(self, product: CanonicalProduct) -> ExistingRecord | None:
        if product.sku:
            found = self.by_sku.get(product.sku.lower())
            if found is not None:
                return found
        if product.title_from_feed and product.title:
            return self.by_title.get(product.title.lower())
        return None


def _finite(value: object) -> Decimal | None:
    """Parse a snapshot number; blank, malformed and non-finite values give None."""
    if value is None or value == "":
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _decimal(value: object, default: Decimal | None = None) -> Decimal | None:
    number = _finite(value)
    if number is None:
        return default
    try:
        return number.quantize(_CENTS)
    except InvalidOperation:
        return default


def _int(value: object) -> int:
    number = _finite(value)
    return 0 if number is None else int(number)


def compare_fields(canonical: CanonicalProduct, existing: ExistingRecord) -> frozenset[str]:
    """Names of the fields whose canonical value differs from the catalog's."""
    changed: set[str] = set()

    if canonical.title != existing.title:
        changed.add("title")
    if canonical.description != (existing.description or ""):
        changed.add("description")
    if canonical.product_type != (existing.product_type or ""):
        changed.add("product_type")
    if canonical.tags_string != (existing.tags or ""):
        changed.add("tags")
    if canonical.status.value != existing.status:
        changed.add("status")
    if canonical.category_id and canonical.category_id != existing.category_id:
        changed.add("category")

    current = existing.first_variant
    if current is not None:
        variant = canonical.variant
        if _decimal(variant.price) != _decimal(current.price, Decimal("0.00")):
            changed.add("price")
        if variant.compare_at_price and _decimal(variant.compare_at_price) != _decimal(
            current.compare_at_price, Decimal("0.00")
        ):
            changed.add("compare_price")
        if variant.inventory_quantity != _int(current.inventory_quantity):
            changed.add("inventory")
        if variant.sku != (current.sku or ""):
            changed.add("sku")
        if variant.barcode != (current.barcode or ""):
            changed.add("barcode")
        if variant.weight_grams != _int(current.weight_grams):
            changed.add("weight")

    if sorted(img.src for img in canonical.images) != sorted(existing.image_urls):
        changed.add("images")

    return frozenset(changed)


def reconcile(
    records: Sequence[CanonicalProduct],
    snapshot: Iterable[ExistingRecord],
    enable_updates: bool = True,
) -> ChangeSet:
    """
    Classify every canonical record as Create, Update or Skipped.

    Args:
        records: Normalized feed products, in feed order
        snapshot: Existing catalog products
        enable_updates: When False, matched products are skipped instead of updated

    Returns:
        ChangeSet whose items and skipped list together cover ``records`` exactly once
    """
    index = SnapshotIndex.build(snapshot)
    changeset = ChangeSet()

    for product in records:
        existing = index.match(product)
        if existing is None:
            changeset.items.append(ChangeSetItem(ChangeAction.CREATE, product))
            logger.debug(f"New product to create: {product.identifier}")
            continue

        if not enable_updates:
            changeset.skipped.append(product)
            logger.debug(f"Product exists, updates disabled: {product.identifier}")
            continue

        changed = compare_fields(product, existing)
        if changed:
            changeset.items.append(ChangeSetItem(ChangeAction.UPDATE, product, existing, changed))
            logger.debug(f"Product needs update: {product.identifier} ({', '.join(sorted(changed))})")
        else:
            changeset.skipped.append(product)
            logger.debug(f"Product up to date: {product.identifier}")

    logger.info(
        f"Reconciled {len(records)} products: {len(changeset.creates)} to create, "
        f"{len(changeset.updates)} to update, {len(changeset.skipped)} unchanged"
    )
    return changeset
