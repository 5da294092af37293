"""
Batch dispatch of a changeset to the catalog.

Items are sent in consecutive batches. Within a batch they run either
concurrently (one task per item, joined with ``asyncio.gather``) or one after
another. A failing item is recorded in the result and never stops its
siblings or later batches.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from feedsync.config.loader import DispatchSettings
from feedsync.exceptions import ItemDispatchError
from feedsync.models import (
    BatchResult,
    CanonicalProduct,
    ChangeAction,
    ChangeSet,
    ChangeSetItem,
    ExistingRecord,
    ItemError,
)
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.dispatch")

ITEM_DELAY_S = 0.1
ERROR_DETAIL_LIMIT = 10

# Changed-field name -> product payload key
_PRODUCT_PATCH_KEYS = {
    "title": "title",
    "description": "body_html",
    "product_type": "product_type",
    "tags": "tags",
    "status": "status",
    "category": "product_category_id",
    "images": "images",
}

# Changed-field name -> variant payload key
_VARIANT_PATCH_KEYS = {
    "price": "price",
    "compare_price": "compare_at_price",
    "inventory": "inventory_quantity",
    "sku": "sku",
    "barcode": "barcode",
    "weight": "weight",
}


class CatalogWriter(Protocol):
    async def create(self, product: CanonicalProduct) -> ExistingRecord: ...

    async def update(self, product_id: int | str, patch: dict[str, Any]) -> ExistingRecord: ...


@dataclass(frozen=True)
class DispatchOptions:
    batch_size: int = 10
    inter_batch_delay_s: float = 1.0
    parallel: bool = True
    dry_run: bool = False

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.inter_batch_delay_s < 0:
            raise ValueError("inter_batch_delay_s must be >= 0")

    @classmethod
    def from_settings(cls, settings: DispatchSettings) -> DispatchOptions:
        return cls(
            batch_size=settings.batch_size,
            inter_batch_delay_s=settings.inter_batch_delay_s,
            parallel=settings.parallel,
            dry_run=settings.dry_run,
        )


@dataclass
class ItemOutcome:
    """Result of sending one changeset item."""

    item: ChangeSetItem
    record: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def partition(items: Sequence[ChangeSetItem], batch_size: int) -> Iterator[Sequence[ChangeSetItem]]:
    """Consecutive slices of ``batch_size`` items; the last may be shorter."""
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]


def build_update_patch(item: ChangeSetItem) -> dict[str, Any]:
    """
    Partial update payload holding only the changed fields.

    Variant-level changes are merged into a single variant entry keyed by the
    existing product's first variant id.
    """
    if item.existing is None:
        raise ValueError("update patch needs an existing record")

    payload = item.canonical.to_payload()
    variant_payload = payload["variants"][0]
    patch: dict[str, Any] = {"id": item.existing.id}

    for name in sorted(item.changed_fields):
        if name in _PRODUCT_PATCH_KEYS:
            key = _PRODUCT_PATCH_KEYS[name]
            patch[key] = payload[key]

    first = item.existing.first_variant
    variant_changes = {
        _VARIANT_PATCH_KEYS[name]: variant_payload[_VARIANT_PATCH_KEYS[name]]
        for name in sorted(item.changed_fields)
        if name in _VARIANT_PATCH_KEYS
    }
    if variant_changes and first is not None:
        patch["variants"] = [{"id": first.id, **variant_changes}]
    return patch


async def send_item(item: ChangeSetItem, client: CatalogWriter | None, dry_run: bool) -> dict[str, Any]:
    """
    Send one item; returns the record to keep in the result.

    Raises:
        ItemDispatchError: If the catalog call fails
    """
    if item.action is ChangeAction.CREATE:
        if dry_run:
            logger.info(f"[DRY RUN] Would create: {item.canonical.title}")
            return {"type": "dry-run-create", "identifier": item.identifier, "payload": item.canonical.to_payload()}
        assert client is not None
        try:
            created = await client.create(item.canonical)
        except Exception as e:
            raise ItemDispatchError(item.identifier, str(e), cause=e) from e
        logger.debug(f"Created: {created.title} (ID: {created.id})")
        return {"type": "created", "identifier": item.identifier, "id": created.id, "title": created.title}

    patch = build_update_patch(item)
    changes = sorted(item.changed_fields)
    if dry_run:
        logger.info(f"[DRY RUN] Would update: {item.canonical.title} - Changes: {', '.join(changes)}")
        return {"type": "dry-run-update", "identifier": item.identifier, "changes": changes, "payload": patch}
    assert client is not None and item.existing is not None
    try:
        updated = await client.update(item.existing.id, patch)
    except Exception as e:
        raise ItemDispatchError(item.identifier, str(e), cause=e) from e
    logger.debug(f"Updated: {updated.title} (ID: {updated.id}) - Changes: {', '.join(changes)}")
    return {"type": "updated", "identifier": item.identifier, "id": updated.id, "changes": changes}


async def _run_item(item: ChangeSetItem, client: CatalogWriter | None, dry_run: bool) -> ItemOutcome:
    try:
        return ItemOutcome(item, record=await send_item(item, client, dry_run))
    except ItemDispatchError as e:
        return ItemOutcome(item, error=str(e.__cause__ or e))


async def _run_parallel(batch: Sequence[ChangeSetItem], client: CatalogWriter | None, dry_run: bool) -> list[ItemOutcome]:
    tasks = [_run_item(item, client, dry_run) for item in batch]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    outcomes: list[ItemOutcome] = []
    for item, result in zip(batch, results):
        if isinstance(result, BaseException):
            # Anything _run_item did not translate (e.g. a bug while building the payload)
            outcomes.append(ItemOutcome(item, error=f"{type(result).__name__}: {result}"))
        else:
            outcomes.append(result)
    return outcomes


async def _run_sequential(
    batch: Sequence[ChangeSetItem],
    client: CatalogWriter | None,
    dry_run: bool,
    sleep: Callable[[float], Awaitable[None]],
) -> list[ItemOutcome]:
    outcomes: list[ItemOutcome] = []
    for i, item in enumerate(batch):
        try:
            outcomes.append(await _run_item(item, client, dry_run))
        except Exception as e:
            outcomes.append(ItemOutcome(item, error=f"{type(e).__name__}: {e}"))
        if i < len(batch) - 1:
            await sleep(ITEM_DELAY_S)
    return outcomes


def _record(result: BatchResult, outcome: ItemOutcome) -> None:
    if not outcome.ok:
        result.errors.append(ItemError(identifier=outcome.item.identifier, message=outcome.error or ""))
        logger.error(f"Failed to {outcome.item.action.value} {outcome.item.identifier}: {outcome.error}")
        return
    if outcome.item.action is ChangeAction.CREATE:
        result.created += 1
        result.created_items.append(outcome.record or {})
    else:
        result.updated += 1
        result.updated_items.append(outcome.record or {})


async def dispatch(
    changeset: ChangeSet,
    client: CatalogWriter | None,
    options: DispatchOptions,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> BatchResult:
    """
    Send every create/update in ``changeset`` and aggregate the outcome.

    Args:
        changeset: Reconciled items plus the skipped records
        client: Catalog writer; may be None in dry-run mode
        options: Batch size, delay, concurrency mode and dry-run flag
        sleep: Awaitable sleep used for the inter-batch and inter-item pauses

    Returns:
        BatchResult where created + updated + skipped + errors == changeset.total
    """
    if client is None and not options.dry_run:
        raise ValueError("a catalog client is required unless dry_run is set")

    result = BatchResult(total=changeset.total, skipped=len(changeset.skipped), dry_run=options.dry_run)
    items = changeset.items
    batches = list(partition(items, options.batch_size))
    mode = "parallel" if options.parallel else "sequential"

    logger.info(
        f"Dispatching {len(items)} items in {len(batches)} {mode} batches of up to {options.batch_size}"
        f"{' (dry run)' if options.dry_run else ''}"
    )

    for number, batch in enumerate(batches, start=1):
        logger.info(f"Processing batch {number}/{len(batches)} ({len(batch)} items)")
        if options.parallel:
            outcomes = await _run_parallel(batch, client, options.dry_run)
        else:
            outcomes = await _run_sequential(batch, client, options.dry_run, sleep)

        for outcome in outcomes:
            _record(result, outcome)

        processed = sum(len(b) for b in batches[:number])
        logger.info(
            f"Batch {number} complete. Progress: {processed}/{len(items)} "
            f"(Created: {result.created}, Updated: {result.updated}, Errors: {result.error_count})"
        )
        if number < len(batches) and options.inter_batch_delay_s > 0:
            await sleep(options.inter_batch_delay_s)

    log_result(result)
    return result


def log_result(result: BatchResult) -> None:
    logger.info(
        f"Dispatch finished: {result.created} created, {result.updated} updated, "
        f"{result.skipped} unchanged, {result.error_count} errors (total {result.total})"
    )
    if result.errors:
        logger.error("Error details:")
        for error in result.errors[:ERROR_DETAIL_LIMIT]:
            logger.error(f"  - {error.identifier}: {error.message}")
        if result.error_count > ERROR_DETAIL_LIMIT:
            logger.error(f"  ... and {result.error_count - ERROR_DETAIL_LIMIT} more errors")
