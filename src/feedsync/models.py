"""
Data model for feed records, canonical products, catalog snapshots and results.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

RawRecord = Mapping[str, str]


def freeze_record(row: Mapping[str, Any]) -> RawRecord:
    """Wrap a parsed feed row as an immutable string mapping."""
    return MappingProxyType({str(k): "" if v is None else str(v) for k, v in row.items()})


class ProductStatus(str, Enum):
    ACTIVE = "active"
    DRAFT = "draft"


class ChangeAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class Image:
    src: str
    alt: str = ""


@dataclass(frozen=True)
class Metafield:
    namespace: str
    key: str
    value: str
    type: str


@dataclass(frozen=True)
class Variant:
    sku: str
    barcode: str
    price: str
    compare_at_price: str | None = None
    inventory_quantity: int = 0
    weight_grams: int = 0
    option_label: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": "Default Title",
            "sku": self.sku,
            "barcode": self.barcode,
            "price": self.price,
            "compare_at_price": self.compare_at_price,
            "inventory_management": "shopify",
            "inventory_quantity": self.inventory_quantity,
            "weight": self.weight_grams,
            "weight_unit": "g",
        }
        if self.option_label:
            payload["option1"] = self.option_label
        return payload


@dataclass(frozen=True)
class CanonicalProduct:
    """Catalog-ready representation of one feed row (always single-variant)."""

    title: str
    handle: str
    description: str
    vendor: str
    product_type: str
    status: ProductStatus
    tags: tuple[str, ...]
    category_id: str | None
    variant: Variant
    images: tuple[Image, ...] = ()
    metafields: tuple[Metafield, ...] = ()
    seo_title: str | None = None
    seo_description: str | None = None
    # False when the title is the placeholder for a row with no Description or Item
    title_from_feed: bool = True

    @property
    def sku(self) -> str:
        return self.variant.sku

    @property
    def tags_string(self) -> str:
        return ", ".join(self.tags)

    @property
    def identifier(self) -> str:
        return self.variant.sku or self.title

    def to_payload(self) -> dict[str, Any]:
        """Render the create payload for the catalog API."""
        payload: dict[str, Any] = {
            "title": self.title,
            "handle": self.handle,
            "body_html": self.description,
            "vendor": self.vendor,
            "product_type": self.product_type,
            "status": self.status.value,
            "published": self.status is ProductStatus.ACTIVE,
            "tags": self.tags_string,
            "variants": [self.variant.to_payload()],
            "images": [{"src": img.src, "alt": img.alt} for img in self.images],
            "metafields": [
                {"namespace": m.namespace, "key": m.key, "value": m.value, "type": m.type} for m in self.metafields
            ],
            "product_category_id": self.category_id,
        }
        if self.seo_title is not None:
            payload["seo_title"] = self.seo_title
            payload["seo_description"] = self.seo_description
        return payload


@dataclass(frozen=True)
class ExistingVariant:
    id: int | str | None
    sku: str | None = None
    barcode: str | None = None
    price: str | None = None
    compare_at_price: str | None = None
    inventory_quantity: int | None = None
    weight_grams: float | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> ExistingVariant:
        grams = data.get("grams")
        return cls(
            id=data.get("id"),
            sku=data.get("sku"),
            barcode=data.get("barcode"),
            price=_str_or_none(data.get("price")),
            compare_at_price=_str_or_none(data.get("compare_at_price")),
            inventory_quantity=data.get("inventory_quantity"),
            weight_grams=grams if grams is not None else data.get("weight"),
        )


@dataclass(frozen=True)
class ExistingRecord:
    """The remote catalog's current view of one product (read-only snapshot)."""

    id: int | str
    title: str
    handle: str | None = None
    description: str | None = None
    product_type: str | None = None
    status: str | None = None
    tags: str | None = None
    category_id: str | None = None
    variants: tuple[ExistingVariant, ...] = ()
    image_urls: tuple[str, ...] = ()
    created_at: str | None = None

    @property
    def first_variant(self) -> ExistingVariant | None:
        return self.variants[0] if self.variants else None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> ExistingRecord:
        category = data.get("product_category_id")
        if category is None and isinstance(data.get("category"), Mapping):
            category = data["category"].get("id")
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            handle=data.get("handle"),
            description=data.get("body_html"),
            product_type=data.get("product_type"),
            status=data.get("status"),
            tags=data.get("tags"),
            category_id=_str_or_none(category),
            variants=tuple(ExistingVariant.from_payload(v) for v in data.get("variants") or []),
            image_urls=tuple(img.get("src", "") for img in data.get("images") or []),
            created_at=data.get("created_at"),
        )

    def summary(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "handle": self.handle, "status": self.status}


@dataclass(frozen=True)
class ChangeSetItem:
    action: ChangeAction
    canonical: CanonicalProduct
    existing: ExistingRecord | None = None
    changed_fields: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.action is ChangeAction.CREATE and (self.changed_fields or self.existing is not None):
            raise ValueError("create items carry no existing record and no changed fields")
        if self.action is ChangeAction.UPDATE and (not self.changed_fields or self.existing is None):
            raise ValueError("update items need an existing record and at least one changed field")

    @property
    def identifier(self) -> str:
        return self.canonical.identifier


@dataclass
class ChangeSet:
    items: list[ChangeSetItem] = field(default_factory=list)
    skipped: list[CanonicalProduct] = field(default_factory=list)

    @property
    def creates(self) -> list[ChangeSetItem]:
        return [i for i in self.items if i.action is ChangeAction.CREATE]

    @property
    def updates(self) -> list[ChangeSetItem]:
        return [i for i in self.items if i.action is ChangeAction.UPDATE]

    @property
    def total(self) -> int:
        return len(self.items) + len(self.skipped)


@dataclass(frozen=True)
class ItemError:
    identifier: str
    message: str


@dataclass
class BatchResult:
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[ItemError] = field(default_factory=list)
    dry_run: bool = False
    created_items: list[dict[str, Any]] = field(default_factory=list)
    updated_items: list[dict[str, Any]] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def accounted(self) -> int:
        return self.created + self.updated + self.skipped + self.error_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": [{"identifier": e.identifier, "message": e.message} for e in self.errors],
            "dry_run": self.dry_run,
            "created_items": self.created_items,
            "updated_items": self.updated_items,
        }


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)
