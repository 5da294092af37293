"""
Feed row -> canonical product mapping.

Every function here is pure and total: missing or malformed values degrade
to fixed defaults instead of raising.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from feedsync.catalog.taxonomy import derive_product_type, resolve_category
from feedsync.models import CanonicalProduct, Image, Metafield, ProductStatus, RawRecord, Variant

VENDOR = "QGold"
UNTITLED = "Untitled Product"
DEFAULT_DESCRIPTION = "<p>Quality jewelry piece</p>"
OUNCE_TO_GRAMS = Decimal("28.35")
HANDLE_MAX_LENGTH = 100
EXTRA_IMAGE_COUNT = 9

_NON_NUMERIC = re.compile(r"[^\d.-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
_LEADING_INT = re.compile(r"\s*[+-]?\d+")
_HANDLE_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_CENTS = Decimal("0.01")


def _field(record: RawRecord, key: str) -> str:
    value = record.get(key)
    return value.strip() if value else ""


def slugify(text: str | None) -> str:
    """URL handle: lowercase, ``[a-z0-9-]`` only, single hyphens, max 100 chars."""
    if not text:
        return "product"
    handle = _HANDLE_DISALLOWED.sub("", text.lower())
    handle = _WHITESPACE.sub("-", handle)
    handle = _HYPHENS.sub("-", handle)
    return handle.strip("-")[:HANDLE_MAX_LENGTH].rstrip("-") or "product"


def _leading_decimal(text: str | None) -> Decimal | None:
    if not text:
        return None
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", str(text)))
    if match is None:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def parse_price(text: str | None) -> str:
    """Leading numeric token formatted to two decimals; ``"0.00"`` when unparseable."""
    value = _leading_decimal(text)
    if value is None:
        return "0.00"
    cents = value.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if cents == 0:
        return "0.00"
    return f"{cents:.2f}"


def parse_weight_grams(text: str | None) -> int:
    """Feed weight (ounces) to whole grams."""
    value = _leading_decimal(text)
    if value is None:
        return 0
    return int((value * OUNCE_TO_GRAMS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_quantity(text: str | None) -> int:
    if not text:
        return 0
    match = _LEADING_INT.match(text)
    if match is None:
        return 0
    return max(0, int(match.group(0)))


def build_tags(record: RawRecord) -> tuple[str, ...]:
    tags: list[str] = []
    material = _field(record, "Metal_Desc")
    if material:
        tags.append(material)
    for attribute in _field(record, "Attributes").split(";"):
        if attribute.strip():
            tags.append(attribute.strip())
    product_line = _field(record, "ProductLine")
    if product_line:
        tags.append(product_line)
    return tuple(tags)


def render_description(record: RawRecord) -> str:
    parts: list[str] = []
    description = _field(record, "Description")
    material = _field(record, "Metal_Desc")
    weight = _field(record, "Weight")
    length = _field(record, "Length")
    width = _field(record, "Width")
    specs = _field(record, "ListOfSpecs")

    if description:
        parts.append(f"<h3>{description}</h3>")
    if material:
        parts.append(f"<p><strong>Material:</strong> {material}</p>")
    if weight:
        parts.append(f"<p><strong>Weight:</strong> {weight}g</p>")
    if length and width:
        parts.append(f'<p><strong>Dimensions:</strong> {length}" x {width}"</p>')
    elif length:
        parts.append(f'<p><strong>Length:</strong> {length}"</p>')
    if specs:
        parts.append("<div><strong>Specifications:</strong><br>")
        for spec in specs.split("|"):
            if spec.strip():
                parts.append(f"• {spec.strip()}<br>")
        parts.append("</div>")

    return "".join(parts) or DEFAULT_DESCRIPTION


def build_images(record: RawRecord, title: str) -> tuple[Image, ...]:
    images: list[Image] = []
    primary = _field(record, "ImageLink_1000")
    if primary:
        images.append(Image(src=primary, alt=title))
    for i in range(1, EXTRA_IMAGE_COUNT + 1):
        link = _field(record, f"Image{i}Link")
        if link:
            images.append(Image(src=link, alt=f"{title} - View {i}"))
    return tuple(images)


_METAFIELD_SOURCES = (
    ("Item", "item_number", "single_line_text_field"),
    ("ListOfSpecs", "specifications", "multi_line_text_field"),
    ("Metal_Desc", "metal_description", "single_line_text_field"),
    ("Country_Of_Origin", "country_of_origin", "single_line_text_field"),
)


def build_metafields(record: RawRecord) -> tuple[Metafield, ...]:
    return tuple(
        Metafield(namespace="custom", key=key, value=_field(record, column), type=kind)
        for column, key, kind in _METAFIELD_SOURCES
        if _field(record, column)
    )


def option_label(record: RawRecord) -> str | None:
    size = _field(record, "Size")
    if size:
        return size
    length = _field(record, "Length")
    width = _field(record, "Width")
    if length and width:
        return f"{length}x{width}"
    return length or width or None


def build_variant(record: RawRecord) -> Variant:
    msrp = _field(record, "MSRP")
    return Variant(
        sku=_field(record, "Item"),
        barcode=_field(record, "UPC"),
        price=parse_price(msrp or _field(record, "ContractPrice")),
        compare_at_price=parse_price(msrp) if msrp else None,
        inventory_quantity=parse_quantity(_field(record, "Qty_Avail")),
        weight_grams=parse_weight_grams(_field(record, "Weight")),
        option_label=option_label(record),
    )


def normalize(record: RawRecord) -> CanonicalProduct:
    """Map one raw feed record to its canonical product."""
    description = _field(record, "Description")
    item = _field(record, "Item")
    title = description or item or UNTITLED
    categories = _field(record, "Categories")
    material = _field(record, "Metal_Desc")

    seo_title = seo_description = None
    if description:
        seo_title = description[:70]
        seo_description = f"{description} {material}".strip()[:160]

    return CanonicalProduct(
        title=title,
        handle=slugify(description or item),
        description=render_description(record),
        vendor=VENDOR,
        product_type=derive_product_type(categories),
        status=ProductStatus.ACTIVE if _field(record, "Status") == "Active" else ProductStatus.DRAFT,
        tags=build_tags(record),
        category_id=resolve_category(categories),
        variant=build_variant(record),
        images=build_images(record, title),
        metafields=build_metafields(record),
        seo_title=seo_title,
        seo_description=seo_description,
        title_from_feed=bool(description or item),
    )
