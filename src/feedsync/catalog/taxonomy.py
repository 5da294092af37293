"""
Fixed category and product-type lookup tables.

Category precedence (see ``resolve_category``):

1. category path segments are tried in feed order (``;`` separated);
2. within a segment, terms are tried from most specific (last) to least;
3. per term, an exact keyword match wins over substring containment;
4. substring containment (either direction) is tried in table order;
5. if no segment matched, each keyword is searched in the whole path, in
   table order;
6. otherwise ``DEFAULT_CATEGORY``.
"""

from __future__ import annotations

import re

_TAXONOMY = "gid://shopify/TaxonomyCategory/"

ANKLETS = _TAXONOMY + "aa-6-1"
BODY_JEWELRY = _TAXONOMY + "aa-6-2"
BRACELETS = _TAXONOMY + "aa-6-3"
BROOCHES = _TAXONOMY + "aa-6-4"
CHARMS_PENDANTS = _TAXONOMY + "aa-6-5"
EARRINGS = _TAXONOMY + "aa-6-6"
JEWELRY_SETS = _TAXONOMY + "aa-6-7"
NECKLACES = _TAXONOMY + "aa-6-8"
RINGS = _TAXONOMY + "aa-6-9"
WATCH_ACCESSORIES = _TAXONOMY + "aa-6-10"
WATCH_BANDS = _TAXONOMY + "aa-6-10-1"
WATCH_DECALS = _TAXONOMY + "aa-6-10-2"
WATCH_WINDERS = _TAXONOMY + "aa-6-10-3"
WATCHES = _TAXONOMY + "aa-6-11"
SMART_WATCHES = _TAXONOMY + "aa-6-12"

DEFAULT_CATEGORY = NECKLACES

# Order matters for the substring passes.
CATEGORY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("anklets", ANKLETS),
    ("anklet", ANKLETS),
    ("body jewelry", BODY_JEWELRY),
    ("body", BODY_JEWELRY),
    ("bracelets", BRACELETS),
    ("bracelet", BRACELETS),
    ("brooches", BROOCHES),
    ("brooch", BROOCHES),
    ("lapel pins", BROOCHES),
    ("lapel pin", BROOCHES),
    ("charms", CHARMS_PENDANTS),
    ("charm", CHARMS_PENDANTS),
    ("pendants", CHARMS_PENDANTS),
    ("pendant", CHARMS_PENDANTS),
    ("earrings", EARRINGS),
    ("earring", EARRINGS),
    ("jewelry sets", JEWELRY_SETS),
    ("jewelry set", JEWELRY_SETS),
    ("sets", JEWELRY_SETS),
    ("set", JEWELRY_SETS),
    ("necklaces", NECKLACES),
    ("necklace", NECKLACES),
    ("chain necklaces", NECKLACES),
    ("chain necklace", NECKLACES),
    ("rings", RINGS),
    ("ring", RINGS),
    ("smart watches", SMART_WATCHES),
    ("smart watch", SMART_WATCHES),
    ("watch accessories", WATCH_ACCESSORIES),
    ("watch accessory", WATCH_ACCESSORIES),
    ("watch bands", WATCH_BANDS),
    ("watch band", WATCH_BANDS),
    ("watch stickers", WATCH_DECALS),
    ("watch decals", WATCH_DECALS),
    ("watch stickers & decals", WATCH_DECALS),
    ("watch winders", WATCH_WINDERS),
    ("watch winder", WATCH_WINDERS),
    ("watches", WATCHES),
    ("watch", WATCHES),
    ("chains", NECKLACES),
    ("chain", NECKLACES),
    ("rope chains", NECKLACES),
    ("rope chain", NECKLACES),
    ("curb chains", NECKLACES),
    ("curb chain", NECKLACES),
    ("cable chains", NECKLACES),
    ("cable chain", NECKLACES),
)

_EXACT = dict(CATEGORY_KEYWORDS)

# First matching rule wins; checked against the first category segment only.
PRODUCT_TYPE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("necklaces", "chains"), "Necklaces"),
    (("earrings",), "Earrings"),
    (("bracelets",), "Bracelets"),
    (("anklets",), "Anklets"),
    (("rings",), "Rings"),
    (("pendants", "charms"), "Pendants & Charms"),
    (("watch accessories", "watch bands"), "Watch Accessories"),
    (("watches",), "Watches"),
    (("brooches", "lapel pins"), "Brooches & Pins"),
    (("jewelry sets", "sets"), "Jewelry Sets"),
    (("body jewelry",), "Body Jewelry"),
)

DEFAULT_PRODUCT_TYPE = "Jewelry"

_TERM_SEPARATORS = re.compile(r"[\\/>|]")


def category_terms(segment: str) -> list[str]:
    """Lowercased, trimmed path terms of one category segment, in path order."""
    clean = segment.strip().lower().replace("\\", "")
    return [t.strip() for t in _TERM_SEPARATORS.split(clean) if t.strip()]


def match_term(term: str) -> str | None:
    """Exact keyword match first, then substring containment in table order."""
    if term in _EXACT:
        return _EXACT[term]
    for keyword, category_id in CATEGORY_KEYWORDS:
        if keyword in term or term in keyword:
            return category_id
    return None


def match_segment(segment: str) -> str | None:
    for term in reversed(category_terms(segment)):
        category_id = match_term(term)
        if category_id is not None:
            return category_id
    return None


def resolve_category(categories: str | None) -> str:
    """Map a ``;``-separated category path list to a category id."""
    if not categories or not categories.strip():
        return DEFAULT_CATEGORY

    for segment in categories.split(";"):
        category_id = match_segment(segment)
        if category_id is not None:
            return category_id

    whole = categories.lower().replace("\\", "")
    for keyword, category_id in CATEGORY_KEYWORDS:
        if keyword in whole:
            return category_id
    return DEFAULT_CATEGORY


def derive_product_type(categories: str | None) -> str:
    if not categories:
        return DEFAULT_PRODUCT_TYPE
    first = categories.split(";")[0].lower()
    for keywords, product_type in PRODUCT_TYPE_RULES:
        if any(k in first for k in keywords):
            return product_type
    return DEFAULT_PRODUCT_TYPE
