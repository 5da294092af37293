"""
Catalog side: feed normalization, category taxonomy, and the catalog API client.
"""

from feedsync.catalog.client import CatalogClient
from feedsync.catalog.normalizer import normalize, parse_price, parse_weight_grams, slugify
from feedsync.catalog.taxonomy import derive_product_type, resolve_category

__all__ = [
    "CatalogClient",
    "derive_product_type",
    "normalize",
    "parse_price",
    "parse_weight_grams",
    "resolve_category",
    "slugify",
]
