"""
gatedfeed extractor module.

Turns rendered listing and detail markup into records, driven by
per-site selector profiles.
"""

from gatedfeed.extractor.dates import normalize_date
from gatedfeed.extractor.markup import (
    DEFAULT_ITEM_FALLBACKS,
    extract_detail,
    extract_listing,
    extract_page_title,
)
from gatedfeed.extractor.records import DetailEnrichment, FeedItem, ListingRecord
from gatedfeed.extractor.site_profile import (
    DetailRules,
    FieldRule,
    ListingRules,
    SiteProfile,
    get_site_profile,
    list_site_profiles,
    load_site_profiles,
)

__all__ = [
    "DEFAULT_ITEM_FALLBACKS",
    "DetailEnrichment",
    "DetailRules",
    "FeedItem",
    "FieldRule",
    "ListingRecord",
    "ListingRules",
    "SiteProfile",
    "extract_detail",
    "extract_listing",
    "extract_page_title",
    "get_site_profile",
    "list_site_profiles",
    "load_site_profiles",
    "normalize_date",
]
