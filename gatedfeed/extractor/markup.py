"""
Markup extraction for listing and detail pages.

Stateless: markup plus a SiteProfile in, records out. A selector that
matches nothing is never an error; it yields fewer records or omitted
fields.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from bs4 import BeautifulSoup, NavigableString, Tag

from gatedfeed.extractor.dates import normalize_date
from gatedfeed.extractor.records import DetailEnrichment, ListingRecord
from gatedfeed.extractor.site_profile import DetailRules, FieldRule, ListingRules, SiteProfile
from gatedfeed.utils.logging import get_logger

logger = get_logger(__name__)

DateNormalizer = Callable[[str, str], "datetime | None"]

# Tried in order after a profile's own item selectors
DEFAULT_ITEM_FALLBACKS = [
    "article",
    ".news-item",
    ".article-item",
    ".list-item",
    '[class*="news"]',
    '[class*="article"]',
]

ALWAYS_REMOVED = ["script", "style"]

DEFAULT_MAX_ITEMS = 20


# =============================================================================
# Selection helpers
# =============================================================================


def _select(context: BeautifulSoup | Tag, selector: str) -> list[Tag]:
    try:
        return context.select(selector)
    except Exception as e:
        logger.warning("Selector failed", selector=selector, error=str(e))
        return []


def _select_one(context: BeautifulSoup | Tag, selector: str) -> Tag | None:
    try:
        return context.select_one(selector)
    except Exception as e:
        logger.warning("Selector failed", selector=selector, error=str(e))
        return None


def _read(element: Tag, attr: str | None) -> str:
    """Text of element, or the value of one of its attributes."""
    if attr is None:
        return element.get_text().strip()
    value = element.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def first_value(node: BeautifulSoup | Tag, rules: list[FieldRule]) -> str:
    """Return the first non-empty value produced by a rule chain."""
    for rule in rules:
        element = _select_one(node, rule.selector)
        if element is None:
            continue
        value = _read(element, rule.attr)
        if value:
            return value
    return ""


def all_values(node: BeautifulSoup | Tag, rules: list[FieldRule]) -> list[str]:
    """Return every non-empty value of the first rule that yields any."""
    for rule in rules:
        values = [_read(el, rule.attr) for el in _select(node, rule.selector)]
        values = [v for v in values if v]
        if values:
            return values
    return []


def select_candidates(soup: BeautifulSoup, rules: ListingRules) -> tuple[str | None, list[Tag]]:
    """Find listing item nodes through the selector chain.

    The profile's own selectors come first; unless disabled, the generic
    fallback chain follows. The first selector with at least one match wins.

    Returns:
        Tuple of (winning selector or None, matched nodes in document order).
    """
    chain = list(rules.item_selectors)
    if rules.use_fallback_chain:
        chain += [s for s in DEFAULT_ITEM_FALLBACKS if s not in chain]

    for selector in chain:
        found = _select(soup, selector)
        if found:
            return selector, found
    return None, []


# =============================================================================
# Listing
# =============================================================================


def extract_listing(
    markup: str,
    profile: SiteProfile,
    normalizer: DateNormalizer = normalize_date,
    max_items: int | None = None,
) -> list[ListingRecord]:
    """Extract candidate records from listing markup.

    Only the first max_items candidates (document order) are considered;
    those without both a title and a link are dropped.

    Args:
        markup: Listing page markup.
        profile: Site profile.
        normalizer: Date normalizer (text, timezone) -> datetime | None.
        max_items: Candidate cap; defaults to the profile's cap, then 20.

    Returns:
        ListingRecords in document order.
    """
    if not markup:
        return []

    rules = profile.listing
    soup = BeautifulSoup(markup, "html.parser")
    selector, nodes = select_candidates(soup, rules)
    if selector is None:
        logger.warning("No listing items matched", site=profile.name)
        return []

    candidates = nodes[: max_items or rules.max_items or DEFAULT_MAX_ITEMS]
    records = []
    for node in candidates:
        title = first_value(node, rules.title)
        link = profile.absolute_url(first_value(node, rules.link))
        if not title or not link:
            continue

        date_text = first_value(node, rules.date)
        categories = all_values(node, rules.category)
        records.append(
            ListingRecord(
                title=title,
                link=link,
                summary=first_value(node, rules.summary),
                published_at=normalizer(date_text, profile.timezone) if date_text else None,
                category_tags=tuple(categories) if categories else None,
                image_url=profile.absolute_url(first_value(node, rules.image)),
                author=first_value(node, rules.author) or None,
            )
        )

    logger.info(
        "Listing extracted",
        site=profile.name,
        selector=selector,
        matched=len(nodes),
        candidates=len(candidates),
        records=len(records),
    )
    return records


def extract_page_title(markup: str, profile: SiteProfile) -> str:
    """Text of the profile's page title selector, or ""."""
    if not markup or not profile.page_title_selector:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    element = _select_one(soup, profile.page_title_selector)
    return element.get_text().strip() if element is not None else ""


# =============================================================================
# Detail
# =============================================================================


def strip_non_content(soup: BeautifulSoup, rules: DetailRules) -> int:
    """Remove ad blocks, widgets, scripts, styles and tracking links in place.

    Returns:
        Number of removed nodes.
    """
    removed = 0
    for selector in [*rules.remove_selectors, *ALWAYS_REMOVED]:
        for element in _select(soup, selector):
            if getattr(element, "decomposed", False):
                continue
            element.decompose()
            removed += 1

    if rules.remove_link_patterns:
        for anchor in _select(soup, "a[href]"):
            if getattr(anchor, "decomposed", False):
                continue
            href = str(anchor.get("href", ""))
            if any(pattern in href for pattern in rules.remove_link_patterns):
                anchor.decompose()
                removed += 1
    return removed


def collapse_whitespace(node: Tag) -> None:
    """Merge adjacent strings and shrink whitespace-only runs to one character.

    Removing nodes leaves the whitespace around them as separate strings;
    this makes the serialized markup stable across re-parsing.
    """
    node.smooth()
    for text in list(node.find_all(string=True)):
        if type(text) is NavigableString and not text.strip():
            collapsed = "\n" if "\n" in text else " "
            if text != collapsed:
                text.replace_with(collapsed)


def _extract_date(
    soup: BeautifulSoup,
    selector: str,
    timezone: str,
    normalizer: DateNormalizer,
) -> datetime | None:
    element = _select_one(soup, selector)
    if element is None:
        return None

    # Machine-readable attribute first, then the visible text
    for candidate in (_read(element, "datetime"), _read(element, None)):
        if candidate:
            parsed = normalizer(candidate, timezone)
            if parsed is not None:
                return parsed
    return None


def extract_detail(
    markup: str,
    profile: SiteProfile,
    normalizer: DateNormalizer = normalize_date,
) -> DetailEnrichment:
    """Extract enrichment fields from detail markup.

    Args:
        markup: Detail page markup.
        profile: Site profile.
        normalizer: Date normalizer (text, timezone) -> datetime | None.

    Returns:
        DetailEnrichment; empty when markup is empty or nothing matched.
    """
    if not markup:
        return DetailEnrichment()

    rules = profile.detail
    soup = BeautifulSoup(markup, "html.parser")
    removed = strip_non_content(soup, rules)

    content = None
    container = _select_one(soup, rules.content_selector)
    if container is not None:
        collapse_whitespace(container)
        content = container.decode_contents().strip() or None

    published_at = None
    if rules.date_selector:
        published_at = _extract_date(soup, rules.date_selector, profile.timezone, normalizer)

    author = None
    if rules.author_selector:
        author = first_value(soup, [FieldRule(selector=rules.author_selector)]) or None

    categories = None
    if rules.category_selector:
        values = all_values(soup, [FieldRule(selector=rules.category_selector)])
        categories = tuple(values) if values else None

    logger.debug(
        "Detail extracted",
        site=profile.name,
        removed_nodes=removed,
        has_content=content is not None,
        has_date=published_at is not None,
    )
    return DetailEnrichment(
        full_content_markup=content,
        published_at=published_at,
        author=author,
        category_tags=categories,
    )
