"""Date normalization for listing and detail pages."""

from __future__ import annotations

import re
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from dateutil import parser as dateparser

from gatedfeed.utils.logging import get_logger

logger = get_logger(__name__)

# 2026年1月15日 -> 2026-1-15
_CJK_DATE = re.compile(r"(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日")


def normalize_date(text: str | None, tz: str | tzinfo = "UTC") -> datetime | None:
    """Parse a site date string into a timezone-aware datetime.

    Naive results are interpreted in tz, the site's local timezone.

    Args:
        text: Date string as shown on the page, or a datetime attribute.
        tz: Timezone name or tzinfo for naive values.

    Returns:
        Aware datetime, or None if the string is empty or unparseable.
    """
    if not text:
        return None

    cleaned = " ".join(text.split())
    cleaned = _CJK_DATE.sub(r"\1-\2-\3", cleaned)
    if not cleaned:
        return None

    try:
        parsed = dateparser.parse(cleaned)
    except (ValueError, OverflowError) as e:
        logger.debug("Unparseable date", text=cleaned[:60], error=str(e))
        return None

    if parsed.tzinfo is None:
        zone = ZoneInfo(tz) if isinstance(tz, str) else tz
        parsed = parsed.replace(tzinfo=zone)
    return parsed
