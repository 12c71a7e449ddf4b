"""
Record types produced by extraction.

ListingRecord comes from a listing page, DetailEnrichment from the detail
page it links to, and FeedItem is the finalized merge of both that is
cached and handed to feed serialization.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ListingRecord:
    """A candidate item found on a listing page.

    Attributes:
        title: Non-empty item title.
        link: Absolute URL of the detail page; identity key for caching.
        summary: Plain-text teaser, may be empty.
        published_at: Publication time, if the listing shows one.
        category_tags: Categories shown on the listing.
        image_url: Absolute thumbnail URL.
        author: Author shown on the listing.
    """

    title: str
    link: str
    summary: str = ""
    published_at: datetime | None = None
    category_tags: tuple[str, ...] | None = None
    image_url: str | None = None
    author: str | None = None


@dataclass(frozen=True)
class DetailEnrichment:
    """Fields recovered from a detail page.

    Every field is optional; a missing field leaves the listing value as is.
    """

    full_content_markup: str | None = None
    published_at: datetime | None = None
    author: str | None = None
    category_tags: tuple[str, ...] | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.full_content_markup is None
            and self.published_at is None
            and self.author is None
            and self.category_tags is None
        )


@dataclass(frozen=True)
class FeedItem:
    """Finalized record handed to feed serialization."""

    title: str
    link: str
    description: str = ""
    pub_date: datetime | None = None
    category: tuple[str, ...] | None = None
    image: str | None = None
    author: str | None = None

    @classmethod
    def from_listing(
        cls,
        listing: ListingRecord,
        enrichment: DetailEnrichment | None = None,
    ) -> FeedItem:
        """Merge a listing record with its detail enrichment."""
        enrichment = enrichment or DetailEnrichment()
        return cls(
            title=listing.title,
            link=listing.link,
            description=enrichment.full_content_markup or listing.summary,
            pub_date=enrichment.published_at or listing.published_at,
            category=enrichment.category_tags or listing.category_tags,
            image=listing.image_url,
            author=enrichment.author or listing.author,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting absent optional fields."""
        result: dict[str, Any] = {
            "title": self.title,
            "link": self.link,
            "description": self.description,
        }
        if self.pub_date is not None:
            result["pubDate"] = self.pub_date.isoformat()
        if self.category:
            result["category"] = list(self.category)
        if self.image:
            result["image"] = self.image
        if self.author:
            result["author"] = self.author
        return result
