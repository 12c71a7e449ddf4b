"""
Site profile configuration.

Loads and validates per-site selector rules from config/sites.yaml.

Design Philosophy:
- Selectors are data, not code: supporting a new site means adding a profile
- Every field is an ordered rule chain; the first rule yielding a value wins
- Listing item selection falls back to a generic selector chain for sites
  whose markup has no stable class names
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any
from urllib.parse import urljoin
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gatedfeed.utils.config import get_config_dir, load_yaml_with_local_override
from gatedfeed.utils.errors import ConfigurationError
from gatedfeed.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Pydantic Schema Models
# =============================================================================


class FieldRule(BaseModel):
    """Where to read one field: text of the first match, or one of its attributes."""

    model_config = ConfigDict(frozen=True)

    selector: str = Field(..., description="CSS selector relative to the item node")
    attr: str | None = Field(default=None, description="Attribute to read instead of text")

    @field_validator("selector")
    @classmethod
    def validate_selector(cls, v: str) -> str:
        """Ensure selector is not empty."""
        if not v.strip():
            raise ValueError("Selector cannot be empty")
        return v.strip()


def _as_rule_chain(v: Any) -> list[Any]:
    """Accept "sel", {"selector": ...} or a list of either."""
    if v is None:
        return []
    if isinstance(v, (str, dict, FieldRule)):
        v = [v]
    return [{"selector": item} if isinstance(item, str) else item for item in v]


class ListingRules(BaseModel):
    """Selectors for a listing page."""

    readiness_selector: str
    item_selectors: list[str] = Field(..., min_length=1)
    use_fallback_chain: bool = True
    max_items: int | None = Field(
        default=None, ge=1, description="Candidate cap; pipeline.max_items when unset"
    )

    title: list[FieldRule] = Field(..., min_length=1)
    link: list[FieldRule] = Field(..., min_length=1)
    summary: list[FieldRule] = Field(default_factory=list)
    date: list[FieldRule] = Field(default_factory=list)
    category: list[FieldRule] = Field(default_factory=list)
    image: list[FieldRule] = Field(default_factory=list)
    author: list[FieldRule] = Field(default_factory=list)

    @field_validator("title", "link", "summary", "date", "category", "image", "author", mode="before")
    @classmethod
    def parse_rules(cls, v: Any) -> list[Any]:
        return _as_rule_chain(v)


class DetailRules(BaseModel):
    """Selectors and removal rules for a detail page."""

    readiness_selector: str
    content_selector: str
    remove_selectors: list[str] = Field(default_factory=list)
    remove_link_patterns: list[str] = Field(
        default_factory=list,
        description="Links whose href contains one of these substrings are removed",
    )
    date_selector: str | None = None
    author_selector: str | None = None
    category_selector: str | None = None


class SiteProfile(BaseModel):
    """Everything needed to turn one site's pages into feed records."""

    name: str
    base_url: str
    path_template: str = "/{param}"
    default_param: str = ""
    title_template: str = "{page_title}"
    page_title_selector: str | None = None
    default_page_title: str = ""
    description: str = ""
    language: str = "en"
    timezone: str = "UTC"

    listing: ListingRules
    detail: DetailRules

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an absolute http(s) URL")
        return v.rstrip("/")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    def resolve_param(self, param: str | None) -> str:
        """Apply the default when param is empty.

        The default may contain {current_year}.
        """
        value = (param or "").strip().strip("/")
        if not value:
            value = self.default_param.format(current_year=datetime.now().year)
        return value

    def resolve_url(self, param: str | None) -> str:
        """Build the absolute listing URL for param."""
        return self.base_url + self.path_template.format(param=self.resolve_param(param))

    def absolute_url(self, href: str | None) -> str | None:
        """Normalize an href found on this site to an absolute http(s) URL."""
        if not href:
            return None
        href = href.strip()
        if not href or href.startswith(("javascript:", "mailto:", "#")):
            return None
        if href.startswith(("http://", "https://")):
            return href
        return urljoin(self.base_url + "/", href)

    def feed_title(self, param: str, page_title: str) -> str:
        return self.title_template.format(
            param=param,
            page_title=page_title or self.default_page_title,
        )


class SiteProfilesSchema(BaseModel):
    """Root schema for sites.yaml."""

    sites: dict[str, SiteProfile] = Field(default_factory=dict)

    @field_validator("sites", mode="before")
    @classmethod
    def inject_names(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {
                name: {"name": name, **data} if isinstance(data, dict) else data
                for name, data in v.items()
            }
        return v


# =============================================================================
# Registry
# =============================================================================


@lru_cache(maxsize=1)
def load_site_profiles() -> dict[str, SiteProfile]:
    """Load all site profiles from sites.yaml (plus local.yaml 'sites' overrides).

    sites.yaml maps profile names to profile bodies at the top level.
    """
    data = load_yaml_with_local_override(get_config_dir(), "sites.yaml", "sites")
    try:
        schema = SiteProfilesSchema(sites=data)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid site profile configuration",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e
    logger.debug("Loaded site profiles", sites=sorted(schema.sites))
    return schema.sites


def get_site_profile(name: str) -> SiteProfile:
    """Get a site profile by name.

    Raises:
        ConfigurationError: If no profile with that name exists.
    """
    profiles = load_site_profiles()
    profile = profiles.get(name.lower())
    if profile is None:
        raise ConfigurationError(
            f"Unknown site profile: {name}",
            details={"available": sorted(profiles)},
        )
    return profile


def list_site_profiles() -> list[str]:
    return sorted(load_site_profiles())


def reset_site_profiles() -> None:
    """Drop cached profiles (for testing only)."""
    load_site_profiles.cache_clear()
