"""
Feed pipeline.

One run turns a site profile and a path parameter into a FeedResult:

    IDLE -> SESSION_ACQUIRING -> LISTING_FETCHING -> EXTRACTING
         -> DETAIL_FETCHING -> ASSEMBLING -> SESSION_RELEASING -> DONE

FAILED is entered from SESSION_ACQUIRING (no usable backend) and from
LISTING_FETCHING (no listing markup). An opened session is always closed
before a failure is raised. Detail fetches are independent; a failed one
degrades its record to the listing fields.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from gatedfeed.cache.coordinator import FetchCoordinator
from gatedfeed.cache.store import MemoryCacheStore
from gatedfeed.crawler.remote_fetch import RemoteFetchClient
from gatedfeed.crawler.render_provider import (
    FetchTarget,
    LaunchConfig,
    LocalSessionRenderer,
    Renderer,
)
from gatedfeed.crawler.session import Session, SessionManager
from gatedfeed.extractor.markup import extract_detail, extract_listing, extract_page_title
from gatedfeed.extractor.records import DetailEnrichment, FeedItem, ListingRecord
from gatedfeed.extractor.site_profile import SiteProfile
from gatedfeed.utils.config import Settings, get_settings
from gatedfeed.utils.errors import (
    ConfigurationError,
    FetchError,
    GatedFeedError,
    SessionUnavailable,
)
from gatedfeed.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class PipelineState(str, Enum):
    """Pipeline run states."""

    IDLE = "idle"
    SESSION_ACQUIRING = "session_acquiring"
    LISTING_FETCHING = "listing_fetching"
    EXTRACTING = "extracting"
    DETAIL_FETCHING = "detail_fetching"
    ASSEMBLING = "assembling"
    SESSION_RELEASING = "session_releasing"
    DONE = "done"
    FAILED = "failed"


class BackendKind(str, Enum):
    """Fetch backend chosen for a pipeline."""

    LOCAL_SESSION = "local_session"
    REMOTE_SERVICE = "remote_service"


@dataclass
class FeedResult:
    """Feed metadata plus finalized items, ready for serialization."""

    title: str
    link: str
    description: str = ""
    language: str = ""
    items: list[FeedItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "title": self.title,
            "link": self.link,
            "description": self.description,
            "language": self.language,
            "item": [item.to_dict() for item in self.items],
        }


_shared_coordinator: FetchCoordinator[FeedItem] | None = None


def get_coordinator(settings: Settings | None = None) -> FetchCoordinator[FeedItem]:
    """Get the process-wide detail coordinator (created on first use)."""
    global _shared_coordinator
    if _shared_coordinator is None:
        cache = (settings or get_settings()).cache
        _shared_coordinator = FetchCoordinator(
            MemoryCacheStore(max_entries=cache.max_entries),
            ttl=cache.ttl,
        )
    return _shared_coordinator


def reset_coordinator() -> None:
    """Drop the shared coordinator and its cache (for testing only)."""
    global _shared_coordinator
    _shared_coordinator = None


class Pipeline:
    """Runs one site profile end to end.

    The backend is chosen when the pipeline is built: a local automation
    session when browser.executable_path is set, otherwise the remote
    rendering service when remote.service_url is set. With neither, run()
    fails with ConfigurationError before any network activity.

    Example:
        pipeline = Pipeline(get_site_profile("blocktempo"))
        result = await pipeline.run("2026")
    """

    def __init__(
        self,
        profile: SiteProfile,
        settings: Settings | None = None,
        *,
        session_manager: SessionManager | None = None,
        remote_client: RemoteFetchClient | None = None,
        coordinator: FetchCoordinator[FeedItem] | None = None,
    ) -> None:
        self._profile = profile
        self._settings = settings or get_settings()
        self._session_manager = session_manager
        self._remote_client = remote_client
        self._owns_remote_client = False
        self._coordinator = coordinator or get_coordinator(self._settings)

        self._backend = self._select_backend()
        self._state = PipelineState.IDLE
        self._history: list[PipelineState] = [PipelineState.IDLE]
        self._session: Session | None = None

    def _select_backend(self) -> BackendKind | None:
        if self._settings.browser.executable_path:
            return BackendKind.LOCAL_SESSION
        if self._remote_client is not None or self._settings.remote.service_url:
            return BackendKind.REMOTE_SERVICE
        return None

    @property
    def backend(self) -> BackendKind | None:
        return self._backend

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> list[PipelineState]:
        return list(self._history)

    def _transition_to(self, new_state: PipelineState) -> None:
        old_state = self._state
        self._state = new_state
        self._history.append(new_state)
        logger.debug("Pipeline state change", from_state=old_state.value, to_state=new_state.value)

    async def run(self, param: str | None = None) -> FeedResult:
        """Fetch, extract and enrich one listing.

        Args:
            param: Path parameter (category path or year); profile default if empty.

        Returns:
            FeedResult with items in listing order.

        Raises:
            ConfigurationError: If no fetch backend is configured.
            FetchError: If the listing markup could not be obtained.
        """
        if self._state != PipelineState.IDLE:
            raise RuntimeError("Pipeline instances run once")

        resolved = self._profile.resolve_param(param)
        url = self._profile.resolve_url(resolved)

        with LogContext(site=self._profile.name, param=resolved):
            try:
                renderer, budget = await self._acquire_renderer()
                markup = await self._fetch_listing(renderer, url, budget)

                self._transition_to(PipelineState.EXTRACTING)
                records = extract_listing(
                    markup,
                    self._profile,
                    max_items=self._profile.listing.max_items
                    or self._settings.pipeline.max_items,
                )
                page_title = extract_page_title(markup, self._profile)

                self._transition_to(PipelineState.DETAIL_FETCHING)
                items = await self._enrich_all(renderer, records, budget)

                self._transition_to(PipelineState.ASSEMBLING)
                result = FeedResult(
                    title=self._profile.feed_title(resolved, page_title),
                    link=url,
                    description=self._profile.description,
                    language=self._profile.language,
                    items=items,
                )

                self._transition_to(PipelineState.SESSION_RELEASING)
                await self._release()
                self._transition_to(PipelineState.DONE)
            except BaseException as e:
                await self._release()
                self._transition_to(PipelineState.FAILED)
                if isinstance(e, GatedFeedError):
                    logger.error(
                        "Pipeline failed", url=url, error_code=e.code.value, error=e.message
                    )
                raise

        logger.info("Pipeline done", url=url, items=len(result.items), backend=self._backend.value)
        return result

    async def _acquire_renderer(self) -> tuple[Renderer, float]:
        self._transition_to(PipelineState.SESSION_ACQUIRING)

        if self._backend is None:
            raise ConfigurationError(
                "No fetch backend configured: set browser.executable_path "
                "or remote.service_url"
            )

        if self._backend == BackendKind.REMOTE_SERVICE:
            if self._remote_client is None:
                self._remote_client = RemoteFetchClient.from_settings(self._settings)
                self._owns_remote_client = True
            return self._remote_client, self._settings.remote.timeout

        if self._session_manager is None:
            self._session_manager = SessionManager.from_settings(self._settings)
        try:
            self._session = await self._session_manager.open(
                LaunchConfig.from_settings(self._settings.browser)
            )
        except SessionUnavailable as e:
            raise FetchError(
                "Listing could not be fetched: no automation session",
                details={"cause": e.to_dict()},
            ) from e
        renderer = LocalSessionRenderer(self._session_manager, self._session)
        return renderer, self._settings.browser.challenge_budget

    async def _fetch_listing(self, renderer: Renderer, url: str, budget: float) -> str:
        self._transition_to(PipelineState.LISTING_FETCHING)
        target = FetchTarget(url=url, readiness_selector=self._profile.listing.readiness_selector)
        markup = await renderer.render(target, budget)
        if not markup:
            raise FetchError(
                "Listing could not be fetched",
                details={"url": url, "backend": renderer.name},
            )
        logger.info("Listing fetched", url=url, content_length=len(markup), backend=renderer.name)
        return markup

    async def _enrich_all(
        self,
        renderer: Renderer,
        records: list[ListingRecord],
        budget: float,
    ) -> list[FeedItem]:
        results = await asyncio.gather(
            *(self._enrich(renderer, record, budget) for record in records),
            return_exceptions=True,
        )

        items = []
        for record, result in zip(records, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Detail enrichment failed", link=record.link, error=str(result))
                items.append(FeedItem.from_listing(record))
            else:
                items.append(result)
        return items

    async def _enrich(self, renderer: Renderer, record: ListingRecord, budget: float) -> FeedItem:
        async def compute() -> FeedItem:
            target = FetchTarget(
                url=record.link,
                readiness_selector=self._profile.detail.readiness_selector,
            )
            try:
                markup = await renderer.render(target, budget)
            except Exception as e:
                logger.warning("Detail fetch error", link=record.link, error=str(e))
                markup = ""

            enrichment = extract_detail(markup, self._profile) if markup else DetailEnrichment()
            if enrichment.is_empty:
                logger.debug("Detail degraded to listing fields", link=record.link)
            return FeedItem.from_listing(record, enrichment)

        return await self._coordinator.get_or_fetch(record.link, compute)

    async def _release(self) -> None:
        if self._session is not None and self._session_manager is not None:
            await self._session_manager.close(self._session)
        if self._owns_remote_client and self._remote_client is not None:
            await self._remote_client.close()
