"""
Automation session lifecycle for gatedfeed.

A Session is one launched browser with one context. It is leased for a fixed
time: if the caller never closes it, the lease task closes it when the lease
runs out. Navigations against a session go through its TabPool, so a
session with max_tabs=1 never has two page loads in flight on one tab.

Features:
- Playwright launch with executable path, headful/headless, extra args
- Init-script plugins (stealth) applied to the browser context
- Lease-based auto-expiry via a cancellable asyncio task
- Idempotent close, safe from any task including the lease itself
- navigate_and_render: bounded page load, then the challenge gate
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from gatedfeed.crawler.challenge_gate import ChallengeGate, click_turnstile
from gatedfeed.crawler.render_provider import FetchTarget, LaunchConfig
from gatedfeed.crawler.tab_pool import TabPool
from gatedfeed.utils.config import Settings, get_settings
from gatedfeed.utils.errors import (
    GatedFeedError,
    NavigationError,
    NavigationTimeout,
    SessionClosed,
    SessionUnavailable,
)
from gatedfeed.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright

logger = get_logger(__name__)


# =============================================================================
# Launch plugins
# =============================================================================

# Hides the most common automation markers from page scripts
STEALTH_JS = """
(() => {
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined,
        configurable: true
    });

    if (!window.chrome) {
        window.chrome = {};
    }
    if (!window.chrome.runtime) {
        window.chrome.runtime = {};
    }

    const originalQuery = navigator.permissions?.query?.bind(navigator.permissions);
    if (originalQuery) {
        navigator.permissions.query = (parameters) => {
            if (parameters.name === 'notifications') {
                return Promise.resolve({ state: Notification.permission });
            }
            return originalQuery(parameters);
        };
    }

    delete window.__playwright;
    delete window.__pw_manual;
})();
"""

PLUGIN_SCRIPTS: dict[str, str] = {
    "stealth": STEALTH_JS,
}


async def apply_plugins(context: BrowserContext, plugins: tuple[str, ...]) -> list[str]:
    """Add the init scripts named in plugins to a browser context.

    Returns:
        Names of the plugins that were applied.
    """
    applied = []
    for name in plugins:
        script = PLUGIN_SCRIPTS.get(name)
        if script is None:
            logger.warning("Unknown launch plugin skipped", plugin=name)
            continue
        await context.add_init_script(script)
        applied.append(name)
    return applied


# =============================================================================
# Session handle and launcher
# =============================================================================


@dataclass
class SessionHandle:
    """Opaque reference to the launched automation resources."""

    context: BrowserContext
    browser: Browser | None = None
    playwright: Playwright | None = None

    async def close(self) -> None:
        """Release context, browser and driver, in that order."""
        for label, closer in (
            ("context", self.context.close if self.context is not None else None),
            ("browser", self.browser.close if self.browser is not None else None),
            ("playwright", self.playwright.stop if self.playwright is not None else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.debug("Error releasing session resource", resource=label, error=str(e))


Launcher = Callable[[LaunchConfig], Awaitable[SessionHandle]]


async def playwright_launcher(config: LaunchConfig) -> SessionHandle:
    """Launch Chromium through Playwright according to config."""
    from playwright.async_api import async_playwright

    pw = await async_playwright().start()
    try:
        browser = await pw.chromium.launch(
            executable_path=config.executable_path,
            headless=config.headless,
            args=list(config.args),
        )
        if config.viewport:
            context = await browser.new_context(viewport=config.viewport)
        else:
            context = await browser.new_context(no_viewport=True)
        await apply_plugins(context, config.plugins)
    except Exception:
        await pw.stop()
        raise

    logger.info(
        "Browser launched",
        headless=config.headless,
        executable_path=config.executable_path,
    )
    return SessionHandle(context=context, browser=browser, playwright=pw)


# =============================================================================
# Session
# =============================================================================


@dataclass
class Session:
    """
    One live automation session, owned by SessionManager.

    Attributes:
        handle: Launched automation resources.
        created_at: Open time (UTC).
        expiry: Time at which the lease closes the session.
        pool: Navigable surfaces of this session.
        gate: Challenge gate used after every page load.
    """

    handle: SessionHandle
    created_at: datetime
    expiry: datetime
    pool: TabPool
    gate: ChallengeGate
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    closed: bool = False
    lease: asyncio.Task[None] | None = field(default=None, repr=False)
    _closing: asyncio.Future[None] | None = field(default=None, repr=False)

    @property
    def is_expired(self) -> bool:
        return datetime.now(UTC) >= self.expiry

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "expiry": self.expiry.isoformat(),
            "closed": self.closed,
            "pool": self.pool.get_stats(),
        }


class SessionManager:
    """Opens, drives and closes automation sessions.

    Example:
        manager = SessionManager.from_settings()
        session = await manager.open(LaunchConfig.from_settings(settings.browser))
        try:
            html = await manager.navigate_and_render(
                session, FetchTarget(url, "article")
            )
        finally:
            await manager.close(session)
    """

    def __init__(
        self,
        launcher: Launcher | None = None,
        *,
        session_ttl: float = 120.0,
        navigation_timeout: float = 60.0,
        challenge_budget: float = 60.0,
        challenge_interval: float = 1.0,
        acquire_timeout: float = 120.0,
    ) -> None:
        self._launcher = launcher or playwright_launcher
        self._session_ttl = session_ttl
        self._navigation_timeout = navigation_timeout
        self._challenge_budget = challenge_budget
        self._challenge_interval = challenge_interval
        self._acquire_timeout = acquire_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        launcher: Launcher | None = None,
    ) -> SessionManager:
        browser = (settings or get_settings()).browser
        return cls(
            launcher,
            session_ttl=browser.session_ttl,
            navigation_timeout=browser.navigation_timeout,
            challenge_budget=browser.challenge_budget,
            challenge_interval=browser.challenge_interval,
            acquire_timeout=browser.acquire_timeout,
        )

    async def open(self, config: LaunchConfig) -> Session:
        """Launch a session and arm its lease.

        Raises:
            SessionUnavailable: If the browser could not be launched.
        """
        try:
            handle = await self._launcher(config)
        except Exception as e:
            logger.error("Session launch failed", error=str(e))
            raise SessionUnavailable(
                f"Could not launch automation session: {e}",
                details={"launch_config": config.to_dict()},
            ) from e

        now = datetime.now(UTC)
        session = Session(
            handle=handle,
            created_at=now,
            expiry=now + timedelta(seconds=self._session_ttl),
            pool=TabPool(max_tabs=config.max_tabs, acquire_timeout=self._acquire_timeout),
            gate=ChallengeGate(
                interval=self._challenge_interval,
                solver=click_turnstile if config.solve_challenges else None,
            ),
        )
        session.lease = asyncio.create_task(self._expire_after(session, self._session_ttl))

        logger.info(
            "Session opened",
            session_id=session.id,
            ttl_s=self._session_ttl,
            max_tabs=config.max_tabs,
        )
        return session

    async def _expire_after(self, session: Session, ttl: float) -> None:
        await asyncio.sleep(ttl)
        if not session.closed:
            logger.warning("Session lease expired, closing", session_id=session.id, ttl_s=ttl)
            await self.close(session)

    async def navigate_and_render(
        self,
        session: Session,
        target: FetchTarget,
        challenge_budget: float | None = None,
    ) -> str:
        """Load target in a tab of the session and return the rendered markup.

        The markup is returned even when the readiness selector never
        resolved; the challenge gate only bounds how long we wait for it.

        Args:
            session: Open session.
            target: URL and readiness selector.
            challenge_budget: Seconds to wait for readiness (default from settings).

        Raises:
            SessionClosed: If the session is closed before or during the call.
            NavigationTimeout: If the page load exceeds its deadline.
            NavigationError: If the page load fails otherwise.
        """
        if session.closed:
            raise SessionClosed("Session is closed", details={"session_id": session.id})

        budget = self._challenge_budget if challenge_budget is None else challenge_budget
        tab = await session.pool.acquire(session.handle.context)
        try:
            try:
                await asyncio.wait_for(
                    tab.goto(
                        target.url,
                        timeout=int(self._navigation_timeout * 1000),
                        wait_until="domcontentloaded",
                    ),
                    timeout=self._navigation_timeout,
                )
            except (PlaywrightTimeoutError, TimeoutError) as e:
                raise NavigationTimeout(
                    f"Navigation exceeded {self._navigation_timeout}s",
                    details={"url": target.url},
                ) from e

            ready = await session.gate.wait_until_ready(tab, target.readiness_selector, budget)
            html = await tab.content()
        except GatedFeedError:
            if session.closed:
                raise SessionClosed("Session closed during navigation") from None
            raise
        except Exception as e:
            if session.closed:
                raise SessionClosed("Session closed during navigation") from e
            raise NavigationError(f"Navigation failed: {e}", details={"url": target.url}) from e
        finally:
            session.pool.release(tab)

        logger.info(
            "Page rendered",
            url=target.url[:120],
            ready=ready,
            content_length=len(html),
            session_id=session.id,
        )
        return html

    async def close(self, session: Session) -> None:
        """Close a session and release everything it holds.

        Idempotent: later calls wait for the first close to finish.
        """
        if session._closing is None:
            session.closed = True
            lease = session.lease
            if lease is not None and not lease.done() and lease is not asyncio.current_task():
                lease.cancel()
            session._closing = asyncio.ensure_future(self._release(session))
        await asyncio.shield(session._closing)

    async def _release(self, session: Session) -> None:
        await session.pool.close()
        await session.handle.close()
        logger.info("Session closed", session_id=session.id)
