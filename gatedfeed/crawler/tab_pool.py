"""
Tab pool for one automation session.

A browser tab is one navigable surface: two navigations issued against the
same tab interleave their load and readiness state. The pool hands every
navigation exclusive use of a tab and queues the rest in FIFO order.

Design:
- At most max_tabs tabs are created, lazily, on demand
- Default max_tabs=1 serializes all navigations of a session
- Waiters are served in arrival order
- Closing the pool wakes every waiter with SessionClosed
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Any

from gatedfeed.utils.errors import NavigationTimeout, SessionClosed
from gatedfeed.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

logger = get_logger(__name__)


class TabPool:
    """Manages the tabs of one browser context.

    Example:
        pool = TabPool(max_tabs=1)
        tab = await pool.acquire(context)
        try:
            await tab.goto(url)
        finally:
            pool.release(tab)

    Args:
        max_tabs: Maximum number of concurrent tabs. 1 gives full serialization.
        acquire_timeout: Timeout in seconds for acquiring a tab.
    """

    def __init__(self, max_tabs: int = 1, acquire_timeout: float = 120.0) -> None:
        if max_tabs < 1:
            raise ValueError("max_tabs must be at least 1")

        self._max_tabs = max_tabs
        self._acquire_timeout = acquire_timeout

        self._tabs: list[Page] = []
        self._idle: deque[Page] = deque()
        # A released tab goes straight to the oldest waiter; None means closed
        self._waiters: deque[asyncio.Future[Page | None]] = deque()
        self._lock = asyncio.Lock()
        self._closed = False

        logger.debug("TabPool initialized", max_tabs=max_tabs)

    async def acquire(self, context: BrowserContext) -> Page:
        """Acquire a tab for exclusive use.

        Reuses an idle tab, creates a new one while under max_tabs, or waits
        in line for a tab to be released.

        Args:
            context: Browser context to create new tabs in.

        Returns:
            A Page for exclusive use until release().

        Raises:
            SessionClosed: If the pool is or becomes closed.
            NavigationTimeout: If acquire_timeout is exceeded.
        """
        if self._closed:
            raise SessionClosed("Session is closed")

        if self._idle:
            return self._idle.popleft()

        async with self._lock:
            if self._closed:
                raise SessionClosed("Session is closed")
            if len(self._tabs) < self._max_tabs:
                tab = await context.new_page()
                self._tabs.append(tab)
                logger.debug("Created new tab", tabs_count=len(self._tabs))
                return tab
            if self._idle:
                return self._idle.popleft()

        waiter: asyncio.Future[Page | None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            tab = await asyncio.wait_for(asyncio.shield(waiter), timeout=self._acquire_timeout)
        except TimeoutError as e:
            self._abandon(waiter)
            raise NavigationTimeout(
                f"No tab available within {self._acquire_timeout}s",
                details={"max_tabs": self._max_tabs},
            ) from e
        except asyncio.CancelledError:
            self._abandon(waiter)
            raise

        if tab is None:
            raise SessionClosed("Session closed while waiting for a tab")
        return tab

    def _abandon(self, waiter: asyncio.Future[Page | None]) -> None:
        """Leave the line; pass on a tab that was handed over too late."""
        if waiter in self._waiters:
            self._waiters.remove(waiter)
        if not waiter.done():
            waiter.cancel()
        elif waiter.result() is not None:
            self._hand_over(waiter.result())

    def _hand_over(self, tab: Page) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(tab)
                return
        self._idle.append(tab)

    def release(self, tab: Page) -> None:
        """Return a tab to the pool.

        Must be called after acquire() completes, typically in a finally block.
        The oldest waiter receives the tab directly. A tab that was closed
        underneath us is dropped so a fresh one can be created in its place.
        """
        if self._closed:
            return

        if tab.is_closed():
            if tab in self._tabs:
                self._tabs.remove(tab)
            logger.debug("Dropped closed tab", tabs_count=len(self._tabs))
            if self._waiters:
                # Let one waiter through; it will create a replacement tab
                asyncio.get_running_loop().create_task(self._replace_tab(tab))
            return

        self._hand_over(tab)
        logger.debug("Tab released", available=len(self._idle), waiters=len(self._waiters))

    async def _replace_tab(self, dead_tab: Page) -> None:
        async with self._lock:
            if self._closed or len(self._tabs) >= self._max_tabs:
                return
            try:
                tab = await dead_tab.context.new_page()
            except Exception as e:
                logger.warning("Could not replace closed tab", error=str(e))
                return
            self._tabs.append(tab)
        self._hand_over(tab)

    async def close(self) -> None:
        """Close all tabs and wake any waiters."""
        if self._closed:
            return
        self._closed = True

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

        async with self._lock:
            for tab in self._tabs:
                try:
                    if not tab.is_closed():
                        await tab.close()
                except Exception as e:
                    logger.debug("Error closing tab", error=str(e))
            self._tabs.clear()
            self._idle.clear()

        logger.debug("TabPool closed")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def max_tabs(self) -> int:
        """Maximum number of concurrent tabs."""
        return self._max_tabs

    @property
    def active_count(self) -> int:
        """Number of currently borrowed tabs."""
        return len(self._tabs) - len(self._idle)

    @property
    def total_count(self) -> int:
        """Total number of tabs created."""
        return len(self._tabs)

    def get_stats(self) -> dict[str, Any]:
        """Get pool statistics for monitoring."""
        return {
            "max_tabs": self._max_tabs,
            "total_tabs": len(self._tabs),
            "available_tabs": len(self._idle),
            "active_tabs": self.active_count,
            "waiters": len(self._waiters),
            "closed": self._closed,
        }
