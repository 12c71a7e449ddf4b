"""
Render provider abstraction layer for gatedfeed.

Both fetch backends, the local automation session and the remote rendering
service, expose the same capability: render a URL and return its markup,
or the empty string when nothing usable was obtained. The pipeline only
depends on the Renderer protocol and never on a concrete backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from gatedfeed.utils.config import BrowserConfig
from gatedfeed.utils.errors import GatedFeedError
from gatedfeed.utils.logging import get_logger

if TYPE_CHECKING:
    from gatedfeed.crawler.session import Session, SessionManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class FetchTarget:
    """What to render and which DOM signal proves it is past any challenge.

    Attributes:
        url: Absolute URL to render.
        readiness_selector: CSS selector that only resolves once real
            content is present.
    """

    url: str
    readiness_selector: str


@dataclass(frozen=True)
class LaunchConfig:
    """Options for launching one automation session.

    Attributes:
        executable_path: Browser binary to launch.
        headless: Run without a visible window.
        args: Extra command line arguments for the browser.
        solve_challenges: Try to click challenge widgets while waiting.
        viewport: Fixed viewport size, or None to follow the window size.
        plugins: Names of init scripts to add to every page.
        max_tabs: Navigable surfaces that may be used concurrently.
    """

    executable_path: str | None = None
    headless: bool = False
    args: tuple[str, ...] = ("--start-maximized",)
    solve_challenges: bool = True
    viewport: dict[str, int] | None = None
    plugins: tuple[str, ...] = field(default_factory=tuple)
    max_tabs: int = 1

    @classmethod
    def from_settings(cls, browser: BrowserConfig) -> LaunchConfig:
        """Build launch options from the browser settings section."""
        return cls(
            executable_path=browser.executable_path,
            headless=browser.headless,
            args=tuple(browser.args),
            solve_challenges=browser.solve_challenges,
            viewport=browser.viewport.model_dump() if browser.viewport else None,
            plugins=tuple(browser.plugins),
            max_tabs=browser.max_tabs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "executable_path": self.executable_path,
            "headless": self.headless,
            "args": list(self.args),
            "solve_challenges": self.solve_challenges,
            "viewport": self.viewport,
            "plugins": list(self.plugins),
            "max_tabs": self.max_tabs,
        }


@runtime_checkable
class Renderer(Protocol):
    """
    Protocol for fetch backends.

    Example implementation:
        class StaticRenderer:
            @property
            def name(self) -> str:
                return "static"

            async def render(self, target: FetchTarget, budget: float) -> str:
                return "<html>...</html>"
    """

    @property
    def name(self) -> str:
        """Unique name of the backend."""
        ...

    async def render(self, target: FetchTarget, budget: float) -> str:
        """
        Render a target and return its markup.

        Args:
            target: URL and readiness selector.
            budget: Hard deadline in seconds.

        Returns:
            Rendered markup, or "" when the fetch failed.
        """
        ...


class LocalSessionRenderer:
    """Renderer backed by one open local automation session.

    Every navigation failure, including use after the session was closed,
    is logged and mapped to the empty-string result.
    """

    def __init__(self, manager: SessionManager, session: Session) -> None:
        self._manager = manager
        self._session = session

    @property
    def name(self) -> str:
        return "local_session"

    @property
    def session(self) -> Session:
        return self._session

    async def render(self, target: FetchTarget, budget: float) -> str:
        try:
            return await self._manager.navigate_and_render(
                self._session, target, challenge_budget=budget
            )
        except GatedFeedError as e:
            logger.warning(
                "Local render failed",
                url=target.url[:120],
                error_code=e.code.value,
                error=e.message,
            )
            return ""
        except Exception as e:
            logger.error("Local render error", url=target.url[:120], error=str(e))
            return ""
