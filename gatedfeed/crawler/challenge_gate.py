"""
Challenge gate for rendered pages.

Waits out a client-side verification challenge by polling the live document
for a content-readiness selector. The gate makes no assumption about how the
challenge works; it only observes whether real content has appeared.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from gatedfeed.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = get_logger(__name__)

# Resolves to true when the selector matches, null otherwise
READY_PROBE_JS = "(sel) => (document.querySelector(sel) ? true : null)"

TURNSTILE_FRAME_HOST = "challenges.cloudflare.com"

ChallengeSolver = Callable[["Page"], Awaitable[bool]]


def is_challenge_page(content: str) -> bool:
    """Check if markup is a challenge/captcha interstitial.

    Uses patterns that indicate an active challenge rather than a page that
    merely mentions one.

    Args:
        content: Page markup.

    Returns:
        True if challenge detected.
    """
    content_lower = content.lower()

    cloudflare_challenge_indicators = [
        "cf-browser-verification",
        "_cf_chl_opt",
        "checking your browser before accessing",
        "please wait while we verify your browser",
        "ray id:</strong>",
    ]
    if any(ind in content_lower for ind in cloudflare_challenge_indicators):
        return True

    if "just a moment" in content_lower and (
        "cloudflare" in content_lower or "_cf_" in content_lower
    ):
        return True

    active_captcha_indicators = [
        'src="https://hcaptcha.com',
        'src="https://www.hcaptcha.com',
        "data-sitekey=",
        'class="h-captcha"',
        'class="g-recaptcha"',
        'class="cf-turnstile"',
        "challenges.cloudflare.com/turnstile",
    ]
    return any(ind in content_lower for ind in active_captcha_indicators)


def detect_challenge_type(content: str) -> str | None:
    """Detect the type of challenge shown in markup.

    Args:
        content: Page markup.

    Returns:
        Challenge type string, or None if the markup is not a challenge page.
    """
    if not is_challenge_page(content):
        return None

    content_lower = content.lower()

    if 'class="cf-turnstile"' in content_lower or "challenges.cloudflare.com/turnstile" in content_lower:
        return "turnstile"
    if 'src="https://hcaptcha.com' in content_lower or 'class="h-captcha"' in content_lower:
        return "hcaptcha"
    if 'class="g-recaptcha"' in content_lower:
        return "recaptcha"
    if "data-sitekey=" in content_lower:
        if "hcaptcha" in content_lower:
            return "hcaptcha"
        if "recaptcha" in content_lower:
            return "recaptcha"
        return "captcha"
    if "just a moment" in content_lower and "cloudflare" in content_lower:
        return "js_challenge"
    return "cloudflare"


async def click_turnstile(page: Page) -> bool:
    """Click the checkbox of an embedded Turnstile widget, if one is shown.

    The widget lives in a cross-origin iframe, so the click is issued at the
    checkbox position of the iframe's bounding box.

    Returns:
        True if a click was issued.
    """
    for frame in page.frames:
        if TURNSTILE_FRAME_HOST not in (frame.url or ""):
            continue
        element = await frame.frame_element()
        box = await element.bounding_box()
        if not box:
            continue
        await page.mouse.click(box["x"] + 30, box["y"] + box["height"] / 2)
        logger.debug("Clicked Turnstile widget", frame_url=frame.url[:80])
        return True
    return False


class ChallengeGate:
    """Polls a loaded page until its readiness selector resolves.

    Example:
        gate = ChallengeGate(interval=1.0)
        ready = await gate.wait_until_ready(page, "article.jeg_post", budget=60)
        html = await page.content()  # best effort even when ready is False

    Args:
        interval: Seconds between evaluation attempts.
        solver: Optional coroutine run after every non-ready evaluation,
            e.g. click_turnstile.
    """

    def __init__(
        self,
        interval: float = 1.0,
        solver: ChallengeSolver | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._solver = solver

    @property
    def interval(self) -> float:
        return self._interval

    async def wait_until_ready(self, surface: Page, selector: str, budget: float) -> bool:
        """Wait for selector to resolve against the live document.

        At least one evaluation is always made. An evaluation that raises or
        outlives the remaining budget counts as a non-match.

        Args:
            surface: Loaded page.
            selector: Readiness selector.
            budget: Time budget in seconds.

        Returns:
            True once the selector resolves, False when the budget elapses.
        """
        start = time.monotonic()
        deadline = start + max(0.0, budget)
        attempts = 0

        while True:
            attempts += 1
            if await self._probe(surface, selector, deadline):
                logger.debug(
                    "Readiness selector resolved",
                    selector=selector,
                    attempts=attempts,
                    elapsed_s=round(time.monotonic() - start, 2),
                )
                return True

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            if self._solver is not None:
                try:
                    await self._solver(surface)
                except Exception as e:
                    logger.debug("Challenge solver attempt failed", error=str(e))

            await asyncio.sleep(min(self._interval, max(0.0, deadline - time.monotonic())))

        await self._log_timeout(surface, selector, attempts, budget)
        return False

    async def _probe(self, surface: Page, selector: str, deadline: float) -> bool:
        timeout = max(deadline - time.monotonic(), 0.001)
        try:
            result = await asyncio.wait_for(
                surface.evaluate(READY_PROBE_JS, selector),
                timeout=timeout,
            )
        except Exception as e:
            # Typically the page navigated away mid-poll
            logger.debug("Readiness probe failed", selector=selector, error=str(e))
            return False
        return bool(result)

    async def _log_timeout(
        self,
        surface: Page,
        selector: str,
        attempts: int,
        budget: float,
    ) -> None:
        challenge_type = None
        try:
            challenge_type = detect_challenge_type(await surface.content())
        except Exception as e:
            logger.debug("Could not read page after challenge wait", error=str(e))

        logger.warning(
            "Readiness selector not found within budget",
            selector=selector,
            attempts=attempts,
            budget_s=budget,
            challenge_type=challenge_type,
        )
