"""
gatedfeed crawler module.

Provides the two render backends (local automation session and remote
rendering service) and the challenge gate they rely on.
"""

from gatedfeed.crawler.challenge_gate import (
    ChallengeGate,
    click_turnstile,
    detect_challenge_type,
    is_challenge_page,
)
from gatedfeed.crawler.remote_fetch import RemoteFetchClient
from gatedfeed.crawler.render_provider import (
    FetchTarget,
    LaunchConfig,
    LocalSessionRenderer,
    Renderer,
)
from gatedfeed.crawler.session import (
    Session,
    SessionHandle,
    SessionManager,
    playwright_launcher,
)
from gatedfeed.crawler.tab_pool import TabPool

__all__ = [
    "ChallengeGate",
    "FetchTarget",
    "LaunchConfig",
    "LocalSessionRenderer",
    "RemoteFetchClient",
    "Renderer",
    "Session",
    "SessionHandle",
    "SessionManager",
    "TabPool",
    "click_turnstile",
    "detect_challenge_type",
    "is_challenge_page",
    "playwright_launcher",
]
