"""
Pytest fixtures and configuration for gatedfeed tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no external dependencies
  - All browser and HTTP traffic mocked
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Multiple components wired together, still mocked

- @pytest.mark.e2e: Real browser and network access
  - DEFAULT EXCLUDED: run with `pytest -m e2e`
  - Risk of being blocked by the target sites
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# Tests always read the repository's config directory
os.environ.setdefault("GATEDFEED_CONFIG_DIR", str(PROJECT_ROOT / "config"))


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line("markers", "unit: Unit tests with no external dependencies")
    config.addinivalue_line(
        "markers", "integration: Integration tests with mocked external dependencies"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests requiring a real browser (excluded by default)"
    )


def pytest_collection_modifyitems(config, items):
    """Default unmarked tests to unit and skip e2e unless selected."""
    markexpr = config.getoption("-m", default="")
    skip_e2e = pytest.mark.skip(reason="E2E tests skipped. Run with: pytest -m e2e")

    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)

        if "e2e" not in markexpr and any(m.name == "e2e" for m in item.iter_markers()):
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Drop cached settings, profiles and the shared coordinator around each test."""
    from gatedfeed.extractor.site_profile import reset_site_profiles
    from gatedfeed.pipeline import reset_coordinator
    from gatedfeed.utils.config import reset_settings

    reset_settings()
    reset_site_profiles()
    reset_coordinator()
    yield
    reset_settings()
    reset_site_profiles()
    reset_coordinator()


@pytest.fixture
def make_settings() -> Callable[..., Any]:
    """Build Settings from keyword sections, e.g. make_settings(remote={...})."""
    from gatedfeed.utils.config import Settings

    def _make(**sections: Any) -> Settings:
        return Settings(**sections)

    return _make


@pytest.fixture
def mock_page_factory() -> Callable[..., MagicMock]:
    """Create mock Playwright pages.

    Example:
        page = mock_page_factory(html="<article>x</article>", ready=True)
    """

    def _make(html: str = "<html></html>", ready: bool | None = True) -> MagicMock:
        page = MagicMock()
        page.is_closed.return_value = False
        page.close = AsyncMock()
        page.goto = AsyncMock(return_value=None)
        page.evaluate = AsyncMock(return_value=ready)
        page.content = AsyncMock(return_value=html)
        page.frames = []
        page.mouse = MagicMock()
        page.mouse.click = AsyncMock()
        return page

    return _make


@pytest.fixture
def mock_context_factory(
    mock_page_factory: Callable[..., MagicMock],
) -> Callable[..., MagicMock]:
    """Create mock BrowserContexts whose new_page() returns fresh mock pages."""

    def _make(**page_kwargs: Any) -> MagicMock:
        context = MagicMock()
        pages: list[MagicMock] = []

        async def new_page() -> MagicMock:
            page = mock_page_factory(**page_kwargs)
            page.context = context
            pages.append(page)
            return page

        context.new_page = new_page
        context.close = AsyncMock()
        context.add_init_script = AsyncMock()
        context._mock_pages = pages
        return context

    return _make


@pytest.fixture
def fake_launcher(mock_context_factory: Callable[..., MagicMock]) -> Callable[..., Any]:
    """Build a launcher returning SessionHandles over mock contexts."""
    from gatedfeed.crawler.session import SessionHandle

    def _make(**page_kwargs: Any) -> AsyncMock:
        async def launch(config: Any) -> SessionHandle:
            return SessionHandle(context=mock_context_factory(**page_kwargs))

        return AsyncMock(side_effect=launch)

    return _make


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"
