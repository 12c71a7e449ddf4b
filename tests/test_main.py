"""
Tests for the command line entry point.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
import structlog

from gatedfeed.extractor.records import FeedItem
from gatedfeed.main import main
from gatedfeed.pipeline import FeedResult
from gatedfeed.utils.errors import FetchError

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep log lines out of the captured output."""
    structlog.configure(logger_factory=structlog.ReturnLoggerFactory())
    with patch("gatedfeed.main.configure_logging"):
        yield
    structlog.reset_defaults()


class TestMain:
    def test_sites(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["sites"]) == 0

        assert capsys.readouterr().out.split() == ["blocktempo", "ctee"]

    def test_run_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that `run --json` prints the feed.

        Given: A pipeline that returns one item
        When: main(["run", "ctee", "--param", "stock", "--json"]) runs
        Then: The feed is printed as JSON and the param reached the pipeline
        """
        # Given
        result = FeedResult(
            title="證券 - 工商時報",
            link="https://ctee.com.tw/stock",
            items=[FeedItem(title="台股收高", link="https://ctee.com.tw/news/1")],
        )
        run = AsyncMock(return_value=result)

        # When
        with patch("gatedfeed.main.Pipeline") as pipeline_cls:
            pipeline_cls.return_value.run = run
            code = main(["run", "ctee", "--param", "stock", "--json"])

        # Then
        assert code == 0
        run.assert_awaited_once_with("stock")
        printed = json.loads(capsys.readouterr().out)
        assert printed["title"] == "證券 - 工商時報"
        assert printed["item"][0]["title"] == "台股收高"

    def test_run_failure(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that a failed run exits 1 and prints the error payload to stderr."""
        with patch("gatedfeed.main.Pipeline") as pipeline_cls:
            pipeline_cls.return_value.run = AsyncMock(side_effect=FetchError("Listing could not be fetched"))
            code = main(["run", "blocktempo"])

        assert code == 1
        payload = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert payload["error_code"] == "FETCH_FAILED"

    def test_unknown_site(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["run", "nosuchsite"]) == 1
        assert "CONFIGURATION_ERROR" in capsys.readouterr().err
