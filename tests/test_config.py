"""
Tests for settings loading: YAML defaults, local.yaml overrides and
environment variables.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gatedfeed.crawler.render_provider import LaunchConfig
from gatedfeed.utils.config import (
    BrowserConfig,
    ViewportConfig,
    _deep_merge,
    _parse_env_value,
    get_settings,
    load_yaml_with_local_override,
    reset_settings,
)

pytestmark = pytest.mark.unit


def _write(path: Path, data: dict) -> None:
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")


class TestRepositoryDefaults:
    def test_defaults_from_settings_yaml(self) -> None:
        """Test the shipped defaults (seconds throughout)."""
        settings = get_settings()

        assert settings.browser.executable_path is None
        assert settings.browser.session_ttl == 120
        assert settings.browser.navigation_timeout == 60
        assert settings.browser.challenge_budget == 60
        assert settings.browser.challenge_interval == 1
        assert settings.browser.max_tabs == 1
        assert settings.browser.args == ["--start-maximized"]
        assert settings.browser.viewport is None
        assert settings.remote.service_url is None
        assert settings.remote.timeout == 60
        assert settings.pipeline.max_items == 20

    def test_settings_cached(self) -> None:
        assert get_settings() is get_settings()


class TestOverrides:
    """Tests for local.yaml and environment overrides."""

    def test_local_yaml_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that local.yaml's settings section is deep-merged.

        Given: settings.yaml with browser defaults and local.yaml setting a path
        When: get_settings() loads the directory
        Then: The override wins and untouched keys keep their values
        """
        # Given
        _write(tmp_path / "settings.yaml", {"browser": {"headless": False, "max_tabs": 2}})
        _write(tmp_path / "local.yaml", {"settings": {"browser": {"executable_path": "/opt/chrome"}}})
        monkeypatch.setenv("GATEDFEED_CONFIG_DIR", str(tmp_path))
        reset_settings()

        # When
        settings = get_settings()

        # Then
        assert settings.browser.executable_path == "/opt/chrome"
        assert settings.browser.max_tabs == 2

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test GATEDFEED_<SECTION>__<KEY> environment overrides."""
        monkeypatch.setenv("GATEDFEED_CONFIG_DIR", str(tmp_path))
        monkeypatch.setenv("GATEDFEED_REMOTE__SERVICE_URL", "http://render.local/fetch")
        monkeypatch.setenv("GATEDFEED_BROWSER__HEADLESS", "true")
        monkeypatch.setenv("GATEDFEED_BROWSER__CHALLENGE_BUDGET", "30.5")
        reset_settings()

        settings = get_settings()

        assert settings.remote.service_url == "http://render.local/fetch"
        assert settings.browser.headless is True
        assert settings.browser.challenge_budget == 30.5

    def test_missing_files_give_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GATEDFEED_CONFIG_DIR", str(tmp_path))
        reset_settings()

        assert get_settings().cache.ttl == 3600

    def test_load_yaml_section_key(self, tmp_path: Path) -> None:
        _write(tmp_path / "sites.yaml", {"a": {"x": 1}})
        _write(tmp_path / "local.yaml", {"sites": {"a": {"y": 2}}})

        assert load_yaml_with_local_override(tmp_path, "sites.yaml") == {"a": {"x": 1, "y": 2}}


class TestHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("False", False), ("null", None), ("", None), ("3", 3), ("1.5", 1.5), ("abc", "abc")],
    )
    def test_parse_env_value(self, raw: str, expected: object) -> None:
        assert _parse_env_value(raw) == expected

    def test_deep_merge_does_not_mutate(self) -> None:
        base = {"a": {"b": 1, "c": 2}}

        merged = _deep_merge(base, {"a": {"b": 3}})

        assert merged == {"a": {"b": 3, "c": 2}}
        assert base == {"a": {"b": 1, "c": 2}}

    def test_launch_config_from_settings(self) -> None:
        browser = BrowserConfig(
            executable_path="/usr/bin/chromium",
            headless=True,
            viewport=ViewportConfig(width=1280, height=800),
            max_tabs=2,
        )

        config = LaunchConfig.from_settings(browser)

        assert config.viewport == {"width": 1280, "height": 800}
        assert config.plugins == ("stealth",)
        assert config.to_dict()["args"] == ["--start-maximized"]
        assert config.max_tabs == 2
