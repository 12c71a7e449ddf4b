"""
Configuration management for gatedfeed.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "gatedfeed"
    version: str = "0.1.0"
    log_level: str = "INFO"
    logs_dir: str = "logs"
    log_to_file: bool = False
    json_logs: bool = True


class ViewportConfig(BaseModel):
    """Explicit viewport size. When unset the browser window size is used."""

    model_config = ConfigDict(extra="forbid")

    width: int = Field(default=1920, ge=320)
    height: int = Field(default=1080, ge=240)


class BrowserConfig(BaseModel):
    """Local automation session configuration.

    A local session is only available when executable_path is set.
    """

    executable_path: str | None = None
    headless: bool = False
    args: list[str] = Field(default_factory=lambda: ["--start-maximized"])
    solve_challenges: bool = True
    viewport: ViewportConfig | None = None
    plugins: list[str] = Field(default_factory=lambda: ["stealth"])

    session_ttl: float = Field(default=120.0, gt=0)  # Lease before forced close
    navigation_timeout: float = Field(default=60.0, gt=0)
    challenge_budget: float = Field(default=60.0, ge=0)
    challenge_interval: float = Field(default=1.0, gt=0)
    max_tabs: int = Field(default=1, ge=1, description="Navigable surfaces per session")
    acquire_timeout: float = Field(default=120.0, gt=0)


class RemoteConfig(BaseModel):
    """Remote fetch-and-render service configuration."""

    service_url: str | None = None
    timeout: float = Field(default=60.0, gt=0)


class CacheConfig(BaseModel):
    """Detail record cache configuration."""

    ttl: float = Field(default=3600.0, gt=0)
    max_entries: int = Field(default=1024, ge=1)


class PipelineConfig(BaseModel):
    """Pipeline configuration."""

    max_items: int = Field(default=20, ge=1)


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_yaml_with_local_override(
    config_dir: Path,
    filename: str,
    section_key: str | None = None,
) -> dict[str, Any]:
    """Load YAML file with local.yaml override support.

    local.yaml provides unified local overrides for all YAML config files.
    Top-level keys correspond to config file names (without .yaml extension).

    Args:
        config_dir: Configuration directory path.
        filename: YAML filename (e.g., "settings.yaml").
        section_key: Key in local.yaml for overrides.
                     Defaults to filename without extension.

    Returns:
        Merged configuration dictionary.
    """
    config = _read_yaml(config_dir / filename)

    local_overrides = _read_yaml(config_dir / "local.yaml")
    if section_key is None:
        section_key = Path(filename).stem

    if isinstance(local_overrides.get(section_key), dict):
        config = _deep_merge(config, local_overrides[section_key])

    return config


def _parse_env_value(value: str) -> Any:
    """Parse an environment string as bool, int, float, or leave it as str."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("none", "null", ""):
        return None
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with GATEDFEED_ and use
    double underscores for nested keys.

    Example:
        GATEDFEED_BROWSER__EXECUTABLE_PATH=/usr/bin/chromium

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "GATEDFEED_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "GATEDFEED_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[key_path[-1]] = _parse_env_value(value)

    return config


def get_config_dir() -> Path:
    """Get the configuration directory."""
    configured = os.environ.get("GATEDFEED_CONFIG_DIR")
    if configured:
        return Path(configured)
    return get_project_root() / "config"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. config/settings.yaml, then config/local.yaml (settings section)
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config = load_yaml_with_local_override(get_config_dir(), "settings.yaml", "settings")
    config = _apply_env_overrides(config)
    return Settings(**config)


def reset_settings() -> None:
    """Drop cached settings (for testing only)."""
    get_settings.cache_clear()


def get_project_root() -> Path:
    """Get the project root directory."""
    # Assuming this file is at gatedfeed/utils/config.py
    return Path(__file__).parent.parent.parent
