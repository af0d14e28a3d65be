"""
Configuration management for torsnap.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TARGET_URL = "http://h3h66vqwmmxxheeuwi4hhk52ic5svhnb73xdnxnzaj6vrnk742ntnhyd.onion/"
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; rv:91.0) Gecko/20100101 Firefox/91.0"


class _FrozenModel(BaseModel):
    """Base for all settings sections (immutable once loaded)."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class GeneralConfig(_FrozenModel):
    """General configuration."""

    project_name: str = "torsnap"
    version: str = "0.1.0"
    log_level: str = "INFO"
    log_json: bool = True
    data_dir: str = "data"
    logs_dir: str = "logs"


class TargetConfig(_FrozenModel):
    """What to fetch and what to look for on it.

    ``region_selector`` may be any CSS selector on real pages. The demo
    page reproduces only tag, ``#id`` and ``.class`` compounds joined by
    descendant or child combinators; other forms crop the full demo page.
    """

    url: str = DEFAULT_TARGET_URL
    link_text: str = "expires in"
    region_selector: str = ".link-listonline"


class TorConfig(_FrozenModel):
    """Tor SOCKS route configuration."""

    socks_host: str = "127.0.0.1"
    socks_port: int = 9050
    # socks5h:// resolves hostnames inside Tor; .onion names cannot resolve locally
    resolve_through_tor: bool = True


class TransportConfig(_FrozenModel):
    """Fetch strategy configuration (direct HTTP and CLI-wrapped fetch)."""

    user_agent: str = DEFAULT_USER_AGENT
    direct_timeout: float = 30.0
    cli_wrapper: list[str] = Field(default_factory=lambda: ["torsocks"])
    cli_tool: str = "curl"
    cli_connect_timeout: int = 60
    cli_max_time: int = 120
    # Extra seconds on top of cli_max_time before the process is killed
    cli_kill_grace: float = 10.0


class BrowserConfig(_FrozenModel):
    """Headless browser configuration."""

    headless: bool = True
    viewport_width: int = 1920
    viewport_height: int = 1080
    launch_timeout: float = 60.0
    navigation_timeout: float = 60.0
    click_timeout: float = 30.0
    validate_connection: bool = True
    validation_url: str = "http://httpbin.org/ip"
    validation_timeout: float = 20.0
    variant_reset_delay: float = 3.0
    page_settle_delay: float = 5.0
    post_click_delay: float = 5.0
    args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--no-first-run",
            "--no-zygote",
            "--disable-extensions",
            "--disable-background-networking",
            "--disable-default-apps",
            "--disable-sync",
            "--disable-translate",
            "--hide-scrollbars",
            "--mute-audio",
            "--ignore-certificate-errors",
            "--disable-blink-features=AutomationControlled",
        ]
    )


class ProxyConfig(_FrozenModel):
    """Local forwarding proxy (browser -> proxy -> Tor)."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080
    request_timeout: float = 60.0

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class WebhookConfig(_FrozenModel):
    """Screenshot delivery endpoint."""

    url: str = ""
    timeout: float = 30.0
    max_body_bytes: int = 50 * 1024 * 1024
    source: str = "tor-automation-script"
    user_agent: str = "Tor-Automation-Script/1.0"
    test_timeout: float = 10.0


class SchedulerConfig(_FrozenModel):
    """Periodic run configuration."""

    interval_minutes: float = Field(default=40.0, gt=0)


class DashboardConfig(_FrozenModel):
    """Monitoring dashboard configuration."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 5000
    max_log_entries: int = 1000
    max_artifact_entries: int = 500
    api_log_limit: int = 50
    api_artifact_limit: int = 20


class StorageConfig(_FrozenModel):
    """Storage configuration."""

    screenshots_dir: str = "data/screenshots"


class Settings(_FrozenModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    target: TargetConfig = Field(default_factory=TargetConfig)
    tor: TorConfig = Field(default_factory=TorConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


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


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml with local.yaml overrides (``settings`` section).

    Example local.yaml:
        settings:
          scheduler:
            interval_minutes: 10

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _read_yaml(config_dir / "settings.yaml")
    local_overrides = _read_yaml(config_dir / "local.yaml")
    if "settings" in local_overrides:
        config = _deep_merge(config, local_overrides["settings"])
    return config


def _parse_env_value(value: str) -> Any:
    try:
        if value.lower() in ("true", "false"):
            return value.lower() == "true"
        elif "." in value:
            return float(value)
        else:
            return int(value)
    except ValueError:
        return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with TORSNAP_ and use
    double underscores for nested keys.

    Example:
        TORSNAP_GENERAL__LOG_LEVEL=DEBUG

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "TORSNAP_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "TORSNAP_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[key_path[-1]] = _parse_env_value(value)

    # Plain WEBHOOK_URL is honoured when nothing else configured the endpoint
    webhook_url = os.environ.get("WEBHOOK_URL")
    if webhook_url:
        webhook = config.setdefault("webhook", {})
        if not webhook.get("url"):
            webhook["url"] = webhook_url

    return config


def load_settings(config_dir: Path | None = None) -> Settings:
    """Build settings from defaults, YAML files and the environment.

    Args:
        config_dir: Configuration directory. Defaults to $TORSNAP_CONFIG_DIR or ``config``.

    Returns:
        Settings instance.
    """
    if config_dir is None:
        config_dir = Path(os.environ.get("TORSNAP_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)
    return Settings(**config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    return load_settings()


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at torsnap/utils/config.py
    return Path(__file__).parent.parent.parent


def resolve_path(path: str) -> Path:
    """Resolve a configured path relative to the project root."""
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return get_project_root() / candidate


def ensure_directories(settings: Settings | None = None) -> None:
    """Ensure all required directories exist."""
    settings = settings or get_settings()

    dirs = [
        resolve_path(settings.general.data_dir),
        resolve_path(settings.general.logs_dir),
        resolve_path(settings.storage.screenshots_dir),
    ]

    for dir_path in dirs:
        dir_path.mkdir(parents=True, exist_ok=True)
