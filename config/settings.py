"""Global configuration management using pydantic-settings.

This module implements the 12-factor app methodology for configuration,
loading values from environment variables with strict type validation.
The Singleton pattern ensures consistent configuration state across the application.

Storefront URLs and selectors live here because the target pages change
their markup independently of this service; operators adjust them through
the environment without a code change.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceId(str, Enum):
    """Storefronts the user count is scraped from."""

    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"


class SourceConfig(BaseModel):
    """Where and how to find the count on one storefront page.

    Attributes:
        source_id: Storefront identifier.
        url: Listing page URL.
        selector: CSS selector for the node carrying the count.
        marker: Optional word a candidate node's text must contain.
    """

    model_config = ConfigDict(frozen=True)

    source_id: SourceId
    url: str = Field(..., min_length=1)
    selector: str = Field(..., min_length=1)
    marker: str | None = None


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    All configuration values are loaded from environment variables,
    with sensible defaults for development. Production deployments
    should override these via .env or environment injection.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment (development/staging/production).
        debug: Enable verbose debugging output.
        headless: Launch the automation browser without a window.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        chrome_url: Chrome Web Store listing page.
        chrome_selector: Node holding the "N users" text.
        firefox_url: Firefox Add-ons listing page.
        firefox_selector: Candidate metadata nodes on the listing.
        firefox_marker: Word identifying the user-count candidate.
        edge_url: Edge Add-ons listing page (script-rendered).
        edge_selector: Element holding the install count once rendered.
        request_timeout_ms: Timeout for plain HTTP page fetches.
        render_timeout_ms: Bound on navigate + network-idle wait.
        cycle_timeout_sec: Wall-clock bound on one aggregation cycle.
        refresh_interval_sec: Delay between scheduled cycles.
        failure_alert_threshold: Consecutive failed cycles before a source
            is escalated as a critical alert.
        user_agents: User-agent pool for outgoing requests.
        api_host: Bind address for the read endpoint.
        api_port: Bind port for the read endpoint.
        cors_origins: Origins allowed to call the read endpoint.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="Focus-UserCount", description="Application identifier")
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    headless: bool = Field(default=True, description="Run browser in headless mode")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Sources
    chrome_url: str = Field(
        default="https://chromewebstore.google.com/detail/focus",
        description="Chrome Web Store listing URL",
    )
    chrome_selector: str = Field(default=".F9iKBc", description="Chrome user count selector")
    firefox_url: str = Field(
        default="https://addons.mozilla.org/en-US/firefox/addon/focus/",
        description="Firefox Add-ons listing URL",
    )
    firefox_selector: str = Field(
        default=".MetadataCard-list", description="Firefox metadata candidates selector"
    )
    firefox_marker: str = Field(
        default="Users", min_length=1, description="Marker word for the user count node"
    )
    edge_url: str = Field(
        default="https://microsoftedge.microsoft.com/addons/detail/focus",
        description="Edge Add-ons listing URL",
    )
    edge_selector: str = Field(
        default="#activeInstallText", description="Edge install count selector"
    )

    # Resilience Parameters
    request_timeout_ms: int = Field(
        default=15000, ge=1000, le=120000, description="HTTP fetch timeout in milliseconds"
    )
    render_timeout_ms: int = Field(
        default=60000, ge=5000, le=300000, description="Rendered page wait bound in milliseconds"
    )
    cycle_timeout_sec: float = Field(
        default=180.0, ge=1.0, le=3600.0, description="Wall-clock bound on one cycle"
    )
    teardown_timeout_sec: float = Field(
        default=10.0,
        ge=0.01,
        le=120.0,
        description="Bound on each browser close step and on unwinding a timed-out cycle",
    )

    # Scheduling
    refresh_interval_sec: int = Field(
        default=24 * 60 * 60, ge=60, description="Seconds between aggregation cycles"
    )

    # Watchdog Configuration
    failure_alert_threshold: int = Field(
        default=3, ge=1, le=100, description="Consecutive failures before critical alert"
    )

    user_agents: list[str] = Field(
        default=[
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        ],
        min_length=1,
        description="User-agent pool for outgoing requests",
    )

    # Read Endpoint
    api_host: str = Field(default="0.0.0.0", description="Bind address")
    api_port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    cors_origins: list[str] = Field(
        default=["https://getfocus.cc"], description="Allowed CORS origins"
    )

    @field_validator("log_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    def source_configs(self) -> list[SourceConfig]:
        """Build the per-source configs in aggregation order.

        The rendered (Edge) source comes last so the cheap HTTP sources
        are already in flight before the browser is launched.
        """
        return [
            SourceConfig(
                source_id=SourceId.CHROME,
                url=self.chrome_url,
                selector=self.chrome_selector,
            ),
            SourceConfig(
                source_id=SourceId.FIREFOX,
                url=self.firefox_url,
                selector=self.firefox_selector,
                marker=self.firefox_marker,
            ),
            SourceConfig(
                source_id=SourceId.EDGE,
                url=self.edge_url,
                selector=self.edge_selector,
            ),
        ]


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Uses LRU cache to ensure single instantiation across the application lifecycle.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
