"""Settings for browser sessions, the API client, reporting and the run."""

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_TOKEN_SAFETY_MARGIN = 300


class BrowserConfig(BaseModel):
    """Configuration for browser execution contexts."""

    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    launch_args: Sequence[str] = ("--no-sandbox", "--disable-dev-shm-usage")
    viewport_width: int = Field(default=1920, gt=0)
    viewport_height: int = Field(default=1080, gt=0)
    ignore_https_errors: bool = True
    default_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    navigation_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    entry_url: str | None = None


class ApiSettings(BaseModel):
    """Configuration for authenticated API execution contexts."""

    base_url: str
    token_url: str
    client_id: SecretStr
    client_secret: SecretStr
    scope: str = ""
    grant_type: str = "client_credentials"
    request_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    token_safety_margin: int = Field(
        default=DEFAULT_TOKEN_SAFETY_MARGIN,
        ge=0,
        description="Seconds subtracted from the token expiry before reuse",
    )
    # Path templates used to delete tracked resources, keyed by resource kind
    resource_endpoints: Mapping[str, str] = Field(
        default_factory=lambda: {"books": "/Books/{id}", "users": "/Users/{id}"}
    )


class ReportConfig(BaseModel):
    """Configuration for the HTML report."""

    enabled: bool = True
    directory: Path = Path("TestResults")
    document_title: str = "Test Report"
    report_name: str = "Test Execution Report"
    system_info: Mapping[str, str] = Field(default_factory=dict)


class RunConfig(BaseModel):
    """Configuration for a single run of a suite."""

    max_workers: int = Field(default=1, ge=1)
    cleanup_mode: Literal["per-run", "per-test"] = "per-run"
    artifacts_dir: Path = Path("artifacts")


class HarnessSettings(BaseModel):
    """Top-level settings, read once at startup."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    api: ApiSettings | None = None
    report: ReportConfig = Field(default_factory=ReportConfig)
    run: RunConfig = Field(default_factory=RunConfig)


def load_settings(path: Path) -> HarnessSettings:
    """Load settings from a JSON file.

    Raises:
        FileNotFoundError: If the settings file does not exist
        pydantic.ValidationError: If the file does not match the schema

    """
    return HarnessSettings.model_validate_json(path.read_text(encoding="utf-8"))
