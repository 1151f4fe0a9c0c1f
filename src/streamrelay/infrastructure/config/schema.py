"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]

DEFAULT_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36"
)


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class ExtractionConfig(BaseModel):
    """Chain resolution and strategy fallback policy.

    All values configurable via YAML (extraction section).
    """

    default_provider: str = Field(
        default="vidsrc",
        description="Provider used when the locator carries no hint.",
    )
    request_timeout_seconds: float = Field(
        default=90.0,
        description="Hard wall-clock budget for one extraction (all strategies).",
    )
    hop_timeout_seconds: float = Field(
        default=10.0,
        description="Per-hop timeout for the fetch strategy.",
    )
    hop_retries: int = Field(
        default=2,
        description="Attempts per hop on non-2xx responses (fetch strategy).",
    )
    hop_retry_delay_seconds: float = Field(
        default=1.0,
        description="Fixed delay between hop retries.",
    )
    fetch_enabled: bool = Field(
        default=True,
        description="Try the plain HTTP strategy before automation.",
    )
    automation_enabled: bool = Field(
        default=True,
        description="Fall back to the browser strategy when fetch fails.",
    )
    challenge_retries: int = Field(
        default=1,
        description="Extra whole-chain retries after an unsolved challenge.",
    )
    challenge_timeout_seconds: float = Field(
        default=15.0,
        description="How long the browser waits for a challenge page to clear.",
    )
    manifest_timeout_seconds: float = Field(
        default=15.0,
        description="How long the browser waits for the player to request a manifest.",
    )
    authoritative_domains: list[str] = Field(
        default=["shadowlandschronicles.com"],
        description="Hosts known to serve the correct final manifest.",
    )
    master_marker: str = Field(
        default="master",
        description="URL marker identifying a master playlist.",
    )
    merge_master_tiers: bool = Field(
        default=False,
        description=(
            "Rank authoritative and other master playlists in one tier "
            "(observation order decides)."
        ),
    )
    special_case_statuses: list[int] = Field(
        default=[403],
        description=(
            "Error statuses under which an authoritative master playlist is "
            "still accepted once its body is verified."
        ),
    )
    pin_fingerprint_per_domain: bool = Field(
        default=False,
        description="Reuse one fingerprint per origin domain instead of per session.",
    )

    @field_validator(
        "request_timeout_seconds",
        "hop_timeout_seconds",
        "challenge_timeout_seconds",
        "manifest_timeout_seconds",
    )
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("hop_retries")
    @classmethod
    def _validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("hop_retries must be >= 1")
        return v

    @field_validator("special_case_statuses")
    @classmethod
    def _validate_error_statuses(cls, v: list[int]) -> list[int]:
        bad = [s for s in v if not 400 <= s < 600]
        if bad:
            raise ValueError(f"special_case_statuses must be 4xx/5xx, got {bad}")
        return v

    @model_validator(mode="after")
    def _require_strategy(self) -> "ExtractionConfig":
        if not (self.fetch_enabled or self.automation_enabled):
            raise ValueError("enable at least one of fetch_enabled / automation_enabled")
        if self.challenge_retries < 0:
            raise ValueError("challenge_retries must be >= 0")
        return self


class GatewayConfig(BaseModel):
    """Reverse-proxy admission control, retry and rewrite settings.

    All values configurable via YAML (gateway section).
    """

    public_base_url: str | None = Field(
        default=None,
        description=(
            "Absolute base URL for rewritten manifest lines. "
            "If unset, derived from the incoming request."
        ),
    )
    proxy_path: str = Field(default="/api/v1/stream-proxy")

    # Admission control
    rate_limit_window_seconds: float = Field(default=60.0)
    rate_limit_max_requests: int = Field(default=100)
    rate_limit_block_seconds: float = Field(default=300.0)
    bot_patterns: list[str] = Field(
        default=[
            r"bot",
            r"crawler",
            r"spider",
            r"scraper",
            r"curl",
            r"wget",
            r"python-requests",
            r"headless",
        ],
        description="Case-insensitive regexes matched against User-Agent.",
    )
    bot_exemptions: list[str] = Field(
        default=[],
        description="User-Agent substrings exempt from bot rejection.",
    )

    # Upstream retry (exponential backoff)
    max_retries: int = Field(default=3)
    base_delay_seconds: float = Field(default=1.0)
    backoff_factor: float = Field(default=2.0)
    max_delay_seconds: float = Field(default=10.0)
    jitter_ratio: float = Field(
        default=0.1,
        description="Upper bound of random jitter as a fraction of the delay.",
    )

    # Upstream connections
    timeout_seconds: float = Field(default=30.0)
    per_host_connections: int = Field(default=16)
    max_connections: int = Field(default=100)

    @field_validator(
        "rate_limit_window_seconds",
        "rate_limit_block_seconds",
        "timeout_seconds",
        "base_delay_seconds",
    )
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("gateway durations must be > 0")
        return v

    @field_validator("rate_limit_max_requests", "per_host_connections")
    @classmethod
    def _validate_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("gateway limits must be >= 1")
        return v

    @field_validator("jitter_ratio")
    @classmethod
    def _validate_jitter(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("jitter_ratio must be within [0, 1]")
        return v


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned
      (http/automation/logging/state/extraction/gateway).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="streamrelay", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Default timeout for outgoing HTTP requests.",
    )
    http_user_agent: str = Field(
        default=DEFAULT_BROWSER_UA,
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for the fetch strategy and clean gateway headers.",
    )

    # Automation (YAML section: automation.*)
    automation_headless: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "automation_headless",
            AliasPath("automation", "headless"),
        ),
        description="Run Chromium headless.",
    )
    automation_timeout_ms: int = Field(
        default=30_000,
        validation_alias=AliasChoices(
            "automation_timeout_ms",
            AliasPath("automation", "timeout_ms"),
        ),
        description="Navigation timeout in milliseconds.",
    )
    automation_max_sessions: int = Field(
        default=2,
        validation_alias=AliasChoices(
            "automation_max_sessions",
            AliasPath("automation", "max_sessions"),
        ),
        description="Max concurrent browser sessions.",
    )
    automation_delay_min_ms: int = Field(
        default=500,
        validation_alias=AliasChoices(
            "automation_delay_min_ms",
            AliasPath("automation", "delay_min_ms"),
        ),
    )
    automation_delay_max_ms: int = Field(
        default=3000,
        validation_alias=AliasChoices(
            "automation_delay_max_ms",
            AliasPath("automation", "delay_max_ms"),
        ),
    )
    automation_dwell_seconds: float = Field(
        default=3.0,
        validation_alias=AliasChoices(
            "automation_dwell_seconds",
            AliasPath("automation", "dwell_seconds"),
        ),
        description="Simulated reading time on each hop page.",
    )
    automation_persistent_profiles: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "automation_persistent_profiles",
            AliasPath("automation", "persistent_profiles"),
        ),
        description="Use one on-disk browser profile per origin domain.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    # Persisted state (YAML section: state.*)
    state_dir: Path = Field(
        default=Path("./.state/streamrelay"),
        validation_alias=AliasChoices(
            "state_dir",
            AliasPath("state", "dir"),
        ),
        description="Root for cookie jars and browser profiles.",
    )
    cookie_jar_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "cookie_jar_enabled",
            AliasPath("state", "cookie_jar_enabled"),
        ),
        description="Persist upstream cookies per domain between sessions.",
    )

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)

    @field_validator("state_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Path:
        return _normalize_path(v)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @field_validator("automation_timeout_ms", "automation_max_sessions")
    @classmethod
    def _validate_automation_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("automation limits must be > 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        if self.automation_delay_min_ms < 0 or (
            self.automation_delay_min_ms > self.automation_delay_max_ms
        ):
            raise ValueError("automation delay range must satisfy 0 <= min <= max")
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    @property
    def cookie_dir(self) -> Path:
        return self.state_dir / "cookies"

    @property
    def profile_dir(self) -> Path:
        return self.state_dir / "profiles"

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
            },
            "automation": {
                "headless": self.automation_headless,
                "timeout_ms": self.automation_timeout_ms,
                "max_sessions": self.automation_max_sessions,
                "delay_min_ms": self.automation_delay_min_ms,
                "delay_max_ms": self.automation_delay_max_ms,
                "dwell_seconds": self.automation_dwell_seconds,
                "persistent_profiles": self.automation_persistent_profiles,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "state": {
                "dir": str(self.state_dir),
                "cookie_jar_enabled": self.cookie_jar_enabled,
            },
            "extraction": self.extraction.model_dump(),
            "gateway": self.gateway.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read STREAMRELAY_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Supported env var examples (flat, explicit):
    - STREAMRELAY_HTTP_TIMEOUT_SECONDS
    - STREAMRELAY_AUTOMATION_HEADLESS
    - STREAMRELAY_LOG_LEVEL
    - STREAMRELAY_GATEWAY_PUBLIC_BASE_URL
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMRELAY_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None

    automation_headless: Optional[bool] = None
    automation_timeout_ms: Optional[int] = None
    automation_max_sessions: Optional[int] = None
    automation_persistent_profiles: Optional[bool] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    state_dir: Optional[Path] = None
    cookie_jar_enabled: Optional[bool] = None

    extraction_request_timeout_seconds: Optional[float] = None
    extraction_default_provider: Optional[str] = None

    gateway_public_base_url: Optional[str] = None
    gateway_rate_limit_max_requests: Optional[int] = None

    @field_validator("state_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
