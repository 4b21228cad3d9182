"""Centralised configuration settings for the contact enrichment agent.

All environment variable reads are consolidated here into typed, frozen
dataclass instances. Every other module should import the module-level
singletons (``server_config``, ``worker_config``, ``rate_limit_config``)
from this module instead of calling ``os.getenv()`` directly.

Entry points (``main.py``, ``worker.py``) load ``.env`` before this module
is imported, so values from the env file are visible here. Tests build
their own instances with explicit keyword arguments.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

__all__ = [
    "server_config",
    "worker_config",
    "rate_limit_config",
    "get_settings",
    "ServerConfig",
    "WorkerConfig",
    "RateLimitConfig",
]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerConfig:
    """Control-process configuration.

    Attributes:
        host: Interface the HTTP server binds to.
        port: HTTP port.
        data_dir: Root directory for every per-job artifact.
        upload_dir: Override for uploaded input tables; empty uses
            ``<data_dir>/uploads``.
        output_dir: Override for checkpointed output tables; empty uses
            ``<data_dir>/outputs``.
        status_dir: Override for progress files and start-signal markers;
            empty uses ``<data_dir>/status``.
        public_dir: Directory served as the static browser UI.
        selectors_file: JSON file holding the default selector
            configuration merged under each upload's own selectors.
        max_upload_bytes: Upper bound on an uploaded CSV.
        worker_script: Script launched (with the current interpreter) for
            every job.
        log_level: Python ``logging`` level string (e.g. ``"INFO"``).
    """

    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "data"))
    upload_dir: str = field(default_factory=lambda: os.getenv("UPLOAD_DIR", ""))
    output_dir: str = field(default_factory=lambda: os.getenv("OUTPUT_DIR", ""))
    status_dir: str = field(default_factory=lambda: os.getenv("STATUS_DIR", ""))
    public_dir: str = field(
        default_factory=lambda: os.getenv("PUBLIC_DIR", "public")
    )
    selectors_file: str = field(
        default_factory=lambda: os.getenv(
            "SELECTORS_FILE", "config/selectors.json"
        )
    )
    max_upload_bytes: int = field(
        default_factory=lambda: int(
            os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))
        )
    )
    worker_script: str = field(
        default_factory=lambda: os.getenv("WORKER_SCRIPT", "worker.py")
    )
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )

    @property
    def uploads_path(self) -> Path:
        """Directory holding uploaded input tables."""
        return Path(self.upload_dir or os.path.join(self.data_dir, "uploads"))

    @property
    def outputs_path(self) -> Path:
        """Directory holding checkpointed output tables."""
        return Path(self.output_dir or os.path.join(self.data_dir, "outputs"))

    @property
    def status_path(self) -> Path:
        """Directory holding progress files and start-signal markers."""
        return Path(self.status_dir or os.path.join(self.data_dir, "status"))


@dataclass(frozen=True)
class WorkerConfig:
    """Worker-process browser and pacing configuration.

    Attributes:
        profile_dir: Persistent Chromium profile reused across jobs so
            authentication survives between runs.
        headless: Default browser mode when the job does not request manual
            login (manual login always opens a visible window).
        browser_timeout_ms: Default timeout for single browser operations.
        navigation_timeout_ms: Bound on the post-submit navigation wait.
        start_signal_poll_seconds: Poll interval of the manual-login wait.
        login_timeout_seconds: Give up waiting for the start signal after
            this many seconds; ``0`` waits forever.
        cookie_domain: Domain assigned to injected cookies; empty derives it
            from the search page URL.
        user_agent: Browser user agent string.
        viewport_width: Browser viewport width in pixels.
        viewport_height: Browser viewport height in pixels.
        error_note_limit: Maximum length of a per-record error note.
    """

    profile_dir: str = field(
        default_factory=lambda: os.getenv(
            "WORKER_PROFILE_DIR", "playwright_profile"
        )
    )
    headless: bool = field(
        default_factory=lambda: _env_bool("WORKER_HEADLESS", "false")
    )
    browser_timeout_ms: int = field(
        default_factory=lambda: int(os.getenv("BROWSER_TIMEOUT_MS", "60000"))
    )
    navigation_timeout_ms: int = field(
        default_factory=lambda: int(
            os.getenv("NAVIGATION_TIMEOUT_MS", "30000")
        )
    )
    start_signal_poll_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("START_SIGNAL_POLL_SECONDS", "1.0")
        )
    )
    login_timeout_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("LOGIN_TIMEOUT_SECONDS", "1800")
        )
    )
    cookie_domain: str = field(
        default_factory=lambda: os.getenv("COOKIE_DOMAIN", "")
    )
    user_agent: str = field(
        default_factory=lambda: os.getenv(
            "BROWSER_USER_AGENT",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36",
        )
    )
    viewport_width: int = field(
        default_factory=lambda: int(os.getenv("VIEWPORT_WIDTH", "1280"))
    )
    viewport_height: int = field(
        default_factory=lambda: int(os.getenv("VIEWPORT_HEIGHT", "800"))
    )
    error_note_limit: int = field(
        default_factory=lambda: int(os.getenv("ERROR_NOTE_LIMIT", "500"))
    )

    def resolve_cookie_domain(self, search_page_url: str) -> str:
        """Return the domain injected cookies are scoped to.

        Args:
            search_page_url: Configured landing/search URL of the target site.

        Returns:
            ``cookie_domain`` when set, otherwise ``"." + host`` of the
            search URL with any leading ``www.`` removed.
        """
        if self.cookie_domain:
            return self.cookie_domain
        host = (urlparse(search_page_url).hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]
        return f".{host}" if host else ""


@dataclass(frozen=True)
class RateLimitConfig:
    """Pacing between records.

    Attributes:
        policy: Preset name — ``"standard"`` (20–30 s), ``"fast"``
            (5–10 s), ``"none"`` or ``"custom"``.
        min_seconds: Lower bound used by the ``custom`` policy.
        max_seconds: Upper bound used by the ``custom`` policy.
    """

    policy: str = field(
        default_factory=lambda: os.getenv("RATE_LIMIT_POLICY", "standard")
    )
    min_seconds: float = field(
        default_factory=lambda: float(os.getenv("RATE_LIMIT_MIN_SECONDS", "5"))
    )
    max_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("RATE_LIMIT_MAX_SECONDS", "10")
        )
    )


def get_settings() -> tuple[ServerConfig, WorkerConfig, RateLimitConfig]:
    """Build all configuration singletons from the process environment.

    Returns:
        A three-element tuple ``(server_config, worker_config,
        rate_limit_config)`` of frozen dataclass instances.
    """
    return ServerConfig(), WorkerConfig(), RateLimitConfig()


server_config, worker_config, rate_limit_config = get_settings()
