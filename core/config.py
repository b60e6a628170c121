"""
Configuration management for the render tracker.

Centralizes:
- Render provider selection and API credentials
- Polling defaults (interval, attempt budget, deadline)
- HTTP service settings
- Project database connection

Config objects are built once at the entry point (CLI or server) and passed
explicitly to every client and tracker.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional

ProviderName = Literal["shotstack", "creatomate", "proxy"]


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class RenderConfig:
    """Render provider configuration."""

    provider: ProviderName = field(
        default_factory=lambda: os.getenv("RENDER_PROVIDER", "shotstack").lower()
    )

    # Shotstack
    shotstack_api_key: str = field(default_factory=lambda: os.getenv("SHOTSTACK_API_KEY", ""))
    shotstack_env: str = field(default_factory=lambda: os.getenv("SHOTSTACK_ENV", "stage").lower())

    # Creatomate
    creatomate_api_key: str = field(default_factory=lambda: os.getenv("CREATOMATE_API_KEY", ""))
    creatomate_api_base: str = "https://api.creatomate.com/v1"
    output_format: str = "mp4"

    # Our own proxy service (credential stays server-side)
    proxy_url: str = field(
        default_factory=lambda: os.getenv("RENDER_PROXY_URL", "http://localhost:8765")
    )

    # Polling
    poll_interval_ms: int = field(default_factory=lambda: _env_int("RENDER_POLL_INTERVAL_MS", 3000))
    max_attempts: int = field(default_factory=lambda: _env_int("RENDER_MAX_ATTEMPTS", 200))
    timeout_seconds: Optional[float] = field(
        default_factory=lambda: _env_float("RENDER_TIMEOUT_SECONDS", 600.0)
    )
    request_timeout: float = 30.0

    @property
    def shotstack_api_base(self) -> str:
        if self.shotstack_env == "prod":
            return "https://api.shotstack.io/edit/v1"
        return "https://api.shotstack.io/edit/stage"


@dataclass
class ServerConfig:
    """HTTP service configuration."""
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 8765))
    # Externally reachable base URL, used to build webhook callback URLs
    public_url: str = field(default_factory=lambda: os.getenv("PUBLIC_URL", ""))
    cors_origins: list[str] = field(
        default_factory=lambda: [
            o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
        ]
    )


@dataclass
class DatabaseConfig:
    """Project database configuration."""
    url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", ""))
    pool_min_size: int = 1
    pool_max_size: int = 5


@dataclass
class Config:
    """Main configuration class."""

    render: RenderConfig = field(default_factory=RenderConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []
        render = self.render

        if render.provider not in ("shotstack", "creatomate", "proxy"):
            issues.append(f"Unknown RENDER_PROVIDER: {render.provider}")
        elif render.provider == "shotstack" and not render.shotstack_api_key:
            issues.append("SHOTSTACK_API_KEY not configured")
        elif render.provider == "creatomate" and not render.creatomate_api_key:
            issues.append("CREATOMATE_API_KEY not configured")
        elif render.provider == "proxy" and not render.proxy_url:
            issues.append("RENDER_PROXY_URL not configured")

        if render.poll_interval_ms < 0:
            issues.append("RENDER_POLL_INTERVAL_MS must not be negative")

        if render.max_attempts <= 0 and not render.timeout_seconds:
            issues.append("Either RENDER_MAX_ATTEMPTS or RENDER_TIMEOUT_SECONDS must be positive")

        if not self.server.public_url:
            issues.append("PUBLIC_URL not configured (render webhooks disabled)")

        return issues
