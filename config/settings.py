"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if ANTHROPIC_API_KEY is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )

    # ── Server ──────────────────────────────────────────────────────────────
    environment: str = field(
        default_factory=lambda: os.environ.get("APP_ENV", "development")
    )
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "3000"))
    )
    #: Comma-separated list, or ``*`` for any origin.
    cors_origins: str = field(
        default_factory=lambda: os.environ.get("CORS_ORIGINS", "*")
    )

    # ── AI Model ────────────────────────────────────────────────────────────
    model: str = field(
        default_factory=lambda: os.environ.get("BLOGBOARD_MODEL", "claude-haiku-4-5")
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("BLOGBOARD_MAX_TOKENS", "8192"))
    )
    #: Transport-level retries performed by the Anthropic SDK.
    max_retries: int = field(
        default_factory=lambda: int(os.environ.get("BLOGBOARD_MAX_RETRIES", "2"))
    )

    # ── Board client ────────────────────────────────────────────────────────
    api_url: str = field(
        default_factory=lambda: os.environ.get(
            "BLOGBOARD_API_URL", "http://localhost:3000/api"
        )
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("BLOGBOARD_TIMEOUT", "120"))
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
        if not 0 < self.port < 65536:
            raise ValueError(f"PORT must be between 1 and 65535, got {self.port}.")
