"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Narrative generation
    narrative_mode: str = field(default_factory=lambda: os.getenv("NARRATIVE_MODE", "mock").lower())
    openai_api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY") or None)
    narrative_model: str = field(default_factory=lambda: os.getenv("NARRATIVE_MODEL", "gpt-4o-mini"))
    narrative_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("NARRATIVE_TIMEOUT_S", "30"))
    )
    narrative_max_retries: int = field(
        default_factory=lambda: int(os.getenv("NARRATIVE_MAX_RETRIES", "2"))
    )

    # Reports
    default_currency: str = field(default_factory=lambda: os.getenv("DEFAULT_CURRENCY", "USD").upper())

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.narrative_mode not in ("mock", "live"):
            raise ValueError("NARRATIVE_MODE must be 'mock' or 'live'")
        if self.narrative_timeout_s <= 0:
            raise ValueError("NARRATIVE_TIMEOUT_S must be positive")
        if self.narrative_max_retries < 0:
            raise ValueError("NARRATIVE_MAX_RETRIES must be non-negative")

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def reports_path(self) -> str:
        """JSON file backing the report repository."""
        return os.path.join(self.data_dir, "reports.json")

    def to_dict(self) -> dict:
        """Convert config to dictionary (secrets redacted)."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "narrative_mode": self.narrative_mode,
            "openai_api_key": "***" if self.openai_api_key else None,
            "narrative_model": self.narrative_model,
            "narrative_timeout_s": self.narrative_timeout_s,
            "narrative_max_retries": self.narrative_max_retries,
            "default_currency": self.default_currency,
            "data_dir": self.data_dir,
        }
