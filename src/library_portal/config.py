"""Configuration management for the Library Portal server.

Settings come from environment variables prefixed with ``LIBRARY_PORTAL_``
(or a local ``.env`` file) and are validated with pydantic-settings:
1. Server metadata used in the MCP handshake
2. Store location
3. Lending rules (loan, renewal and due-soon periods)
4. Logging
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PortalConfig(BaseSettings):
    """Library Portal configuration.

    Lending rule defaults match the circulation policy of the library:
    books are lent for 14 days, renewals add 7 days, and a loan is
    "due soon" during the last 3 calendar days.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_PORTAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-portal",
        description="Server name used in the MCP handshake",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version for capability negotiation",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    transport: str = Field(
        default="stdio",
        description="Primary transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    # === Store Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    # === Lending Rules ===

    loan_period_days: int = Field(
        default=14,
        description="Days between issue and due date",
        ge=1,
    )

    renewal_period_days: int = Field(
        default=7,
        description="Days added to the current due date on renewal",
        ge=1,
    )

    due_soon_days: int = Field(
        default=3,
        description="A loan due within this many days is classified as due soon",
        ge=0,
    )

    transaction_log_limit: int = Field(
        default=100,
        description="Number of entries returned by the transaction log view",
        ge=1,
        le=1000,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @property
    def is_development(self) -> bool:
        """True when running with debug logging."""
        return self.debug or self.log_level == "DEBUG"

    @property
    def server_info(self) -> dict[str, str]:
        return {
            "name": self.server_name,
            "version": self.server_version,
            "transport": self.transport,
        }

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: PortalConfig | None = None


def get_config() -> PortalConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = PortalConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
