"""Configuration for Logfire observability."""

import os

from pydantic import BaseModel, Field


class ObservabilityConfig(BaseModel):
    """Configuration for Logfire observability."""

    # Connection
    token: str = Field(default_factory=lambda: os.getenv("LOGFIRE_TOKEN", ""))
    project_name: str = "library-portal"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    # Behavior
    enabled: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_ENABLED", "true").lower() == "true"
    )
    console_output: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_CONSOLE", "false").lower() == "true"
    )
    # Export is opt-in through LOGFIRE_SEND
    send_to_logfire: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_SEND", "false").lower() == "true"
    )
