"""
lessonflow.settings
===================

Configuration settings for lessonflow.

Module-level constants cover the database location; the pydantic
:class:`Settings` model carries everything else.  All values can be
overridden via environment variables (prefix ``LESSONFLOW_``) or a
``.env`` file.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

# ---------------------------------------------------------------------------
# Base directories
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

# Database settings
# ---------------------------------------------------------------------------
DB_FILE = os.environ.get("LESSONFLOW_DB_FILE", BASE_DIR / "lessonflow.db")
DB_URL = f"sqlite:///{DB_FILE}"
DB_ECHO = os.environ.get("LESSONFLOW_DB_ECHO", "False").lower() == "true"


# ---------------------------------------------------------------------------
# Pydantic settings model
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Application settings, loaded from environment variables."""

    database_url: str = Field(DB_URL, description="SQLAlchemy database URL")
    db_echo: bool = Field(DB_ECHO, description="Echo SQL statements")
    log_level: str = Field("INFO", description="Root log level used by the CLI")

    clock_skew_seconds: float = Field(
        0.0,
        ge=0.0,
        description="How far in the future a caller-supplied timestamp may lie",
    )
    heal_on_read: bool = Field(
        True,
        description="Re-point current_status_id at the latest record when a read finds them diverged",
    )

    class Config:
        """Configuration for the settings model."""
        env_prefix = "LESSONFLOW_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Initialize settings
settings = Settings()
