"""Centralised settings for the Strukturbild backend.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("STRUKTURBILD_WORKSPACE", Path.home() / ".strukturbild_data")
        )
    )
    storage_backend: str = field(
        default_factory=lambda: os.environ.get("STORAGE_BACKEND", "sqlite")
    )
    table_name: str = field(
        default_factory=lambda: os.environ.get("TABLE_NAME", "strukturbild_data")
    )
    aws_region: str = field(
        default_factory=lambda: os.environ.get("AWS_REGION", "us-east-1")
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "strukturbild.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    # ------------------------------------------------------------------
    # Seed fixtures (import_*.json / graph_*.json)
    # ------------------------------------------------------------------
    fixture_dir: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["FIXTURE_DIR"]) if os.environ.get("FIXTURE_DIR") else None
        )
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from backend.config import settings
settings = Settings()
