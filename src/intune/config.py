"""Configuration loaded from environment variables.

Environment Variables:
    AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET: App registration (required)
    GRAPH_BASE_URL: Graph root (default: https://graph.microsoft.com/v1.0)
    CLEANUP_STALE_DAYS: Inactivity threshold in days (default: 90)
    CLEANUP_DUPLICATE_THRESHOLD: Registrations allowed per owner/OS/name (default: 1)
    CLEANUP_MAX_COUNT: Maximum devices acted on per run (default: 50)
    CLEANUP_ACTION: export, retire or delete (default: export)
    CLEANUP_OUTPUT_DIR: Report directory (default: ./reports)
    CLEANUP_EXCLUSIONS_FILE: CSV/xlsx exclusion list (default: none)
    CLEANUP_INCLUDE_DIRECTORY: Also evaluate Entra ID devices (default: false)
    CLEANUP_DRY_RUN: WhatIf mode, no changes (default: true)
    CLEANUP_MAX_CONCURRENT: Parallel retire/delete calls (default: 5)
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .api.client import DEFAULT_BASE_URL
from .api.exceptions import ConfigurationError
from .cleanup.domain.entities import RequestedAction

load_dotenv()

TRUTHY = {"true", "1", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer, got {value!r}",
            details={"variable": name},
        )


class CleanupConfig:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.tenant_id = os.getenv("AZURE_TENANT_ID", "")
        self.client_id = os.getenv("AZURE_CLIENT_ID", "")
        self.client_secret = os.getenv("AZURE_CLIENT_SECRET", "")
        self.graph_base_url = os.getenv("GRAPH_BASE_URL") or DEFAULT_BASE_URL

        self.stale_days = _env_int("CLEANUP_STALE_DAYS", 90)
        self.duplicate_threshold = _env_int("CLEANUP_DUPLICATE_THRESHOLD", 1)
        self.max_count = _env_int("CLEANUP_MAX_COUNT", 50)
        self.max_concurrent = _env_int("CLEANUP_MAX_CONCURRENT", 5)

        action = os.getenv("CLEANUP_ACTION", "export")
        try:
            self.action = RequestedAction.parse(action)
        except ValueError:
            raise ConfigurationError(
                f"CLEANUP_ACTION must be export, retire or delete, got {action!r}",
                details={"variable": "CLEANUP_ACTION"},
            )

        self.output_dir = Path(os.getenv("CLEANUP_OUTPUT_DIR") or "./reports")
        exclusions = os.getenv("CLEANUP_EXCLUSIONS_FILE", "").strip()
        self.exclusions_file: Optional[Path] = Path(exclusions) if exclusions else None
        self.include_directory = _env_bool("CLEANUP_INCLUDE_DIRECTORY", False)
        self.dry_run = _env_bool("CLEANUP_DRY_RUN", True)

    def __repr__(self):
        return (
            f"CleanupConfig("
            f"action={self.action.value}, "
            f"stale_days={self.stale_days}, "
            f"duplicate_threshold={self.duplicate_threshold}, "
            f"max_count={self.max_count}, "
            f"directory={self.include_directory}, "
            f"dry_run={self.dry_run})"
        )
