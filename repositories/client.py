"""
Supabase client construction and store settings.

This module only reads configuration and builds the database client. It does
not keep a module-level client: the process builds one at startup with
`create_supabase_client()` and passes it to the repository objects.

Environment variables:
- SUPABASE_URL: Your Supabase project URL (required)
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
- LOG_LEVEL: logging level for the API process (default INFO)
- LOYALTY_POINTS_UNIT: order total that earns one loyalty point (default 100)
- RESTOCK_ON_CANCEL: release stock when an order is cancelled (default false)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

_DEFAULT_ENV_PATH = Path(__file__).parent.parent / ".env"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class StoreSettings:
    supabase_url: str
    supabase_key: str
    log_level: str = "INFO"
    loyalty_points_unit: int = 100
    restock_on_cancel: bool = False

    @staticmethod
    def from_env(env_path: Optional[Path] = None) -> "StoreSettings":
        """
        Read settings from the environment, loading a .env file first.

        Raises RuntimeError when the Supabase credentials are missing.
        """

        load_dotenv(dotenv_path=env_path or _DEFAULT_ENV_PATH)

        supabase_url = os.getenv("SUPABASE_URL")
        supabase_key = os.getenv("SUPABASE_KEY")

        if not supabase_url:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_URL. "
                "Set SUPABASE_URL to your Supabase project URL."
            )
        if not supabase_key:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_KEY. "
                "Set SUPABASE_KEY to your Supabase API key."
            )

        points_unit = int(os.getenv("LOYALTY_POINTS_UNIT", "100"))
        if points_unit <= 0:
            raise RuntimeError("LOYALTY_POINTS_UNIT must be a positive integer")

        return StoreSettings(
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            loyalty_points_unit=points_unit,
            restock_on_cancel=os.getenv("RESTOCK_ON_CANCEL", "false").strip().lower() in _TRUTHY,
        )


def create_supabase_client(settings: StoreSettings) -> Client:
    """Build the Supabase client shared by every repository in this process."""

    return create_client(settings.supabase_url, settings.supabase_key)


__all__ = ["StoreSettings", "create_supabase_client"]
