from __future__ import annotations

import os
from pathlib import Path


class Settings:
    """Centralized configuration for the sync layer."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        data_root_default = base_dir.parent / "data"

        self.data_root: Path = Path(
            os.environ.get("NUTRISYNC_DATA_ROOT") or data_root_default
        ).expanduser()
        self.cache_db_path: Path = Path(
            os.environ.get("NUTRISYNC_CACHE_DB") or (self.data_root / "cache.db")
        ).expanduser()
        # Cache entries older than this are never returned.
        self.cache_ttl_seconds: float = float(
            os.environ.get("NUTRISYNC_CACHE_TTL_SECONDS") or "300"
        )

        self.remote_url: str = os.environ.get(
            "NUTRISYNC_REMOTE_URL", "http://127.0.0.1:54321"
        )
        self.remote_api_key: str = os.environ.get("NUTRISYNC_REMOTE_KEY") or ""
        self.remote_timeout: float = float(
            os.environ.get("NUTRISYNC_REMOTE_TIMEOUT") or "30"
        )


settings = Settings()
