"""Runtime settings for a feed sync run, read from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from carzo_feed.constants import BATCH_SIZE, DEFAULT_FEED_HOST, LOCK_STALE_AFTER_SECONDS
from carzo_feed.errors import ConfigurationError

# (setting, primary variable, legacy fallback)
_REQUIRED_VARS = (
    ("store_url", "CARZO_STORE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    ("store_key", "CARZO_STORE_KEY", "SUPABASE_SERVICE_ROLE_KEY"),
    ("feed_username", "LOTLINX_FEED_USERNAME", None),
    ("feed_password", "LOTLINX_FEED_PASSWORD", None),
    ("publisher_id", "LOTLINX_PUBLISHER_ID", None),
)


@dataclass(frozen=True)
class FeedSyncSettings:
    """Credentials and tuning for one sync run."""
    store_url: str
    store_key: str
    feed_username: str
    feed_password: str
    publisher_id: str
    feed_host: str = DEFAULT_FEED_HOST
    batch_size: int = BATCH_SIZE
    scratch_dir: str = ""
    lock_stale_after_seconds: int = LOCK_STALE_AFTER_SECONDS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FeedSyncSettings:
        """Build settings from environment variables.

        Raises :class:`ConfigurationError` naming every missing variable, so the
        operator sees the full list before any network call is attempted.
        """
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        missing: list[str] = []
        for name, var, fallback in _REQUIRED_VARS:
            value = env.get(var, "").strip()
            if not value and fallback:
                value = env.get(fallback, "").strip()
            if not value:
                missing.append(var)
            values[name] = value
        if missing:
            raise ConfigurationError(
                "Missing required environment variables: " + ", ".join(missing),
                details={"missing": missing},
            )

        batch_raw = env.get("CARZO_SYNC_BATCH_SIZE", "").strip()
        try:
            batch_size = int(batch_raw) if batch_raw else BATCH_SIZE
        except ValueError as exc:
            raise ConfigurationError(
                f"CARZO_SYNC_BATCH_SIZE must be an integer, got {batch_raw!r}",
            ) from exc
        if batch_size < 1:
            raise ConfigurationError("CARZO_SYNC_BATCH_SIZE must be positive")

        return cls(
            feed_host=env.get("LOTLINX_FEED_HOST", "").strip() or DEFAULT_FEED_HOST,
            batch_size=batch_size,
            scratch_dir=env.get("CARZO_SCRATCH_DIR", "").strip(),
            **values,
        )


def load_env_file(path: str | Path) -> bool:
    """Load ``KEY=VALUE`` lines into ``os.environ`` without overriding set values.

    Returns ``False`` when the file does not exist.
    """
    env_file = Path(path)
    if not env_file.is_file():
        return False
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            os.environ.setdefault(k.strip(), v.strip().strip("\"'"))
    return True
