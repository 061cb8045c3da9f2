"""Runtime configuration loaded from the environment."""

# purpose: centralise environment-driven settings for storage, pub/sub, and reporting
# status: active

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    redis_url: str
    sentry_dsn: str | None
    testing: bool
    log_level: str
    lineage_depth_limit: int

    @property
    def local_only(self) -> bool:
        """True when no backing database is configured."""

        return not self.database_url


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        sentry_dsn=os.getenv("SENTRY_DSN") or None,
        testing=os.getenv("TESTING") == "1",
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        lineage_depth_limit=int(os.getenv("LINEAGE_DEPTH_LIMIT", "100")),
    )
