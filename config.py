import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        redis_url: str,
        cache_ttl_secs: int,
        auth_secret: str,
        auth_max_age_secs: int,
        timezone: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.redis_url = redis_url
        self.cache_ttl_secs = cache_ttl_secs
        self.auth_secret = auth_secret
        self.auth_max_age_secs = auth_max_age_secs
        self.timezone = timezone
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv(
        "FINANCE_DATABASE_URL", f"sqlite+aiosqlite:///{default_db}"
    )
    redis_url = os.getenv("FINANCE_REDIS_URL", "")
    cache_ttl_secs = int(os.getenv("FINANCE_CACHE_TTL_SECS", "3600"))
    auth_secret = os.getenv(
        "FINANCE_AUTH_SECRET",
        "5f0c2a9d7be64f1e8a3c6d40b9e1f27a4c8d0e6b3a5f7192d4e6c8a0b2d4f6e8",
    )
    auth_max_age_secs = int(os.getenv("FINANCE_AUTH_MAX_AGE_SECS", "86400"))
    timezone = os.getenv("FINANCE_TIMEZONE", "America/Sao_Paulo")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        redis_url=redis_url,
        cache_ttl_secs=cache_ttl_secs,
        auth_secret=auth_secret,
        auth_max_age_secs=auth_max_age_secs,
        timezone=timezone,
        log_level=log_level,
    )
