import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_secs: int,
        log_level: str,
        debug: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_secs = token_max_age_secs
        self.log_level = log_level
        self.debug = debug


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINTRACK_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "fintrack.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FINTRACK_TIMEZONE", "UTC")
    secret_key = os.getenv(
        "FINTRACK_SECRET_KEY",
        "3f9c1e5a7b2d4c6e8f0a1b3c5d7e9f1a2b4c6d8e0f1a3b5c7d9e1f3a5b7c9d1e",
    )
    token_max_age_secs = int(os.getenv("FINTRACK_TOKEN_MAX_AGE_SECS", "86400"))
    log_level = os.getenv("FINTRACK_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_secs=token_max_age_secs,
        log_level=log_level,
        debug=_env_flag("FINTRACK_DEBUG"),
    )
