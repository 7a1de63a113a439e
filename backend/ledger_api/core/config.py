import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str | None
    redis_prefix: str
    tz: str
    summary_cache_ttl: int
    token_ttl_hours: int
    login_rate_limit: int
    login_rate_window: int
    login_user_rate_limit: int
    register_rate_limit: int
    register_rate_window: int
    password_min_len: int
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    db_init_schema: bool
    default_per_page: int
    max_per_page: int
    log_level: str
    log_dir: str | None


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    db_pool_min = max(1, int(os.getenv("DB_POOL_MIN", "1")))
    db_pool_max = max(db_pool_min, int(os.getenv("DB_POOL_MAX", "10")))

    max_per_page = max(1, int(os.getenv("MAX_PER_PAGE", "100")))
    default_per_page = max(1, min(max_per_page, int(os.getenv("DEFAULT_PER_PAGE", "15"))))

    return Settings(
        database_url=database_url,
        redis_url=(os.getenv("REDIS_URL") or "").strip() or None,
        redis_prefix=(os.getenv("REDIS_PREFIX") or "ledger").strip() or "ledger",
        tz=(os.getenv("TZ") or "UTC").strip() or "UTC",
        summary_cache_ttl=int(os.getenv("SUMMARY_CACHE_TTL", "30")),
        token_ttl_hours=max(1, int(os.getenv("TOKEN_TTL_HOURS", "24"))),
        login_rate_limit=int(os.getenv("LOGIN_RATE_LIMIT", "10")),
        login_rate_window=int(os.getenv("LOGIN_RATE_WINDOW", "300")),
        login_user_rate_limit=int(os.getenv("LOGIN_USER_RATE_LIMIT", "5")),
        register_rate_limit=int(os.getenv("REGISTER_RATE_LIMIT", "5")),
        register_rate_window=int(os.getenv("REGISTER_RATE_WINDOW", "900")),
        password_min_len=int(os.getenv("PASSWORD_MIN_LEN", "8")),
        db_pool_min=db_pool_min,
        db_pool_max=db_pool_max,
        db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_max_waiting=int(os.getenv("DB_POOL_MAX_WAITING", "100")),
        db_init_schema=os.getenv("DB_INIT_SCHEMA", "false").lower() == "true",
        default_per_page=default_per_page,
        max_per_page=max_per_page,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        log_dir=(os.getenv("LOG_DIR") or "").strip() or None,
    )


settings = load_settings()
