import logging
from contextlib import contextmanager
from pathlib import Path

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from ledger_api.core.config import settings
from ledger_api.core.errors import StoreFailure

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

DB_POOL = ConnectionPool(
    settings.database_url,
    min_size=settings.db_pool_min,
    max_size=settings.db_pool_max,
    timeout=settings.db_pool_timeout,
    max_waiting=settings.db_pool_max_waiting,
    open=False,
    kwargs={"row_factory": dict_row},
)


def open_db_pool() -> None:
    DB_POOL.open()
    logger.info("Database pool opened (min=%s max=%s)", settings.db_pool_min, settings.db_pool_max)


def close_db_pool() -> None:
    DB_POOL.close()
    logger.info("Database pool closed")


@contextmanager
def db_conn():
    """Borrow a pooled connection.

    Any psycopg error escaping the block is logged and re-raised as
    ``StoreFailure``; callers that expect a specific error (for example a
    unique violation) must catch it inside the block.
    """
    try:
        with DB_POOL.connection() as conn:
            yield conn
    except psycopg.Error as exc:
        logger.exception("Database operation failed")
        raise StoreFailure() from exc


def init_schema() -> None:
    sql = SCHEMA_PATH.read_text(encoding="utf-8")
    with db_conn() as conn:
        conn.execute(sql)
        conn.commit()
    logger.info("Database schema ensured from %s", SCHEMA_PATH.name)
