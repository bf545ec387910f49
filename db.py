import logging
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

from settings import settings

logger = logging.getLogger("payouts.db")

_pool: ThreadedConnectionPool | None = None


def init_pool():
    """
    Initialize the PostgreSQL connection pool.
    Called lazily by the first get_conn(); the worker and the API share the code path.
    """
    global _pool
    if _pool is not None:
        return
    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not set.")

    # UUID params and uuid/uuid[] columns map to uuid.UUID
    psycopg2.extras.register_uuid()
    _pool = ThreadedConnectionPool(
        minconn=settings.DB_POOL_MIN,
        maxconn=settings.DB_POOL_MAX,
        dsn=settings.DATABASE_URL,
        connect_timeout=5,
    )
    logger.info("db pool ready min=%s max=%s", settings.DB_POOL_MIN, settings.DB_POOL_MAX)


def close_pool():
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None


@contextmanager
def get_conn():
    """
    One transaction per block: commit on success, rollback on any error.
    """
    if _pool is None:
        init_pool()

    conn = _pool.getconn()
    try:
        with conn.cursor() as cur:
            cur.execute("SET statement_timeout = %s;", (f"{settings.DB_STATEMENT_TIMEOUT_MS}ms",))
            cur.execute("SET idle_in_transaction_session_timeout = %s;", (f"{settings.DB_STATEMENT_TIMEOUT_MS}ms",))
            cur.execute("SET application_name = 'payout_engine';")

        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)
