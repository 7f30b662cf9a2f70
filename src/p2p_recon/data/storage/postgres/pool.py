# src/p2p_recon/data/storage/postgres/pool.py
import logging

from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)


def create_pool(dsn: str, *, min_size: int = 1, max_size: int = 10, timeout: float = 30.0) -> ConnectionPool:
    """Connection pool for the order ledger. Connections commit explicitly."""
    pool = ConnectionPool(
        conninfo=dsn,
        min_size=min(min_size, max_size),
        max_size=max_size,
        timeout=timeout,
        kwargs={"autocommit": False, "prepare_threshold": 0},
    )
    logger.info("PostgreSQL pool opened (max_size=%d)", max_size)
    return pool
