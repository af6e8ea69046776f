# =========================
# DB ENGINE
# =========================


import time
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from mygamelist.config import DB_CONNECT_DELAY, DB_CONNECT_RETRIES, database_url
from mygamelist.logger import get_logger

# =========================
# LOGGER
# =========================

logger = get_logger("db-engine")

# =========================
# ENGINE CREATION
# =========================

def create_db_engine(
    url: str | None = None,
    retries: int = DB_CONNECT_RETRIES,
    delay: int = DB_CONNECT_DELAY,
) -> Engine:
    """
    Create a SQLAlchemy engine with retry logic for the database connection.

    Args:
        url (str | None): Connection URL, defaults to the configured one.
        retries (int): Number of connection retries.
        delay (int): Delay between retries in seconds.

    Returns:
        sqlalchemy.Engine: SQLAlchemy engine instance.

    Raises:
        RuntimeError: If unable to connect after retries.
    """
    connection_string = url or database_url()

    for i in range(retries):
        try:
            engine = create_engine(connection_string, pool_pre_ping=True)
            with engine.connect():
                pass
            logger.info(f"Connected to DB ({engine.dialect.name})")
            return engine
        except OperationalError:
            logger.warning(f"DB not ready, retrying in {delay}s ({i+1}/{retries})...")
            time.sleep(delay)

    raise RuntimeError("Cannot connect to database")
