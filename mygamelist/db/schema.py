# =========================
# DB SCHEMA
# =========================

from sqlalchemy import text
from sqlalchemy.engine import Engine

from mygamelist.logger import get_logger


logger = get_logger("db-schema")


def _serial_primary_key(engine: Engine) -> str:
    """
    Return the auto-increment primary key declaration for the engine dialect.

    Args:
        engine: SQLAlchemy engine instance.

    Returns:
        str: Column definition for an auto-generated integer key.
    """
    if engine.dialect.name == "postgresql":
        return "SERIAL PRIMARY KEY"
    return "INTEGER PRIMARY KEY AUTOINCREMENT"


def create_tables(engine: Engine) -> None:
    """
    Create the games, user_games and reviews tables if they do not exist.

    Args:
        engine: SQLAlchemy engine instance.

    Returns:
        None
    """
    serial = _serial_primary_key(engine)

    statements = [
        """
        CREATE TABLE IF NOT EXISTS games (
            rawg_id INTEGER PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(255) UNIQUE,

            released DATE,
            rating FLOAT,
            rating_top INTEGER,
            metacritic INTEGER,
            playtime INTEGER,

            platforms TEXT,
            genres TEXT,
            background_image TEXT,
            description TEXT,
            metadata TEXT,

            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS user_games (
            id {serial},
            user_id VARCHAR(255) NOT NULL,
            game_id VARCHAR(255) NOT NULL,
            status VARCHAR(32) NOT NULL,
            completed_at TIMESTAMPTZ,

            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS ix_user_games_user_id
        ON user_games (user_id)
        """,
        f"""
        CREATE TABLE IF NOT EXISTS reviews (
            id {serial},
            user_game_id INTEGER NOT NULL REFERENCES user_games(id) ON DELETE CASCADE,
            review_score INTEGER,
            review_text TEXT,
            reviewed_at TIMESTAMPTZ NOT NULL
        )
        """,
    ]

    with engine.begin() as conn:
        for sql in statements:
            conn.execute(text(sql))

    logger.info("Tables ensured")
