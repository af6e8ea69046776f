# =========================
# CONFIG

# Configuration for the RAWG catalog API and the database
# =========================

import os
from dotenv import load_dotenv

load_dotenv()

# =========================
# RAWG CATALOG
# =========================

RAWG_API_KEY = os.getenv("RAWG_API_KEY", "")
RAWG_BASE_URL = os.getenv("RAWG_BASE_URL", "https://api.rawg.io/api")
RAWG_TIMEOUT = float(os.getenv("RAWG_TIMEOUT", "15"))

SEARCH_PAGE_SIZE = 20
LISTING_PAGE_SIZE = 16

# =========================
# DATABASE
# =========================

DATABASE_URL = os.getenv("DATABASE_URL", "")

POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_HOST = os.getenv("POSTGRES_HOST")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB")

DB_CONNECT_RETRIES = int(os.getenv("DB_CONNECT_RETRIES", "10"))
DB_CONNECT_DELAY = int(os.getenv("DB_CONNECT_DELAY", "3"))


def database_url() -> str:
    """
    Return the SQLAlchemy URL for the game database.

    DATABASE_URL wins when set, otherwise the URL is assembled from the
    POSTGRES_* variables.

    Returns:
        str: SQLAlchemy connection URL.
    """
    if DATABASE_URL:
        return DATABASE_URL

    return (
        f"postgresql://{POSTGRES_USER}:{POSTGRES_PASSWORD}"
        f"@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}"
    )
