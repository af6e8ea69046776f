# =========================
# DB REPOSITORY
# =========================

import json
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError
from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from mygamelist.errors import AlreadyExists, InvalidArgument, NotFound, StorageError
from mygamelist.logger import get_logger
from mygamelist.models import (
    GameStatus,
    LibraryEntry,
    Review,
    StoredGame,
    is_numeric_identifier,
)

# =========================
# LOGGER
# =========================

logger = get_logger("db-repository")

# =========================
# HELPERS
# =========================

@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """
    Translate SQLAlchemy failures, and stored rows that no longer fit the
    models, into StorageError.

    Args:
        action (str): Human readable name of the operation, used in messages.
    """
    try:
        yield
    except (SQLAlchemyError, ValidationError) as e:
        logger.error(f"{action} failed: {e}")
        raise StorageError(f"{action} failed") from e


def _fits_key(rawg_id: int) -> bool:
    return 0 <= rawg_id <= MAX_RAWG_ID


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _load_json(value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    return json.loads(value)


def _to_db_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a timestamp for storage, treating naive values as UTC.

    Args:
        value (Optional[datetime]): Timestamp to store.

    Returns:
        Optional[str]: ISO 8601 string or None.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


# =========================
# GAME STORE
# =========================

_GAME_COLUMNS = """
    rawg_id, name, slug, released, rating, rating_top, metacritic, playtime,
    platforms, genres, background_image, description, metadata
"""

_UPDATABLE_COLUMNS = (
    "name", "slug", "released", "rating", "rating_top", "metacritic", "playtime",
    "platforms", "genres", "background_image", "description", "metadata",
)
_JSON_COLUMNS = ("platforms", "genres", "metadata")

# games.rawg_id is a 32-bit INTEGER
MAX_RAWG_ID = 2**31 - 1


class GameRepository:
    """
    Cached catalog records keyed by RAWG ID, with slug as alternate key.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def _row_to_game(self, row) -> StoredGame:
        data = dict(row._mapping)
        for key in ("platforms", "genres", "metadata"):
            data[key] = _load_json(data[key])
        return StoredGame.model_validate(data)

    def _flatten(self, game: StoredGame) -> Dict[str, Any]:
        return {
            "rawg_id": game.rawg_id,
            "name": game.name,
            "slug": game.slug,
            "released": _to_db_date(game.released),
            "rating": game.rating,
            "rating_top": game.rating_top,
            "metacritic": game.metacritic,
            "playtime": game.playtime,
            "platforms": _dump_json(game.platforms),
            "genres": _dump_json(game.genres),
            "background_image": game.background_image,
            "description": game.description,
            "metadata": _dump_json(game.metadata),
        }

    # =========================
    # READ
    # =========================

    def find_by_id_or_slug(self, identifier: str) -> Optional[StoredGame]:
        """
        Look a game up by RAWG ID when the identifier is numeric, else by slug.

        Args:
            identifier (str): RAWG ID or slug.

        Returns:
            Optional[StoredGame]: The stored row, or None when absent. An ID
            too large for the key column can never be stored, so it is None.
        """
        if is_numeric_identifier(identifier):
            rawg_id = int(identifier)
            if not _fits_key(rawg_id):
                logger.debug(f"RAWG ID {identifier} is out of range for the store")
                return None
            sql = text(f"SELECT {_GAME_COLUMNS} FROM games WHERE rawg_id = :key")
            params = {"key": rawg_id}
        else:
            sql = text(f"SELECT {_GAME_COLUMNS} FROM games WHERE slug = :key")
            params = {"key": identifier}

        with _storage_errors("Game lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(sql, params).first()
            return self._row_to_game(row) if row is not None else None

    def list_games(self) -> List[StoredGame]:
        """Return every stored game ordered by RAWG ID."""
        sql = text(f"SELECT {_GAME_COLUMNS} FROM games ORDER BY rawg_id")

        with _storage_errors("Game listing"):
            with self.engine.connect() as conn:
                rows = conn.execute(sql).all()
            return [self._row_to_game(row) for row in rows]

    # =========================
    # WRITE
    # =========================

    def upsert_game(self, game: StoredGame) -> None:
        """
        Insert a game or refresh the stored copy on RAWG ID conflict.

        Args:
            game (StoredGame): Row to save.

        Raises:
            StorageError: If the statement fails.
        """
        sql = text(f"""
        INSERT INTO games ({_GAME_COLUMNS})
        VALUES (
            :rawg_id, :name, :slug, :released, :rating, :rating_top,
            :metacritic, :playtime, :platforms, :genres, :background_image,
            :description, :metadata
        )
        ON CONFLICT (rawg_id)
        DO UPDATE SET
            name = EXCLUDED.name,
            slug = EXCLUDED.slug,
            released = EXCLUDED.released,
            rating = EXCLUDED.rating,
            rating_top = EXCLUDED.rating_top,
            metacritic = EXCLUDED.metacritic,
            playtime = EXCLUDED.playtime,
            platforms = EXCLUDED.platforms,
            genres = EXCLUDED.genres,
            background_image = EXCLUDED.background_image,
            description = EXCLUDED.description,
            metadata = EXCLUDED.metadata,
            updated_at = CURRENT_TIMESTAMP
        """)

        with _storage_errors("Game upsert"):
            with self.engine.begin() as conn:
                conn.execute(sql, self._flatten(game))

        logger.info(f"Saved / updated: {game.name}")

    def insert_game(self, game: StoredGame) -> None:
        """
        Add a game by hand; an existing RAWG ID is refused.

        Args:
            game (StoredGame): Row to add.

        Raises:
            AlreadyExists: If a game with the same RAWG ID is stored.
        """
        exists = text("SELECT 1 FROM games WHERE rawg_id = :rawg_id")
        sql = text(f"""
        INSERT INTO games ({_GAME_COLUMNS})
        VALUES (
            :rawg_id, :name, :slug, :released, :rating, :rating_top,
            :metacritic, :playtime, :platforms, :genres, :background_image,
            :description, :metadata
        )
        """)

        with _storage_errors("Game insert"):
            with self.engine.begin() as conn:
                if conn.execute(exists, {"rawg_id": game.rawg_id}).first():
                    raise AlreadyExists(f"Game with id {game.rawg_id} already exists")
                conn.execute(sql, self._flatten(game))

        logger.info(f"Added game: {game.name}")

    def update_game(self, rawg_id: int, fields: Dict[str, Any]) -> StoredGame:
        """
        Change columns of a stored game.

        Args:
            rawg_id (int): RAWG ID of the game.
            fields (Dict[str, Any]): Column -> new value. platforms, genres
                and metadata take the decoded JSON value, released a date.

        Returns:
            StoredGame: The row after the update.

        Raises:
            InvalidArgument: If the id is missing, or a field is unknown.
            NotFound: If no such game is stored.
        """
        if not rawg_id:
            raise InvalidArgument("id is required")
        if not fields:
            raise InvalidArgument("Nothing to update")
        unknown = sorted(set(fields) - set(_UPDATABLE_COLUMNS))
        if unknown:
            raise InvalidArgument(f"Unknown game fields: {', '.join(unknown)}")
        if not _fits_key(rawg_id):
            raise NotFound(f"Game {rawg_id} not found")

        params: Dict[str, Any] = {}
        for key, value in fields.items():
            if key in _JSON_COLUMNS:
                value = _dump_json(value)
            elif key == "released" and isinstance(value, date):
                value = _to_db_date(value)
            params[key] = value

        assignments = ", ".join(f"{key} = :{key}" for key in params)
        sql = text(f"""
        UPDATE games
        SET {assignments}, updated_at = CURRENT_TIMESTAMP
        WHERE rawg_id = :rawg_id
        """)

        with _storage_errors("Game update"):
            with self.engine.begin() as conn:
                updated = conn.execute(sql, {**params, "rawg_id": rawg_id}).rowcount

        if updated == 0:
            raise NotFound(f"Game {rawg_id} not found")
        logger.info(f"Updated game {rawg_id}: {', '.join(params)}")

        return self.find_by_id_or_slug(str(rawg_id))

    def delete_game(self, rawg_id: int) -> None:
        """
        Remove a game from the store.

        Args:
            rawg_id (int): RAWG ID of the game.

        Raises:
            NotFound: If no such game is stored.
        """
        if not _fits_key(rawg_id):
            raise NotFound(f"Game {rawg_id} not found")

        sql = text("DELETE FROM games WHERE rawg_id = :rawg_id")

        with _storage_errors("Game delete"):
            with self.engine.begin() as conn:
                deleted = conn.execute(sql, {"rawg_id": rawg_id}).rowcount

        if deleted == 0:
            raise NotFound(f"Game {rawg_id} not found")
        logger.info(f"Deleted game {rawg_id}")


# =========================
# USER LIBRARY STORE
# =========================

class LibraryRepository:
    """
    Per-user library entries (user_games) and their reviews.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def _load_reviews(self, conn, entry_ids: List[int]) -> Dict[int, List[Review]]:
        reviews: Dict[int, List[Review]] = {entry_id: [] for entry_id in entry_ids}
        if not entry_ids:
            return reviews

        sql = text("""
        SELECT user_game_id, review_score, review_text, reviewed_at
        FROM reviews
        WHERE user_game_id IN :ids
        ORDER BY reviewed_at, id
        """).bindparams(bindparam("ids", expanding=True))

        for row in conn.execute(sql, {"ids": entry_ids}):
            reviews[row.user_game_id].append(
                Review(score=row.review_score, text=row.review_text, recorded_at=row.reviewed_at)
            )
        return reviews

    def _entries(self, conn, rows) -> List[LibraryEntry]:
        reviews = self._load_reviews(conn, [row.id for row in rows])
        return [
            LibraryEntry(
                id=row.id,
                game_id=row.game_id,
                status=row.status,
                reviews=reviews[row.id],
                completed_at=row.completed_at,
            )
            for row in rows
        ]

    # =========================
    # ENTRIES
    # =========================

    def list_entries(self, user_id: str) -> List[LibraryEntry]:
        """
        Return all library entries of a user, oldest first, reviews included.

        Args:
            user_id (str): Owner of the library.

        Returns:
            List[LibraryEntry]: The user's entries.
        """
        sql = text("""
        SELECT id, game_id, status, completed_at
        FROM user_games
        WHERE user_id = :user_id
        ORDER BY id
        """)

        with _storage_errors("Library listing"):
            with self.engine.connect() as conn:
                rows = conn.execute(sql, {"user_id": user_id}).all()
                return self._entries(conn, rows)

    def find_entry(self, user_id: str, identifiers: Iterable[str]) -> Optional[LibraryEntry]:
        """
        Return the oldest entry of the user stored under any of the identifiers.

        Args:
            user_id (str): Owner of the library.
            identifiers (Iterable[str]): Candidate game IDs and slugs.

        Returns:
            Optional[LibraryEntry]: Matching entry, or None.
        """
        candidates = sorted({i for i in identifiers if i})
        if not candidates:
            return None

        sql = text("""
        SELECT id, game_id, status, completed_at
        FROM user_games
        WHERE user_id = :user_id AND game_id IN :candidates
        ORDER BY id
        """).bindparams(bindparam("candidates", expanding=True))

        with _storage_errors("Library lookup"):
            with self.engine.connect() as conn:
                rows = conn.execute(sql, {"user_id": user_id, "candidates": candidates}).all()
                if not rows:
                    return None
                if len(rows) > 1:
                    logger.warning(
                        f"User {user_id} has {len(rows)} entries for {candidates}, using id={rows[0].id}"
                    )
                return self._entries(conn, rows[:1])[0]

    def insert_entry(
        self,
        user_id: str,
        game_id: str,
        status: GameStatus,
        completed_at: Optional[datetime],
    ) -> int:
        """
        Create a library entry.

        Returns:
            int: Storage id of the new entry.
        """
        sql = text("""
        INSERT INTO user_games (user_id, game_id, status, completed_at)
        VALUES (:user_id, :game_id, :status, :completed_at)
        RETURNING id
        """)

        params = {
            "user_id": user_id,
            "game_id": game_id,
            "status": GameStatus(status).value,
            "completed_at": _to_db_time(completed_at),
        }

        with _storage_errors("Library insert"):
            with self.engine.begin() as conn:
                entry_id = conn.execute(sql, params).scalar_one()

        logger.info(f"Added {game_id} for user {user_id} as {params['status']}")
        return entry_id

    def update_entry(
        self,
        entry_id: int,
        game_id: str,
        status: GameStatus,
        completed_at: Optional[datetime],
    ) -> None:
        sql = text("""
        UPDATE user_games
        SET game_id = :game_id, status = :status, completed_at = :completed_at
        WHERE id = :id
        """)

        params = {
            "id": entry_id,
            "game_id": game_id,
            "status": GameStatus(status).value,
            "completed_at": _to_db_time(completed_at),
        }

        with _storage_errors("Library update"):
            with self.engine.begin() as conn:
                conn.execute(sql, params)

        logger.info(f"Updated entry {entry_id}: {game_id} -> {params['status']}")

    def delete_entry(self, entry_id: int) -> None:
        """Delete an entry together with its reviews."""
        with _storage_errors("Library delete"):
            with self.engine.begin() as conn:
                conn.execute(text("DELETE FROM reviews WHERE user_game_id = :id"), {"id": entry_id})
                conn.execute(text("DELETE FROM user_games WHERE id = :id"), {"id": entry_id})

        logger.info(f"Deleted entry {entry_id}")

    # =========================
    # REVIEWS
    # =========================

    def upsert_review(self, entry_id: int, review: Review) -> None:
        """
        Replace the latest review of an entry, or insert the first one.

        Args:
            entry_id (int): Library entry the review belongs to.
            review (Review): Review to store.
        """
        latest = text("""
        SELECT id FROM reviews
        WHERE user_game_id = :id
        ORDER BY reviewed_at DESC, id DESC
        LIMIT 1
        """)
        update = text("""
        UPDATE reviews
        SET review_score = :score, review_text = :text, reviewed_at = :reviewed_at
        WHERE id = :review_id
        """)
        insert = text("""
        INSERT INTO reviews (user_game_id, review_score, review_text, reviewed_at)
        VALUES (:id, :score, :text, :reviewed_at)
        """)

        params = {
            "id": entry_id,
            "score": review.score,
            "text": review.text,
            "reviewed_at": _to_db_time(review.recorded_at),
        }

        with _storage_errors("Review write"):
            with self.engine.begin() as conn:
                existing = conn.execute(latest, {"id": entry_id}).first()
                if existing is not None:
                    conn.execute(update, {**params, "review_id": existing.id})
                else:
                    conn.execute(insert, params)

        logger.info(f"Saved review for entry {entry_id}")
