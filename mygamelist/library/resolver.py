# =========================
# GAME RESOLVER

# Resolve a game by RAWG ID or slug, local store first, catalog second
# =========================

from typing import Any, Dict

from pydantic import ValidationError

from mygamelist.catalog.rawg_client import RawgClient
from mygamelist.db.repository import GameRepository
from mygamelist.errors import CatalogError, InvalidArgument, NotFound
from mygamelist.logger import get_logger
from mygamelist.models import CatalogGame, StoredGame, is_numeric_identifier

# =========================
# LOGGER
# =========================

logger = get_logger("game-resolver")

# =========================
# STORED ROW -> CATALOG SHAPE
# =========================

def format_stored_game(stored: StoredGame) -> CatalogGame:
    """
    Reshape a stored row into the catalog game shape.

    Precedence, later steps win:
        1. top-level columns (rawg_id becomes id, lists default to empty),
        2. description from metadata, else the column,
        3. ratings_count from metadata,
        4. short_screenshots from metadata, else empty,
        5. every metadata key, spread last.

    Args:
        stored (StoredGame): Row from the game store.

    Returns:
        CatalogGame: The game as the catalog would return it.
    """
    metadata: Dict[str, Any] = stored.metadata or {}

    merged: Dict[str, Any] = {
        "id": stored.rawg_id,
        "name": stored.name,
        "slug": stored.slug,
        "released": stored.released,
        "background_image": stored.background_image,
        "rating": stored.rating,
        "rating_top": stored.rating_top,
        "metacritic": stored.metacritic,
        "playtime": stored.playtime,
        "platforms": stored.platforms or [],
        "genres": stored.genres or [],
    }
    merged["description"] = metadata.get("description") or stored.description
    merged["ratings_count"] = metadata.get("ratings_count")
    merged["short_screenshots"] = metadata.get("short_screenshots") or []
    merged.update(metadata)

    return CatalogGame.model_validate(merged)

# =========================
# RESOLVER
# =========================

class GameResolver:
    """
    Turns a user supplied identifier into the canonical catalog record.
    """

    def __init__(self, catalog: RawgClient, store: GameRepository):
        self.catalog = catalog
        self.store = store

    async def resolve(self, identifier: str) -> CatalogGame:
        """
        Resolve a game by numeric RAWG ID or slug.

        The game store is asked first. On a miss the catalog is queried and
        its answer cached in the store; a failing cache write is logged only.

        Args:
            identifier (str): RAWG ID (digits only) or slug.

        Returns:
            CatalogGame: The resolved game.

        Raises:
            InvalidArgument: If the identifier is empty.
            NotFound: If the catalog does not know the identifier, or answers
                with a payload that is not a game.
            StorageError: If the store lookup fails.
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise InvalidArgument("Game identifier is required")

        numeric = is_numeric_identifier(identifier)

        # 1. STORE
        stored = self.store.find_by_id_or_slug(identifier)
        if stored is not None:
            logger.debug(f"Store hit for {identifier!r}")
            return format_stored_game(stored)

        # 2. CATALOG
        try:
            payload = await self.catalog.fetch_game_details(int(identifier) if numeric else identifier)
        except CatalogError as e:
            logger.error(f"Error fetching game {identifier!r} from RAWG: {e}")
            raise NotFound(str(e) or "Game not found") from e

        try:
            game = CatalogGame.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Malformed RAWG payload for {identifier!r}: {e}")
            raise NotFound(f"Game {identifier} not found") from e

        # 3. CACHE (best effort)
        try:
            self.store.upsert_game(StoredGame.from_catalog(payload))
        except Exception as e:
            logger.warning(f"Could not save game {game.id} to database: {e}")

        return game
