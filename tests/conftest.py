from typing import Any, Dict, List

import pytest

from mygamelist.db.engine import create_db_engine
from mygamelist.db.repository import GameRepository, LibraryRepository
from mygamelist.db.schema import create_tables
from mygamelist.errors import CatalogError, NotFound
from mygamelist.models import CatalogGame


def rawg_payload(game_id: int, slug: str, name: str, genres: List[str] | None = None) -> Dict[str, Any]:
    """A trimmed RAWG game details response."""
    return {
        "id": game_id,
        "slug": slug,
        "name": name,
        "released": "2007-09-25",
        "rating": 4.4,
        "rating_top": 5,
        "ratings_count": 3201,
        "metacritic": 94,
        "playtime": 9,
        "description": "<p>Finish the fight.</p>",
        "platforms": [{"platform": {"id": 14, "name": "Xbox 360"}}],
        "genres": [{"id": i, "name": g} for i, g in enumerate(genres or ["Action"])],
        "short_screenshots": [{"id": 1, "image": "https://media.rawg.io/shot.jpg"}],
        "esrb_rating": {"id": 4, "name": "Mature"},
    }


class FakeCatalog:
    """In-memory stand-in for RawgClient."""

    def __init__(self, payloads: List[Dict[str, Any]] | None = None):
        self.payloads = payloads or []
        self.calls: List[Any] = []

    async def fetch_game_details(self, id_or_slug):
        self.calls.append(id_or_slug)
        for payload in self.payloads:
            if payload["id"] == id_or_slug or payload["slug"] == id_or_slug:
                return payload
        raise CatalogError("Failed to fetch game")


class FakeResolver:
    """Resolver answering from a fixed identifier -> game mapping."""

    def __init__(self, games: Dict[str, CatalogGame] | None = None, failure: type = NotFound):
        self.games = games or {}
        self.failure = failure

    async def resolve(self, identifier: str) -> CatalogGame:
        if identifier not in self.games:
            raise self.failure("Failed to fetch game")
        return self.games[identifier]


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'mygamelist.db'}", retries=1, delay=0)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def games(engine) -> GameRepository:
    return GameRepository(engine)


@pytest.fixture
def library(engine) -> LibraryRepository:
    return LibraryRepository(engine)
