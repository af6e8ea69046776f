# =========================
# MODELS

# Define Pydantic models for data validation and serialization
# =========================

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


_NUMERIC_IDENTIFIER = re.compile(r"[0-9]+")


def is_numeric_identifier(identifier: str) -> bool:
    """
    Tell whether an identifier is a numeric catalog ID rather than a slug.

    Args:
        identifier (str): Game identifier as typed by the user.

    Returns:
        bool: True for ASCII decimal digits only.
    """
    return _NUMERIC_IDENTIFIER.fullmatch(identifier) is not None


# =========================
# CATALOG
# =========================

class Genre(BaseModel):
    id: Optional[int] = None
    name: str


class Platform(BaseModel):
    id: Optional[int] = None
    name: str

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        # RAWG wraps each platform as {"platform": {"id": .., "name": ..}}
        if isinstance(data, dict) and isinstance(data.get("platform"), dict):
            return data["platform"]
        return data


class Screenshot(BaseModel):
    id: Optional[int] = None
    image: str


class CatalogGame(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    slug: Optional[str] = None
    released: Optional[date] = None
    background_image: Optional[str] = None
    rating: Optional[float] = None
    rating_top: Optional[int] = None
    ratings_count: Optional[int] = None
    metacritic: Optional[int] = None
    playtime: Optional[int] = None
    platforms: List[Platform] = Field(default_factory=list)
    genres: List[Genre] = Field(default_factory=list)
    description: Optional[str] = None
    short_screenshots: List[Screenshot] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # RAWG sends null for empty lists on some records
        if isinstance(data, dict):
            data = dict(data)
            for key in ("platforms", "genres", "short_screenshots"):
                if data.get(key) is None:
                    data.pop(key, None)
        return data

    @property
    def extra_fields(self) -> Dict[str, Any]:
        """Catalog fields that have no dedicated attribute."""
        return dict(self.model_extra or {})


class CatalogPage(BaseModel):
    count: int = 0
    next: Optional[str] = None
    previous: Optional[str] = None
    results: List[CatalogGame] = Field(default_factory=list)


class StoredGame(BaseModel):
    rawg_id: int
    name: str
    slug: Optional[str] = None
    released: Optional[date] = None
    rating: Optional[float] = None
    rating_top: Optional[int] = None
    metacritic: Optional[int] = None
    playtime: Optional[int] = None
    platforms: Optional[List[Dict[str, Any]]] = None
    genres: Optional[List[Dict[str, Any]]] = None
    background_image: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_catalog(cls, payload: Dict[str, Any]) -> "StoredGame":
        """
        Build a store row from a raw RAWG game response.

        Key fields are extracted into columns and the full response is kept
        as the metadata blob.

        Args:
            payload (Dict[str, Any]): RAWG game details response.

        Returns:
            StoredGame: Row ready for upsert.
        """
        return cls(
            rawg_id=payload["id"],
            name=payload["name"],
            slug=payload.get("slug"),
            released=payload.get("released"),
            rating=payload.get("rating"),
            rating_top=payload.get("rating_top"),
            metacritic=payload.get("metacritic"),
            playtime=payload.get("playtime"),
            platforms=payload.get("platforms"),
            genres=payload.get("genres"),
            background_image=payload.get("background_image"),
            metadata=payload,
        )


# =========================
# USER LIBRARY
# =========================

class GameStatus(str, Enum):
    PLAYING = "playing"
    COMPLETED = "completed"
    WISHLIST = "wishlist"
    DROPPED = "dropped"


class GenreMode(str, Enum):
    COUNT = "count"
    SCORE = "score"


class Review(BaseModel):
    score: Optional[int] = Field(default=None, ge=0, le=10)
    text: Optional[str] = None
    recorded_at: datetime


class ReviewInput(BaseModel):
    score: Optional[int] = Field(default=None, ge=0, le=10)
    text: Optional[str] = None


class LibraryEntry(BaseModel):
    id: Optional[int] = None
    game_id: str
    status: GameStatus
    reviews: List[Review] = Field(default_factory=list)
    completed_at: Optional[datetime] = None

    @property
    def latest_review(self) -> Optional[Review]:
        return self.reviews[-1] if self.reviews else None


class LibraryStats(BaseModel):
    total_games: int = 0
    playing: int = 0
    completed: int = 0
    wishlist: int = 0
    dropped: int = 0


class GenreScore(BaseModel):
    name: str
    value: int


class RecordResult(BaseModel):
    entry: LibraryEntry
    stats: LibraryStats
    created: bool


class Dashboard(BaseModel):
    stats: LibraryStats
    genres_by_count: List[GenreScore]
    genres_by_score: List[GenreScore]


class Library(BaseModel):
    entries: List[LibraryEntry]
    stats: LibraryStats
