# =========================
# LIBRARY AGGREGATOR

# Status counts and genre distributions over a user's library
# =========================

from collections import Counter
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from mygamelist.errors import InvalidArgument, MyGameListError
from mygamelist.logger import get_logger
from mygamelist.models import (
    CatalogGame,
    Dashboard,
    GameStatus,
    GenreMode,
    GenreScore,
    LibraryEntry,
    LibraryStats,
)

logger = get_logger("library-aggregator")

TARGET_GENRES = ["Action", "RPG", "Strategy", "Puzzle", "Adventure", "Sports", "Horror", "Indie"]


# =========================
# STATUS COUNTS
# =========================

def compute_stats(entries: Sequence[LibraryEntry]) -> LibraryStats:
    """
    Count library entries by status.

    Args:
        entries (Sequence[LibraryEntry]): All entries of one user.

    Returns:
        LibraryStats: Totals per status.
    """
    counts = Counter(GameStatus(entry.status) for entry in entries)
    return LibraryStats(
        total_games=len(entries),
        playing=counts[GameStatus.PLAYING],
        completed=counts[GameStatus.COMPLETED],
        wishlist=counts[GameStatus.WISHLIST],
        dropped=counts[GameStatus.DROPPED],
    )


# =========================
# GENRE DISTRIBUTION
# =========================

def _genre_rows(
    catalog_games: Sequence[Optional[CatalogGame]],
    entries: Optional[Sequence[LibraryEntry]],
) -> pd.DataFrame:
    """
    One row per (game, target genre) with the latest review score of the game.
    """
    rows = []
    for i, game in enumerate(catalog_games):
        if game is None or not game.genres:
            continue

        latest = entries[i].latest_review if entries is not None else None
        score = latest.score if latest is not None else None

        names = dict.fromkeys(genre.name for genre in game.genres)
        for name in names:
            if name in TARGET_GENRES:
                rows.append({"genre": name, "score": score})

    frame = pd.DataFrame(rows, columns=["genre", "score"])
    frame["score"] = frame["score"].astype("float64")
    return frame


def compute_genre_distribution(
    catalog_games: Sequence[Optional[CatalogGame]],
    mode: GenreMode = GenreMode.COUNT,
    entries: Optional[Sequence[LibraryEntry]] = None,
) -> List[GenreScore]:
    """
    Distribution of the target genres over tracked games, scaled to 0-100.

    In count mode each genre gets the number of games listing it. In score
    mode it gets the mean latest review score of the games listing it,
    unscored games excluded. Values are divided by the largest one (at
    least 1) and rounded half up.

    Args:
        catalog_games (Sequence[Optional[CatalogGame]]): Resolved games,
            None where a game could not be resolved.
        mode (GenreMode): COUNT or SCORE.
        entries (Optional[Sequence[LibraryEntry]]): Library entries parallel
            to catalog_games; required in score mode.

    Returns:
        List[GenreScore]: One item per target genre, in fixed order.

    Raises:
        InvalidArgument: On an unknown mode, missing entries in score mode,
            or sequences of different length.
    """
    try:
        mode = GenreMode(mode)
    except ValueError as e:
        raise InvalidArgument(f"Unknown genre mode: {mode!r}") from e

    if entries is not None and len(entries) != len(catalog_games):
        raise InvalidArgument("catalog_games and entries must have the same length")
    if mode is GenreMode.SCORE and entries is None:
        raise InvalidArgument("Score mode needs the library entries")

    frame = _genre_rows(catalog_games, entries)

    if mode is GenreMode.COUNT:
        values = frame.groupby("genre").size().astype(float)
    else:
        values = frame.dropna(subset=["score"]).groupby("genre")["score"].mean()

    values = values.reindex(TARGET_GENRES, fill_value=0.0).fillna(0.0)
    divisor = max(float(values.max()), 1.0)
    scaled = np.floor(values / divisor * 100 + 0.5).astype(int)

    return [GenreScore(name=genre, value=int(scaled[genre])) for genre in TARGET_GENRES]


# =========================
# DASHBOARD
# =========================

async def build_dashboard(resolver, entries: Sequence[LibraryEntry]) -> Dashboard:
    """
    Stats and both genre distributions for a user's library.

    Each entry's game is resolved; entries whose game cannot be resolved
    still count in the stats but not in the genre distributions.

    Args:
        resolver (GameResolver): Resolver used to fetch the tracked games.
        entries (Sequence[LibraryEntry]): All entries of one user.

    Returns:
        Dashboard: Stats plus count and score distributions.
    """
    games: List[Optional[CatalogGame]] = []
    for entry in entries:
        try:
            games.append(await resolver.resolve(entry.game_id))
        except MyGameListError as e:
            logger.warning(f"Skipping {entry.game_id!r} in genre stats: {e}")
            games.append(None)

    return Dashboard(
        stats=compute_stats(entries),
        genres_by_count=compute_genre_distribution(games, GenreMode.COUNT),
        genres_by_score=compute_genre_distribution(games, GenreMode.SCORE, entries),
    )
