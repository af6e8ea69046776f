import asyncio
from datetime import datetime, timezone

import pytest

from mygamelist.errors import InvalidArgument
from mygamelist.library.aggregator import (
    TARGET_GENRES,
    build_dashboard,
    compute_genre_distribution,
    compute_stats,
)
from mygamelist.models import CatalogGame, GenreMode, LibraryEntry, Review

from conftest import FakeResolver

NOW = datetime(2025, 5, 1, tzinfo=timezone.utc)


def game(game_id: int, *genres: str) -> CatalogGame:
    return CatalogGame(id=game_id, name=f"Game {game_id}", genres=[{"name": g} for g in genres])


def entry(game_id: str, status: str = "playing", score: int | None = None) -> LibraryEntry:
    reviews = [Review(score=score, recorded_at=NOW)] if score is not None else []
    return LibraryEntry(game_id=game_id, status=status, reviews=reviews)


def as_dict(distribution) -> dict:
    return {item.name: item.value for item in distribution}


def test_compute_stats_counts_by_status() -> None:
    entries = [
        entry("1", "playing"),
        entry("2", "completed"),
        entry("3", "completed"),
        entry("4", "wishlist"),
        entry("5", "dropped"),
    ]

    stats = compute_stats(entries)

    assert stats.total_games == 5
    assert stats.playing == 1
    assert stats.completed == 2
    assert stats.wishlist == 1
    assert stats.dropped == 1


def test_compute_stats_empty_library() -> None:
    stats = compute_stats([])

    assert stats.total_games == 0
    assert stats.completed == 0


def test_count_mode_scales_to_largest_genre() -> None:
    games = [game(1, "Action", "RPG"), game(2, "Action")]

    result = as_dict(compute_genre_distribution(games, GenreMode.COUNT))

    assert result["Action"] == 100
    assert result["RPG"] == 50
    assert all(result[g] == 0 for g in TARGET_GENRES if g not in ("Action", "RPG"))


def test_score_mode_averages_latest_scores() -> None:
    games = [game(1, "Action", "RPG"), game(2, "Action")]
    entries = [entry("1", score=8), entry("2", score=4)]

    result = as_dict(compute_genre_distribution(games, GenreMode.SCORE, entries))

    assert result["Action"] == 75
    assert result["RPG"] == 100
    assert result["Horror"] == 0


def test_score_mode_uses_latest_review_and_skips_unscored() -> None:
    games = [game(1, "Puzzle"), game(2, "Puzzle"), game(3, "Indie")]
    first = entry("1")
    first.reviews = [
        Review(score=2, recorded_at=NOW),
        Review(score=10, recorded_at=NOW),
    ]
    entries = [first, entry("2"), entry("3", score=5)]

    result = as_dict(compute_genre_distribution(games, "score", entries))

    assert result["Puzzle"] == 100
    assert result["Indie"] == 50


def test_output_keeps_target_order_and_ignores_other_genres() -> None:
    games = [game(1, "Indie", "Shooter", "Platformer"), game(2), None]

    result = compute_genre_distribution(games, GenreMode.COUNT)

    assert [item.name for item in result] == TARGET_GENRES
    assert as_dict(result)["Indie"] == 100
    assert sum(item.value for item in result) == 100


def test_empty_library_gives_all_zero() -> None:
    assert all(item.value == 0 for item in compute_genre_distribution([], GenreMode.COUNT))
    assert all(item.value == 0 for item in compute_genre_distribution([], GenreMode.SCORE, []))


def test_small_averages_use_floor_divisor() -> None:
    games = [game(1, "Sports")]

    result = as_dict(compute_genre_distribution(games, GenreMode.SCORE, [entry("1", score=0)]))

    assert result["Sports"] == 0


def test_rounds_half_up() -> None:
    # Strategy 1 of 8 games -> 12.5
    games = [game(i, "Action") for i in range(8)] + [game(8, "Strategy")]

    result = as_dict(compute_genre_distribution(games, GenreMode.COUNT))

    assert result["Strategy"] == 13


def test_duplicate_genre_on_one_game_counts_once() -> None:
    games = [game(1, "RPG", "RPG"), game(2, "RPG", "Action")]

    result = as_dict(compute_genre_distribution(games, GenreMode.COUNT))

    assert result["RPG"] == 100
    assert result["Action"] == 50


def test_score_mode_requires_entries() -> None:
    with pytest.raises(InvalidArgument):
        compute_genre_distribution([game(1, "Action")], GenreMode.SCORE)


def test_mismatched_lengths_are_rejected() -> None:
    with pytest.raises(InvalidArgument):
        compute_genre_distribution([game(1, "Action")], GenreMode.SCORE, [])


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(InvalidArgument):
        compute_genre_distribution([], "average")


def test_dashboard_skips_unresolvable_games() -> None:
    resolver = FakeResolver({"1": game(1, "Horror"), "2": game(2, "Horror", "Adventure")})
    entries = [entry("1", score=6), entry("2", "completed", score=3), entry("ghost-game", "wishlist")]

    dashboard = asyncio.run(build_dashboard(resolver, entries))

    assert dashboard.stats.total_games == 3
    assert as_dict(dashboard.genres_by_count) == {**{g: 0 for g in TARGET_GENRES}, "Horror": 100, "Adventure": 50}
    assert as_dict(dashboard.genres_by_score)["Adventure"] == 67
    assert as_dict(dashboard.genres_by_score)["Horror"] == 100
