from datetime import date, datetime, timezone

import pytest
from sqlalchemy import text

from mygamelist.errors import AlreadyExists, InvalidArgument, NotFound, StorageError
from mygamelist.models import GameStatus, Review, StoredGame

from conftest import rawg_payload


def test_upsert_then_find_by_id_and_slug(games) -> None:
    payload = rawg_payload(3498, "grand-theft-auto-v", "Grand Theft Auto V")
    games.upsert_game(StoredGame.from_catalog(payload))

    by_id = games.find_by_id_or_slug("3498")
    by_slug = games.find_by_id_or_slug("grand-theft-auto-v")

    assert by_id == by_slug
    assert by_id.name == "Grand Theft Auto V"
    assert by_id.released.isoformat() == "2007-09-25"
    assert by_id.metadata == payload


def test_upsert_refreshes_existing_row(games) -> None:
    games.upsert_game(StoredGame.from_catalog(rawg_payload(1, "portal", "Portal")))
    games.upsert_game(StoredGame.from_catalog(rawg_payload(1, "portal", "Portal (2007)")))

    stored = games.list_games()

    assert len(stored) == 1
    assert stored[0].name == "Portal (2007)"


def test_missing_game_is_none(games) -> None:
    assert games.find_by_id_or_slug("42") is None
    assert games.find_by_id_or_slug("missing-slug") is None


def test_insert_refuses_duplicate_id(games) -> None:
    games.insert_game(StoredGame(rawg_id=5, name="Braid", slug="braid"))

    with pytest.raises(AlreadyExists):
        games.insert_game(StoredGame(rawg_id=5, name="Braid again"))

    assert games.find_by_id_or_slug("5").name == "Braid"


def test_delete_game(games) -> None:
    games.insert_game(StoredGame(rawg_id=5, name="Braid"))

    games.delete_game(5)

    assert games.list_games() == []
    with pytest.raises(NotFound):
        games.delete_game(5)


# =========================
# LIBRARY
# =========================

def test_entries_are_scoped_per_user(library) -> None:
    library.insert_entry("alice", "343", GameStatus.PLAYING, None)
    library.insert_entry("bob", "343", GameStatus.WISHLIST, None)

    alice = library.list_entries("alice")

    assert len(alice) == 1
    assert alice[0].status == GameStatus.PLAYING


def test_find_entry_matches_any_candidate(library) -> None:
    entry_id = library.insert_entry("alice", "halo-3", GameStatus.PLAYING, None)

    found = library.find_entry("alice", ["343", "halo-3", None])

    assert found.id == entry_id
    assert library.find_entry("alice", ["343"]) is None
    assert library.find_entry("bob", ["halo-3"]) is None


def test_find_entry_prefers_oldest_duplicate(library) -> None:
    first = library.insert_entry("alice", "halo-3", GameStatus.PLAYING, None)
    library.insert_entry("alice", "343", GameStatus.COMPLETED, None)

    assert library.find_entry("alice", ["343", "halo-3"]).id == first


def test_update_entry_keeps_timestamps(library) -> None:
    done = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    entry_id = library.insert_entry("alice", "halo-3", GameStatus.COMPLETED, done)

    library.update_entry(entry_id, "343", GameStatus.PLAYING, done)

    [entry] = library.list_entries("alice")
    assert entry.game_id == "343"
    assert entry.status == GameStatus.PLAYING
    assert entry.completed_at == done


def test_upsert_review_replaces_latest(library) -> None:
    entry_id = library.insert_entry("alice", "343", GameStatus.PLAYING, None)
    first = datetime(2024, 1, 1, tzinfo=timezone.utc)
    second = datetime(2024, 2, 1, tzinfo=timezone.utc)

    library.upsert_review(entry_id, Review(score=6, text="ok", recorded_at=first))
    library.upsert_review(entry_id, Review(score=9, text="great", recorded_at=second))

    [entry] = library.list_entries("alice")
    assert len(entry.reviews) == 1
    assert entry.latest_review.score == 9
    assert entry.latest_review.recorded_at == second


def test_delete_entry_removes_reviews(library) -> None:
    entry_id = library.insert_entry("alice", "343", GameStatus.PLAYING, None)
    library.upsert_review(entry_id, Review(score=6, recorded_at=datetime.now(timezone.utc)))

    library.delete_entry(entry_id)

    assert library.list_entries("alice") == []


def test_update_game_changes_columns(games) -> None:
    games.upsert_game(StoredGame.from_catalog(rawg_payload(1, "portal", "Portal")))

    updated = games.update_game(1, {
        "name": "Portal: Still Alive",
        "released": date(2008, 10, 22),
        "genres": [{"id": 7, "name": "Puzzle"}],
    })

    assert updated.name == "Portal: Still Alive"
    assert updated.released == date(2008, 10, 22)
    assert updated.genres == [{"id": 7, "name": "Puzzle"}]
    assert updated.slug == "portal"
    assert games.find_by_id_or_slug("portal") == updated


def test_update_unknown_game_is_not_found(games) -> None:
    with pytest.raises(NotFound):
        games.update_game(404, {"name": "Nobody"})


@pytest.mark.parametrize("rawg_id, fields", [
    (0, {"name": "No id"}),
    (1, {}),
    (1, {"rawg_id": 2}),
    (1, {"name; DROP TABLE games": "x"}),
])
def test_update_rejects_bad_input(games, rawg_id, fields) -> None:
    games.insert_game(StoredGame(rawg_id=1, name="Portal"))

    with pytest.raises(InvalidArgument):
        games.update_game(rawg_id, fields)

    assert games.find_by_id_or_slug("1").name == "Portal"


def test_id_beyond_key_range_is_absent(games) -> None:
    huge = "99999999999999999999"

    assert games.find_by_id_or_slug(huge) is None
    with pytest.raises(NotFound):
        games.delete_game(int(huge))
    with pytest.raises(NotFound):
        games.update_game(int(huge), {"name": "Too big"})


# =========================
# STORAGE FAILURES
# =========================

def drop_table(engine, name: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"DROP TABLE {name}"))


def test_game_store_errors_become_storage_error(engine, games) -> None:
    drop_table(engine, "games")

    with pytest.raises(StorageError, match="Game lookup failed"):
        games.find_by_id_or_slug("343")
    with pytest.raises(StorageError):
        games.upsert_game(StoredGame(rawg_id=343, name="Halo 3"))


def test_library_store_errors_become_storage_error(engine, library) -> None:
    drop_table(engine, "reviews")
    drop_table(engine, "user_games")

    with pytest.raises(StorageError, match="Library listing failed"):
        library.list_entries("alice")
    with pytest.raises(StorageError):
        library.insert_entry("alice", "343", GameStatus.PLAYING, None)


def test_out_of_range_stored_score_is_storage_error(engine, library) -> None:
    entry_id = library.insert_entry("alice", "343", GameStatus.PLAYING, None)
    with engine.begin() as conn:
        conn.execute(
            text("""
            INSERT INTO reviews (user_game_id, review_score, review_text, reviewed_at)
            VALUES (:id, 42, 'legacy', '2023-01-01T00:00:00+00:00')
            """),
            {"id": entry_id},
        )

    with pytest.raises(StorageError):
        library.list_entries("alice")
