# =========================
# LIBRARY ENTRY RECONCILER

# Record a user's status and review for a game, one entry per logical game
# =========================

from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from mygamelist.db.repository import LibraryRepository
from mygamelist.errors import InvalidArgument, NotFound, StorageError
from mygamelist.library.aggregator import compute_stats
from mygamelist.library.resolver import GameResolver
from mygamelist.logger import get_logger
from mygamelist.models import (
    CatalogGame,
    GameStatus,
    Library,
    LibraryStats,
    RecordResult,
    Review,
    ReviewInput,
)

# =========================
# LOGGER
# =========================

logger = get_logger("library-reconciler")

STATUS_CHOICES = ", ".join(status.value for status in GameStatus)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_status(status: GameStatus | str | None) -> GameStatus:
    """
    Validate a status value.

    Args:
        status (GameStatus | str | None): Status as sent by the caller.

    Returns:
        GameStatus: The parsed status.

    Raises:
        InvalidArgument: If the status is missing or unknown.
    """
    if not status:
        raise InvalidArgument("status is required")
    try:
        return GameStatus(status)
    except ValueError as e:
        raise InvalidArgument(f"status must be one of: {STATUS_CHOICES}") from e


def _parse_review(review: ReviewInput | dict | None) -> Optional[ReviewInput]:
    if review is None or isinstance(review, ReviewInput):
        return review
    try:
        return ReviewInput.model_validate(review)
    except ValidationError as e:
        raise InvalidArgument(f"Invalid review: {e}") from e


class LibraryReconciler:
    """
    Creates and updates library entries, matching a game across its RAWG ID
    and slug so the same game is never tracked twice.
    """

    def __init__(
        self,
        resolver: GameResolver,
        library: LibraryRepository,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.library = library
        self.clock = clock

    # =========================
    # IDENTITY
    # =========================

    async def _try_resolve(self, game_id: str) -> Optional[CatalogGame]:
        try:
            return await self.resolver.resolve(game_id)
        except (NotFound, StorageError) as e:
            logger.warning(f"Could not fetch game details for {game_id!r}: {e}")
            return None

    async def _find_existing(self, user_id: str, game_id: str):
        game = await self._try_resolve(game_id)
        canonical = str(game.id) if game is not None else None
        slug = game.slug if game is not None else None

        existing = self.library.find_entry(user_id, [canonical, game_id, slug])
        return canonical, existing

    # =========================
    # RECORD
    # =========================

    async def record_status(
        self,
        user_id: str,
        game_id: str,
        status: GameStatus | str,
        review: ReviewInput | dict | None = None,
        completed_at: Optional[datetime] = None,
    ) -> RecordResult:
        """
        Record the status (and optionally a review) of a game for a user.

        An entry stored under the RAWG ID, the identifier as given, or the
        slug is updated and re-keyed to the RAWG ID; otherwise a new entry
        is created. completed_at is set when the status is completed and
        kept as is for any other status.

        Args:
            user_id (str): Owner of the library.
            game_id (str): RAWG ID or slug.
            status (GameStatus | str): New status.
            review (ReviewInput | dict | None): Latest review; a missing
                score or text keeps the stored one.
            completed_at (Optional[datetime]): Completion time to use
                instead of now.

        Returns:
            RecordResult: The saved entry, fresh stats, and whether the
            entry was created.

        Raises:
            InvalidArgument: On missing or malformed input.
            StorageError: If the entry cannot be read or written.
        """
        user_id = (user_id or "").strip()
        game_id = (game_id or "").strip()
        if not user_id:
            raise InvalidArgument("user_id is required")
        if not game_id:
            raise InvalidArgument("gameId and status are required")
        status = parse_status(status)
        review = _parse_review(review)

        canonical, existing = await self._find_existing(user_id, game_id)
        now = self.clock()

        if status is GameStatus.COMPLETED:
            completion = completed_at or now
        else:
            completion = existing.completed_at if existing is not None else None

        if existing is not None:
            entry_id = existing.id
            self.library.update_entry(entry_id, canonical or existing.game_id, status, completion)
        else:
            entry_id = self.library.insert_entry(user_id, canonical or game_id, status, completion)

        if review is not None:
            previous = existing.latest_review if existing is not None else None
            self._save_review(entry_id, review, previous, now)

        entries = self.library.list_entries(user_id)
        entry = next(e for e in entries if e.id == entry_id)

        logger.info(
            f"Game {'updated' if existing else 'added'} with status: {status.value} "
            f"(user={user_id}, game={entry.game_id})"
        )
        return RecordResult(entry=entry, stats=compute_stats(entries), created=existing is None)

    def _save_review(
        self,
        entry_id: int,
        review: ReviewInput,
        previous: Optional[Review],
        now: datetime,
    ) -> None:
        """
        Merge the review into the latest stored one and save it.

        A failure is logged only; the status change already stands.
        """
        merged = Review(
            score=review.score if review.score is not None else (previous.score if previous else None),
            text=review.text if review.text is not None else (previous.text if previous else None),
            recorded_at=now,
        )

        try:
            self.library.upsert_review(entry_id, merged)
        except Exception as e:
            logger.error(f"Review operation error for entry {entry_id}: {e}")

    # =========================
    # READ / REMOVE
    # =========================

    def library_of(self, user_id: str) -> Library:
        """All entries of a user with their stats."""
        entries = self.library.list_entries(user_id)
        return Library(entries=entries, stats=compute_stats(entries))

    async def remove_game(self, user_id: str, game_id: str) -> LibraryStats:
        """
        Remove a game from the user's library.

        Args:
            user_id (str): Owner of the library.
            game_id (str): RAWG ID or slug of the game.

        Returns:
            LibraryStats: Stats after the removal.

        Raises:
            InvalidArgument: If the game identifier is empty.
            NotFound: If the user does not track the game.
        """
        game_id = (game_id or "").strip()
        if not game_id:
            raise InvalidArgument("gameId is required")

        _, existing = await self._find_existing(user_id, game_id)
        if existing is None:
            raise NotFound(f"{game_id} is not in the library")

        self.library.delete_entry(existing.id)
        return compute_stats(self.library.list_entries(user_id))
