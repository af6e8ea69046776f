import argparse
import asyncio
import json
import sys
from datetime import date, datetime
from typing import Any, List

from mygamelist.catalog.rawg_client import RawgClient
from mygamelist.db.engine import create_db_engine
from mygamelist.db.repository import GameRepository, LibraryRepository
from mygamelist.db.schema import create_tables
from mygamelist.errors import MyGameListError
from mygamelist.library.aggregator import build_dashboard
from mygamelist.library.reconciler import LibraryReconciler
from mygamelist.library.resolver import GameResolver
from mygamelist.logger import get_logger
from mygamelist.models import GameStatus, StoredGame


# =========================
# LOGGER
# =========================

logger = get_logger(__name__)


# =========================
# CLI ARGUMENTS
# =========================

def parse_arguments(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mygamelist",
        description="MyGameList: RAWG catalog lookups and personal game library"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL, overrides DATABASE_URL / POSTGRES_* settings"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the database tables")

    resolve = commands.add_parser("resolve", help="Resolve a game by RAWG ID or slug")
    resolve.add_argument("game_id")

    search = commands.add_parser("search", help="Search the RAWG catalog")
    search.add_argument("query")
    search.add_argument("--page", type=int, default=1)

    for name, text in (("popular", "Most added games"), ("top-rated", "Best Metacritic scores")):
        listing = commands.add_parser(name, help=text)
        listing.add_argument("--page", type=int, default=1)

    games = commands.add_parser("games", help="Manage the local game store")
    games_commands = games.add_subparsers(dest="games_command", required=True)
    games_commands.add_parser("list", help="List stored games")
    add = games_commands.add_parser("add", help="Add a game by hand")
    add.add_argument("--id", type=int, required=True)
    add.add_argument("--name", required=True)
    add.add_argument("--slug", default=None)
    update = games_commands.add_parser("update", help="Change fields of a stored game")
    update.add_argument("id", type=int)
    update.add_argument("--name", default=None)
    update.add_argument("--slug", default=None)
    update.add_argument("--released", type=date.fromisoformat, default=None)
    update.add_argument("--rating", type=float, default=None)
    update.add_argument("--metacritic", type=int, default=None)
    update.add_argument("--playtime", type=int, default=None)
    update.add_argument("--background-image", default=None)
    update.add_argument("--description", default=None)
    delete = games_commands.add_parser("delete", help="Delete a stored game")
    delete.add_argument("id", type=int)

    record = commands.add_parser("record", help="Set the status of a game in a user's library")
    record.add_argument("--user", required=True)
    record.add_argument("--game", required=True, help="RAWG ID or slug")
    record.add_argument("--status", required=True, help=", ".join(s.value for s in GameStatus))
    record.add_argument("--score", type=int, default=None, help="Review score 0-10")
    record.add_argument("--text", default=None, help="Review text")
    record.add_argument(
        "--completed-at",
        type=datetime.fromisoformat,
        default=None,
        help="ISO 8601 completion time, defaults to now"
    )

    library = commands.add_parser("library", help="Show a user's library and stats")
    library.add_argument("--user", required=True)

    remove = commands.add_parser("remove", help="Remove a game from a user's library")
    remove.add_argument("--user", required=True)
    remove.add_argument("--game", required=True)

    dashboard = commands.add_parser("dashboard", help="Stats and genre distributions of a user")
    dashboard.add_argument("--user", required=True)

    return parser.parse_args(argv)


# =========================
# OUTPUT
# =========================

def emit(value: Any) -> None:
    """Print a pydantic model, or a list of them, as JSON."""
    if isinstance(value, list):
        payload = [item.model_dump(mode="json") for item in value]
    else:
        payload = value.model_dump(mode="json")
    print(json.dumps(payload, ensure_ascii=False, indent=2))


# =========================
# MAIN
# =========================

async def main(args: argparse.Namespace) -> None:
    """
    Run one CLI command against the catalog and the database.

    Args:
        args (argparse.Namespace): Parsed command line.

    Returns:
        None
    """
    catalog = RawgClient()

    # Catalog listings need no database
    if args.command == "search":
        emit(await catalog.search_games(args.query, page=args.page))
        return
    if args.command == "popular":
        emit(await catalog.get_popular_games(page=args.page))
        return
    if args.command == "top-rated":
        emit(await catalog.get_top_rated_games(page=args.page))
        return

    engine = create_db_engine(args.database_url)

    if args.command == "init-db":
        create_tables(engine)
        return

    games = GameRepository(engine)
    resolver = GameResolver(catalog, games)
    reconciler = LibraryReconciler(resolver, LibraryRepository(engine))

    if args.command == "resolve":
        emit(await resolver.resolve(args.game_id))

    elif args.command == "games":
        if args.games_command == "list":
            emit(games.list_games())
        elif args.games_command == "add":
            games.insert_game(StoredGame(rawg_id=args.id, name=args.name, slug=args.slug))
            logger.info("Game added successfully")
        elif args.games_command == "update":
            fields = {
                key: getattr(args, key)
                for key in ("name", "slug", "released", "rating", "metacritic",
                            "playtime", "background_image", "description")
                if getattr(args, key) is not None
            }
            emit(games.update_game(args.id, fields))
        elif args.games_command == "delete":
            games.delete_game(args.id)
            logger.info("Game deleted successfully")

    elif args.command == "record":
        review = None
        if args.score is not None or args.text is not None:
            review = {"score": args.score, "text": args.text}
        emit(await reconciler.record_status(
            args.user, args.game, args.status, review=review, completed_at=args.completed_at
        ))

    elif args.command == "library":
        emit(reconciler.library_of(args.user))

    elif args.command == "remove":
        emit(await reconciler.remove_game(args.user, args.game))

    elif args.command == "dashboard":
        entries = reconciler.library_of(args.user).entries
        emit(await build_dashboard(resolver, entries))


# =========================
# ENTRYPOINT
# =========================

def run(argv: List[str] | None = None) -> None:
    args = parse_arguments(argv)

    try:
        asyncio.run(main(args))
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        sys.exit(0)
    except MyGameListError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)
    except Exception:
        logger.exception("Application failed")
        sys.exit(1)


if __name__ == "__main__":
    run()
