# =================
# RAWG CLIENT

# Async client to fetch game data from the RAWG video game catalog API
# =================

import asyncio
from typing import Any, Dict

import aiohttp

from mygamelist.config import (
    LISTING_PAGE_SIZE,
    RAWG_API_KEY,
    RAWG_BASE_URL,
    RAWG_TIMEOUT,
    SEARCH_PAGE_SIZE,
)
from mygamelist.errors import CatalogError
from mygamelist.logger import get_logger
from mygamelist.models import CatalogPage


# =================
# SETUP
# =================

logger = get_logger("rawg-client")


class RawgClient:
    """
    Thin async wrapper around the RAWG REST API.

    One aiohttp session is opened per request, so an instance holds no
    connection state and can be shared freely.
    """

    def __init__(
        self,
        api_key: str = RAWG_API_KEY,
        base_url: str = RAWG_BASE_URL,
        timeout: float = RAWG_TIMEOUT,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    # =================
    # REQUESTS
    # =================

    def _params(self, **params: Any) -> Dict[str, Any]:
        """
        Build query parameters for a RAWG call, adding the API key.

        Args:
            **params: Endpoint specific parameters; None values are dropped.

        Returns:
            Dict[str, Any]: Query string parameters.
        """
        query = {"key": self.api_key}
        query.update({k: v for k, v in params.items() if v is not None})
        return query

    async def _get_json(self, path: str, params: Dict[str, Any], failure: str) -> Dict[str, Any]:
        """
        Perform a GET against RAWG and decode the JSON body.

        Args:
            path (str): Endpoint path, starting with a slash.
            params (Dict[str, Any]): Query string parameters.
            failure (str): Message carried by the raised CatalogError.

        Returns:
            Dict[str, Any]: Decoded response body.

        Raises:
            CatalogError: On timeout, connection error or non-200 status.
        """
        url = f"{self.base_url}{path}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.get(url, params=params) as response:
                    if response.status != 200:
                        logger.error(f"Error HTTP {response.status} for {path}")
                        raise CatalogError(failure)

                    return await response.json()

            except asyncio.TimeoutError as e:
                logger.error(f"Timeout for {path}")
                raise CatalogError(f"{failure} (timeout)") from e

            except aiohttp.ClientError as e:
                logger.exception(f"Connection error: {e}")
                raise CatalogError(f"{failure}: {e}") from e

    # =================
    # GAME DETAILS
    # =================

    async def fetch_game_details(self, id_or_slug: int | str) -> Dict[str, Any]:
        """
        Fetch the full RAWG record of one game by numeric ID or slug.

        Args:
            id_or_slug (int | str): RAWG game ID or slug.

        Returns:
            Dict[str, Any]: Raw RAWG game details response.

        Raises:
            CatalogError: If the game cannot be fetched.
        """
        logger.info(f"Download data for game {id_or_slug!r}")

        payload = await self._get_json(
            f"/games/{id_or_slug}", self._params(), "Failed to fetch game"
        )

        logger.info(f"Successfully downloaded data: {payload.get('name')}")
        return payload

    # =================
    # LISTINGS
    # =================

    async def search_games(self, query: str, page: int = 1) -> CatalogPage:
        """
        Search the catalog by free text.

        Args:
            query (str): Search text.
            page (int): 1-based result page.

        Returns:
            CatalogPage: One page of matching games.
        """
        params = self._params(search=query, page=page, page_size=SEARCH_PAGE_SIZE)
        data = await self._get_json("/games", params, "Failed to search games.")
        return CatalogPage.model_validate(data)

    async def get_popular_games(self, page: int = 1) -> CatalogPage:
        """Games ordered by how many users added them."""
        params = self._params(ordering="-added", page=page, page_size=LISTING_PAGE_SIZE)
        data = await self._get_json("/games", params, "Failed to fetch popular games")
        return CatalogPage.model_validate(data)

    async def get_top_rated_games(self, page: int = 1) -> CatalogPage:
        """Games ordered by Metacritic score."""
        params = self._params(ordering="-metacritic", page=page, page_size=LISTING_PAGE_SIZE)
        data = await self._get_json("/games", params, "Failed to fetch top rated games.")
        return CatalogPage.model_validate(data)
