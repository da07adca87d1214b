"""AtomicAssets index gateway.

Lists the food NFTs an account owns through the public AtomicAssets API,
walking its own endpoint pool on failure.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from chain.exceptions import RpcError
from core.endpoint_pool import EndpointPool, fetch_with_failover
from farming.models import FoodItem

logger = logging.getLogger(__name__)

FOOD_SCHEMA = "foods"


class AssetIndexGateway:
    """Read-only AtomicAssets client.

    Args:
        pool: AtomicAssets API endpoints.
        connect_timeout: Connection timeout per endpoint, in seconds.
        collection: Collection the assets must belong to.
        page_limit: ``limit`` query parameter.
    """

    def __init__(
        self,
        pool: EndpointPool,
        connect_timeout: float = 5.0,
        collection: str = "farmersworld",
        page_limit: int = 100,
    ) -> None:
        self.pool = pool
        self.connect_timeout = connect_timeout
        self.collection = collection
        self.page_limit = page_limit
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(connect=self.connect_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()

    async def read_assets(
        self,
        owner: str,
        collection: Optional[str] = None,
        schema: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List assets of *owner*, optionally filtered by collection/schema.

        Returns:
            Raw asset dictionaries, ``[]`` once every endpoint failed.
        """
        params: Dict[str, Any] = {"owner": owner, "page": 1, "limit": self.page_limit}
        if collection:
            params["collection_name"] = collection
        if schema:
            params["schema_name"] = schema

        async def attempt(endpoint: str) -> List[Dict[str, Any]]:
            session = await self._get_session()
            async with session.get(f"{endpoint}/atomicassets/v1/assets", params=params) as response:
                body = await response.json(content_type=None)
                if response.status >= 400 or not body.get("success", True):
                    raise RpcError(
                        body.get("message") or f"HTTP {response.status}",
                        status=response.status,
                    )
                return list(body.get("data") or [])

        # Session only bounds connect; cap the whole attempt as well
        assets = await fetch_with_failover(
            self.pool, attempt, self.connect_timeout * 3, description=f"assets of {owner}",
        )
        return assets if assets is not None else []

    async def fetch_food(self, owner: str) -> List[FoodItem]:
        assets = await self.read_assets(owner, self.collection, FOOD_SCHEMA)
        food = []
        for asset in assets:
            try:
                food.append(FoodItem.from_asset(asset))
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Ignoring malformed asset {asset!r}")
        return food
