"""WAX chain data gateway.

Reads Farmers World tables through ``/v1/chain/get_table_rows`` with
endpoint failover.  Every read returns a (possibly empty) list; exhaustion
of the endpoint pool is logged and reported as "no rows", never raised.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from chain.exceptions import RpcError
from core.endpoint_pool import EndpointPool, fetch_with_failover
from farming.models import Animal, Balance, Crop, GameAccount, TemplateConfig, Tool

logger = logging.getLogger(__name__)

TOOLS_TABLE = "tools"
CROPS_TABLE = "crops"
ANIMALS_TABLE = "animals"
ACCOUNTS_TABLE = "accounts"
TOOL_CONFIG_TABLE = "toolconfs"
ANIMAL_CONFIG_TABLE = "anmconf"
CONFIG_TABLE = "config"

# Secondary index on owner for asset tables, primary key for accounts
OWNER_INDEX = 2
PRIMARY_INDEX = 1


async def post_json(session: aiohttp.ClientSession, url: str, payload: Any) -> Any:
    """POST *payload* as JSON and return the decoded body.

    Raises:
        RpcError: On a non-2xx status or an ``error`` payload.
    """
    async with session.post(url, json=payload) as response:
        data = await response.json(content_type=None)
        if response.status >= 400 or (isinstance(data, dict) and data.get("error")):
            if isinstance(data, dict):
                raise RpcError.from_payload(response.status, data)
            raise RpcError(f"HTTP {response.status}", status=response.status)
        return data


class ChainDataGateway:
    """Read-only access to chain tables with ordered endpoint failover.

    Args:
        pool: WAX RPC endpoints.
        timeout: Per-endpoint attempt limit in seconds.
        game_contract: Farmers World contract account.
        token_contract: Farmers World token contract account.
        row_limit: ``limit`` passed to ``get_table_rows``.
    """

    def __init__(
        self,
        pool: EndpointPool,
        timeout: float = 5.0,
        game_contract: str = "farmersworld",
        token_contract: str = "farmerstoken",
        row_limit: int = 100,
    ) -> None:
        self.pool = pool
        self.timeout = timeout
        self.game_contract = game_contract
        self.token_contract = token_contract
        self.row_limit = row_limit
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()

    async def call(self, endpoint: str, path: str, payload: Any = None) -> Any:
        """POST to ``{endpoint}{path}`` on a single endpoint, no failover."""
        session = await self._get_session()
        return await post_json(session, f"{endpoint}{path}", payload if payload is not None else {})

    async def get_info(self, endpoint: str) -> Dict[str, Any]:
        """Head block snapshot from one specific endpoint."""
        return await self.call(endpoint, "/v1/chain/get_info")

    async def read_table(
        self,
        contract: str,
        table: str,
        scope: str,
        key_bound: Optional[str] = None,
        index_position: int = PRIMARY_INDEX,
    ) -> List[Dict[str, Any]]:
        """Read table rows, walking the pool until one endpoint answers.

        Args:
            contract: Contract account owning the table.
            table: Table name.
            scope: Table scope.
            key_bound: Account name used as both lower and upper bound, or
                ``None`` to read without an account filter.
            index_position: Index to query (``2`` = owner index).

        Returns:
            Rows from the first endpoint that answered, ``[]`` on exhaustion.
        """
        payload: Dict[str, Any] = {
            "json": True,
            "code": contract,
            "scope": scope,
            "table": table,
            "index_position": index_position,
            "key_type": "i64",
            "limit": self.row_limit,
        }
        if key_bound is not None:
            payload["lower_bound"] = key_bound
            payload["upper_bound"] = key_bound

        async def attempt(endpoint: str) -> List[Dict[str, Any]]:
            data = await self.call(endpoint, "/v1/chain/get_table_rows", payload)
            return list(data.get("rows", []))

        rows = await fetch_with_failover(
            self.pool, attempt, self.timeout, description=f"{contract}.{table}",
        )
        return rows if rows is not None else []

    async def _game_rows(self, table: str, account: Optional[str], index: int) -> List[Dict[str, Any]]:
        return await self.read_table(self.game_contract, table, self.game_contract, account, index)

    async def fetch_tools(self, account: str) -> List[Tool]:
        return [Tool.from_row(r) for r in await self._game_rows(TOOLS_TABLE, account, OWNER_INDEX)]

    async def fetch_crops(self, account: str) -> List[Crop]:
        return [Crop.from_row(r) for r in await self._game_rows(CROPS_TABLE, account, OWNER_INDEX)]

    async def fetch_animals(self, account: str) -> List[Animal]:
        return [Animal.from_row(r) for r in await self._game_rows(ANIMALS_TABLE, account, OWNER_INDEX)]

    async def fetch_account(self, account: str) -> Optional[GameAccount]:
        rows = await self._game_rows(ACCOUNTS_TABLE, account, PRIMARY_INDEX)
        for row in rows:
            if row.get("account") == account:
                return GameAccount.from_row(row)
        return None

    async def fetch_wallet_balances(self, account: str) -> List[Balance]:
        """Token balances held in the account's wallet (not in game)."""
        rows = await self.read_table(self.token_contract, ACCOUNTS_TABLE, account)
        balances = []
        for row in rows:
            try:
                balances.append(Balance.parse(row["balance"]))
            except (KeyError, ValueError):
                logger.debug(f"Ignoring wallet row {row!r}")
        return balances

    async def fetch_tool_configs(self) -> List[TemplateConfig]:
        rows = await self._game_rows(TOOL_CONFIG_TABLE, None, PRIMARY_INDEX)
        return [TemplateConfig.from_tool_row(r) for r in rows if "template_id" in r]

    async def fetch_animal_configs(self) -> List[TemplateConfig]:
        rows = await self._game_rows(ANIMAL_CONFIG_TABLE, None, PRIMARY_INDEX)
        return [TemplateConfig.from_animal_row(r) for r in rows if "template_id" in r]

    async def fetch_withdraw_fee(self) -> Optional[int]:
        """Current withdraw fee (percent) from the game ``config`` table."""
        rows = await self._game_rows(CONFIG_TABLE, None, PRIMARY_INDEX)
        for row in rows:
            if "fee" in row:
                return int(row["fee"])
        return None
