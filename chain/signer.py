"""Transaction serialization and signing collaborator.

The bot never performs cryptography itself.  :class:`TransactionSigner`
describes the capability the transaction builder needs; the default
implementation, :class:`WalletDaemonSigner`, talks JSON to a local ``keosd``
wallet daemon for signatures and asks a chain node to serialize action data
against the contract ABI (``abi_json_to_bin``).
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import aiohttp

from chain.exceptions import RpcError, SigningError
from chain.rpc import post_json

logger = logging.getLogger(__name__)

# keosd error codes that are not failures for our purposes
WALLET_ALREADY_UNLOCKED = 3120007
WALLET_KEY_EXISTS = 3120008


class TransactionSigner(Protocol):
    """Capability used by :class:`chain.transaction.TransactionBuilder`."""

    async def serialize_actions(self, endpoint: str, actions: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Return *actions* with ``data`` replaced by its hex encoding."""
        ...

    async def sign(self, transaction: Dict[str, Any], private_keys: Sequence[str], chain_id: str) -> List[str]:
        """Return one signature per private key over *transaction*."""
        ...


def _error_code(exc: RpcError) -> Optional[int]:
    error = exc.payload.get("error") or {}
    return error.get("code")


class WalletDaemonSigner:
    """Signs through a ``keosd`` wallet holding the configured keys.

    Args:
        wallet_url: Base URL of keosd (``http://127.0.0.1:8900``).
        wallet_name: Wallet to open and import keys into.
        wallet_password: Unlock password, ``None`` if already unlocked.
    """

    def __init__(self, wallet_url: str, wallet_name: str = "default",
                 wallet_password: Optional[str] = None) -> None:
        self.wallet_url = wallet_url.rstrip("/")
        self.wallet_name = wallet_name
        self.wallet_password = wallet_password
        self._session: Optional[aiohttp.ClientSession] = None
        self._public_keys: Dict[str, str] = {}  # private -> public

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()

    async def _wallet_call(self, method: str, params: Any) -> Any:
        session = await self._get_session()
        return await post_json(session, f"{self.wallet_url}/v1/wallet/{method}", params)

    async def unlock(self) -> None:
        """Open and unlock the wallet if a password is configured."""
        if not self.wallet_password:
            return
        try:
            await self._wallet_call("open", self.wallet_name)
        except RpcError as e:
            logger.debug(f"Wallet open: {e}")
        try:
            await self._wallet_call("unlock", [self.wallet_name, self.wallet_password])
        except RpcError as e:
            if _error_code(e) != WALLET_ALREADY_UNLOCKED:
                raise SigningError(f"Cannot unlock wallet {self.wallet_name}: {e}") from e

    async def _refresh_public_keys(self) -> None:
        pairs = await self._wallet_call("list_keys", [self.wallet_name, self.wallet_password or ""])
        for public, private in pairs or []:
            self._public_keys[private] = public

    async def register_keys(self, private_keys: Sequence[str]) -> None:
        """Make sure every key lives in the wallet and learn its public key."""
        try:
            await self.unlock()
            await self._refresh_public_keys()
            missing = [k for k in private_keys if k not in self._public_keys]
            for key in missing:
                try:
                    await self._wallet_call("import_key", [self.wallet_name, key])
                except RpcError as e:
                    if _error_code(e) != WALLET_KEY_EXISTS:
                        raise
            if missing:
                await self._refresh_public_keys()
        except RpcError as e:
            raise SigningError(f"Wallet daemon error: {e}") from e
        except aiohttp.ClientError as e:
            raise SigningError(f"Wallet daemon unreachable at {self.wallet_url}: {e}") from e

        unknown = [k for k in private_keys if k not in self._public_keys]
        if unknown:
            raise SigningError(f"{len(unknown)} key(s) not available in wallet {self.wallet_name}")

    async def serialize_actions(self, endpoint: str, actions: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        session = await self._get_session()
        serialized = []
        for action in actions:
            result = await post_json(
                session,
                f"{endpoint}/v1/chain/abi_json_to_bin",
                {"code": action["account"], "action": action["name"], "args": action["data"]},
            )
            serialized.append({**action, "data": result["binargs"]})
        return serialized

    async def sign(self, transaction: Dict[str, Any], private_keys: Sequence[str], chain_id: str) -> List[str]:
        if any(k not in self._public_keys for k in private_keys):
            await self.register_keys(private_keys)
        public_keys = [self._public_keys[k] for k in private_keys]
        try:
            signed = await self._wallet_call("sign_transaction", [transaction, public_keys, chain_id])
        except RpcError as e:
            raise SigningError(f"Signing failed: {e}") from e
        signatures = list(signed.get("signatures") or [])
        if len(signatures) < len(public_keys):
            raise SigningError(
                f"Wallet returned {len(signatures)} signature(s) for {len(public_keys)} key(s)"
            )
        return signatures
