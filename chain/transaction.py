"""Transaction assembly, signing and submission.

A transaction is anchored on the head block of one randomly chosen endpoint:
the reference block number and prefix and the expiration all come from the
same ``get_info`` snapshot, and the signed transaction is pushed to that same
endpoint.  Failures are reported, never retried; a write retried against
another node could land twice.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from chain.exceptions import ErrorType, classify_error
from chain.rpc import ChainDataGateway
from chain.signer import TransactionSigner

logger = logging.getLogger(__name__)

EXPIRATION_SECONDS = 3600
REF_BLOCK_NUM_MASK = 0xFFFF
CHAIN_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass
class TransactionResult:
    """Outcome of a single submission.

    Attributes:
        success: Whether the node accepted the transaction.
        status: Human-readable status / error description.
        transaction_id: Id returned by the node (``None`` on failure or dry run).
        error_type: Classification of the failure, if any.
    """

    success: bool
    status: str
    transaction_id: Optional[str] = None
    error_type: Optional[ErrorType] = None


def ref_block_prefix(head_block_id: str) -> int:
    """Reference block prefix: bytes 8..11 of the block id, little-endian."""
    return int.from_bytes(bytes.fromhex(head_block_id[16:24]), "little")


def ref_block_num(head_block_num: int) -> int:
    return int(head_block_num) & REF_BLOCK_NUM_MASK


def parse_chain_time(value: str) -> datetime:
    """Parse a nodeos timestamp (UTC, no offset, optional millis)."""
    parsed = datetime.fromisoformat(value.rstrip("Z"))
    return parsed.replace(tzinfo=timezone.utc)


def expiration_from(head_block_time: str, seconds: int = EXPIRATION_SECONDS) -> str:
    """Head block time rounded to the second plus *seconds*, chain formatted."""
    # Half-up, as the chain rounds time points
    head_seconds = math.floor(parse_chain_time(head_block_time).timestamp() + 0.5)
    expires = datetime.fromtimestamp(head_seconds + seconds, tz=timezone.utc)
    return expires.strftime(CHAIN_TIME_FORMAT)


def build_transaction(info: Dict[str, Any], actions: Sequence[Dict[str, Any]],
                      expire_seconds: int = EXPIRATION_SECONDS) -> Dict[str, Any]:
    """Assemble an unsigned transaction from one ``get_info`` snapshot."""
    return {
        "expiration": expiration_from(info["head_block_time"], expire_seconds),
        "ref_block_num": ref_block_num(info["head_block_num"]),
        "ref_block_prefix": ref_block_prefix(info["head_block_id"]),
        "max_net_usage_words": 0,
        "max_cpu_usage_ms": 0,
        "delay_sec": 0,
        "context_free_actions": [],
        "actions": list(actions),
        "transaction_extensions": [],
    }


class TransactionBuilder:
    """Builds, signs and pushes transactions for one account at a time.

    Args:
        gateway: Chain gateway whose pool supplies the endpoints.
        signer: Serialization + signing collaborator.
        timeout: Limit for each network step, in seconds.
        dry_run: Build and log transactions without signing or pushing.
    """

    def __init__(self, gateway: ChainDataGateway, signer: TransactionSigner,
                 timeout: float = 10.0, dry_run: bool = False,
                 expire_seconds: int = EXPIRATION_SECONDS) -> None:
        self.gateway = gateway
        self.signer = signer
        self.timeout = timeout
        self.dry_run = dry_run
        self.expire_seconds = expire_seconds

    async def _prepare(self, endpoint: str, actions: Sequence[Dict[str, Any]],
                       serialize: bool) -> Tuple[Dict[str, Any], str]:
        info = await asyncio.wait_for(self.gateway.get_info(endpoint), self.timeout)
        if serialize:
            actions = await asyncio.wait_for(
                self.signer.serialize_actions(endpoint, actions), self.timeout,
            )
        return build_transaction(info, actions, self.expire_seconds), info["chain_id"]

    async def submit(self, account: str, private_keys: Sequence[str],
                     actions: Sequence[Dict[str, Any]]) -> TransactionResult:
        """Sign *actions* with every key in *private_keys* and push them.

        Returns:
            A :class:`TransactionResult`; this method does not raise for
            network, node or signing failures.
        """
        if not actions:
            return TransactionResult(success=False, status="No actions to submit",
                                     error_type=ErrorType.UNKNOWN)

        endpoint = self.gateway.pool.choice()
        names = ", ".join(a["name"] for a in actions)
        try:
            if self.dry_run:
                transaction, _ = await self._prepare(endpoint, actions, serialize=False)
                logger.info(
                    f"[DRY RUN] {account}: {names} (ref {transaction['ref_block_num']}/"
                    f"{transaction['ref_block_prefix']}, expires {transaction['expiration']})"
                )
                return TransactionResult(success=True, status="Dry run")

            transaction, chain_id = await self._prepare(endpoint, actions, serialize=True)
            signatures = await asyncio.wait_for(
                self.signer.sign(transaction, private_keys, chain_id), self.timeout,
            )
            response = await asyncio.wait_for(
                self.gateway.call(
                    endpoint,
                    "/v1/chain/push_transaction",
                    {
                        "signatures": signatures,
                        "compression": "none",
                        "packed_context_free_data": "",
                        "transaction": transaction,
                    },
                ),
                self.timeout,
            )
        except Exception as e:
            error_type = classify_error(e)
            message = str(e) or type(e).__name__
            logger.error(
                f"Transaction {names} for {account} failed via {endpoint} "
                f"({error_type.value}): {message}"
            )
            return TransactionResult(success=False, status=message, error_type=error_type)

        tx_id = response.get("transaction_id")
        logger.info(f"Transaction {names} for {account} accepted: {tx_id}")
        return TransactionResult(success=True, status="Accepted", transaction_id=tx_id)
