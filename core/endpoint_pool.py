"""Endpoint pools with ordered failover.

Each logical service (WAX chain RPC, AtomicAssets index) gets its own
:class:`EndpointPool`.  Reads walk the pool in its current order, racing
every attempt against a timeout and moving on after any failure; writes
pick a single endpoint at random so a transaction is never pushed to more
than one node by this layer.

Pool lifecycle::

    configure -> shuffle before each task -> walk on read / sample on write
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Iterable, Iterator, List, Optional, TypeVar

from chain.exceptions import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EndpointPool:
    """Ordered, reshufflable list of interchangeable service URLs.

    Attributes:
        name: Label used in log lines (``"wax"``, ``"atomic"``).
    """

    def __init__(self, name: str, urls: Iterable[str], rng: Optional[random.Random] = None) -> None:
        self.name = name
        self._urls: List[str] = [u.rstrip("/") for u in urls if u]
        if not self._urls:
            raise ConfigError(f"No endpoints configured for {name}")
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._urls))

    @property
    def urls(self) -> List[str]:
        return list(self._urls)

    def shuffle(self) -> None:
        """Replace the current order with a fresh random permutation."""
        self._rng.shuffle(self._urls)
        logger.debug(f"[{self.name}] endpoint order: {self._urls}")

    def choice(self) -> str:
        """Pick one endpoint uniformly at random (used for writes)."""
        return self._rng.choice(self._urls)


async def fetch_with_failover(
    pool: EndpointPool,
    call: Callable[[str], Awaitable[T]],
    timeout: float,
    description: str = "request",
) -> Optional[T]:
    """Run *call* against each endpoint of *pool* until one succeeds.

    Endpoints are tried in the pool's current order starting from index 0.
    Every attempt is bounded by *timeout* seconds; a timeout or any error
    moves on to the next endpoint with the same logical call.

    Args:
        pool: Endpoints to walk.
        call: Coroutine factory taking the endpoint base URL.
        timeout: Per-attempt limit in seconds.
        description: Label for log lines.

    Returns:
        The first successful result, or ``None`` once every endpoint failed.
    """
    for index, endpoint in enumerate(pool):
        try:
            return await asyncio.wait_for(call(endpoint), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(
                f"[{pool.name}] {description} timed out after {timeout:.1f}s on {endpoint} "
                f"({index + 1}/{len(pool)})"
            )
        except Exception as e:
            logger.debug(f"[{pool.name}] {description} failed on {endpoint} ({index + 1}/{len(pool)}): {e}")

    logger.warning(f"[{pool.name}] {description} failed on all {len(pool)} endpoints")
    return None
