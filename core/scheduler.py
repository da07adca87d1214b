"""Fixed-interval scheduler.

Runs the task orchestrator for every configured account, strictly one
account after another, then waits for the next tick of a fixed wall-clock
grid (``CHECK_INTERVAL`` minutes).  Cycles never overlap: when a cycle runs
past one or more ticks those ticks are dropped and the next cycle starts on
the following tick.
"""

import asyncio
import logging
import math
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.config import AccountProfile, BotSettings
from core.orchestrator import TaskOrchestrator
from farming.models import TaskReport

logger = logging.getLogger(__name__)


def next_tick_delay(started: float, finished: float, interval: float) -> Tuple[float, int]:
    """Time until the next grid tick after *finished*, and ticks skipped.

    The grid is ``started + k * interval`` for ``k >= 1``.

    Returns:
        ``(delay_seconds, skipped_ticks)``.
    """
    elapsed = max(0.0, finished - started)
    ticks = max(1, math.floor(elapsed / interval) + 1)
    next_tick = started + ticks * interval
    return max(0.0, next_tick - finished), ticks - 1


class Scheduler:
    """Sequential per-account cycle runner.

    Args:
        settings: Frozen bot settings (interval, accounts).
        orchestrator: Orchestrator shared by every account.
        accounts: Accounts to process; defaults to ``settings.accounts``.
        clock: Monotonic clock (injectable for tests).
    """

    def __init__(
        self,
        settings: BotSettings,
        orchestrator: TaskOrchestrator,
        accounts: Optional[Sequence[AccountProfile]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.orchestrator = orchestrator
        self.accounts: Tuple[AccountProfile, ...] = tuple(
            settings.accounts if accounts is None else accounts
        )
        self.clock = clock
        self.cycles_completed = 0
        self.ticks_skipped = 0
        self._stop_event = asyncio.Event()

    async def run_cycle(self) -> Dict[str, List[TaskReport]]:
        """Run every account once, in configuration order."""
        results: Dict[str, List[TaskReport]] = {}
        for account in self.accounts:
            if self._stop_event.is_set():
                break
            logger.info(f"===== Account {account.name} =====")
            try:
                results[account.name] = await self.orchestrator.run(account)
            except Exception as e:
                logger.exception(f"Cycle for {account.name} aborted: {e}")
                results[account.name] = []
                continue
            submitted = sum(r.submitted for r in results[account.name])
            failed = sum(r.failed for r in results[account.name])
            logger.info(f"Account {account.name} done: {submitted} submitted, {failed} failed")
        self.cycles_completed += 1
        return results

    async def scheduler_loop(self, max_cycles: Optional[int] = None) -> None:
        """Run cycles forever (or *max_cycles* times) until :meth:`stop`."""
        interval = self.settings.check_interval_seconds
        logger.info(f"Running every {self.settings.check_interval} minutes")

        while not self._stop_event.is_set():
            started = self.clock()
            await self.run_cycle()
            if max_cycles is not None and self.cycles_completed >= max_cycles:
                break

            delay, skipped = next_tick_delay(started, self.clock(), interval)
            if skipped:
                self.ticks_skipped += skipped
                logger.warning(f"Cycle overran the {interval}s interval, skipping {skipped} tick(s)")
            logger.info(f"Next check in {delay:.0f}s")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler loop stopped.")

    def stop(self) -> None:
        self._stop_event.set()
