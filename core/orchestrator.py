"""Per-account task orchestration for the Farmers World bot.

One :class:`TaskOrchestrator` run walks a fixed state machine for a single
account::

    DEPOSIT_CHECK -> RECOVER_CHECK -> REPAIR_CHECK -> USE_TOOLS_CHECK
        -> CLAIM_CROPS_CHECK -> FEED_CHECK -> WITHDRAW_CHECK -> DONE

Every state fetches its own snapshot, filters it with :mod:`farming.policy`
and submits one transaction per qualifying item (one batched transaction for
deposit and withdraw), each preceded by a random delay from the configured
window.  States and items are processed strictly one at a time.

Classes:
    TaskState: States of the per-account machine.
    TaskOrchestrator: Runs the machine for one account.
"""

import asyncio
import logging
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from chain import actions as chain_actions
from chain.atomic import AssetIndexGateway
from chain.rpc import ChainDataGateway
from chain.transaction import TransactionBuilder, TransactionResult
from core.config import AccountProfile, BotSettings
from farming import policy
from farming.models import TaskReport, TemplateCatalog

logger = logging.getLogger(__name__)


class TaskState(Enum):
    """States of the per-account machine, in execution order."""
    DEPOSIT_CHECK = "deposit"
    RECOVER_CHECK = "recover"
    REPAIR_CHECK = "repair"
    USE_TOOLS_CHECK = "use_tools"
    CLAIM_CROPS_CHECK = "claim_crops"
    FEED_CHECK = "feed"
    WITHDRAW_CHECK = "withdraw"
    DONE = "done"


TRANSITIONS: Dict[TaskState, TaskState] = {
    TaskState.DEPOSIT_CHECK: TaskState.RECOVER_CHECK,
    TaskState.RECOVER_CHECK: TaskState.REPAIR_CHECK,
    TaskState.REPAIR_CHECK: TaskState.USE_TOOLS_CHECK,
    TaskState.USE_TOOLS_CHECK: TaskState.CLAIM_CROPS_CHECK,
    TaskState.CLAIM_CROPS_CHECK: TaskState.FEED_CHECK,
    TaskState.FEED_CHECK: TaskState.WITHDRAW_CHECK,
    TaskState.WITHDRAW_CHECK: TaskState.DONE,
}


class TaskOrchestrator:
    """Runs the maintenance state machine for one account at a time.

    Args:
        settings: Frozen bot settings (thresholds, delay window, toggles).
        chain: Chain table gateway.
        assets: AtomicAssets gateway.
        builder: Transaction builder used for every submission.
        catalog: Template configs loaded at startup.
        rng: Random source for delays (injectable for tests).
    """

    def __init__(
        self,
        settings: BotSettings,
        chain: ChainDataGateway,
        assets: AssetIndexGateway,
        builder: TransactionBuilder,
        catalog: Optional[TemplateCatalog] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.chain = chain
        self.assets = assets
        self.builder = builder
        self.catalog = catalog or TemplateCatalog()
        self.rng = rng or random.Random()
        self._handlers: Dict[TaskState, Callable[[AccountProfile], Awaitable[TaskReport]]] = {
            TaskState.DEPOSIT_CHECK: self.deposit_tokens,
            TaskState.RECOVER_CHECK: self.recover_energy,
            TaskState.REPAIR_CHECK: self.repair_tools,
            TaskState.USE_TOOLS_CHECK: self.use_tools,
            TaskState.CLAIM_CROPS_CHECK: self.claim_crops,
            TaskState.FEED_CHECK: self.feed_animals,
            TaskState.WITHDRAW_CHECK: self.withdraw_tokens,
        }

    async def run(self, account: AccountProfile) -> List[TaskReport]:
        """Walk every state for *account* and return one report per task."""
        reports: List[TaskReport] = []
        state = TaskState.DEPOSIT_CHECK
        while state is not TaskState.DONE:
            self.chain.pool.shuffle()
            self.assets.pool.shuffle()
            try:
                report = await self._handlers[state](account)
            except Exception as e:
                logger.exception(f"[{account.name}] {state.value} task crashed: {e}")
                report = TaskReport(task=state.value, skipped=f"error: {e}")
            reports.append(report)
            state = TRANSITIONS[state]
        return reports

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def next_delay(self) -> float:
        return self.rng.uniform(self.settings.delay_min, self.settings.delay_max)

    async def _submit(self, account: AccountProfile, action: List[Dict[str, Any]],
                      report: TaskReport, delay: float) -> TransactionResult:
        await asyncio.sleep(delay)
        result = await self.builder.submit(account.name, account.private_keys, action)
        if result.success:
            report.submitted += 1
            if result.transaction_id:
                report.transaction_ids.append(result.transaction_id)
        else:
            report.failed += 1
        return result

    @staticmethod
    def _skip(report: TaskReport, reason: str) -> TaskReport:
        report.skipped = reason
        return report

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def deposit_tokens(self, account: AccountProfile) -> TaskReport:
        """Top up game balances below threshold from wallet tokens."""
        report = TaskReport(task=TaskState.DEPOSIT_CHECK.value)
        if not self.settings.auto_deposit:
            return self._skip(report, "disabled")

        thresholds = self.settings.deposit_threshold_map
        if not thresholds:
            return self._skip(report, "no deposit thresholds configured")

        logger.info(f"Fetching balances for account {account.name}")
        game = await self.chain.fetch_account(account.name)
        if game is None:
            return self._skip(report, "account not found in game")
        wallet = await self.chain.fetch_wallet_balances(account.name)
        report.found = len(wallet)

        deposits = policy.select_depositable(
            game.balances, wallet, thresholds, self.settings.deposit_cap_map,
        )
        report.actionable = len(deposits)
        if not deposits:
            logger.info(f"Nothing to deposit for {account.name}")
            return self._skip(report, "no balance below deposit threshold")

        delay = self.next_delay()
        logger.info(f"Depositing {', '.join(map(str, deposits))} (after a {delay:.1f}s delay)")
        action = chain_actions.make_deposit_action(
            account.name, deposits, account.permission,
            token_contract=self.settings.token_contract,
            game_contract=self.settings.game_contract,
        )
        await self._submit(account, [action], report, delay)
        return report

    async def recover_energy(self, account: AccountProfile) -> TaskReport:
        """Spend FOOD to recover energy once it drops below the threshold."""
        report = TaskReport(task=TaskState.RECOVER_CHECK.value)
        logger.info(f"Fetching energy for account {account.name}")
        game = await self.chain.fetch_account(account.name)
        if game is None:
            return self._skip(report, "account not found in game")
        report.found = 1

        food = game.balance_of(policy.FOOD_SYMBOL)
        logger.info(f"Energy {game.energy} / {game.max_energy}, FOOD {food:.4f}")
        if not policy.needs_energy_recovery(game, self.settings.recover_threshold):
            return self._skip(report, "energy above threshold or not enough food")

        energy = policy.energy_to_recover(game, self.settings.max_food_consumption)
        if energy <= 0:
            return self._skip(report, "nothing to recover")
        report.actionable = 1

        delay = self.next_delay()
        logger.info(
            f"\tRecovering {energy} energy for {energy / policy.ENERGY_PER_FOOD:.4f} FOOD "
            f"(after a {delay:.1f}s delay)"
        )
        action = chain_actions.make_recover_action(
            account.name, energy, account.permission, contract=self.settings.game_contract,
        )
        await self._submit(account, [action], report, delay)
        return report

    async def repair_tools(self, account: AccountProfile) -> TaskReport:
        """Repair every tool whose durability fell below the threshold."""
        report = TaskReport(task=TaskState.REPAIR_CHECK.value)
        threshold = self.settings.repair_threshold

        logger.info(f"Fetching tools for account {account.name}")
        tools = await self.chain.fetch_tools(account.name)
        repairables = [t for t in tools if policy.is_repairable(t, threshold)]
        report.found, report.actionable = len(tools), len(repairables)
        logger.info(f"Found {len(tools)} tools / {len(repairables)} tools ready to be repaired")
        if not repairables:
            return self._skip(report, "no tool below repair threshold")

        for tool in repairables:
            delay = self.next_delay()
            logger.info(
                f"\tRepairing tool {tool.asset_id} (for {tool.type}) "
                f"(durability {tool.current_durability} / {tool.durability}) "
                f"({round(tool.durability_percent)}%) (after a {delay:.1f}s delay)"
            )
            action = chain_actions.make_tool_repair_action(
                account.name, tool.asset_id, account.permission, contract=self.settings.game_contract,
            )
            await self._submit(account, [action], report, delay)
        return report

    async def use_tools(self, account: AccountProfile) -> TaskReport:
        """Claim with every tool that is off cooldown and has durability left."""
        report = TaskReport(task=TaskState.USE_TOOLS_CHECK.value)
        logger.info(f"Fetching tools for account {account.name}")
        tools = await self.chain.fetch_tools(account.name)
        now = time.time()

        usable = []
        for tool in tools:
            if not policy.is_claimable(tool, now):
                continue
            template = self.catalog.tool(tool.template_id)
            if policy.is_usable(tool, template, now):
                usable.append(tool)
            else:
                logger.info(
                    f"\tSkipping tool {tool.asset_id}: durability {tool.current_durability} "
                    f"too low for a use costing {template.durability_consumed}"
                )
        report.found, report.actionable = len(tools), len(usable)
        logger.info(f"Found {len(tools)} tools / {len(usable)} tools ready to claim")
        if not usable:
            return self._skip(report, "no tool ready")

        for tool in usable:
            delay = self.next_delay()
            template = self.catalog.tool(tool.template_id)
            label = template.name if template and template.name else tool.type
            logger.info(f"\tClaiming with tool {tool.asset_id} (for {label}) (after a {delay:.1f}s delay)")
            action = chain_actions.make_tool_claim_action(
                account.name, tool.asset_id, account.permission, contract=self.settings.game_contract,
            )
            await self._submit(account, [action], report, delay)
        return report

    async def claim_crops(self, account: AccountProfile) -> TaskReport:
        """Claim every crop whose next availability has passed."""
        report = TaskReport(task=TaskState.CLAIM_CROPS_CHECK.value)
        logger.info(f"Fetching crops for account {account.name}")
        crops = await self.chain.fetch_crops(account.name)
        now = time.time()
        claimables = [c for c in crops if policy.is_claimable(c, now)]
        report.found, report.actionable = len(crops), len(claimables)
        logger.info(f"Found {len(crops)} crops / {len(claimables)} crops ready to claim")
        if not claimables:
            return self._skip(report, "no crop ready")

        for crop in claimables:
            delay = self.next_delay()
            logger.info(f"\tClaiming crop {crop.asset_id} {crop.name} (after a {delay:.1f}s delay)")
            action = chain_actions.make_crop_claim_action(
                account.name, crop.asset_id, account.permission, contract=self.settings.game_contract,
            )
            await self._submit(account, [action], report, delay)
        return report

    async def feed_animals(self, account: AccountProfile) -> TaskReport:
        """Feed every hungry animal with a distinct compatible food item."""
        report = TaskReport(task=TaskState.FEED_CHECK.value)
        logger.info(f"Fetching animals for account {account.name}")
        animals = await self.chain.fetch_animals(account.name)
        now = time.time()
        feedables = [a for a in animals if policy.is_claimable(a, now)]
        report.found, report.actionable = len(animals), len(feedables)
        logger.info(f"Found {len(animals)} animals / {len(feedables)} animals ready to feed")
        if not feedables:
            return self._skip(report, "no animal ready")

        logger.info(f"Fetching food from account {account.name}")
        food = await self.assets.fetch_food(account.name)
        logger.info(f"Found {len(food)} food")
        if not food:
            logger.info("\tNo food available, skipping feeding")
            return self._skip(report, "no food")
        if len(feedables) > len(food):
            logger.warning("You don't have enough food to feed all your animals")

        pairs = policy.match_feedings(feedables, food, self.catalog.animal_food)
        fed = 0
        for animal, food_item in pairs:
            if food_item is None:
                logger.info(f"\tNo compatible food found for {animal.name} ({animal.asset_id})")
                continue
            fed += 1
            delay = self.next_delay()
            logger.info(
                f"\tFeeding {animal.asset_id} {animal.name} with {food_item.name} "
                f"({food_item.asset_id}) (after a {delay:.1f}s delay)"
            )
            action = chain_actions.make_feeding_action(
                account.name, animal.asset_id, food_item.asset_id, account.permission,
                game_contract=self.settings.game_contract,
                atomic_contract=self.settings.atomic_contract,
            )
            await self._submit(account, [action], report, delay)

        if not fed:
            return self._skip(report, "no compatible food")
        return report

    async def withdraw_tokens(self, account: AccountProfile) -> TaskReport:
        """Withdraw in-game balances that reached their threshold."""
        report = TaskReport(task=TaskState.WITHDRAW_CHECK.value)
        if not self.settings.auto_withdraw:
            return self._skip(report, "disabled")

        thresholds = self.settings.withdraw_threshold_map
        if not thresholds:
            return self._skip(report, "no withdraw thresholds configured")

        logger.info(f"Fetching balances for account {account.name}")
        game = await self.chain.fetch_account(account.name)
        if game is None:
            return self._skip(report, "account not found in game")
        report.found = len(game.balances)

        withdrawals = policy.select_withdrawable(
            game.balances, thresholds, self.settings.withdraw_cap_map,
        )
        report.actionable = len(withdrawals)
        if not withdrawals:
            logger.info(f"No balance of {account.name} reached its withdraw threshold")
            return self._skip(report, "below withdraw threshold")

        fee = await self.chain.fetch_withdraw_fee()
        if fee is None:
            logger.warning("Withdraw fee unavailable, skipping withdrawal")
            return self._skip(report, "withdraw fee unavailable")

        delay = self.next_delay()
        logger.info(
            f"Withdrawing {', '.join(map(str, withdrawals))} at {fee}% fee "
            f"(after a {delay:.1f}s delay)"
        )
        action = chain_actions.make_withdraw_action(
            account.name, withdrawals, fee, account.permission, contract=self.settings.game_contract,
        )
        await self._submit(account, [action], report, delay)
        return report
