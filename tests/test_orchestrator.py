"""
Tests for TaskOrchestrator: state order, per-task filtering and submission.
"""

import logging
import random
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chain.transaction import TransactionResult
from core.config import AccountProfile, BotSettings
from core.orchestrator import TRANSITIONS, TaskOrchestrator, TaskState
from farming.models import Animal, Balance, Crop, FoodItem, GameAccount, TemplateCatalog, TemplateConfig, Tool

KEY = "5KQwrPbwdL6PhXujxW37FSSQZ1JiwsST4cqQzDeyXtP79zkvFD3"
ACCOUNT = AccountProfile(name="farmer.wam", private_keys=(KEY,))
PAST = int(time.time()) - 60
FUTURE = int(time.time()) + 3600


def make_settings(**overrides):
    return BotSettings.load({"ACCOUNT_NAME": "farmer.wam", "PRIVATE_KEY": KEY}, **overrides)


def tool(asset_id, current, durability=100, next_availability=FUTURE, template_id=203881):
    return Tool(asset_id=asset_id, template_id=template_id, owner="farmer.wam", type="Wood",
                durability=durability, current_durability=current, next_availability=next_availability)


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def chain():
    gw = MagicMock()
    gw.pool = MagicMock()
    gw.fetch_tools = AsyncMock(return_value=[])
    gw.fetch_crops = AsyncMock(return_value=[])
    gw.fetch_animals = AsyncMock(return_value=[])
    gw.fetch_account = AsyncMock(return_value=GameAccount("farmer.wam", 500, 500, [Balance(10, "FOOD")]))
    gw.fetch_wallet_balances = AsyncMock(return_value=[])
    gw.fetch_withdraw_fee = AsyncMock(return_value=5)
    return gw


@pytest.fixture
def assets():
    gw = MagicMock()
    gw.pool = MagicMock()
    gw.fetch_food = AsyncMock(return_value=[])
    return gw


@pytest.fixture
def builder():
    b = MagicMock()
    b.submit = AsyncMock(return_value=TransactionResult(True, "Accepted", transaction_id="tx1"))
    return b


@pytest.fixture
def sleep():
    with patch("core.orchestrator.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


def make_orchestrator(chain, assets, builder, catalog=None, **settings):
    return TaskOrchestrator(make_settings(**settings), chain, assets, builder,
                            catalog=catalog, rng=random.Random(42))


class TestStateMachine:
    def test_transitions_follow_fixed_order(self):
        order = [TaskState.DEPOSIT_CHECK]
        while order[-1] is not TaskState.DONE:
            order.append(TRANSITIONS[order[-1]])
        assert [s.value for s in order] == [
            "deposit", "recover", "repair", "use_tools", "claim_crops", "feed", "withdraw", "done",
        ]

    @pytest.mark.asyncio
    async def test_run_visits_every_task_and_shuffles_pools(self, chain, assets, builder, sleep):
        orchestrator = make_orchestrator(chain, assets, builder)

        reports = await orchestrator.run(ACCOUNT)

        assert [r.task for r in reports] == [
            "deposit", "recover", "repair", "use_tools", "claim_crops", "feed", "withdraw",
        ]
        assert chain.pool.shuffle.call_count == 7
        assert assets.pool.shuffle.call_count == 7
        builder.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_crashing_task_does_not_stop_the_run(self, chain, assets, builder, sleep):
        chain.fetch_tools.side_effect = RuntimeError("boom")
        orchestrator = make_orchestrator(chain, assets, builder)

        reports = await orchestrator.run(ACCOUNT)

        by_task = {r.task: r for r in reports}
        assert by_task["repair"].skipped == "error: boom"
        assert by_task["use_tools"].skipped == "error: boom"
        assert len(reports) == 7


class TestRepair:
    @pytest.mark.asyncio
    async def test_only_tools_below_threshold_are_repaired(self, chain, assets, builder, sleep):
        chain.fetch_tools.return_value = [tool("1", 30), tool("2", 80)]
        orchestrator = make_orchestrator(chain, assets, builder, repair_threshold=50)

        report = await orchestrator.repair_tools(ACCOUNT)

        assert report.found == 2
        assert report.actionable == 1
        assert report.submitted == 1
        assert report.transaction_ids == ["tx1"]
        builder.submit.assert_awaited_once()
        name, keys, acts = builder.submit.call_args[0]
        assert name == "farmer.wam"
        assert keys == (KEY,)
        assert acts[0]["name"] == "repair"
        assert acts[0]["data"]["asset_id"] == "1"
        delay = sleep.await_args[0][0]
        assert 4.0 <= delay <= 10.0

    @pytest.mark.asyncio
    async def test_repair_is_logged_with_durability(self, chain, assets, builder, sleep, caplog):
        caplog.set_level(logging.INFO, logger="core.orchestrator")
        chain.fetch_tools.return_value = [tool("1099", 30)]
        orchestrator = make_orchestrator(chain, assets, builder)

        await orchestrator.repair_tools(ACCOUNT)

        assert "Found 1 tools / 1 tools ready to be repaired" in caplog.text
        assert "Repairing tool 1099 (for Wood) (durability 30 / 100) (30%)" in caplog.text

    @pytest.mark.asyncio
    async def test_one_transaction_per_tool_each_after_a_delay(self, chain, assets, builder, sleep):
        chain.fetch_tools.return_value = [tool("1", 10), tool("2", 20), tool("3", 99)]
        orchestrator = make_orchestrator(chain, assets, builder, delay_min=1, delay_max=2)

        report = await orchestrator.repair_tools(ACCOUNT)

        assert report.submitted == 2
        assert builder.submit.await_count == 2
        assert sleep.await_count == 2
        assert all(1 <= c[0][0] <= 2 for c in sleep.await_args_list)

    @pytest.mark.asyncio
    async def test_failed_submission_is_counted(self, chain, assets, builder, sleep):
        chain.fetch_tools.return_value = [tool("1", 10)]
        builder.submit.return_value = TransactionResult(False, "expired transaction")
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.repair_tools(ACCOUNT)

        assert report.failed == 1
        assert report.submitted == 0


class TestUseToolsAndCrops:
    @pytest.mark.asyncio
    async def test_only_ready_tools_with_durability_are_used(self, chain, assets, builder, sleep):
        catalog = TemplateCatalog(tools=[TemplateConfig(203881, name="Axe", durability_consumed=5)])
        chain.fetch_tools.return_value = [
            tool("ready", 50, next_availability=PAST),
            tool("worn", 5, next_availability=PAST),
            tool("cooling", 50, next_availability=FUTURE),
        ]
        orchestrator = make_orchestrator(chain, assets, builder, catalog=catalog)

        report = await orchestrator.use_tools(ACCOUNT)

        assert report.actionable == 1
        acts = builder.submit.call_args[0][2]
        assert acts[0]["name"] == "claim"
        assert acts[0]["data"] == {"owner": "farmer.wam", "asset_id": "ready"}

    @pytest.mark.asyncio
    async def test_claim_ready_crops(self, chain, assets, builder, sleep):
        chain.fetch_crops.return_value = [
            Crop("c1", 298595, "farmer.wam", "Barley Seed", next_availability=PAST),
            Crop("c2", 298596, "farmer.wam", "Corn Seed", next_availability=FUTURE),
        ]
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.claim_crops(ACCOUNT)

        assert report.submitted == 1
        acts = builder.submit.call_args[0][2]
        assert acts[0]["name"] == "cropclaim"
        assert acts[0]["data"]["crop_id"] == "c1"

    @pytest.mark.asyncio
    async def test_nothing_ready(self, chain, assets, builder, sleep):
        chain.fetch_crops.return_value = [Crop("c2", 1, "farmer.wam", next_availability=FUTURE)]
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.claim_crops(ACCOUNT)

        assert report.skipped == "no crop ready"
        sleep.assert_not_awaited()


class TestFeeding:
    def animals(self):
        return [
            Animal("a1", 298603, "farmer.wam", "Cow", next_availability=PAST),
            Animal("a2", 298614, "farmer.wam", "Chicken", next_availability=PAST),
        ]

    @pytest.mark.asyncio
    async def test_no_food_means_no_submissions(self, chain, assets, builder, sleep):
        chain.fetch_animals.return_value = self.animals()
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.feed_animals(ACCOUNT)

        assert report.skipped == "no food"
        builder.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_each_food_item_feeds_one_animal(self, chain, assets, builder, sleep):
        chain.fetch_animals.return_value = self.animals()
        assets.fetch_food.return_value = [FoodItem("f1", 318606, "Barley")]
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.feed_animals(ACCOUNT)

        assert report.submitted == 1
        acts = builder.submit.call_args[0][2]
        assert acts[0]["account"] == "atomicassets"
        assert acts[0]["data"]["memo"] == "feed_animal:f1"
        assert acts[0]["data"]["asset_ids"] == ["a1"]

    @pytest.mark.asyncio
    async def test_incompatible_food(self, chain, assets, builder, sleep):
        chain.fetch_animals.return_value = self.animals()
        assets.fetch_food.return_value = [FoodItem("milk", 298593, "Milk")]
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.feed_animals(ACCOUNT)

        assert report.skipped == "no compatible food"
        builder.submit.assert_not_awaited()


class TestEnergy:
    @pytest.mark.asyncio
    async def test_recover_when_low(self, chain, assets, builder, sleep):
        chain.fetch_account.return_value = GameAccount("farmer.wam", 100, 500, [Balance(10.5, "FOOD")])
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.recover_energy(ACCOUNT)

        assert report.submitted == 1
        acts = builder.submit.call_args[0][2]
        assert acts[0]["data"] == {"owner": "farmer.wam", "energy_recovered": 52}

    @pytest.mark.asyncio
    async def test_no_recover_without_food(self, chain, assets, builder, sleep):
        chain.fetch_account.return_value = GameAccount("farmer.wam", 0, 500, [])
        orchestrator = make_orchestrator(chain, assets, builder)

        report = await orchestrator.recover_energy(ACCOUNT)

        assert report.submitted == 0
        builder.submit.assert_not_awaited()


class TestWithdrawDeposit:
    @pytest.mark.asyncio
    async def test_withdraw_disabled(self, chain, assets, builder, sleep):
        orchestrator = make_orchestrator(chain, assets, builder)
        report = await orchestrator.withdraw_tokens(ACCOUNT)
        assert report.skipped == "disabled"
        chain.fetch_account.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_withdraw_below_threshold(self, chain, assets, builder, sleep):
        chain.fetch_account.return_value = GameAccount("farmer.wam", 500, 500, [Balance(50, "FOOD")])
        orchestrator = make_orchestrator(chain, assets, builder, auto_withdraw=True,
                                         withdraw_thresholds="100 FOOD")

        report = await orchestrator.withdraw_tokens(ACCOUNT)

        assert report.skipped == "below withdraw threshold"
        builder.submit.assert_not_awaited()
        chain.fetch_withdraw_fee.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_withdraw_batches_all_tokens(self, chain, assets, builder, sleep):
        chain.fetch_account.return_value = GameAccount(
            "farmer.wam", 500, 500, [Balance(150, "FOOD"), Balance(300, "WOOD"), Balance(1, "GOLD")],
        )
        orchestrator = make_orchestrator(chain, assets, builder, auto_withdraw=True,
                                         withdraw_thresholds="100 FOOD, 100 WOOD",
                                         max_withdraw="200 WOOD")

        report = await orchestrator.withdraw_tokens(ACCOUNT)

        assert report.submitted == 1
        acts = builder.submit.call_args[0][2]
        assert len(acts) == 1
        assert acts[0]["data"] == {"owner": "farmer.wam",
                                   "quantities": ["150.0000 FOOD", "200.0000 WOOD"], "fee": 5}

    @pytest.mark.asyncio
    async def test_withdraw_without_fee(self, chain, assets, builder, sleep):
        chain.fetch_account.return_value = GameAccount("farmer.wam", 500, 500, [Balance(150, "FOOD")])
        chain.fetch_withdraw_fee.return_value = None
        orchestrator = make_orchestrator(chain, assets, builder, auto_withdraw=True,
                                         withdraw_thresholds="100 FOOD")

        report = await orchestrator.withdraw_tokens(ACCOUNT)

        assert report.skipped == "withdraw fee unavailable"
        builder.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deposit_from_wallet(self, chain, assets, builder, sleep):
        chain.fetch_account.return_value = GameAccount("farmer.wam", 500, 500, [Balance(5, "FOOD")])
        chain.fetch_wallet_balances.return_value = [Balance(80, "FWF"), Balance(10, "FWW")]
        orchestrator = make_orchestrator(chain, assets, builder, auto_deposit=True,
                                         deposit_thresholds="50 FOOD", max_deposit="30 FOOD")

        report = await orchestrator.deposit_tokens(ACCOUNT)

        assert report.submitted == 1
        acts = builder.submit.call_args[0][2]
        assert acts[0]["account"] == "farmerstoken"
        assert acts[0]["name"] == "transfers"
        assert acts[0]["data"]["quantities"] == ["30.0000 FWF"]


class TestDelay:
    def test_next_delay_within_window(self, chain, assets, builder):
        orchestrator = make_orchestrator(chain, assets, builder, delay_min=4, delay_max=10)
        assert all(4 <= orchestrator.next_delay() <= 10 for _ in range(200))
