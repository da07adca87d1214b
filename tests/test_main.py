from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import main
from chain.exceptions import ConfigError, SigningError
from core.config import AccountProfile

KEY = "5KQwrPbwdL6PhXujxW37FSSQZ1JiwsST4cqQzDeyXtP79zkvFD3"


@pytest.fixture
def settings():
    s = MagicMock()
    s.log_level = "INFO"
    s.dry_run = False
    s.accounts = (AccountProfile(name="farmer.wam", private_keys=(KEY,)),)
    s.wax_endpoints = ["https://wax-a.example"]
    s.atomic_endpoints = ["https://aa-a.example"]
    return s


def test_parse_args():
    args = main.parse_args(["--once", "--dry-run", "--account", "farmer.wam"])
    assert args.once is True
    assert args.dry_run is True
    assert args.account == "farmer.wam"


def test_load_settings_unknown_account(settings):
    settings.get_account.return_value = None
    with patch("main.BotSettings.load", return_value=settings):
        with pytest.raises(ConfigError):
            main.load_settings(main.parse_args(["--account", "nobody"]))


def test_load_settings_dry_run_override(settings):
    with patch("main.BotSettings.load", return_value=settings):
        main.load_settings(main.parse_args(["--dry-run"]))
    settings.model_copy.assert_called_once_with(update={"dry_run": True})


@pytest.mark.asyncio
async def test_config_error_exits_with_1():
    with patch("main.BotSettings.load", side_effect=ConfigError("Input a valid ACCOUNT_NAME in .env")):
        assert await main.main([]) == 1


@pytest.mark.asyncio
async def test_once_runs_a_single_cycle(settings):
    with patch("main.load_settings", return_value=settings), \
         patch("main.setup_logging"), \
         patch("main.ChainDataGateway") as chain_cls, \
         patch("main.AssetIndexGateway") as assets_cls, \
         patch("main.WalletDaemonSigner") as signer_cls, \
         patch("main.load_catalog", new_callable=AsyncMock) as load_catalog, \
         patch("main.Scheduler") as scheduler_cls:
        chain_cls.return_value.close = AsyncMock()
        assets_cls.return_value.close = AsyncMock()
        signer = signer_cls.return_value
        signer.close = AsyncMock()
        signer.register_keys = AsyncMock()
        scheduler_cls.return_value.scheduler_loop = AsyncMock()

        assert await main.main(["--once"]) == 0

    signer.register_keys.assert_awaited_once_with((KEY,))
    load_catalog.assert_awaited_once()
    scheduler_cls.return_value.scheduler_loop.assert_awaited_once_with(max_cycles=1)
    chain_cls.return_value.close.assert_awaited_once()
    signer.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_wallet_failure_exits_with_1(settings):
    with patch("main.load_settings", return_value=settings), \
         patch("main.setup_logging"), \
         patch("main.ChainDataGateway") as chain_cls, \
         patch("main.AssetIndexGateway") as assets_cls, \
         patch("main.WalletDaemonSigner") as signer_cls, \
         patch("main.Scheduler") as scheduler_cls:
        chain_cls.return_value.close = AsyncMock()
        assets_cls.return_value.close = AsyncMock()
        signer_cls.return_value.close = AsyncMock()
        signer_cls.return_value.register_keys = AsyncMock(side_effect=SigningError("wallet locked"))

        assert await main.main([]) == 1

    scheduler_cls.assert_not_called()
