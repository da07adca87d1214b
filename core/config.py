"""Application configuration for the Farmers World bot.

Central configuration module powered by Pydantic v2.  Settings are loaded
from environment variables (with ``.env`` file support) into a frozen
:class:`BotSettings` instance that is built once at startup and passed
explicitly to the scheduler and the orchestrator.

Key exports:
    BotSettings: Root settings model (frozen; build it with ``load()``).
    AccountProfile: One WAX account and its signing keys.
    load_accounts: Collects ``ACCOUNT_NAME[_n]`` / ``PRIVATE_KEY[_n]`` pairs.
    parse_token_amounts: ``"100 FOOD, 50 WOOD"`` -> ``{"FOOD": 100.0, ...}``.
    BASE_DIR / LOGS_DIR: Canonical project paths.
"""

# pylint: disable=no-member

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from chain.exceptions import ConfigError
from chain.keys import is_valid_private_key
from farming.models import Balance

# ---------------------------------------------------------------------------
# Base Paths
# ---------------------------------------------------------------------------
BASE_DIR: Path = Path(__file__).parent.parent
"""Project root directory (parent of ``core/``)."""

LOGS_DIR: Path = BASE_DIR / "logs"
"""Directory for log output files."""

logger: logging.Logger = logging.getLogger(__name__)

ACCOUNT_NAME_PATTERN = re.compile(r"^[a-z1-5.]{1,12}$")
NUMBERED_ACCOUNT_PATTERN = re.compile(r"^ACCOUNT_NAME_(\d+)$")

DEFAULT_WAX_ENDPOINTS: List[str] = [
    "https://api.wax.greeneosio.com",
    "https://api.waxsweden.org",
    "https://wax.cryptolions.io",
    "https://wax.eu.eosamsterdam.net",
    "https://api-wax.eosarabia.net",
    "https://wax.greymass.com",
    "https://wax.pink.gg",
]

DEFAULT_ATOMIC_ENDPOINTS: List[str] = [
    "https://aa.wax.blacklusion.io",
    "https://wax-atomic-api.eosphere.io",
    "https://wax.api.atomicassets.io",
    "https://wax.blokcrafters.io",
]


def parse_token_amounts(text: Optional[str]) -> Dict[str, float]:
    """Parse an ``"amount SYMBOL, amount SYMBOL"`` list.

    Args:
        text: Comma separated token amounts.  Empty or ``None`` yields ``{}``.

    Returns:
        Mapping of upper-case symbol to amount.

    Raises:
        ValueError: If any entry is malformed.
    """
    amounts: Dict[str, float] = {}
    if not text:
        return amounts
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue
        balance = Balance.parse(entry)
        amounts[balance.symbol] = balance.amount
    return amounts


class AccountProfile(BaseModel):
    """A WAX account and the private keys authorizing its actions.

    Attributes:
        name: Chain account name (``a-z``, ``1-5`` and ``.``, max 12 chars).
        private_keys: One or more keys; every key signs every transaction.
        permission: Permission the actions are authorized with.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    private_keys: Tuple[str, ...]
    permission: str = "active"

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not ACCOUNT_NAME_PATTERN.match(value):
            raise ValueError(f"invalid account name {value!r}")
        return value

    @field_validator("private_keys")
    @classmethod
    def _check_keys(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        keys = tuple(k.strip() for k in value if k and k.strip())
        if not keys:
            raise ValueError("at least one private key is required")
        for key in keys:
            if not is_valid_private_key(key):
                raise ValueError("invalid private key format")
        return keys

    def __repr__(self) -> str:
        # Keys never end up in logs
        return f"AccountProfile(name={self.name!r}, keys={len(self.private_keys)})"

    __str__ = __repr__


def _split_keys(raw: Optional[str]) -> Tuple[str, ...]:
    return tuple(k.strip() for k in (raw or "").split(",") if k.strip())


def _build_profile(name: str, raw_keys: Optional[str], source: str) -> AccountProfile:
    if not raw_keys:
        raise ConfigError(f"Input a valid private key for {source} ({name}) in .env")
    try:
        return AccountProfile(name=name, private_keys=_split_keys(raw_keys))
    except ValidationError as exc:
        reasons = "; ".join(err["msg"] for err in exc.errors())
        raise ConfigError(f"Invalid account configuration for {source}: {reasons}") from exc


def load_accounts(environ: Mapping[str, str]) -> Tuple[AccountProfile, ...]:
    """Collect account profiles from environment-style variables.

    Reads the legacy ``ACCOUNT_NAME`` / ``PRIVATE_KEY`` pair first, then
    every numbered ``ACCOUNT_NAME_<n>`` / ``PRIVATE_KEY_<n>`` pair in
    ascending ``n``.  Keys may be comma separated for multi-key accounts.

    Raises:
        ConfigError: If a name has no key, a key is malformed or a name is
            configured twice.
    """
    profiles: List[AccountProfile] = []

    name = (environ.get("ACCOUNT_NAME") or "").strip()
    if name:
        profiles.append(_build_profile(name, environ.get("PRIVATE_KEY"), "ACCOUNT_NAME"))

    numbered = sorted(
        int(match.group(1))
        for match in (NUMBERED_ACCOUNT_PATTERN.match(k) for k in environ)
        if match
    )
    for index in numbered:
        name = (environ.get(f"ACCOUNT_NAME_{index}") or "").strip()
        if not name:
            continue
        profiles.append(
            _build_profile(name, environ.get(f"PRIVATE_KEY_{index}"), f"ACCOUNT_NAME_{index}")
        )

    seen = set()
    for profile in profiles:
        if profile.name in seen:
            raise ConfigError(f"Account {profile.name} is configured more than once")
        seen.add(profile.name)

    return tuple(profiles)


class BotSettings(BaseSettings):
    """Root configuration model.

    All fields can be set via environment variables or a ``.env`` file.
    The instance is frozen; derive variants with ``model_copy(update=...)``.

    Section overview:
        * **Core** -- log level, dry run.
        * **Accounts** -- filled by :meth:`load` from numbered variables.
        * **Scheduling** -- check interval and per-action delay window.
        * **Thresholds** -- repair, recover and food consumption limits.
        * **Withdraw / Deposit** -- toggles and ``"amount SYMBOL"`` lists.
        * **Endpoints** -- WAX RPC and AtomicAssets pools and timeouts.
        * **Wallet** -- keosd signing collaborator.
        * **Contracts** -- on-chain account names.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core
    log_level: str = "INFO"
    # Build transactions but never sign or push them
    dry_run: bool = False

    # Accounts
    accounts: Tuple[AccountProfile, ...] = ()

    # Scheduling
    check_interval: float = 15  # minutes
    delay_min: float = 4.0  # seconds
    delay_max: float = 10.0

    # Thresholds (percent)
    repair_threshold: float = 50.0
    recover_threshold: float = 50.0
    # Max FOOD spent per energy recovery
    max_food_consumption: float = 100.0

    # Withdraw
    auto_withdraw: bool = False
    withdraw_thresholds: str = ""
    max_withdraw: str = ""

    # Deposit (game-side symbols)
    auto_deposit: bool = False
    deposit_thresholds: str = ""
    max_deposit: str = ""

    # Endpoints
    wax_endpoints: List[str] = Field(default_factory=lambda: list(DEFAULT_WAX_ENDPOINTS))
    atomic_endpoints: List[str] = Field(default_factory=lambda: list(DEFAULT_ATOMIC_ENDPOINTS))
    chain_read_timeout: float = 5.0
    atomic_connect_timeout: float = 5.0
    table_row_limit: int = 100
    atomic_page_limit: int = 100

    # Wallet daemon (keosd)
    wallet_url: str = "http://127.0.0.1:8900"
    wallet_name: str = "default"
    wallet_password: Optional[str] = None

    # Contracts
    game_contract: str = "farmersworld"
    token_contract: str = "farmerstoken"
    atomic_contract: str = "atomicassets"
    atomic_collection: str = "farmersworld"

    @field_validator("withdraw_thresholds", "max_withdraw", "deposit_thresholds", "max_deposit")
    @classmethod
    def _check_token_list(cls, value: str) -> str:
        parse_token_amounts(value)
        return value

    @field_validator("wax_endpoints", "atomic_endpoints")
    @classmethod
    def _check_endpoints(cls, value: List[str]) -> List[str]:
        urls = [url.strip().rstrip("/") for url in value if url and url.strip()]
        if not urls:
            raise ValueError("endpoint list must not be empty")
        return urls

    @model_validator(mode="after")
    def _check_ranges(self) -> "BotSettings":
        if self.delay_min < 0 or self.delay_max < self.delay_min:
            raise ValueError("DELAY_MIN must be >= 0 and <= DELAY_MAX")
        if self.check_interval <= 0:
            raise ValueError("CHECK_INTERVAL must be positive")
        return self

    @classmethod
    def load(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "BotSettings":
        """Build settings and accounts from the environment.

        Call ``dotenv.load_dotenv()`` first so numbered account variables
        from ``.env`` are visible in ``os.environ``.

        Raises:
            ConfigError: On any invalid or missing setting.
        """
        environ = os.environ if environ is None else environ
        accounts = load_accounts(environ)
        if not accounts and not overrides.get("accounts"):
            raise ConfigError("Input a valid ACCOUNT_NAME in .env")
        overrides.setdefault("accounts", accounts)
        try:
            return cls(**overrides)
        except (ValidationError, SettingsError) as exc:
            raise ConfigError(str(exc)) from exc

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval * 60

    @property
    def withdraw_threshold_map(self) -> Dict[str, float]:
        return parse_token_amounts(self.withdraw_thresholds)

    @property
    def withdraw_cap_map(self) -> Dict[str, float]:
        return parse_token_amounts(self.max_withdraw)

    @property
    def deposit_threshold_map(self) -> Dict[str, float]:
        return parse_token_amounts(self.deposit_thresholds)

    @property
    def deposit_cap_map(self) -> Dict[str, float]:
        return parse_token_amounts(self.max_deposit)

    def get_account(self, name: str) -> Optional[AccountProfile]:
        """Return the configured profile for *name*, if any."""
        for account in self.accounts:
            if account.name == name:
                return account
        return None
