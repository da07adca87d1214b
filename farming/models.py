"""Typed game-state snapshots for the Farmers World bot.

Rows returned by ``get_table_rows`` and the AtomicAssets index are converted
into the dataclasses below at the gateway boundary, so the policy engine and
the orchestrator never touch raw dictionaries or ``"amount SYMBOL"`` strings.

Classes:
    Balance: ``{amount, symbol}`` pair.
    Tool / Crop / Animal: per-account game assets.
    GameAccount: energy and in-game balances of one account.
    FoodItem: a food NFT listed by the asset index.
    TemplateConfig / TemplateCatalog: static template definitions.
    TaskReport: outcome counters of one orchestrator task.
"""

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

TOKEN_PRECISION = 4


def truncate_amount(amount: float, precision: int = TOKEN_PRECISION) -> float:
    """Drop digits beyond *precision* (never rounds up)."""
    factor = 10 ** precision
    return math.floor(amount * factor + 1e-9) / factor


@dataclass(frozen=True)
class Balance:
    """A token amount paired with its symbol.

    Attributes:
        amount: Numeric amount.
        symbol: Upper-case token symbol (``FOOD``, ``FWW`` ...).
    """

    amount: float
    symbol: str

    @classmethod
    def parse(cls, text: str) -> "Balance":
        """Parse ``"12.5000 FOOD"`` into a :class:`Balance`.

        Raises:
            ValueError: If *text* is not ``amount SYMBOL``.
        """
        parts = str(text).split()
        if len(parts) != 2:
            raise ValueError(f"Invalid token amount: {text!r}")
        amount = float(parts[0])
        if math.isnan(amount) or amount < 0:
            raise ValueError(f"Invalid token amount: {text!r}")
        return cls(amount=amount, symbol=parts[1].upper())

    def to_asset_string(self, precision: int = TOKEN_PRECISION) -> str:
        """Format as the chain expects, truncating (never rounding up)."""
        truncated = truncate_amount(self.amount, precision)
        return f"{truncated:.{precision}f} {self.symbol}"

    def __str__(self) -> str:
        return self.to_asset_string()


def parse_balances(values: Iterable[str]) -> List[Balance]:
    """Parse a list of ``"amount SYMBOL"`` strings, skipping junk entries."""
    balances: List[Balance] = []
    for value in values or []:
        try:
            balances.append(Balance.parse(value))
        except ValueError:
            logger.debug(f"Ignoring unparsable balance {value!r}")
    return balances


@dataclass
class Tool:
    """A tool row from the ``tools`` table."""

    asset_id: str
    template_id: int
    owner: str
    type: str = ""
    durability: int = 0
    current_durability: int = 0
    next_availability: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Tool":
        return cls(
            asset_id=str(row["asset_id"]),
            template_id=int(row.get("template_id", 0)),
            owner=row.get("owner", ""),
            type=row.get("type", ""),
            durability=int(row.get("durability", 0)),
            current_durability=int(row.get("current_durability", 0)),
            next_availability=int(row.get("next_availability", 0)),
        )

    @property
    def durability_percent(self) -> float:
        if self.durability <= 0:
            return 100.0
        return 100 * self.current_durability / self.durability


@dataclass
class Crop:
    """A planted crop row from the ``crops`` table."""

    asset_id: str
    template_id: int
    owner: str
    name: str = ""
    next_availability: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Crop":
        return cls(
            asset_id=str(row["asset_id"]),
            template_id=int(row.get("template_id", 0)),
            owner=row.get("owner", ""),
            name=row.get("name", ""),
            next_availability=int(row.get("next_availability", 0)),
        )


@dataclass
class Animal:
    """An animal row from the ``animals`` table."""

    asset_id: str
    template_id: int
    owner: str
    name: str = ""
    next_availability: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Animal":
        return cls(
            asset_id=str(row["asset_id"]),
            template_id=int(row.get("template_id", 0)),
            owner=row.get("owner", ""),
            name=row.get("name", ""),
            next_availability=int(row.get("next_availability", 0)),
        )


@dataclass
class GameAccount:
    """Energy and in-game token balances from the ``accounts`` table."""

    account: str
    energy: float
    max_energy: float
    balances: List[Balance] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "GameAccount":
        return cls(
            account=row.get("account", ""),
            energy=float(row.get("energy", 0)),
            max_energy=float(row.get("max_energy", 0)),
            balances=parse_balances(row.get("balances", [])),
        )

    def balance_of(self, symbol: str) -> float:
        for balance in self.balances:
            if balance.symbol == symbol.upper():
                return balance.amount
        return 0.0


@dataclass
class FoodItem:
    """A food NFT as listed by the AtomicAssets index."""

    asset_id: str
    template_id: int
    name: str = ""
    owner: str = ""

    @classmethod
    def from_asset(cls, asset: Dict[str, Any]) -> "FoodItem":
        template = asset.get("template") or {}
        return cls(
            asset_id=str(asset["asset_id"]),
            template_id=int(template.get("template_id", 0)),
            name=asset.get("name", ""),
            owner=asset.get("owner", ""),
        )


@dataclass(frozen=True)
class TemplateConfig:
    """Static definition of a tool or animal template.

    Attributes:
        template_id: AtomicAssets template id.
        name: Display name.
        durability_consumed: Durability spent per tool use.
        food_template_id: Template of the food an animal eats (animals only).
    """

    template_id: int
    name: str = ""
    durability_consumed: int = 0
    food_template_id: Optional[int] = None

    @classmethod
    def from_tool_row(cls, row: Dict[str, Any]) -> "TemplateConfig":
        return cls(
            template_id=int(row["template_id"]),
            name=row.get("template_name", ""),
            durability_consumed=int(row.get("durability_consumed", 0)),
        )

    @classmethod
    def from_animal_row(cls, row: Dict[str, Any]) -> "TemplateConfig":
        food = row.get("consumed_card")
        return cls(
            template_id=int(row["template_id"]),
            name=row.get("name", ""),
            food_template_id=int(food) if food else None,
        )


# Fallback food mapping (animal template -> food template)
DEFAULT_ANIMAL_FOOD: Mapping[int, int] = MappingProxyType({
    298597: 298593,  # Baby Calf consumes Milk
    298603: 318606,  # Cow consumes Barley
    298607: 318606,  # Dairy Cow consumes Barley
    298613: 318606,  # Chick consumes Barley
    298614: 318606,  # Chicken consumes Barley
})


class TemplateCatalog:
    """Read-only lookup of tool and animal template configs.

    Built once at startup and shared by every orchestrator run.
    """

    def __init__(
        self,
        tools: Iterable[TemplateConfig] = (),
        animals: Iterable[TemplateConfig] = (),
    ) -> None:
        self._tools: Mapping[int, TemplateConfig] = MappingProxyType(
            {conf.template_id: conf for conf in tools}
        )
        food_map = dict(DEFAULT_ANIMAL_FOOD)
        for conf in animals:
            if conf.food_template_id:
                food_map[conf.template_id] = conf.food_template_id
        self._animal_food: Mapping[int, int] = MappingProxyType(food_map)

    @property
    def animal_food(self) -> Mapping[int, int]:
        """Animal template id -> food template id."""
        return self._animal_food

    def tool(self, template_id: int) -> Optional[TemplateConfig]:
        return self._tools.get(template_id)


@dataclass
class TaskReport:
    """Counters describing one task run for one account.

    Attributes:
        task: Task name (``repair``, ``feed`` ...).
        found: Items present in the snapshot.
        actionable: Items that passed the threshold policy.
        submitted: Transactions accepted by the chain (or dry-run built).
        failed: Transactions that failed to build, sign or push.
        skipped: Reason the task acted on nothing, if any.
    """

    task: str
    found: int = 0
    actionable: int = 0
    submitted: int = 0
    failed: int = 0
    skipped: Optional[str] = None
    transaction_ids: List[str] = field(default_factory=list)
