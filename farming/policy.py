"""Threshold policy engine.

Pure decision functions over fetched snapshots: no I/O, no clock other than
an optional ``now`` argument.  "Nothing to do" is always a normal return
value (``False``, ``None`` or an empty list), never an exception.
"""

import math
import time
from typing import Dict, List, Mapping, MutableSequence, Optional, Sequence, Tuple, Union

from farming.models import Animal, Balance, Crop, FoodItem, GameAccount, TemplateConfig, Tool, truncate_amount

FOOD_SYMBOL = "FOOD"
# Energy restored per unit of FOOD
ENERGY_PER_FOOD = 5
MIN_FOOD_FOR_RECOVERY = 0.2

# Game-side symbol -> wallet token symbol
GAME_TO_WALLET_SYMBOL: Dict[str, str] = {
    "WOOD": "FWW",
    "FOOD": "FWF",
    "GOLD": "FWG",
}

Claimable = Union[Tool, Crop, Animal]


def is_repairable(tool: Tool, threshold: float) -> bool:
    """True iff the tool's durability percentage is strictly below *threshold*."""
    if tool.durability <= 0:
        return False
    return 100 * tool.current_durability / tool.durability < threshold


def is_claimable(item: Claimable, now: Optional[float] = None) -> bool:
    """True iff ``next_availability`` is strictly in the past."""
    now = time.time() if now is None else now
    return item.next_availability < now


def is_usable(tool: Tool, template: Optional[TemplateConfig], now: Optional[float] = None) -> bool:
    """Claimable and with more durability left than one use consumes.

    Without a template config only claimability is checked.
    """
    if not is_claimable(tool, now):
        return False
    if template is None:
        return True
    return tool.current_durability > template.durability_consumed


def needs_energy_recovery(account: GameAccount, threshold: float) -> bool:
    """Energy ratio below *threshold* and enough FOOD to recover anything."""
    if account.max_energy <= 0:
        return False
    ratio = 100 * account.energy / account.max_energy
    return ratio < threshold and account.balance_of(FOOD_SYMBOL) >= MIN_FOOD_FOR_RECOVERY


def energy_to_recover(account: GameAccount, max_consumption: float) -> int:
    """Energy to restore: the missing energy, bounded by affordable FOOD."""
    missing = max(0.0, account.max_energy - account.energy)
    food = min(max_consumption, account.balance_of(FOOD_SYMBOL))
    affordable = math.floor(max(0.0, food) * ENERGY_PER_FOOD)
    return int(min(missing, affordable))


def match_food(animal: Animal, food_pool: MutableSequence[FoodItem],
               animal_food_map: Mapping[int, int]) -> Optional[FoodItem]:
    """Take the first food item this animal eats out of *food_pool*.

    The matched item is removed from the pool so it cannot be given to a
    second animal.  Returns ``None`` when nothing matches.
    """
    wanted = animal_food_map.get(animal.template_id)
    if wanted is None:
        return None
    for index, item in enumerate(food_pool):
        if item.template_id == wanted:
            return food_pool.pop(index)
    return None


def match_feedings(animals: Sequence[Animal], food: Sequence[FoodItem],
                   animal_food_map: Mapping[int, int]) -> List[Tuple[Animal, Optional[FoodItem]]]:
    """Pair each animal with a distinct food item (or ``None``)."""
    pool = list(food)
    return [(animal, match_food(animal, pool, animal_food_map)) for animal in animals]


def _cap(amount: float, cap: Optional[float]) -> float:
    """Apply *cap* and cut to chain precision."""
    return truncate_amount(amount if cap is None else min(amount, cap))


def select_withdrawable(balances: Sequence[Balance], thresholds: Mapping[str, float],
                        caps: Mapping[str, float]) -> List[Balance]:
    """Balances meeting their threshold, each capped by its maximum.

    Symbols without a threshold are never withdrawn.  An empty result means
    the withdrawal is skipped entirely.
    """
    selected = []
    for balance in balances:
        threshold = thresholds.get(balance.symbol)
        if threshold is None or balance.amount < threshold:
            continue
        amount = _cap(balance.amount, caps.get(balance.symbol))
        if amount > 0:
            selected.append(Balance(amount=amount, symbol=balance.symbol))
    return selected


def select_depositable(game_balances: Sequence[Balance], wallet_balances: Sequence[Balance],
                       thresholds: Mapping[str, float], caps: Mapping[str, float]) -> List[Balance]:
    """Wallet tokens to deposit for game balances that fell below threshold.

    *thresholds* and *caps* use game symbols; the result uses wallet symbols.
    """
    game = {b.symbol: b.amount for b in game_balances}
    wallet = {b.symbol: b.amount for b in wallet_balances}
    selected = []
    for symbol, threshold in thresholds.items():
        if game.get(symbol, 0.0) >= threshold:
            continue
        wallet_symbol = GAME_TO_WALLET_SYMBOL.get(symbol)
        if wallet_symbol is None:
            continue
        available = wallet.get(wallet_symbol, 0.0)
        if available <= 0:
            continue
        amount = _cap(available, caps.get(symbol))
        if amount > 0:
            selected.append(Balance(amount=amount, symbol=wallet_symbol))
    return selected
