"""Action factories for Farmers World maintenance transactions.

Every factory returns a plain action dictionary in the shape nodeos expects
(``account``, ``name``, ``authorization``, ``data``); the ``data`` payload is
JSON and gets serialized by the signing collaborator.
"""

from typing import Any, Dict, List, Sequence

from farming.models import Balance

GAME_CONTRACT = "farmersworld"
TOKEN_CONTRACT = "farmerstoken"
ATOMIC_CONTRACT = "atomicassets"

Action = Dict[str, Any]


def _auth(account: str, permission: str) -> List[Dict[str, str]]:
    return [{"actor": account, "permission": permission}]


def make_action(contract: str, name: str, account: str, data: Dict[str, Any],
                permission: str = "active") -> Action:
    return {
        "account": contract,
        "name": name,
        "authorization": _auth(account, permission),
        "data": data,
    }


def make_tool_claim_action(account: str, tool_id: str, permission: str = "active",
                           contract: str = GAME_CONTRACT) -> Action:
    return make_action(contract, "claim", account, {"owner": account, "asset_id": tool_id}, permission)


def make_crop_claim_action(account: str, crop_id: str, permission: str = "active",
                           contract: str = GAME_CONTRACT) -> Action:
    return make_action(contract, "cropclaim", account, {"owner": account, "crop_id": crop_id}, permission)


def make_tool_repair_action(account: str, tool_id: str, permission: str = "active",
                            contract: str = GAME_CONTRACT) -> Action:
    return make_action(contract, "repair", account, {"asset_owner": account, "asset_id": tool_id}, permission)


def make_feeding_action(account: str, animal_id: str, food_id: str, permission: str = "active",
                        game_contract: str = GAME_CONTRACT,
                        atomic_contract: str = ATOMIC_CONTRACT) -> Action:
    """Feeding is an NFT transfer of the animal to the game with a memo."""
    return make_action(
        atomic_contract,
        "transfer",
        account,
        {
            "from": account,
            "to": game_contract,
            "asset_ids": [animal_id],
            "memo": f"feed_animal:{food_id}",
        },
        permission,
    )


def make_recover_action(account: str, energy: int, permission: str = "active",
                        contract: str = GAME_CONTRACT) -> Action:
    return make_action(contract, "recover", account, {"owner": account, "energy_recovered": int(energy)}, permission)


def make_withdraw_action(account: str, quantities: Sequence[Balance], fee: int,
                         permission: str = "active", contract: str = GAME_CONTRACT) -> Action:
    return make_action(
        contract,
        "withdraw",
        account,
        {
            "owner": account,
            "quantities": [q.to_asset_string() for q in quantities],
            "fee": int(fee),
        },
        permission,
    )


def make_deposit_action(account: str, quantities: Sequence[Balance], permission: str = "active",
                        token_contract: str = TOKEN_CONTRACT,
                        game_contract: str = GAME_CONTRACT) -> Action:
    """Deposit wallet tokens into the game in a single ``transfers`` action."""
    return make_action(
        token_contract,
        "transfers",
        account,
        {
            "from": account,
            "to": game_contract,
            "quantities": [q.to_asset_string() for q in quantities],
            "memo": "deposit",
        },
        permission,
    )
