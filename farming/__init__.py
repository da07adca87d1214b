"""
Game model and decision rules for the Farmers World bot.

Submodules:
    models: Typed snapshots (tools, crops, animals, balances, templates).
    policy: Pure threshold decisions (repair, claim, feed, recover, withdraw, deposit).
"""
