"""
Chain access layer for the Farmers World bot.

Submodules:
    rpc: ``ChainDataGateway`` reading game tables via ``get_table_rows``.
    atomic: ``AssetIndexGateway`` listing food NFTs from AtomicAssets.
    transaction: ``TransactionBuilder`` anchoring, signing and pushing transactions.
    signer: ``TransactionSigner`` protocol and the keosd-backed implementation.
    actions: Factories for claim, repair, feed, recover, withdraw and deposit actions.
    keys: Private key format validation.
    exceptions: ``ErrorType`` and the chain exception hierarchy.
"""
