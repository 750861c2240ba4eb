"""
External collaborators: the Pharos task API client and the EVM chain client.

Both translate transport errors into the ``core.errors`` taxonomy so the
retry layer never sees aiohttp or web3 specific exceptions.
"""
