"""
marketsync engine.

Client-side synchronization with a ledger-backed marketplace contract:
snapshot reads, operation submission, and post-settlement reconciliation.
"""
