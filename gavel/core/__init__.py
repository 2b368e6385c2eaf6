"""
Gavel core domain.

- config: marketplace constants
- errors: stable error taxonomy
- models: accounts, auctions, bids, settlements, reports
- storage: SQLite persistence
- ledger / lifecycle / settlement / moderation: the state machines
"""
