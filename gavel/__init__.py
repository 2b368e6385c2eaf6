"""
Gavel - timed digital-art auction marketplace core.

Components:
- BidLedger: bid acceptance, ranking and top-3 collateral locks
- AuctionLifecycle: time-driven auction state machine
- SettlementCascade: payment windows and fallback to the next bidder
- ModerationPolicy: reports, strikes and restrictions
"""

__version__ = "0.1.0"
