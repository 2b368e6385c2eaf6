"""Settlement cascade: payment windows and next-bidder fallback."""

from gavel.core.settlement.cascade import (
    CascadeAction,
    CascadeSweep,
    SettlementCascade,
    SettlementView,
)

__all__ = ["CascadeAction", "CascadeSweep", "SettlementCascade", "SettlementView"]
