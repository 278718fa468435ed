from leavecore.ledger.schemas import BalanceAdjustment, BalanceKey, BalanceRecord
from leavecore.ledger.service import (
    BalanceLedger,
    apply_commit,
    apply_release,
    apply_reserve,
    expiry_date,
)

__all__ = [
    "BalanceAdjustment",
    "BalanceKey",
    "BalanceLedger",
    "BalanceRecord",
    "apply_commit",
    "apply_release",
    "apply_reserve",
    "expiry_date",
]
