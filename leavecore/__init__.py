"""Leave Core — entitlement, balance ledger, conflict detection and approvals."""

__version__ = "1.0.0"
