from leavecore.entitlement.schemas import ProRataResult
from leavecore.entitlement.service import EntitlementEngine, describe_pattern, quantize_to

__all__ = ["EntitlementEngine", "ProRataResult", "describe_pattern", "quantize_to"]
