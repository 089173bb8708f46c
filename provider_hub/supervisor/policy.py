"""Failover policy choosing between the injected and fallback adapters"""

from enum import Enum
from typing import Optional


class FailoverDecision(Enum):
    """Outcome of the failover policy"""

    USE_INJECTED = "use_injected"
    USE_FALLBACK = "use_fallback"


def decide(
    injected_loaded: bool,
    injected_network_id: Optional[int],
    target_network_id: int,
) -> FailoverDecision:
    """Use the injected adapter only when it loaded and sits on the target network"""
    if injected_loaded and injected_network_id == target_network_id:
        return FailoverDecision.USE_INJECTED
    return FailoverDecision.USE_FALLBACK
