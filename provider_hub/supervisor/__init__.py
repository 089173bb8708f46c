"""Provider selection and supervision"""

from provider_hub.supervisor.policy import FailoverDecision, decide
from provider_hub.supervisor.status import ConnectionStatus, SupervisorState, WalletState
from provider_hub.supervisor.supervisor import ConnectionSupervisor

__all__ = [
    "ConnectionStatus",
    "ConnectionSupervisor",
    "FailoverDecision",
    "SupervisorState",
    "WalletState",
    "decide",
]
