"""Connection status record published by the supervisor"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from provider_hub.chains.connector import ConnectionAdapter
from provider_hub.exceptions import ErrorKind


class SupervisorState(Enum):
    """Connection supervisor states"""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    INJECTED_ACTIVE = "injected_active"
    FALLBACK_ACTIVE = "fallback_active"
    FAILED = "failed"


class WalletState(Enum):
    """What a presentation layer should offer the user"""

    WRONG_NETWORK = "wrong_network"
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


@dataclass
class ConnectionStatus:
    """Provider status owned by the ConnectionSupervisor"""

    state: SupervisorState = SupervisorState.UNINITIALIZED
    active_network_id: Optional[int] = None
    account: Optional[str] = None
    is_active: bool = False
    injected_loaded: bool = False
    injected_active: bool = False
    injected_network_id: Optional[int] = None
    backup_loaded: bool = False
    active_adapter: Optional[ConnectionAdapter] = None
    last_error: Optional[ErrorKind] = None

    @property
    def fallback_active(self) -> bool:
        return self.is_active and not self.injected_active

    @property
    def wallet_state(self) -> WalletState:
        # Precedence: wrong network, account, error, nothing
        if self.state is SupervisorState.LOADING:
            return WalletState.DISCONNECTED
        if self.injected_loaded and not self.injected_active:
            return WalletState.WRONG_NETWORK
        if self.account:
            return WalletState.CONNECTED
        if self.last_error is not None:
            return WalletState.ERROR
        return WalletState.DISCONNECTED

    def snapshot(self) -> "ConnectionStatus":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view without the adapter handle"""
        adapter = self.active_adapter
        return {
            "state": self.state.value,
            "active_network_id": self.active_network_id,
            "account": self.account,
            "is_active": self.is_active,
            "injected_loaded": self.injected_loaded,
            "injected_active": self.injected_active,
            "injected_network_id": self.injected_network_id,
            "backup_loaded": self.backup_loaded,
            "fallback_active": self.fallback_active,
            "active_adapter": adapter.kind.value if adapter is not None else None,
            "last_error": self.last_error.value if self.last_error else None,
            "wallet_state": self.wallet_state.value,
        }
