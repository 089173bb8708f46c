"""Transaction request and result models"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from provider_hub.exceptions import ErrorKind, ProviderHubError
from provider_hub.transactions.contracts import ContractType


@dataclass(frozen=True)
class TransactionRequest:
    """A contract call to submit, consumed once by the dispatcher"""

    contract_type: ContractType
    contract_address: str
    method: str
    args: List[Any] = field(default_factory=list)
    overrides: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Submitted:
    """Transaction accepted by the endpoint"""

    tx_hash: str
    account: str


@dataclass(frozen=True)
class Failed:
    """Transaction not submitted"""

    error: ProviderHubError

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind


TransactionResult = Union[Submitted, Failed]
