"""Transaction dispatch and pending bookkeeping"""

from provider_hub.transactions.contracts import AbiRegistry, BoundContract, ContractFactory, ContractType
from provider_hub.transactions.dispatcher import TransactionDispatcher
from provider_hub.transactions.models import Failed, Submitted, TransactionRequest, TransactionResult
from provider_hub.transactions.tracker import PendingTransactionTracker

__all__ = [
    "AbiRegistry",
    "BoundContract",
    "ContractFactory",
    "ContractType",
    "Failed",
    "PendingTransactionTracker",
    "Submitted",
    "TransactionDispatcher",
    "TransactionRequest",
    "TransactionResult",
]
