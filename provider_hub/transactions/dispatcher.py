"""Single entry point for signed contract transactions"""

import time
from typing import Optional

import structlog
from web3 import Web3

from provider_hub.exceptions import (
    InvariantViolationError,
    NoAccountError,
    NoNetworkError,
    ProviderHubError,
    SubmissionFailedError,
)
from provider_hub.monitoring import metrics
from provider_hub.supervisor.supervisor import ConnectionSupervisor
from provider_hub.transactions.contracts import ContractFactory
from provider_hub.transactions.models import Failed, Submitted, TransactionRequest, TransactionResult
from provider_hub.transactions.tracker import PendingTransactionTracker

logger = structlog.get_logger()


class TransactionDispatcher:
    """
    Submits contract calls through the supervisor's active adapter.

    Results are returned as values: ``Submitted`` on success (the hash is
    recorded as pending for the sending account), ``Failed`` otherwise. The
    dispatcher never retries. Only an endpoint that yields neither a hash nor
    an error aborts the call, with ``InvariantViolationError``.
    """

    def __init__(
        self,
        supervisor: ConnectionSupervisor,
        contract_factory: ContractFactory,
        tracker: Optional[PendingTransactionTracker] = None,
    ):
        self.supervisor = supervisor
        self.contract_factory = contract_factory
        self.tracker = tracker
        self._logger = logger.bind(component="transaction_dispatcher")

    async def dispatch(self, request: TransactionRequest) -> TransactionResult:
        status = self.supervisor.status
        account = status.account
        network_id = status.active_network_id

        if not account:
            return self._fail(request, NoAccountError("Attempting to do blockchain transaction with no account"))

        if network_id is None:
            return self._fail(request, NoNetworkError("Attempting to do blockchain transaction with no network id"))

        adapter = status.active_adapter
        if adapter is None:
            raise InvariantViolationError(
                "Active account without an active adapter",
                details={"account": account, "network_id": network_id},
            )

        overrides = request.overrides or {}
        start_time = time.time()
        try:
            contract = self.contract_factory.get_contract(
                adapter,
                request.contract_type,
                request.contract_address,
                signer_account=account,
            )
            tx_hash = await contract.transact(request.method, request.args, overrides)
        except Exception as e:
            return self._fail(
                request,
                SubmissionFailedError(
                    f"Transaction {request.method} failed",
                    cause=e,
                    details={"error": str(e), "error_type": type(e).__name__},
                ),
            )

        if tx_hash is None:
            self._logger.error(
                "no_error_or_response_received",
                method=request.method,
                contract_address=request.contract_address,
            )
            metrics.transactions_failed.labels(error_kind="invariant_violation").inc()
            raise InvariantViolationError(
                "No error or response received from blockchain action",
                details={"method": request.method, "contract_address": request.contract_address},
            )

        if not isinstance(tx_hash, str):
            tx_hash = Web3.to_hex(tx_hash)
        metrics.transaction_submit_latency.labels(
            contract_type=request.contract_type.value
        ).observe(time.time() - start_time)
        metrics.transactions_submitted.labels(
            contract_type=request.contract_type.value,
            method=request.method,
        ).inc()

        if self.tracker is not None:
            self.tracker.add(account, tx_hash)

        self._logger.info(
            "transaction_submitted",
            tx_hash=tx_hash,
            account=account,
            network_id=network_id,
            method=request.method,
            contract_type=request.contract_type.value,
        )
        return Submitted(tx_hash=tx_hash, account=account)

    def _fail(self, request: TransactionRequest, error: ProviderHubError) -> Failed:
        self._logger.warning(
            "send_transaction_error",
            method=request.method,
            contract_type=request.contract_type.value,
            error_kind=error.kind.value if error.kind else None,
            error=error.message,
            details=error.details,
        )
        metrics.transactions_failed.labels(
            error_kind=error.kind.value if error.kind else "unknown"
        ).inc()
        return Failed(error=error)
