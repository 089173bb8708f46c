"""In-memory bookkeeping of in-flight transactions per account"""

from typing import Dict, FrozenSet, Optional, Set

import structlog

from provider_hub.chains.connector import ConnectionAdapter
from provider_hub.monitoring import metrics
from provider_hub.supervisor.status import ConnectionStatus
from provider_hub.supervisor.supervisor import ConnectionSupervisor

logger = structlog.get_logger()


def _key(account: str) -> str:
    return account.lower()


class PendingTransactionTracker:
    """Process-lifetime record of submitted, not yet confirmed transactions"""

    def __init__(self):
        self._pending: Dict[str, Set[str]] = {}
        self._followed_account: Optional[str] = None
        self._logger = logger.bind(component="pending_transaction_tracker")

    def add(self, account: str, tx_id: str) -> None:
        self._pending.setdefault(_key(account), set()).add(tx_id)
        self._update_gauge()
        self._logger.debug("pending_transaction_added", account=account, tx_id=tx_id)

    def has_pending(self, account: Optional[str]) -> bool:
        if not account:
            return False
        return bool(self._pending.get(_key(account)))

    def pending(self, account: str) -> FrozenSet[str]:
        return frozenset(self._pending.get(_key(account), ()))

    def resolve(self, account: str, tx_id: str) -> bool:
        """Drop a completed transaction; returns whether it was tracked"""
        txs = self._pending.get(_key(account))
        if not txs or tx_id not in txs:
            return False
        txs.discard(tx_id)
        if not txs:
            del self._pending[_key(account)]
        self._update_gauge()
        self._logger.debug("pending_transaction_resolved", account=account, tx_id=tx_id)
        return True

    def clear(self, account: str) -> None:
        if self._pending.pop(_key(account), None) is not None:
            self._update_gauge()
            self._logger.info("pending_transactions_cleared", account=account)

    async def check_pending(self, account: str, adapter: Optional[ConnectionAdapter]) -> int:
        """Resolve every pending transaction of the account that has a receipt"""
        if adapter is None:
            return 0

        resolved = 0
        for tx_id in sorted(self.pending(account)):
            try:
                receipt = await adapter.get_transaction_receipt(tx_id)
            except Exception as e:
                self._logger.warning(
                    "pending_transaction_check_failed",
                    account=account,
                    tx_id=tx_id,
                    error=str(e),
                )
                continue
            if receipt is not None and self.resolve(account, tx_id):
                resolved += 1
        return resolved

    def follow(self, supervisor: ConnectionSupervisor) -> None:
        """
        Keep pending sets scoped to the active account.

        Clears the previous account's set when the supervisor switches to a
        different account, and checks receipts on every account data refresh.
        """
        self._followed_account = supervisor.status.account

        def on_status(status: ConnectionStatus) -> None:
            # transient None during a reload is not a switch
            if status.account is None:
                return
            previous = self._followed_account
            if previous and _key(previous) != _key(status.account):
                self.clear(previous)
            self._followed_account = status.account

        supervisor.subscribe(on_status)
        supervisor.add_account_refresh_hook(
            lambda account: self.check_pending(account, supervisor.active_adapter)
        )

    def _update_gauge(self) -> None:
        metrics.pending_transactions.set(sum(len(txs) for txs in self._pending.values()))
