"""Base connection adapter with lifecycle event subscription and polling"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound
from web3.providers.persistent import PersistentConnectionProvider

from provider_hub.exceptions import AdapterClosedError

logger = structlog.get_logger()


class AdapterKind(Enum):
    """Adapter variants"""

    INJECTED = "injected"
    BRIDGING = "bridging"


class LifecycleEvent(Enum):
    """Lifecycle events emitted by an adapter"""

    NETWORK_CHANGED = "networkChanged"
    ACCOUNTS_CHANGED = "accountsChanged"
    CLOSED = "close"


class Subscription:
    """Handle returned by ConnectionAdapter.subscribe"""

    def __init__(self, adapter: "ConnectionAdapter", event: LifecycleEvent, handler: Callable):
        self.adapter = adapter
        self.event = event
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        """Remove the handler from its adapter (idempotent)"""
        if not self.active:
            return
        self.active = False
        self.adapter._remove_handler(self.event, self.handler)


class ConnectionAdapter(ABC):
    """
    Capability object mediating calls to one connection endpoint.

    Concrete variants provide account listing, network identity, contract
    handles and receipts. The base class owns listener registration and an
    optional polling watcher that turns account/network changes observed on
    the endpoint into lifecycle events.
    """

    kind: AdapterKind

    def __init__(self, name: str):
        self.name = name
        self._handlers: Dict[LifecycleEvent, List[Callable]] = {
            event: [] for event in LifecycleEvent
        }
        self._closed = False
        self._watch_task: Optional[asyncio.Task] = None
        self._logger = logger.bind(component="connection_adapter", adapter=name, kind=self.kind.value)

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Endpoint capabilities
    # ------------------------------------------------------------------
    @abstractmethod
    async def connect(self) -> None:
        """Perform the handshake with the endpoint"""

    @abstractmethod
    async def list_accounts(self) -> List[str]:
        """Ordered accounts available for signing"""

    @abstractmethod
    async def network_id(self) -> int:
        """Network identity of the endpoint"""

    @abstractmethod
    def contract(self, abi: Sequence[Dict[str, Any]], address: str) -> Any:
        """Build a contract handle bound to this endpoint"""

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt for a transaction, None while it is still pending"""

    @abstractmethod
    async def get_block_number(self) -> int:
        """Latest block number"""

    @abstractmethod
    async def _disconnect(self) -> None:
        """Release the underlying connection"""

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------
    def subscribe(self, event: LifecycleEvent, handler: Callable) -> Subscription:
        """Register a handler for a lifecycle event"""
        if self._closed:
            raise AdapterClosedError(f"Adapter {self.name} is closed", details={"event": event.value})
        self._handlers[event].append(handler)
        return Subscription(self, event, handler)

    def _remove_handler(self, event: LifecycleEvent, handler: Callable) -> None:
        try:
            self._handlers[event].remove(handler)
        except ValueError:
            pass

    def listener_count(self, event: Optional[LifecycleEvent] = None) -> int:
        if event is not None:
            return len(self._handlers[event])
        return sum(len(handlers) for handlers in self._handlers.values())

    def remove_all_listeners(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()

    async def emit(self, event: LifecycleEvent, *args: Any) -> None:
        """Deliver an event to the registered handlers in registration order"""
        if self._closed:
            self._logger.debug("lifecycle_event_dropped", lifecycle_event=event.value)
            return

        for handler in list(self._handlers[event]):
            # a handler may close this adapter (failover); later handlers must not fire
            if self._closed:
                break
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    def start_watching(
        self,
        poll_interval: float,
        accounts: Sequence[str],
        network_id: Optional[int],
    ) -> None:
        """Poll the endpoint and emit lifecycle events when its state changes"""
        if self._closed or self._watch_task is not None:
            return
        self._watch_task = asyncio.create_task(
            self._watch_loop(poll_interval, list(accounts), network_id)
        )
        self._logger.info("adapter_watch_started", poll_interval=poll_interval)

    async def _watch_loop(
        self,
        poll_interval: float,
        last_accounts: List[str],
        last_network_id: Optional[int],
    ) -> None:
        try:
            while not self._closed:
                await asyncio.sleep(poll_interval)
                if self._closed:
                    break

                try:
                    network_id = await self.network_id()
                    accounts = await self.list_accounts()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._logger.warning(
                        "adapter_watch_poll_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    await self.emit(LifecycleEvent.CLOSED)
                    break

                try:
                    if network_id != last_network_id:
                        last_network_id = network_id
                        await self.emit(LifecycleEvent.NETWORK_CHANGED, network_id)
                    if accounts != last_accounts:
                        last_accounts = accounts
                        await self.emit(LifecycleEvent.ACCOUNTS_CHANGED, accounts)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._logger.error(
                        "adapter_event_handler_error",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
        except asyncio.CancelledError:
            self._logger.debug("adapter_watch_cancelled")

    async def close(self) -> None:
        """Stop watching, drop all listeners and release the connection"""
        if self._closed:
            return
        self._closed = True
        self.remove_all_listeners()

        task = self._watch_task
        self._watch_task = None
        # closing from inside an event handler runs on the watch task itself;
        # the loop exits on its own once _closed is set
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await self._disconnect()
        except Exception as e:
            self._logger.warning("adapter_disconnect_failed", error=str(e), error_type=type(e).__name__)

        self._logger.info("adapter_closed")


class Web3Adapter(ConnectionAdapter):
    """Adapter backed by an AsyncWeb3 instance"""

    def __init__(self, name: str):
        super().__init__(name)
        self.w3: Optional[AsyncWeb3] = None

    def _require_web3(self) -> AsyncWeb3:
        if self.w3 is None:
            raise AdapterClosedError(f"Adapter {self.name} is not connected")
        return self.w3

    async def _open(self, w3: AsyncWeb3) -> None:
        """Open the provider connection and verify the endpoint answers"""
        if isinstance(w3.provider, PersistentConnectionProvider):
            await w3.provider.connect()
        if not await w3.is_connected():
            raise ConnectionError(f"Endpoint for {self.name} is not reachable")
        self.w3 = w3

    async def list_accounts(self) -> List[str]:
        accounts = await self._require_web3().eth.accounts
        return [Web3.to_checksum_address(account) for account in accounts]

    async def network_id(self) -> int:
        return int(await self._require_web3().eth.chain_id)

    def contract(self, abi: Sequence[Dict[str, Any]], address: str) -> Any:
        return self._require_web3().eth.contract(
            address=Web3.to_checksum_address(address),
            abi=abi,
        )

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._require_web3().eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    async def get_block_number(self) -> int:
        return int(await self._require_web3().eth.block_number)

    async def _disconnect(self) -> None:
        w3 = self.w3
        self.w3 = None
        if w3 is not None and isinstance(w3.provider, PersistentConnectionProvider):
            await w3.provider.disconnect()
