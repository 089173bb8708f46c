"""Connection supervisor owning the single active adapter"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Union

import structlog
from web3.providers.async_base import AsyncBaseProvider

from provider_hub.chains.bridge import BridgingAdapter
from provider_hub.chains.connector import AdapterKind, ConnectionAdapter, LifecycleEvent, Subscription
from provider_hub.chains.injected import InjectedAdapter, detect_injected_provider
from provider_hub.config.models import NetworkConfig
from provider_hub.exceptions import AdapterClosedError, ErrorKind
from provider_hub.monitoring import metrics
from provider_hub.supervisor.policy import FailoverDecision, decide
from provider_hub.supervisor.status import ConnectionStatus, SupervisorState

logger = structlog.get_logger()

StatusCallback = Callable[[ConnectionStatus], None]
AccountRefreshHook = Callable[[str], Union[Awaitable[None], None]]
AdapterOverride = Union[ConnectionAdapter, AsyncBaseProvider]


class ConnectionSupervisor:
    """
    Selects, establishes and supervises exactly one active adapter.

    Responsibilities:
    - Probe the environment for an injected provider and record the outcome
    - Apply the failover policy and fall back to the bridging adapter
    - Attach lifecycle listeners to the active adapter only, tearing down the
      previous adapter's listeners first
    - Serialize every status mutation behind one lock
    - Publish immutable status snapshots to subscribers

    Construct one instance at process start and pass it by reference to the
    dispatcher and any other consumer.
    """

    def __init__(
        self,
        config: NetworkConfig,
        injected_detector: Optional[Callable[[], Optional[AsyncBaseProvider]]] = None,
        injected_factory: Optional[Callable[[AsyncBaseProvider], ConnectionAdapter]] = None,
        fallback_factory: Optional[Callable[[NetworkConfig], ConnectionAdapter]] = None,
        watch_events: bool = True,
    ):
        """
        Initialize connection supervisor.

        Args:
            config: Network configuration (target network id, bridge endpoint)
            injected_detector: Returns the environment's injected provider or None
            injected_factory: Wraps an injected provider into an adapter
            fallback_factory: Builds the bridging fallback adapter
            watch_events: Poll the active adapter for account/network changes
        """
        self.config = config
        self.target_network_id = config.target_network_id

        self._detect_injected = injected_detector or (
            lambda: detect_injected_provider(request_timeout=config.request_timeout_seconds)
        )
        self._injected_factory = injected_factory or (
            lambda provider: InjectedAdapter(provider, request_timeout=config.request_timeout_seconds)
        )
        self._fallback_factory = fallback_factory or BridgingAdapter
        self._watch_events = watch_events

        self._status = ConnectionStatus()
        self._lock = asyncio.Lock()
        self._subscriptions: List[Subscription] = []
        self._status_callbacks: List[StatusCallback] = []
        self._refresh_hooks: List[AccountRefreshHook] = []
        self._current_block_number = -1

        self._logger = logger.bind(
            component="connection_supervisor",
            target_network_id=self.target_network_id,
        )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def status(self) -> ConnectionStatus:
        """Snapshot of the current connection status"""
        return self._status.snapshot()

    @property
    def active_adapter(self) -> Optional[ConnectionAdapter]:
        return self._status.active_adapter

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """
        Receive a status snapshot after every change.

        Returns:
            Function removing the subscription
        """
        self._status_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._status_callbacks:
                self._status_callbacks.remove(callback)

        return unsubscribe

    def add_account_refresh_hook(self, hook: AccountRefreshHook) -> None:
        """Register a hook reloading account-scoped data"""
        self._refresh_hooks.append(hook)

    def _publish(self) -> None:
        snapshot = self._status.snapshot()
        for callback in list(self._status_callbacks):
            try:
                callback(snapshot)
            except Exception as e:
                self._logger.error(
                    "status_subscriber_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    # ------------------------------------------------------------------
    # Chain data
    # ------------------------------------------------------------------
    def get_current_block_number(self) -> int:
        return self._current_block_number

    def set_current_block_number(self, block_number: int) -> None:
        self._current_block_number = block_number

    async def refresh_block_number(self) -> int:
        """Read the latest block number from the active adapter"""
        adapter = self._status.active_adapter
        if adapter is None:
            return self._current_block_number
        self.set_current_block_number(await adapter.get_block_number())
        return self._current_block_number

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def initialize(self) -> ConnectionStatus:
        """Select and activate an adapter at startup"""
        self._logger.info("supervisor_initializing")
        return await self.reload()

    async def reload(self, adapter_override: Optional[AdapterOverride] = None) -> ConnectionStatus:
        """
        Re-run adapter selection.

        Without an override the environment is probed again for an injected
        provider; with one, the given provider or adapter is used instead.
        Concurrent calls are queued behind the supervisor lock.
        """
        async with self._lock:
            refresh_account = await self._load(adapter_override)

        if refresh_account:
            await self._refresh_account_data(refresh_account)
        return self.status

    async def _reload_from_event(self, source: ConnectionAdapter) -> Optional[str]:
        async with self._lock:
            # a reload queued ahead of this one may already have replaced the source
            if source is not self._status.active_adapter:
                self._logger.debug("event_reload_coalesced", adapter=source.name)
                return None
            return await self._load(None)

    async def _load(self, adapter_override: Optional[AdapterOverride]) -> Optional[str]:
        """Body of a reload cycle; the lock must be held. Returns an account to refresh."""
        previous = self._status
        previous_account = previous.account
        was_injected_active = previous.injected_active

        # reconnecting with the active adapter reuses it instead of closing it
        reused = adapter_override if adapter_override is previous.active_adapter else None
        await self._detach_active(keep_open=reused is not None)
        self._status = ConnectionStatus(
            state=SupervisorState.LOADING,
            injected_loaded=previous.injected_loaded,
            injected_network_id=previous.injected_network_id,
            last_error=previous.last_error,
        )
        self._publish()

        injected, injected_accounts = await self._load_injected(adapter_override, reused=reused is not None)

        decision = decide(
            self._status.injected_loaded,
            self._status.injected_network_id,
            self.target_network_id,
        )
        metrics.provider_failover_decisions.labels(decision=decision.value).inc()
        self._logger.info(
            "failover_decision",
            decision=decision.value,
            injected_loaded=self._status.injected_loaded,
            injected_network_id=self._status.injected_network_id,
        )

        if decision is FailoverDecision.USE_INJECTED:
            account = injected_accounts[0] if injected_accounts else None
            self._status.injected_active = True
            self._status.active_network_id = self._status.injected_network_id
            self._activate(injected, account, injected_accounts, SupervisorState.INJECTED_ACTIVE)
            self._publish()
            self._logger.info("injected_provider_active", account=account)
            metrics.provider_reloads.labels(outcome="injected").inc()

            # only refresh on a later cycle where the account actually changed
            if was_injected_active and account and account != previous_account:
                return account
            return None

        if injected is not None:
            await injected.close()

        self._logger.info("reverting_to_backup_provider")
        fallback: Optional[ConnectionAdapter] = None
        try:
            fallback = self._fallback_factory(self.config)
            await fallback.connect()
            network_id = await fallback.network_id()
            accounts = await fallback.list_accounts()
        except Exception as e:
            self._logger.error(
                "backup_provider_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            metrics.adapter_connect_errors.labels(
                kind=AdapterKind.BRIDGING.value, error_type=type(e).__name__
            ).inc()
            metrics.provider_reloads.labels(outcome="failed").inc()
            if fallback is not None:
                await fallback.close()
            self._status.state = SupervisorState.FAILED
            self._status.last_error = ErrorKind.FALLBACK_CONNECT_FAILED
            self._set_active_gauge(None)
            self._publish()
            return None

        account = accounts[0] if accounts else None
        self._status.backup_loaded = True
        self._status.active_network_id = network_id
        if self._status.last_error is ErrorKind.FALLBACK_CONNECT_FAILED:
            self._status.last_error = None
        self._activate(fallback, account, accounts, SupervisorState.FALLBACK_ACTIVE)
        self._publish()
        self._logger.info("backup_provider_active", account=account, network_id=network_id)
        metrics.provider_reloads.labels(outcome="fallback").inc()
        return None

    async def _load_injected(
        self, adapter_override: Optional[AdapterOverride], reused: bool = False
    ) -> Tuple[Optional[ConnectionAdapter], List[str]]:
        """
        Probe the injected candidate, recording the outcome in the status.

        A reused adapter is still connected and is only queried again. A
        closed adapter counts as an unavailable injected provider.
        """
        adapter: Optional[ConnectionAdapter] = None
        try:
            if isinstance(adapter_override, ConnectionAdapter):
                adapter = adapter_override
            else:
                provider = adapter_override if adapter_override is not None else self._detect_injected()
                if provider is None:
                    self._logger.debug("no_injected_provider")
                    self._status.injected_loaded = False
                    self._status.injected_network_id = None
                    return None, []
                adapter = self._injected_factory(provider)

            if adapter.closed:
                raise AdapterClosedError(f"Adapter {adapter.name} is closed")

            self._logger.info("loading_injected_provider", adapter=adapter.name, reused=reused)
            if not reused:
                await adapter.connect()
            network_id = await adapter.network_id()
            accounts = await adapter.list_accounts()
        except Exception as e:
            self._logger.warning(
                "injected_provider_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            metrics.adapter_connect_errors.labels(
                kind=AdapterKind.INJECTED.value, error_type=type(e).__name__
            ).inc()
            if adapter is not None:
                await adapter.close()
            self._status.injected_loaded = False
            self._status.injected_network_id = None
            self._status.last_error = ErrorKind.INJECTED_UNAVAILABLE
            return None, []

        self._status.injected_loaded = True
        self._status.injected_network_id = network_id
        if self._status.last_error is ErrorKind.INJECTED_UNAVAILABLE:
            self._status.last_error = None
        self._logger.info("injected_provider_loaded", network_id=network_id)
        return adapter, accounts

    def _activate(
        self,
        adapter: ConnectionAdapter,
        account: Optional[str],
        accounts: Sequence[str],
        state: SupervisorState,
    ) -> None:
        self._status.active_adapter = adapter
        self._status.account = account
        self._status.is_active = True
        self._status.state = state

        self._logger.info("subscribing_listeners", adapter=adapter.name)
        self._subscriptions = [
            adapter.subscribe(
                LifecycleEvent.NETWORK_CHANGED,
                lambda network_id: self._handle_network_changed(adapter, network_id),
            ),
            adapter.subscribe(
                LifecycleEvent.ACCOUNTS_CHANGED,
                lambda new_accounts: self._handle_accounts_changed(adapter, new_accounts),
            ),
            adapter.subscribe(LifecycleEvent.CLOSED, lambda: self._handle_closed(adapter)),
        ]
        if self._watch_events:
            adapter.start_watching(
                self.config.event_poll_interval_seconds,
                accounts,
                self._status.active_network_id,
            )
        self._set_active_gauge(adapter.kind)

    async def _detach_active(self, keep_open: bool = False) -> None:
        """Remove listeners from the current adapter and close it unless kept open"""
        adapter = self._status.active_adapter
        if self._subscriptions:
            self._logger.info("removing_old_listeners", count=len(self._subscriptions))
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self._status.active_adapter = None

        if adapter is not None and not keep_open:
            self._logger.info("closing_old_adapter", adapter=adapter.name)
            await adapter.close()

    async def shutdown(self) -> None:
        """Close the active adapter at process exit"""
        async with self._lock:
            await self._detach_active()
            self._status = ConnectionStatus(
                injected_loaded=self._status.injected_loaded,
                injected_network_id=self._status.injected_network_id,
            )
            self._set_active_gauge(None)
            self._publish()
        self._logger.info("supervisor_shutdown")

    def _set_active_gauge(self, kind: Optional[AdapterKind]) -> None:
        for adapter_kind in AdapterKind:
            metrics.provider_active.labels(kind=adapter_kind.value).set(1 if adapter_kind is kind else 0)

    # ------------------------------------------------------------------
    # Lifecycle handlers
    # ------------------------------------------------------------------
    def _is_current(self, source: ConnectionAdapter, event: LifecycleEvent) -> bool:
        if source is self._status.active_adapter and not source.closed:
            metrics.lifecycle_events.labels(event=event.value).inc()
            return True
        self._logger.debug("stale_lifecycle_event_ignored", lifecycle_event=event.value, adapter=source.name)
        return False

    async def _handle_network_changed(self, source: ConnectionAdapter, network_id: Any) -> None:
        if not self._is_current(source, LifecycleEvent.NETWORK_CHANGED):
            return
        self._logger.info("network_changed", network_id=network_id, active=self._status.is_active)
        # could mean switching from injected to backup or back
        if self._status.is_active:
            await self._reload_from_event(source)
            if self._status.account:
                await self._refresh_account_data(self._status.account)

    async def _handle_closed(self, source: ConnectionAdapter) -> None:
        if not self._is_current(source, LifecycleEvent.CLOSED):
            return
        await self._reload_after_close(source)

    async def _reload_after_close(self, source: ConnectionAdapter) -> None:
        self._logger.info("adapter_closed_event", active=self._status.is_active)
        if self._status.is_active:
            refresh_account = await self._reload_from_event(source)
            if refresh_account:
                await self._refresh_account_data(refresh_account)

    async def _handle_accounts_changed(self, source: ConnectionAdapter, accounts: Sequence[str]) -> None:
        if not self._is_current(source, LifecycleEvent.ACCOUNTS_CHANGED):
            return
        self._logger.info("accounts_changed", account_count=len(accounts))

        if not accounts:
            # no accounts means the connection is unusable
            await self._reload_after_close(source)
            return

        async with self._lock:
            if source is not self._status.active_adapter:
                return
            self._status.account = accounts[0]
            self._publish()

        await self._refresh_account_data(accounts[0])

    async def _refresh_account_data(self, account: str) -> None:
        self._logger.debug("fetch_user_blockchain_data", account=account)
        for hook in list(self._refresh_hooks):
            try:
                result = hook(account)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._logger.error(
                    "account_refresh_hook_error",
                    account=account,
                    error=str(e),
                    error_type=type(e).__name__,
                )
