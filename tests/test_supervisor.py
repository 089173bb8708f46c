"""Tests for the connection supervisor state machine"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from prometheus_client import REGISTRY

from provider_hub.chains.connector import AdapterKind, LifecycleEvent
from provider_hub.exceptions import ErrorKind
from provider_hub.supervisor.status import SupervisorState, WalletState
from provider_hub.supervisor.supervisor import ConnectionSupervisor
from tests.conftest import BRIDGE_ACCOUNT, OTHER_ACCOUNT, WALLET_ACCOUNT, FakeAdapter


def assert_single_active(status):
    """At most one adapter is active and account is cleared when inactive"""
    assert not (status.injected_active and status.fallback_active)
    if not status.is_active:
        assert status.account is None
        assert status.active_adapter is None
    else:
        assert status.active_adapter is not None


class TestInitialize:
    """Startup adapter selection"""

    @pytest.mark.asyncio
    async def test_no_injected_uses_fallback(self, supervisor, env):
        """No wallet present, fallback on network 1 becomes active"""
        status = await supervisor.initialize()

        assert status.is_active is True
        assert status.injected_loaded is False
        assert status.injected_active is False
        assert status.backup_loaded is True
        assert status.active_network_id == 1
        assert status.account == BRIDGE_ACCOUNT
        assert status.state == SupervisorState.FALLBACK_ACTIVE
        assert status.last_error is None
        assert status.active_adapter is env.fallback_adapters[0]
        assert env.injected_adapters == []

    @pytest.mark.asyncio
    async def test_injected_on_target_network_is_active(self, supervisor, env):
        """Wallet on the target network is promoted"""
        env.wallet_present = True

        status = await supervisor.initialize()

        assert status.state == SupervisorState.INJECTED_ACTIVE
        assert status.injected_loaded is True
        assert status.injected_active is True
        assert status.fallback_active is False
        assert status.account == WALLET_ACCOUNT
        assert status.active_network_id == 1
        assert status.wallet_state == WalletState.CONNECTED
        assert env.fallback_adapters == []

    @pytest.mark.asyncio
    async def test_injected_on_wrong_network_falls_back(self, supervisor, env):
        """Wallet on network 4 with target 1 keeps injected_loaded but uses fallback"""
        env.wallet_present = True
        env.wallet_network_id = 4

        status = await supervisor.initialize()

        assert status.injected_loaded is True
        assert status.injected_network_id == 4
        assert status.injected_active is False
        assert status.fallback_active is True
        assert status.account == BRIDGE_ACCOUNT
        assert status.wallet_state == WalletState.WRONG_NETWORK
        # the rejected injected adapter is released
        assert env.injected_adapters[0].closed is True

    @pytest.mark.asyncio
    async def test_injected_failure_degrades_to_fallback(self, supervisor, env):
        """Injected construction failure is recorded, not raised"""
        env.wallet_present = True
        env.wallet_fails = True

        status = await supervisor.initialize()

        assert status.injected_loaded is False
        assert status.injected_network_id is None
        assert status.fallback_active is True
        assert status.last_error == ErrorKind.INJECTED_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_fallback_failure_moves_to_failed(self, supervisor, env):
        """Fallback construction failure leaves a consistent inactive status"""
        env.fallback_fails = True

        status = await supervisor.initialize()

        assert status.state == SupervisorState.FAILED
        assert status.is_active is False
        assert status.account is None
        assert status.active_network_id is None
        assert status.backup_loaded is False
        assert status.last_error == ErrorKind.FALLBACK_CONNECT_FAILED
        assert status.wallet_state == WalletState.ERROR
        assert_single_active(status)

    @pytest.mark.asyncio
    async def test_no_connection_distinguishable_from_wrong_network(self, supervisor, env):
        """Wrong network with a failed fallback still reports the wallet"""
        env.wallet_present = True
        env.wallet_network_id = 4
        env.fallback_fails = True

        status = await supervisor.initialize()

        assert status.state == SupervisorState.FAILED
        assert status.injected_loaded is True
        assert status.wallet_state == WalletState.WRONG_NETWORK

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, supervisor, env):
        """A later initialize recovers once the fallback is reachable"""
        env.fallback_fails = True
        await supervisor.initialize()

        env.fallback_fails = False
        status = await supervisor.initialize()

        assert status.state == SupervisorState.FALLBACK_ACTIVE
        assert status.last_error is None
        assert status.account == BRIDGE_ACCOUNT

    @pytest.mark.asyncio
    async def test_fallback_network_reported_by_bridge(self, supervisor, env):
        """Active network id comes from the bridge, not the configuration"""
        env.fallback_network_id = 1313161555

        status = await supervisor.initialize()

        assert status.active_network_id == 1313161555

    @pytest.mark.asyncio
    async def test_fallback_without_accounts(self, supervisor, env):
        """Fallback with no accounts is active but has no signer"""
        env.fallback_accounts = []

        status = await supervisor.initialize()

        assert status.is_active is True
        assert status.account is None

    @pytest.mark.asyncio
    async def test_fallback_construction_error_moves_to_failed(self, network_config, env):
        """A fallback factory that raises is reported as no connection"""
        def broken_factory(config):
            raise ValueError("bad bridge url")

        supervisor = ConnectionSupervisor(
            network_config,
            injected_detector=env.detect,
            injected_factory=env.make_injected,
            fallback_factory=broken_factory,
            watch_events=False,
        )

        status = await supervisor.initialize()

        assert status.state == SupervisorState.FAILED
        assert status.last_error == ErrorKind.FALLBACK_CONNECT_FAILED
        assert status.is_active is False
        assert_single_active(status)


class TestReload:
    """Reload cycles and adapter replacement"""

    @pytest.mark.asyncio
    async def test_reload_closes_previous_adapter(self, supervisor, env):
        """Each reload replaces the adapter and closes the old one"""
        await supervisor.initialize()
        first = supervisor.active_adapter

        await supervisor.reload()

        assert first.closed is True
        assert first.listener_count() == 0
        assert supervisor.active_adapter is env.fallback_adapters[1]
        assert supervisor.active_adapter.listener_count() == 3

    @pytest.mark.asyncio
    async def test_reload_with_adapter_override(self, supervisor, env):
        """An explicit adapter is used instead of probing the environment"""
        await supervisor.initialize()
        override = FakeAdapter(name="walletconnect", accounts=[OTHER_ACCOUNT])

        status = await supervisor.reload(override)

        assert status.injected_active is True
        assert status.account == OTHER_ACCOUNT
        assert status.active_adapter is override

    @pytest.mark.asyncio
    async def test_reload_with_provider_override(self, supervisor, env):
        """A raw provider override goes through the injected factory"""
        status = await supervisor.reload("explicit-provider")

        assert status.injected_active is True
        assert len(env.injected_adapters) == 1

    @pytest.mark.asyncio
    async def test_concurrent_reloads_are_serialized(self, supervisor, env):
        """Queued reloads never leave listeners on more than one adapter"""
        env.wallet_present = True

        await asyncio.gather(supervisor.initialize(), supervisor.reload(), supervisor.reload())

        adapters = env.injected_adapters
        assert len(adapters) == 3
        assert [a.closed for a in adapters] == [True, True, False]
        assert sum(a.listener_count() for a in adapters) == 3
        assert supervisor.active_adapter is adapters[-1]

    @pytest.mark.asyncio
    async def test_account_refresh_skipped_on_first_load(self, supervisor, env):
        """First load does not refresh account data"""
        env.wallet_present = True
        hook = AsyncMock()
        supervisor.add_account_refresh_hook(hook)

        await supervisor.initialize()

        hook.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_account_refresh_on_changed_account(self, supervisor, env):
        """A later injected cycle with a new account refreshes its data"""
        env.wallet_present = True
        hook = AsyncMock()
        supervisor.add_account_refresh_hook(hook)
        await supervisor.initialize()

        await supervisor.reload()
        hook.assert_not_awaited()

        env.wallet_accounts = [OTHER_ACCOUNT]
        await supervisor.reload()
        hook.assert_awaited_once_with(OTHER_ACCOUNT)

    @pytest.mark.asyncio
    async def test_reload_with_same_adapter_twice(self, supervisor, env):
        """Reconnecting with the active adapter keeps it open and subscribed"""
        await supervisor.initialize()
        override = FakeAdapter(name="walletconnect", accounts=[OTHER_ACCOUNT])

        await supervisor.reload(override)
        status = await supervisor.reload(override)

        assert override.closed is False
        assert override.listener_count() == 3
        assert status.state == SupervisorState.INJECTED_ACTIVE
        assert status.active_adapter is override
        assert status.account == OTHER_ACCOUNT

    @pytest.mark.asyncio
    async def test_reload_with_closed_adapter_falls_back(self, supervisor, env):
        """A closed adapter override counts as an unavailable wallet"""
        override = FakeAdapter(name="walletconnect", accounts=[OTHER_ACCOUNT])
        await override.close()

        status = await supervisor.reload(override)

        assert status.injected_loaded is False
        assert status.last_error == ErrorKind.INJECTED_UNAVAILABLE
        assert status.state == SupervisorState.FALLBACK_ACTIVE
        assert status.active_adapter is env.fallback_adapters[0]
        assert override.connected is False

    @pytest.mark.asyncio
    async def test_shutdown_closes_adapter(self, supervisor, env):
        """Shutdown releases the active adapter"""
        await supervisor.initialize()
        adapter = supervisor.active_adapter

        await supervisor.shutdown()

        assert adapter.closed is True
        assert supervisor.status.is_active is False
        assert supervisor.status.state == SupervisorState.UNINITIALIZED


class TestLifecycleEvents:
    """Lifecycle events emitted by the active adapter"""

    @pytest.mark.asyncio
    async def test_accounts_changed_empty_reloads(self, supervisor, env):
        """accountsChanged([]) behaves like close and recomputes status"""
        env.wallet_present = True
        await supervisor.initialize()
        injected = supervisor.active_adapter

        env.wallet_accounts = []
        await injected.emit(LifecycleEvent.ACCOUNTS_CHANGED, [])

        status = supervisor.status
        assert injected.closed is True
        assert status.account is None
        assert status.injected_active is True
        assert status.is_active is True
        assert status.active_adapter is env.injected_adapters[1]

    @pytest.mark.asyncio
    async def test_accounts_changed_empty_counted_once(self, supervisor, env):
        """accountsChanged([]) is recorded as one lifecycle event"""
        env.wallet_present = True
        await supervisor.initialize()

        def count(event):
            return REGISTRY.get_sample_value(
                "provider_lifecycle_events_total", {"event": event.value}
            ) or 0.0

        accounts_before = count(LifecycleEvent.ACCOUNTS_CHANGED)
        closed_before = count(LifecycleEvent.CLOSED)

        await supervisor.active_adapter.emit(LifecycleEvent.ACCOUNTS_CHANGED, [])

        assert count(LifecycleEvent.ACCOUNTS_CHANGED) == accounts_before + 1
        assert count(LifecycleEvent.CLOSED) == closed_before

    @pytest.mark.asyncio
    async def test_accounts_changed_updates_account(self, supervisor, env):
        """accountsChanged([a, ...]) switches account and refreshes data"""
        env.wallet_present = True
        hook = AsyncMock()
        supervisor.add_account_refresh_hook(hook)
        await supervisor.initialize()
        injected = supervisor.active_adapter

        await injected.emit(LifecycleEvent.ACCOUNTS_CHANGED, [OTHER_ACCOUNT, WALLET_ACCOUNT])

        assert supervisor.status.account == OTHER_ACCOUNT
        assert supervisor.active_adapter is injected
        hook.assert_awaited_once_with(OTHER_ACCOUNT)

    @pytest.mark.asyncio
    async def test_network_change_fails_over(self, supervisor, env):
        """Wallet switching away from the target network triggers failover"""
        env.wallet_present = True
        hook = AsyncMock()
        supervisor.add_account_refresh_hook(hook)
        await supervisor.initialize()
        injected = supervisor.active_adapter

        env.wallet_network_id = 4
        await injected.emit(LifecycleEvent.NETWORK_CHANGED, 4)

        status = supervisor.status
        assert status.fallback_active is True
        assert status.injected_network_id == 4
        assert status.account == BRIDGE_ACCOUNT
        hook.assert_awaited_once_with(BRIDGE_ACCOUNT)

    @pytest.mark.asyncio
    async def test_old_adapter_events_ignored_after_failover(self, supervisor, env):
        """Events from a superseded adapter never mutate the status"""
        env.wallet_present = True
        await supervisor.initialize()
        injected = supervisor.active_adapter

        env.wallet_network_id = 4
        await injected.emit(LifecycleEvent.NETWORK_CHANGED, 4)
        before = supervisor.status

        await injected.emit(LifecycleEvent.ACCOUNTS_CHANGED, [OTHER_ACCOUNT])
        await injected.emit(LifecycleEvent.CLOSED)
        await supervisor._handle_accounts_changed(injected, [OTHER_ACCOUNT])

        after = supervisor.status
        assert after == before
        assert after.account == BRIDGE_ACCOUNT
        assert len(env.fallback_adapters) == 1

    @pytest.mark.asyncio
    async def test_closed_event_reloads(self, supervisor, env):
        """close on the fallback adapter reloads it"""
        await supervisor.initialize()
        fallback = supervisor.active_adapter

        await fallback.emit(LifecycleEvent.CLOSED)

        assert fallback.closed is True
        assert supervisor.active_adapter is env.fallback_adapters[1]

    @pytest.mark.asyncio
    async def test_events_ignored_while_inactive(self, supervisor, env):
        """A failed supervisor does not react to events from closed adapters"""
        env.fallback_fails = True
        await supervisor.initialize()

        await env.fallback_adapters[0].emit(LifecycleEvent.CLOSED)

        assert len(env.fallback_adapters) == 1
        assert supervisor.status.state == SupervisorState.FAILED

    @pytest.mark.asyncio
    async def test_single_active_across_event_sequence(self, supervisor, env):
        """At most one adapter is active after every step of a sequence"""
        env.wallet_present = True
        await supervisor.initialize()
        assert_single_active(supervisor.status)

        steps = [
            (4, [WALLET_ACCOUNT], LifecycleEvent.NETWORK_CHANGED, (4,)),
            (1, [WALLET_ACCOUNT], LifecycleEvent.CLOSED, ()),
            (1, [], LifecycleEvent.ACCOUNTS_CHANGED, ([],)),
            (1, [OTHER_ACCOUNT], LifecycleEvent.NETWORK_CHANGED, (1,)),
        ]
        for network_id, accounts, event, args in steps:
            env.wallet_network_id = network_id
            env.wallet_accounts = accounts
            await supervisor.active_adapter.emit(event, *args)
            status = supervisor.status
            assert_single_active(status)
            live = [a for a in env.injected_adapters + env.fallback_adapters if not a.closed]
            assert live == [status.active_adapter]


class TestObservableStatus:
    """Status subscription and chain data"""

    @pytest.mark.asyncio
    async def test_subscribe_receives_snapshots(self, supervisor, env):
        """Subscribers see loading then the final state"""
        received = []
        unsubscribe = supervisor.subscribe(received.append)

        await supervisor.initialize()

        assert [s.state for s in received] == [SupervisorState.LOADING, SupervisorState.FALLBACK_ACTIVE]
        unsubscribe()
        await supervisor.reload()
        assert len(received) == 2

    @pytest.mark.asyncio
    async def test_loading_snapshot_is_not_wrong_network(self, supervisor, env):
        """Reloading an active wallet never reports the wrong network"""
        env.wallet_present = True
        await supervisor.initialize()
        received = []
        supervisor.subscribe(received.append)

        await supervisor.reload()

        loading = received[0]
        assert loading.state == SupervisorState.LOADING
        assert loading.injected_loaded is True
        assert loading.wallet_state == WalletState.DISCONNECTED
        assert received[-1].wallet_state == WalletState.CONNECTED

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self, supervisor):
        """Mutating a snapshot does not touch the supervisor's status"""
        await supervisor.initialize()

        snapshot = supervisor.status
        snapshot.account = None

        assert supervisor.status.account == BRIDGE_ACCOUNT

    @pytest.mark.asyncio
    async def test_subscriber_error_is_contained(self, supervisor):
        """A failing subscriber does not break the reload"""
        def broken(status):
            raise RuntimeError("render failed")

        supervisor.subscribe(broken)
        status = await supervisor.initialize()

        assert status.is_active is True

    @pytest.mark.asyncio
    async def test_block_number_refresh(self, supervisor, env):
        """Current block number is read from the active adapter"""
        assert supervisor.get_current_block_number() == -1
        await supervisor.initialize()
        supervisor.active_adapter.block_number = 4242

        assert await supervisor.refresh_block_number() == 4242
        assert supervisor.get_current_block_number() == 4242

    @pytest.mark.asyncio
    async def test_status_to_dict(self, supervisor):
        """Serializable view names the adapter kind"""
        await supervisor.initialize()

        data = supervisor.status.to_dict()

        assert data["active_adapter"] == AdapterKind.BRIDGING.value
        assert data["fallback_active"] is True
        assert data["wallet_state"] == "connected"
