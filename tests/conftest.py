"""Shared fixtures: in-memory adapters and a scriptable environment"""

from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from provider_hub.chains.connector import AdapterKind, ConnectionAdapter
from provider_hub.config.models import NetworkConfig
from provider_hub.supervisor.supervisor import ConnectionSupervisor

TARGET_NETWORK_ID = 1
WALLET_ACCOUNT = "0x1111111111111111111111111111111111111111"
OTHER_ACCOUNT = "0x2222222222222222222222222222222222222222"
BRIDGE_ACCOUNT = "0x3333333333333333333333333333333333333333"


class FakeAdapter(ConnectionAdapter):
    """Adapter with scripted endpoint state"""

    def __init__(
        self,
        name: str = "fake",
        kind: AdapterKind = AdapterKind.INJECTED,
        network_id: int = TARGET_NETWORK_ID,
        accounts: Optional[List[str]] = None,
        fail_connect: bool = False,
    ):
        self.kind = kind
        super().__init__(name)
        self.current_network_id = network_id
        self.accounts = list(accounts or [])
        self.fail_connect = fail_connect
        self.connected = False
        self.disconnected = False
        self.contract_handle = Mock()
        self.contract_calls: List[Any] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.block_number = 100

    async def connect(self) -> None:
        if self.fail_connect:
            raise ConnectionError(f"{self.name} unreachable")
        self.connected = True

    async def list_accounts(self) -> List[str]:
        return list(self.accounts)

    async def network_id(self) -> int:
        return self.current_network_id

    def contract(self, abi, address):
        self.contract_calls.append((abi, address))
        return self.contract_handle

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.receipts.get(tx_hash)

    async def get_block_number(self) -> int:
        return self.block_number

    async def _disconnect(self) -> None:
        self.disconnected = True


class FakeEnvironment:
    """Scriptable wallet presence plus the fallback endpoint behaviour"""

    def __init__(self):
        self.wallet_present = False
        self.wallet_network_id = TARGET_NETWORK_ID
        self.wallet_accounts: List[str] = [WALLET_ACCOUNT]
        self.wallet_fails = False
        self.fallback_network_id = TARGET_NETWORK_ID
        self.fallback_accounts: List[str] = [BRIDGE_ACCOUNT]
        self.fallback_fails = False
        self.injected_adapters: List[FakeAdapter] = []
        self.fallback_adapters: List[FakeAdapter] = []

    def detect(self):
        return "injected-provider" if self.wallet_present else None

    def make_injected(self, provider) -> FakeAdapter:
        adapter = FakeAdapter(
            name=f"injected-{len(self.injected_adapters)}",
            kind=AdapterKind.INJECTED,
            network_id=self.wallet_network_id,
            accounts=self.wallet_accounts,
            fail_connect=self.wallet_fails,
        )
        self.injected_adapters.append(adapter)
        return adapter

    def make_fallback(self, config: NetworkConfig) -> FakeAdapter:
        adapter = FakeAdapter(
            name=f"bridge-{len(self.fallback_adapters)}",
            kind=AdapterKind.BRIDGING,
            network_id=self.fallback_network_id,
            accounts=self.fallback_accounts,
            fail_connect=self.fallback_fails,
        )
        self.fallback_adapters.append(adapter)
        return adapter


@pytest.fixture
def network_config():
    """Network configuration targeting network id 1"""
    return NetworkConfig(
        target_network_id=TARGET_NETWORK_ID,
        bridge_rpc_url="https://bridge.example.com/rpc",
        bridge_network_name="betanet",
    )


@pytest.fixture
def env():
    """Environment with no wallet and a healthy fallback"""
    return FakeEnvironment()


@pytest.fixture
def supervisor(network_config, env):
    """Supervisor wired to the fake environment, event polling disabled"""
    return ConnectionSupervisor(
        network_config,
        injected_detector=env.detect,
        injected_factory=env.make_injected,
        fallback_factory=env.make_fallback,
        watch_events=False,
    )
