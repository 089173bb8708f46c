"""Connection adapter layer"""

from provider_hub.chains.bridge import BridgingAdapter
from provider_hub.chains.connector import (
    AdapterKind,
    ConnectionAdapter,
    LifecycleEvent,
    Subscription,
    Web3Adapter,
)
from provider_hub.chains.injected import InjectedAdapter, build_provider, detect_injected_provider

__all__ = [
    "AdapterKind",
    "BridgingAdapter",
    "ConnectionAdapter",
    "InjectedAdapter",
    "LifecycleEvent",
    "Subscription",
    "Web3Adapter",
    "build_provider",
    "detect_injected_provider",
]
