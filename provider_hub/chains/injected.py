"""Injected adapter wrapping a provider detected in the execution environment"""

import os
from typing import Mapping, Optional, Union
from urllib.parse import urlparse

import structlog
from aiohttp import ClientTimeout
from web3 import AsyncHTTPProvider, AsyncIPCProvider, AsyncWeb3
from web3.providers.async_base import AsyncBaseProvider
from web3.providers.ipc import get_default_ipc_path

from provider_hub.chains.connector import AdapterKind, Web3Adapter
from provider_hub.exceptions import InjectedUnavailableError

logger = structlog.get_logger()

PROVIDER_URI_ENV = "WEB3_PROVIDER_URI"


def build_provider(uri: str, request_timeout: float = 10.0) -> AsyncBaseProvider:
    """
    Build an async web3 provider from a URI.

    Supports http(s) endpoints and IPC sockets (``file://`` URIs or bare
    paths ending in ``.ipc``).
    """
    parsed = urlparse(uri)
    if parsed.scheme in ("http", "https"):
        return AsyncHTTPProvider(uri, request_kwargs={"timeout": ClientTimeout(total=request_timeout)})
    if parsed.scheme == "file":
        return AsyncIPCProvider(parsed.path)
    if parsed.scheme == "" and uri.endswith(".ipc"):
        return AsyncIPCProvider(uri)
    raise ValueError(f"Unsupported provider URI scheme: {uri}")


def detect_injected_provider(
    environ: Optional[Mapping[str, str]] = None,
    request_timeout: float = 10.0,
) -> Optional[AsyncBaseProvider]:
    """
    Detect a wallet or node provider made available by the environment.

    Checks ``WEB3_PROVIDER_URI`` first, then the default IPC socket path of
    a locally running node. Returns None when nothing is present, which is a
    normal condition.
    """
    environ = os.environ if environ is None else environ

    uri = environ.get(PROVIDER_URI_ENV)
    if uri:
        try:
            return build_provider(uri, request_timeout=request_timeout)
        except ValueError as e:
            logger.warning("injected_provider_uri_invalid", uri=uri, error=str(e))
            return None

    ipc_path = get_default_ipc_path()
    if ipc_path and os.path.exists(ipc_path):
        return AsyncIPCProvider(ipc_path)

    return None


class InjectedAdapter(Web3Adapter):
    """Adapter over an environment-provided wallet connection"""

    kind = AdapterKind.INJECTED

    def __init__(self, provider: Union[AsyncBaseProvider, str], request_timeout: float = 10.0):
        super().__init__("injected")
        if isinstance(provider, str):
            provider = build_provider(provider, request_timeout=request_timeout)
        self.provider = provider

    async def connect(self) -> None:
        try:
            await self._open(AsyncWeb3(self.provider))
        except Exception as e:
            self._logger.warning(
                "injected_connect_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InjectedUnavailableError(
                "Error loading injected provider",
                details={"error": str(e)},
            ) from e

        self._logger.info("injected_connected")
