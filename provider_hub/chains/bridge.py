"""Bridging adapter reaching a secondary network through a protocol bridge RPC"""

from typing import List, Optional, cast

from aiohttp import ClientTimeout
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.middleware import SignAndSendRawMiddlewareBuilder

from provider_hub.chains.connector import AdapterKind, Web3Adapter
from provider_hub.config.models import NetworkConfig
from provider_hub.exceptions import FallbackConnectError


class BridgingAdapter(Web3Adapter):
    """
    Fallback adapter over the bridge endpoint.

    The bridge exposes the secondary network's accounts and methods through
    the same JSON-RPC shape as the injected wallet. When a signing key is
    configured, transactions are signed locally and the key's address is the
    account; otherwise the account is whatever the bridge reports.
    """

    kind = AdapterKind.BRIDGING

    def __init__(self, config: NetworkConfig):
        super().__init__(config.bridge_network_name)
        self.config = config
        self.rpc_url = config.bridge_rpc_url
        self._signer: Optional[LocalAccount] = None

    async def connect(self) -> None:
        provider = AsyncHTTPProvider(
            self.rpc_url,
            request_kwargs={"timeout": ClientTimeout(total=self.config.request_timeout_seconds)},
        )
        w3 = AsyncWeb3(provider)

        if self.config.bridge_private_key:
            try:
                signer = cast(LocalAccount, Account.from_key(self.config.bridge_private_key))
            except Exception as e:
                raise FallbackConnectError(
                    "Failed to derive bridge signer from provided private key",
                    endpoint=self.rpc_url,
                    details={"error": str(e)},
                ) from e
            w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(signer))
            w3.eth.default_account = signer.address
            self._signer = signer

        try:
            await self._open(w3)
        except Exception as e:
            self._logger.error(
                "bridge_connect_failed",
                rpc_url=self.rpc_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise FallbackConnectError(
                "Unable to connect to bridge RPC",
                endpoint=self.rpc_url,
                details={"error": str(e)},
            ) from e

        self._logger.info("bridge_connected", rpc_url=self.rpc_url, local_signer=self._signer is not None)

    async def list_accounts(self) -> List[str]:
        if self._signer is not None:
            return [self._signer.address]
        return await super().list_accounts()
