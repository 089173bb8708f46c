"""Contract handle construction over the active adapter"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from provider_hub.chains.connector import ConnectionAdapter
from provider_hub.exceptions import UnknownContractTypeError

logger = structlog.get_logger()


class ContractType(str, Enum):
    """Contract kinds with a registered ABI"""

    BPOOL = "BPool"
    BFACTORY = "BFactory"
    TEST_TOKEN = "TestToken"
    EXCHANGE_PROXY = "ExchangeProxy"
    MULTICALL = "Multicall"
    TEST_TOKEN_BYTES = "TestTokenBytes"


class AbiRegistry:
    """
    Lazily loads ABIs from ``<abi_dir>/<ContractType>.json``.

    Files may hold either a bare ABI list or a build artifact with an
    ``abi`` key.
    """

    def __init__(
        self,
        abi_dir: Optional[str] = None,
        abis: Optional[Mapping[ContractType, Sequence[Dict[str, Any]]]] = None,
    ):
        self.abi_dir = Path(abi_dir) if abi_dir else None
        self._abis: Dict[ContractType, List[Dict[str, Any]]] = {
            ContractType(k): list(v) for k, v in (abis or {}).items()
        }

    def register(self, contract_type: ContractType, abi: Sequence[Dict[str, Any]]) -> None:
        self._abis[ContractType(contract_type)] = list(abi)

    def get(self, contract_type: ContractType) -> List[Dict[str, Any]]:
        contract_type = ContractType(contract_type)
        if contract_type in self._abis:
            return self._abis[contract_type]

        if self.abi_dir is None:
            raise UnknownContractTypeError(
                f"No ABI registered for {contract_type.value}",
                details={"contract_type": contract_type.value},
            )

        path = self.abi_dir / f"{contract_type.value}.json"
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise UnknownContractTypeError(
                f"ABI file not found for {contract_type.value}",
                details={"path": str(path)},
            ) from e

        abi = data["abi"] if isinstance(data, dict) else data
        self._abis[contract_type] = list(abi)
        logger.debug("abi_loaded", contract_type=contract_type.value, path=str(path))
        return self._abis[contract_type]


class BoundContract:
    """Contract handle, optionally bound to a signing account"""

    def __init__(self, contract: Any, signer: Optional[str] = None):
        self.contract = contract
        self.signer = signer

    @property
    def address(self) -> str:
        return self.contract.address

    async def call(self, method: str, args: Sequence[Any] = ()) -> Any:
        """Unsigned read"""
        return await getattr(self.contract.functions, method)(*args).call()

    async def transact(
        self,
        method: str,
        args: Sequence[Any] = (),
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Signed write attributed to the bound signer; returns the tx hash"""
        if self.signer is None:
            raise ValueError("Contract handle has no signer; pass signer_account to get_contract")
        tx_params = dict(overrides or {})
        tx_params["from"] = self.signer
        return await getattr(self.contract.functions, method)(*args).transact(tx_params)


class ContractFactory:
    """Builds contract handles bound to an adapter and optional signer"""

    def __init__(self, registry: AbiRegistry):
        self.registry = registry

    def get_contract(
        self,
        adapter: ConnectionAdapter,
        contract_type: ContractType,
        address: str,
        signer_account: Optional[str] = None,
    ) -> BoundContract:
        abi = self.registry.get(contract_type)
        return BoundContract(adapter.contract(abi, address), signer_account)
