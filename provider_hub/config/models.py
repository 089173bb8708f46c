"""Configuration models for network selection and provider settings"""

import json
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NetworkConfig(BaseSettings):
    """Read-only network configuration consumed by the supervisor and adapters"""

    target_network_id: int
    bridge_rpc_url: str
    bridge_network_name: str = "bridge"
    bridge_private_key: Optional[str] = None
    request_timeout_seconds: float = 10.0
    event_poll_interval_seconds: float = 2.0
    abi_dir: Optional[str] = None
    contract_addresses: Dict[str, str] = Field(default_factory=dict)

    model_config = SettingsConfigDict(frozen=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Network selection
    target_network_id: int = Field(default=1, alias="TARGET_NETWORK_ID")

    # Bridging fallback endpoint
    bridge_rpc_url: str = Field(alias="BRIDGE_RPC_URL")
    bridge_network_name: str = Field(default="bridge", alias="BRIDGE_NETWORK_NAME")
    bridge_private_key: Optional[str] = Field(default=None, alias="BRIDGE_PRIVATE_KEY")

    # Provider behaviour
    request_timeout_seconds: float = Field(default=10.0, alias="REQUEST_TIMEOUT_SECONDS")
    event_poll_interval_seconds: float = Field(default=2.0, alias="EVENT_POLL_INTERVAL_SECONDS")

    # Contract registry
    abi_dir: Optional[str] = Field(default=None, alias="ABI_DIR")
    contract_addresses: str = Field(default="{}", alias="CONTRACT_ADDRESSES")

    # API / Monitoring
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    prometheus_port: int = Field(default=9090, alias="PROMETHEUS_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("contract_addresses")
    @classmethod
    def _validate_contract_addresses(cls, value: str) -> str:
        parsed = json.loads(value or "{}")
        if not isinstance(parsed, dict):
            raise ValueError("CONTRACT_ADDRESSES must be a JSON object")
        return value

    def get_contract_addresses(self) -> Dict[str, str]:
        """Parse the JSON contract address mapping"""
        return {str(k): str(v) for k, v in json.loads(self.contract_addresses or "{}").items()}

    def get_network_config(self) -> NetworkConfig:
        """Get network configuration for the connection supervisor"""
        return NetworkConfig(
            target_network_id=self.target_network_id,
            bridge_rpc_url=self.bridge_rpc_url,
            bridge_network_name=self.bridge_network_name,
            bridge_private_key=self.bridge_private_key,
            request_timeout_seconds=self.request_timeout_seconds,
            event_poll_interval_seconds=self.event_poll_interval_seconds,
            abi_dir=self.abi_dir,
            contract_addresses=self.get_contract_addresses(),
        )
