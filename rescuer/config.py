import json

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Dict, List

from eth_utils import to_wei
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .core.execution.models import RescueConfig


BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_RELAY_URLS: Dict[int, str] = {
    1: "https://relay.flashbots.net",
    5: "https://relay-goerli.flashbots.net",
    11155111: "https://relay-sepolia.flashbots.net",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Endpoints
    rpc_url: str = Field(
        default="",
        description="JSON-RPC endpoint of the upstream node",
        validation_alias=AliasChoices("rpc_url", "eth_rpc_url"),
    )
    flashbots_relay_url: str = Field(
        default="",
        description="Override the default relay endpoint for the chain",
        validation_alias=AliasChoices("flashbots_relay_url", "flashbots_ep"),
    )
    request_timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")
    block_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="How often to poll the node for a new head block",
    )

    # Key material
    flashbots_auth_key: str = Field(
        default="",
        description="Relay identity key; a throwaway key is generated when empty",
    )
    recovery_private_key: str = Field(
        default="",
        description="Key of the trusted account that funds the bundle and receives assets",
        validation_alias=AliasChoices("recovery_private_key", "user_key"),
    )
    compromised_private_key: str = Field(
        default="",
        description="Key of the compromised account holding the assets",
        validation_alias=AliasChoices("compromised_private_key", "hacked_key"),
    )

    # Chain and fees
    chain_id: int = Field(default=1, description="Chain id all transactions are signed for")
    priority_fee_gwei: Decimal = Field(
        default=Decimal("20"),
        ge=0,
        description="Priority fee per gas offered to the block builder",
        validation_alias=AliasChoices("priority_fee_gwei", "priority_gwei"),
    )
    blocks_in_future: int = Field(
        default=2,
        ge=1,
        description="How many blocks ahead of the observed head each bundle targets",
    )

    # Incident
    asset_contract: str = Field(
        default="",
        description="Contract holding the assets to move",
        validation_alias=AliasChoices("asset_contract", "fyat_contract"),
    )
    asset_units: Annotated[List[int], NoDecode] = Field(
        default_factory=list,
        description="Ordered unit ids to transfer out (JSON list or comma separated)",
    )
    funding_amount_eth: Decimal = Field(
        default=Decimal("0.02"),
        ge=0,
        description="Native currency sent to the compromised account first in the bundle",
    )
    sweep_amount_eth: Decimal = Field(
        default=Decimal("0.004"),
        ge=0,
        description="Fixed native amount swept back to the recovery account",
    )
    sweep_from_balance: bool = Field(
        default=False,
        description="Size the sweep from live balance minus reserved fees instead",
    )
    native_gas_limit: int = Field(default=21_000, ge=21_000, description="Gas limit for plain transfers")
    token_gas_limit: int = Field(default=150_000, ge=21_000, description="Gas limit for asset transfer calls")

    # Behavior
    retry_on_simulation_failure: bool = Field(
        default=False,
        description="Wait for the next block instead of stopping when simulation fails",
    )

    @field_validator("asset_units", mode="before")
    @classmethod
    def _parse_asset_units(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return []
            if text.startswith("["):
                return json.loads(text)
            return [part.strip() for part in text.split(",") if part.strip()]
        return value

    @property
    def has_recovery_key(self) -> bool:
        return bool(self.recovery_private_key)

    @property
    def has_compromised_key(self) -> bool:
        return bool(self.compromised_private_key)

    @property
    def has_auth_key(self) -> bool:
        return bool(self.flashbots_auth_key)

    @property
    def relay_endpoint(self) -> str:
        """Configured relay URL, falling back to the default for ``chain_id``."""
        return (self.flashbots_relay_url or DEFAULT_RELAY_URLS.get(self.chain_id, "")).rstrip("/")

    def to_rescue_config(self) -> RescueConfig:
        """Static incident configuration handed to the pipeline."""
        return RescueConfig(
            chain_id=self.chain_id,
            asset_contract=self.asset_contract,
            asset_units=tuple(self.asset_units),
            priority_fee_per_gas=int(to_wei(self.priority_fee_gwei, "gwei")),
            blocks_in_future=self.blocks_in_future,
            funding_amount=int(to_wei(self.funding_amount_eth, "ether")),
            sweep_amount=None if self.sweep_from_balance else int(to_wei(self.sweep_amount_eth, "ether")),
            native_gas_limit=self.native_gas_limit,
            token_gas_limit=self.token_gas_limit,
            retry_on_simulation_failure=self.retry_on_simulation_failure,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for the CLI entry point; library code takes explicit config."""
    return Settings()
