"""
Wiring for a rescue run: settings in, pipeline outcome out.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .core.execution.signer import LocalSigner
from .core.pipeline import PipelineOutcome, RescuePipeline
from .core.recovery.errors import ConfigurationError
from .providers.chain import ChainClient
from .providers.flashbots import FlashbotsRelay


logger = logging.getLogger(__name__)


@dataclass
class RescueRuntime:
    """Pipeline plus the clients it owns."""
    pipeline: RescuePipeline
    chain: ChainClient
    relay: FlashbotsRelay

    async def close(self) -> None:
        await self.relay.close()
        await self.chain.close()


def build_runtime(settings: Settings) -> RescueRuntime:
    """
    Validate settings and assemble the pipeline.

    Raises:
        ConfigurationError: Missing endpoint, key material or incident data
    """
    if not settings.rpc_url:
        raise ConfigurationError("Must provide RPC_URL for the chain data source", setting="rpc_url")
    if not settings.relay_endpoint:
        raise ConfigurationError(
            f"No default relay for chain {settings.chain_id}; set FLASHBOTS_RELAY_URL",
            setting="flashbots_relay_url",
        )
    if not settings.asset_units:
        raise ConfigurationError("ASSET_UNITS is empty; nothing to rescue", setting="asset_units")

    config = settings.to_rescue_config()
    recovery = LocalSigner.from_key(settings.recovery_private_key, label="recovery_private_key")
    compromised = LocalSigner.from_key(settings.compromised_private_key, label="compromised_private_key")
    if settings.has_auth_key:
        auth_signer = LocalSigner.from_key(settings.flashbots_auth_key, label="flashbots_auth_key")
    else:
        auth_signer = LocalSigner.create(label="flashbots_auth_key")
        logger.info("No relay identity key configured; using throwaway identity %s", auth_signer.address)

    chain = ChainClient(settings.rpc_url, timeout_s=settings.request_timeout_seconds)
    relay = FlashbotsRelay(
        settings.relay_endpoint,
        auth_signer,
        chain,
        timeout_s=settings.request_timeout_seconds,
        poll_interval=settings.block_poll_interval_seconds,
    )
    pipeline = RescuePipeline(
        config,
        chain,
        relay,
        recovery,
        compromised,
        poll_interval=settings.block_poll_interval_seconds,
    )
    logger.info(
        "Rescue configured: chain %d, relay %s, %d asset units, recovery %s, compromised %s",
        config.chain_id,
        settings.relay_endpoint,
        len(config.asset_units),
        recovery.address,
        compromised.address,
    )
    return RescueRuntime(pipeline=pipeline, chain=chain, relay=relay)


async def run_rescue(settings: Settings, runtime: Optional[RescueRuntime] = None) -> PipelineOutcome:
    """Run the pipeline until it reaches a terminal state."""
    runtime = runtime or build_runtime(settings)
    try:
        return await runtime.pipeline.run()
    finally:
        await runtime.close()
