from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..core.execution.models import (
    BlockHeader,
    BundleResolution,
    BundleSubmission,
    SignedBundle,
    SimulationResult,
)


class ChainDataProvider(ABC):
    """Read access to chain state the pipeline builds bundles from"""

    @abstractmethod
    async def get_block(self, block: Any = "latest") -> BlockHeader:
        """Header of a block, including its base fee"""
        pass

    @abstractmethod
    async def get_transaction_count(self, address: str, block: Any = "latest") -> int:
        """Next nonce for ``address``"""
        pass

    @abstractmethod
    async def get_balance(self, address: str, block: Any = "latest") -> int:
        """Native balance in wei"""
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt, or None while the transaction is not mined"""
        pass


class BundleRelayProvider(ABC):
    """Private relay accepting atomic bundles for a target block"""

    @abstractmethod
    async def simulate(self, bundle: SignedBundle) -> SimulationResult:
        """Simulate ``bundle`` against its target block; raises SimulationFailure"""
        pass

    @abstractmethod
    async def send_bundle(self, bundle: SignedBundle) -> BundleSubmission:
        """Submit ``bundle`` for its target block; raises SubmissionFailure"""
        pass

    @abstractmethod
    async def wait_for_resolution(self, submission: BundleSubmission) -> BundleResolution:
        """Block until the target block is reached and report the outcome"""
        pass
