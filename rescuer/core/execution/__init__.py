"""
Bundle Construction Layer

Provides the pieces that turn an observed block into a signed bundle:
- FeeEstimator: EIP-1559 fee bounds for a future block
- NonceManager: Fresh per-attempt nonce cursors
- TransactionBuilder: Funding, asset transfer and sweep transactions
- BundleAssembler: Invariant checks and per-entry signing

Usage:
    from rescuer.core.execution import (
        BundleAssembler,
        BundleEntry,
        FeeEstimator,
        TransactionBuilder,
    )

    fees = FeeEstimator(priority_fee_per_gas=20 * GWEI).estimate(block.base_fee_per_gas)
    plan = TransactionBuilder.build_rescue_plan(config, fees, recovery_cursor, compromised_cursor)
    bundle = BundleAssembler().assemble(entries, target_block=block.number + 2)
"""

from .models import (
    TransactionKind,
    BundleResolution,
    BlockHeader,
    FeeBounds,
    PreparedTransaction,
    SignedEntry,
    SignedBundle,
    SimulationResult,
    BundleSubmission,
    RescueConfig,
)

from .fees import (
    BASE_FEE_MAX_CHANGE_DENOMINATOR,
    GWEI,
    FeeEstimator,
    project_base_fee,
)

from .nonce_manager import (
    NonceCursor,
    NonceManager,
)

from .signer import (
    DecodedTransaction,
    LocalSigner,
    Signer,
    decode_signed_transaction,
)

from .tx_builder import (
    AssetTransferCall,
    RescuePlan,
    TransactionBuilder,
    encode_transfer_from,
)

from .bundle import (
    BundleAssembler,
    BundleEntry,
)

__all__ = [
    # Models
    "TransactionKind",
    "BundleResolution",
    "BlockHeader",
    "FeeBounds",
    "PreparedTransaction",
    "SignedEntry",
    "SignedBundle",
    "SimulationResult",
    "BundleSubmission",
    "RescueConfig",
    # Fees
    "BASE_FEE_MAX_CHANGE_DENOMINATOR",
    "GWEI",
    "FeeEstimator",
    "project_base_fee",
    # Nonces
    "NonceCursor",
    "NonceManager",
    # Signing
    "DecodedTransaction",
    "LocalSigner",
    "Signer",
    "decode_signed_transaction",
    # Transaction Builder
    "AssetTransferCall",
    "RescuePlan",
    "TransactionBuilder",
    "encode_transfer_from",
    # Bundle Assembler
    "BundleAssembler",
    "BundleEntry",
]
