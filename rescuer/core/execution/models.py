"""
Bundle execution models and types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from eth_utils import is_address, to_checksum_address

from ..recovery.errors import ConfigurationError


class TransactionKind(str, Enum):
    """Kinds of transactions a rescue bundle carries."""
    NATIVE_TRANSFER = "native_transfer"    # Plain value transfer
    TOKEN_TRANSFER = "token_transfer"      # Asset contract transfer call


class BundleResolution(str, Enum):
    """Relay verdict for a bundle once its target block is reached."""
    INCLUDED = "included"
    BLOCK_PASSED_WITHOUT_INCLUSION = "block_passed_without_inclusion"
    ACCOUNT_NONCE_TOO_HIGH = "account_nonce_too_high"

    @property
    def is_terminal(self) -> bool:
        return self is not BundleResolution.BLOCK_PASSED_WITHOUT_INCLUSION


@dataclass(frozen=True)
class BlockHeader:
    """The parts of an observed block the pipeline needs."""
    number: int
    base_fee_per_gas: int
    hash: Optional[str] = None
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class FeeBounds:
    """EIP-1559 fee fields for a bundle targeting a future block."""
    base_fee_per_gas: int                       # Observed at the current block
    projected_base_fee: int                     # Worst case at the target block
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    blocks_in_future: int


@dataclass(frozen=True)
class PreparedTransaction:
    """A fully specified, unsigned EIP-1559 transaction."""
    kind: TransactionKind
    chain_id: int
    from_address: str
    to_address: str
    nonce: int
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    value: int = 0                              # Wei to send
    data: str = "0x"                            # Encoded calldata (hex)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary shape eth-account signs.

        ``from`` is left out: the signer owns the sender.
        """
        return {
            "type": 2,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "to": self.to_address,
            "value": self.value,
            "data": self.data,
            "gas": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }

    @property
    def max_cost_wei(self) -> int:
        """Upper bound on the fee this transaction can burn."""
        return self.gas_limit * self.max_fee_per_gas


@dataclass(frozen=True)
class SignedEntry:
    """One signed transaction of a bundle."""
    transaction: PreparedTransaction
    raw_transaction: str                        # 0x-prefixed RLP
    tx_hash: str
    signer_address: str


@dataclass(frozen=True)
class SignedBundle:
    """An ordered, signed bundle bound to a single target block."""
    bundle_id: int
    target_block: int
    chain_id: int
    entries: Tuple[SignedEntry, ...]

    @property
    def raw_transactions(self) -> List[str]:
        return [entry.raw_transaction for entry in self.entries]

    @property
    def tx_hashes(self) -> List[str]:
        return [entry.tx_hash for entry in self.entries]

    @property
    def account_nonces(self) -> Dict[str, int]:
        """Lowest nonce the bundle uses per sender."""
        nonces: Dict[str, int] = {}
        for entry in self.entries:
            sender = entry.transaction.from_address
            current = nonces.get(sender)
            if current is None or entry.transaction.nonce < current:
                nonces[sender] = entry.transaction.nonce
        return nonces

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class SimulationResult:
    """Parsed relay simulation of a bundle."""
    bundle_hash: Optional[str]
    target_block: int
    state_block_number: Optional[int] = None
    total_gas_used: int = 0
    coinbase_diff: int = 0
    bundle_gas_price: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)
    raw_response: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bundleHash": self.bundle_hash,
            "targetBlock": self.target_block,
            "stateBlockNumber": self.state_block_number,
            "totalGasUsed": self.total_gas_used,
            "coinbaseDiff": str(self.coinbase_diff),
            "bundleGasPrice": str(self.bundle_gas_price),
            "transactions": len(self.results),
        }


@dataclass
class BundleSubmission:
    """Handle for a bundle accepted by the relay."""
    bundle_id: int
    bundle_hash: Optional[str]
    target_block: int
    tx_hashes: List[str]
    account_nonces: Dict[str, int]


@dataclass(frozen=True)
class RescueConfig:
    """Static configuration for one incident.

    Amounts are in wei; ``sweep_amount`` of ``None`` sizes the sweep from
    the compromised account's live balance.
    """
    chain_id: int
    asset_contract: str
    asset_units: Tuple[int, ...]
    priority_fee_per_gas: int
    blocks_in_future: int = 2
    funding_amount: int = 20_000_000_000_000_000      # 0.02 native units
    sweep_amount: Optional[int] = 4_000_000_000_000_000  # 0.004 native units
    native_gas_limit: int = 21_000
    token_gas_limit: int = 150_000
    retry_on_simulation_failure: bool = False

    def __post_init__(self):
        if self.blocks_in_future < 1:
            raise ConfigurationError(
                f"blocks_in_future must be >= 1, got {self.blocks_in_future}",
                setting="blocks_in_future",
            )
        if self.chain_id < 1:
            raise ConfigurationError(f"Invalid chain id {self.chain_id}", setting="chain_id")
        if self.priority_fee_per_gas < 0:
            raise ConfigurationError("Priority fee cannot be negative", setting="priority_fee_per_gas")
        if self.funding_amount < 0 or (self.sweep_amount is not None and self.sweep_amount < 0):
            raise ConfigurationError("Transfer amounts cannot be negative", setting="funding_amount")
        if self.native_gas_limit < 21_000 or self.token_gas_limit < 21_000:
            raise ConfigurationError("Gas limits must cover the intrinsic 21000", setting="token_gas_limit")
        if not self.asset_contract or not is_address(self.asset_contract):
            raise ConfigurationError(
                f"Invalid asset contract address {self.asset_contract!r}",
                setting="asset_contract",
            )
        object.__setattr__(self, "asset_contract", to_checksum_address(self.asset_contract))
        object.__setattr__(self, "asset_units", tuple(int(unit) for unit in self.asset_units))

    @property
    def sweep_from_balance(self) -> bool:
        return self.sweep_amount is None
