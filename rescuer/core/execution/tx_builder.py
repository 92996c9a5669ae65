"""
Transaction builder for the rescue bundle.

Produces fully specified EIP-1559 transactions: explicit nonce, fixed gas
limit, and fee fields from the fee estimator. Nothing here signs or
broadcasts.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from eth_utils import from_wei, to_checksum_address

from .models import FeeBounds, PreparedTransaction, RescueConfig, TransactionKind
from .nonce_manager import NonceCursor


logger = logging.getLogger(__name__)


# Common contract ABIs (minimal for encoding)
TRANSFER_FROM_SELECTOR = "0x23b872dd"  # transferFrom(address,address,uint256)

NATIVE_TRANSFER_GAS = 21_000
TOKEN_TRANSFER_GAS = 150_000

# Encodes a transfer-on-behalf call: (from, to, unit_id) -> calldata
AssetTransferCall = Callable[[str, str, int], str]


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    if value < 0 or value >= 2**256:
        raise ValueError(f"{value} does not fit in uint256")
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def encode_transfer_from(from_address: str, to_address: str, unit_id: int) -> str:
    """Calldata for ``transferFrom(from, to, unitId)``."""
    return (
        TRANSFER_FROM_SELECTOR +
        _encode_address(from_address) +
        _encode_address(to_address) +
        _encode_uint256(unit_id)
    )


@dataclass(frozen=True)
class RescuePlan:
    """Funding transfer, asset moves and remainder sweep, in bundle order."""
    funding: PreparedTransaction
    transfers: List[PreparedTransaction]
    sweep: Optional[PreparedTransaction] = None

    @property
    def transactions(self) -> List[PreparedTransaction]:
        ordered = [self.funding, *self.transfers]
        if self.sweep is not None:
            ordered.append(self.sweep)
        return ordered


class TransactionBuilder:
    """
    Builds rescue transactions.

    Handles:
    - Native value transfers (funding and sweep)
    - Asset transfer calls on behalf of the compromised account
    - The full funding -> asset moves -> sweep plan
    """

    @staticmethod
    def build_native_transfer(
        chain_id: int,
        from_address: str,
        to_address: str,
        amount_wei: int,
        nonce: int,
        fees: FeeBounds,
        gas_limit: int = NATIVE_TRANSFER_GAS,
        description: str = "",
    ) -> PreparedTransaction:
        """
        Build a native value transfer.

        Args:
            chain_id: The chain ID
            from_address: The sender address
            to_address: The recipient address
            amount_wei: The amount in wei
            nonce: Exact nonce to use
            fees: Fee bounds for the target block
            gas_limit: Gas limit for a plain transfer
            description: Human-readable description

        Returns:
            PreparedTransaction ready to be signed
        """
        return PreparedTransaction(
            kind=TransactionKind.NATIVE_TRANSFER,
            chain_id=chain_id,
            from_address=to_checksum_address(from_address),
            to_address=to_checksum_address(to_address),
            nonce=nonce,
            gas_limit=gas_limit,
            max_fee_per_gas=fees.max_fee_per_gas,
            max_priority_fee_per_gas=fees.max_priority_fee_per_gas,
            value=amount_wei,
            data="0x",
            description=description or f"Transfer {from_wei(amount_wei, 'ether')} native to {to_address[:10]}...",
        )

    @staticmethod
    def build_token_transfer(
        chain_id: int,
        from_address: str,
        contract_address: str,
        to_address: str,
        unit_id: int,
        nonce: int,
        fees: FeeBounds,
        gas_limit: int = TOKEN_TRANSFER_GAS,
        encoder: AssetTransferCall = encode_transfer_from,
        description: str = "",
    ) -> PreparedTransaction:
        """
        Build an asset transfer call moving ``unit_id`` out of ``from_address``.

        The gas limit is fixed rather than estimated; estimation against
        the compromised account would race the attacker.
        """
        return PreparedTransaction(
            kind=TransactionKind.TOKEN_TRANSFER,
            chain_id=chain_id,
            from_address=to_checksum_address(from_address),
            to_address=to_checksum_address(contract_address),
            nonce=nonce,
            gas_limit=gas_limit,
            max_fee_per_gas=fees.max_fee_per_gas,
            max_priority_fee_per_gas=fees.max_priority_fee_per_gas,
            value=0,
            data=encoder(to_checksum_address(from_address), to_checksum_address(to_address), unit_id),
            description=description or f"Transfer unit {unit_id} to {to_address[:10]}...",
        )

    @staticmethod
    def sweep_amount_from_balance(
        balance_wei: int,
        funding_wei: int,
        reserved_fee_wei: int,
    ) -> int:
        """Whatever the compromised account will hold after paying its own fees."""
        return balance_wei + funding_wei - reserved_fee_wei

    @staticmethod
    def build_rescue_plan(
        config: RescueConfig,
        fees: FeeBounds,
        recovery: NonceCursor,
        compromised: NonceCursor,
        compromised_balance: Optional[int] = None,
        encoder: AssetTransferCall = encode_transfer_from,
    ) -> RescuePlan:
        """
        Build the ordered rescue plan for one attempt.

        Args:
            config: Static incident configuration
            fees: Fee bounds for the target block
            recovery: Nonce cursor of the trusted recovery account
            compromised: Nonce cursor of the compromised account
            compromised_balance: Live balance, required when the sweep is
                sized from balance
            encoder: Transfer-on-behalf calldata encoder

        Returns:
            RescuePlan with funding, asset transfers and optional sweep
        """
        funding = TransactionBuilder.build_native_transfer(
            chain_id=config.chain_id,
            from_address=recovery.address,
            to_address=compromised.address,
            amount_wei=config.funding_amount,
            nonce=recovery.take(),
            fees=fees,
            gas_limit=config.native_gas_limit,
            description="Fund compromised account for bundle fees",
        )

        transfers = [
            TransactionBuilder.build_token_transfer(
                chain_id=config.chain_id,
                from_address=compromised.address,
                contract_address=config.asset_contract,
                to_address=recovery.address,
                unit_id=unit_id,
                nonce=compromised.take(),
                fees=fees,
                gas_limit=config.token_gas_limit,
                encoder=encoder,
            )
            for unit_id in config.asset_units
        ]

        if config.sweep_from_balance:
            if compromised_balance is None:
                raise ValueError("compromised_balance is required to size the sweep from balance")
            reserved = sum(tx.max_cost_wei for tx in transfers) + config.native_gas_limit * fees.max_fee_per_gas
            sweep_amount = TransactionBuilder.sweep_amount_from_balance(
                compromised_balance, config.funding_amount, reserved
            )
        else:
            sweep_amount = config.sweep_amount

        sweep = None
        if sweep_amount > 0:
            sweep = TransactionBuilder.build_native_transfer(
                chain_id=config.chain_id,
                from_address=compromised.address,
                to_address=recovery.address,
                amount_wei=sweep_amount,
                nonce=compromised.take(),
                fees=fees,
                gas_limit=config.native_gas_limit,
                description="Sweep remaining native balance to recovery account",
            )
        else:
            logger.warning(
                "Skipping sweep: remaining balance %s wei does not cover reserved fees",
                sweep_amount,
            )

        return RescuePlan(funding=funding, transfers=transfers, sweep=sweep)
