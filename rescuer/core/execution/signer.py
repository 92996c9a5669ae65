"""
Signing capability for bundle participants.

The pipeline only ever sees an address and a ``sign_transaction`` call;
private keys stay inside :class:`LocalSigner`.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.typed_transactions import TypedTransaction
from eth_utils import to_checksum_address
from hexbytes import HexBytes

from ..recovery.errors import ConfigurationError


def to_0x_hex(value: Any) -> str:
    """Render bytes-like values as 0x-prefixed hex regardless of hexbytes version."""
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return "0x" + bytes(value).hex()


class Signer(Protocol):
    """Anything that can sign transactions for one address."""

    @property
    def address(self) -> str:
        ...

    def sign_transaction(self, transaction: Dict[str, Any]) -> Any:
        ...


class LocalSigner:
    """Signer backed by an in-process eth-account key."""

    def __init__(self, account, label: str = ""):
        self._account = account
        self.label = label

    @classmethod
    def from_key(cls, private_key: Optional[str], label: str = "") -> "LocalSigner":
        if not private_key:
            raise ConfigurationError(f"Missing private key for {label or 'signer'}", setting=label or None)
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                f"Invalid private key for {label or 'signer'}: {type(exc).__name__}",
                setting=label or None,
            ) from exc
        return cls(account, label=label)

    @classmethod
    def create(cls, label: str = "") -> "LocalSigner":
        """Fresh random key, used for the throwaway relay identity."""
        return cls(Account.create(), label=label)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, transaction: Dict[str, Any]):
        return self._account.sign_transaction(transaction)

    def sign_text(self, text: str) -> str:
        """EIP-191 personal signature over ``text``."""
        signed = self._account.sign_message(encode_defunct(text=text))
        return to_0x_hex(signed.signature)

    def __repr__(self) -> str:
        return f"LocalSigner(label={self.label!r}, address={self.address})"


@dataclass(frozen=True)
class DecodedTransaction:
    """Fields recovered from a signed EIP-1559 transaction."""
    sender: str
    chain_id: int
    nonce: int
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    to_address: str
    value: int
    data: str


def decode_signed_transaction(raw_transaction: str) -> DecodedTransaction:
    """Decode a signed typed transaction back into its fields."""
    raw = HexBytes(raw_transaction)
    fields = TypedTransaction.from_bytes(raw).as_dict()
    data = fields.get("data", b"")
    return DecodedTransaction(
        sender=Account.recover_transaction(raw),
        chain_id=int(fields["chainId"]),
        nonce=int(fields["nonce"]),
        gas_limit=int(fields["gas"]),
        max_fee_per_gas=int(fields["maxFeePerGas"]),
        max_priority_fee_per_gas=int(fields["maxPriorityFeePerGas"]),
        to_address=to_checksum_address(fields["to"]),
        value=int(fields["value"]),
        data=to_0x_hex(data) if data else "0x",
    )
