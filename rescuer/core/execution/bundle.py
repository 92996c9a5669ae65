"""
Bundle assembly: validate ordering invariants, then sign every entry
with its designated signer.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from eth_utils import to_checksum_address

from ..recovery.errors import MalformedBundleError
from .models import PreparedTransaction, SignedBundle, SignedEntry
from .signer import Signer, to_0x_hex


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BundleEntry:
    """A transaction paired with the signer that must sign it."""
    signer: Signer
    transaction: PreparedTransaction


class BundleAssembler:
    """
    Turns an ordered list of (signer, transaction) pairs into a signed bundle.

    Bundle ids increase monotonically per assembler; the relay does not
    need them, they tag log lines and attempt records.
    """

    def __init__(self, first_bundle_id: int = 1):
        self._ids = itertools.count(first_bundle_id)

    @staticmethod
    def validate(
        entries: Sequence[BundleEntry],
        expected_nonces: Optional[Mapping[str, int]] = None,
    ) -> None:
        """
        Check the invariants every bundle must hold.

        - at least one entry
        - one chain id for all entries
        - each transaction's sender is its signer's address
        - per sender, nonces are contiguous in bundle order, starting at
          ``expected_nonces[sender]`` when given
        """
        if not entries:
            raise MalformedBundleError("Bundle has no transactions")

        chain_ids = {entry.transaction.chain_id for entry in entries}
        if len(chain_ids) > 1:
            raise MalformedBundleError(f"Bundle mixes chain ids {sorted(chain_ids)}")

        expected = {
            to_checksum_address(address): nonce
            for address, nonce in (expected_nonces or {}).items()
        }
        nonces_by_sender: Dict[str, List[int]] = {}

        for entry in entries:
            sender = to_checksum_address(entry.transaction.from_address)
            signer_address = to_checksum_address(entry.signer.address)
            if sender != signer_address:
                raise MalformedBundleError(
                    f"Transaction from {sender} assigned to signer {signer_address}",
                    sender=sender,
                )

            seen = nonces_by_sender.setdefault(sender, [])
            nonce = entry.transaction.nonce
            if seen:
                wanted = seen[-1] + 1
            else:
                wanted = expected.get(sender, nonce)
            seen.append(nonce)
            if nonce != wanted:
                raise MalformedBundleError(
                    f"Non-contiguous nonces for {sender}: expected {wanted}, got {nonce}",
                    sender=sender,
                    nonces=list(seen),
                )

    def assemble(
        self,
        entries: Iterable[BundleEntry],
        target_block: int,
        expected_nonces: Optional[Mapping[str, int]] = None,
    ) -> SignedBundle:
        """
        Validate and sign ``entries`` for ``target_block``.

        Raises:
            MalformedBundleError: If the ordering invariants do not hold
        """
        entries = list(entries)
        self.validate(entries, expected_nonces)

        signed_entries = []
        for entry in entries:
            signed = entry.signer.sign_transaction(entry.transaction.to_dict())
            signed_entries.append(
                SignedEntry(
                    transaction=entry.transaction,
                    raw_transaction=to_0x_hex(signed.raw_transaction),
                    tx_hash=to_0x_hex(signed.hash),
                    signer_address=entry.signer.address,
                )
            )

        bundle = SignedBundle(
            bundle_id=next(self._ids),
            target_block=target_block,
            chain_id=entries[0].transaction.chain_id,
            entries=tuple(signed_entries),
        )
        logger.info(
            "Assembled bundle %d with %d transactions for block %d",
            bundle.bundle_id,
            len(bundle),
            target_block,
        )
        return bundle
