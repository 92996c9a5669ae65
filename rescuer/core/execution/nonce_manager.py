"""
Nonce tracking for bundle construction.

Nonces are read from chain once per attempt and handed out in order
from an in-memory cursor. Nothing is cached across attempts, so a
transaction confirmed between blocks is always reflected in the next
bundle.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Protocol

from eth_utils import to_checksum_address


logger = logging.getLogger(__name__)


class TransactionCountSource(Protocol):
    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        ...


@dataclass
class NonceCursor:
    """Hands out contiguous nonces for one account within one attempt."""
    address: str
    start: int
    next_nonce: int = field(init=False)
    issued: List[int] = field(default_factory=list)

    def __post_init__(self):
        self.next_nonce = self.start

    def take(self) -> int:
        nonce = self.next_nonce
        self.issued.append(nonce)
        self.next_nonce += 1
        return nonce

    def peek(self) -> int:
        return self.next_nonce


class NonceManager:
    """
    Reads fresh on-chain transaction counts for the bundle's signers.

    The chain client is the only source of truth; each call to
    :meth:`snapshot` hits the chain again.
    """

    def __init__(self, chain: TransactionCountSource, block_tag: str = "latest"):
        self.chain = chain
        self.block_tag = block_tag

    async def get_next_nonce(self, address: str) -> int:
        return await self.chain.get_transaction_count(to_checksum_address(address), self.block_tag)

    async def snapshot(self, addresses: Iterable[str]) -> Dict[str, NonceCursor]:
        """Fetch every address's nonce concurrently and wrap each in a cursor."""
        checksummed = [to_checksum_address(address) for address in addresses]
        counts = await asyncio.gather(*(self.get_next_nonce(address) for address in checksummed))
        cursors = {
            address: NonceCursor(address=address, start=count)
            for address, count in zip(checksummed, counts)
        }
        logger.debug(
            "Nonce snapshot: %s",
            {address: cursor.start for address, cursor in cursors.items()},
        )
        return cursors
