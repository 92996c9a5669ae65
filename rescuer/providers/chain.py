"""Async JSON-RPC client for the chain data source."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx
from eth_utils import to_checksum_address

from ..core.execution.models import BlockHeader
from ..core.recovery.errors import ChainRpcError, ErrorCategory
from .base import ChainDataProvider


logger = logging.getLogger(__name__)

BlockTag = Union[int, str]


def _hex_to_int(value: Optional[str]) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


def _block_param(block: BlockTag) -> str:
    return hex(block) if isinstance(block, int) else block


class ChainClient(ChainDataProvider):
    """
    Reads chain state over JSON-RPC.

    Provides the block stream, transaction counts, balances and receipts
    the rescue pipeline needs; never sends transactions.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "ChainClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the node."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ChainRpcError(
                f"{method} failed: {exc}",
                method=method,
                category=ErrorCategory.NETWORK,
            ) from exc

        if "error" in result:
            raise ChainRpcError(
                f"RPC error from {method}: {result['error']}",
                method=method,
                error_data=result["error"],
            )

        return result.get("result")

    async def block_number(self) -> int:
        return _hex_to_int(await self._rpc_call("eth_blockNumber", []))

    async def get_block(self, block: BlockTag = "latest") -> BlockHeader:
        """Fetch a block header (without transaction bodies)."""
        raw = await self._rpc_call("eth_getBlockByNumber", [_block_param(block), False])
        if raw is None:
            raise ChainRpcError(f"Block {block} not found", method="eth_getBlockByNumber")
        if raw.get("baseFeePerGas") is None:
            raise ChainRpcError(
                f"Block {raw.get('number')} has no base fee; chain is not EIP-1559",
                method="eth_getBlockByNumber",
            )
        return BlockHeader(
            number=_hex_to_int(raw["number"]),
            base_fee_per_gas=_hex_to_int(raw["baseFeePerGas"]),
            hash=raw.get("hash"),
            timestamp=_hex_to_int(raw.get("timestamp")) if raw.get("timestamp") else None,
        )

    async def get_transaction_count(self, address: str, block: BlockTag = "latest") -> int:
        result = await self._rpc_call(
            "eth_getTransactionCount",
            [to_checksum_address(address), _block_param(block)],
        )
        return _hex_to_int(result)

    async def get_balance(self, address: str, block: BlockTag = "latest") -> int:
        result = await self._rpc_call(
            "eth_getBalance",
            [to_checksum_address(address), _block_param(block)],
        )
        return _hex_to_int(result)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt for ``tx_hash``, or ``None`` while it is not mined."""
        receipt = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        if receipt is None:
            return None
        receipt = dict(receipt)
        receipt["blockNumber"] = _hex_to_int(receipt.get("blockNumber"))
        receipt["status"] = _hex_to_int(receipt.get("status"))
        return receipt

    async def watch_blocks(self, poll_interval: float = 1.0) -> AsyncIterator[BlockHeader]:
        """
        Yield each newly observed head block, in increasing number order.

        Read failures are logged and polling continues; the stream only
        ends when the consumer stops iterating.
        """
        last_seen: Optional[int] = None
        while True:
            try:
                header = await self.get_block("latest")
            except ChainRpcError as exc:
                logger.warning("Head poll failed: %s", exc)
            else:
                if last_seen is None or header.number > last_seen:
                    last_seen = header.number
                    yield header
            await asyncio.sleep(poll_interval)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
