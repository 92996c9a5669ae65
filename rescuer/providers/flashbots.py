"""Async client for a Flashbots-style private bundle relay."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from eth_utils import keccak

from ..core.execution.models import (
    BundleResolution,
    BundleSubmission,
    SignedBundle,
    SimulationResult,
)
from ..core.execution.signer import LocalSigner, to_0x_hex
from ..core.recovery.errors import ChainRpcError, SimulationFailure, SubmissionFailure
from .base import BundleRelayProvider, ChainDataProvider


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Flashbots-Signature"


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith("0x") else int(text)


class FlashbotsRelay(BundleRelayProvider):
    """
    Thin wrapper around the relay's bundle JSON-RPC methods.

    Every request is signed with the relay identity key. Resolution is
    read from chain state: nonces on each head before the target block,
    receipts once it is reached.
    """

    def __init__(
        self,
        relay_url: str,
        auth_signer: LocalSigner,
        chain: ChainDataProvider,
        *,
        timeout_s: float = 30.0,
        poll_interval: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.relay_url = relay_url.rstrip("/")
        self.auth_signer = auth_signer
        self.chain = chain
        self.poll_interval = poll_interval
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._ids = itertools.count(1)

    def _headers(self, body: str) -> Dict[str, str]:
        body_hash = to_0x_hex(keccak(text=body))
        signature = self.auth_signer.sign_text(body_hash)
        return {
            "content-type": "application/json",
            SIGNATURE_HEADER: f"{self.auth_signer.address}:{signature}",
        }

    async def _request(self, method: str, params: List[Any]) -> Dict[str, Any]:
        """POST a signed JSON-RPC request and return the decoded envelope."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        # The signature covers these exact bytes
        body = json.dumps(payload)
        response = await self._client.post(self.relay_url, content=body, headers=self._headers(body))
        response.raise_for_status()
        return response.json()

    async def simulate(self, bundle: SignedBundle) -> SimulationResult:
        """Simulate the bundle on top of the latest state for its target block."""
        params = [
            {
                "txs": bundle.raw_transactions,
                "blockNumber": hex(bundle.target_block),
                "stateBlockNumber": "latest",
            }
        ]
        try:
            envelope = await self._request("eth_callBundle", params)
        except (httpx.HTTPError, ValueError) as exc:
            raise SimulationFailure(
                f"Simulation request failed: {exc}",
                target_block=bundle.target_block,
            ) from exc

        if "error" in envelope:
            error = envelope["error"] or {}
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise SimulationFailure(
                f"Simulation Error: {message}",
                target_block=bundle.target_block,
                diagnostics={"error": error},
            )

        result = envelope.get("result") or {}
        results = list(result.get("results") or [])
        first_revert = next((tx for tx in results if "error" in tx or "revert" in tx), None)
        if first_revert is not None:
            reason = first_revert.get("revert") or first_revert.get("error")
            raise SimulationFailure(
                f"Transaction {first_revert.get('txHash')} would revert: {reason}",
                target_block=bundle.target_block,
                diagnostics=result,
                first_revert=first_revert,
            )

        return SimulationResult(
            bundle_hash=result.get("bundleHash"),
            target_block=bundle.target_block,
            state_block_number=result.get("stateBlockNumber"),
            total_gas_used=_to_int(result.get("totalGasUsed")),
            coinbase_diff=_to_int(result.get("coinbaseDiff")),
            bundle_gas_price=_to_int(result.get("bundleGasPrice")),
            results=results,
            raw_response=result,
        )

    async def send_bundle(self, bundle: SignedBundle) -> BundleSubmission:
        """Submit the bundle for its target block."""
        params = [
            {
                "txs": bundle.raw_transactions,
                "blockNumber": hex(bundle.target_block),
            }
        ]
        try:
            envelope = await self._request("eth_sendBundle", params)
        except (httpx.HTTPError, ValueError) as exc:
            raise SubmissionFailure(
                f"Bundle submission failed: {exc}",
                target_block=bundle.target_block,
            ) from exc

        if "error" in envelope:
            error = envelope["error"] or {}
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise SubmissionFailure(
                f"Relay rejected bundle: {message}",
                target_block=bundle.target_block,
                error_data=error,
            )

        result = envelope.get("result") or {}
        return BundleSubmission(
            bundle_id=bundle.bundle_id,
            bundle_hash=result.get("bundleHash"),
            target_block=bundle.target_block,
            tx_hashes=bundle.tx_hashes,
            account_nonces=bundle.account_nonces,
        )

    async def _nonce_advanced(self, submission: BundleSubmission) -> bool:
        """Whether any signer's on-chain count has moved past the bundle's nonce."""
        addresses = list(submission.account_nonces)
        counts = await asyncio.gather(
            *(self.chain.get_transaction_count(address) for address in addresses)
        )
        for address, count in zip(addresses, counts):
            if count > submission.account_nonces[address]:
                logger.warning(
                    "Nonce for %s advanced to %d past bundle nonce %d",
                    address,
                    count,
                    submission.account_nonces[address],
                )
                return True
        return False

    async def _included(self, submission: BundleSubmission) -> bool:
        receipts = await asyncio.gather(
            *(self.chain.get_transaction_receipt(tx_hash) for tx_hash in submission.tx_hashes)
        )
        return bool(receipts) and all(
            receipt is not None and receipt.get("blockNumber") == submission.target_block
            for receipt in receipts
        )

    async def wait_for_resolution(self, submission: BundleSubmission) -> BundleResolution:
        """
        Follow the chain head until the bundle's fate is known.

        On each new head before the target block, a signer whose on-chain
        count moved past the nonce the bundle used makes the bundle
        unminable, and resolution ends early. Once the target block is on
        chain only inclusion is checked: every transaction mined in the
        target block means the bundle landed, anything else means the
        block passed without it.
        """
        target_block = submission.target_block
        last_checked: Optional[int] = None
        while True:
            try:
                head = (await self.chain.get_block("latest")).number
                if head >= target_block:
                    if await self._included(submission):
                        return BundleResolution.INCLUDED
                    return BundleResolution.BLOCK_PASSED_WITHOUT_INCLUSION
                if last_checked is None or head > last_checked:
                    if await self._nonce_advanced(submission):
                        return BundleResolution.ACCOUNT_NONCE_TOO_HIGH
                    last_checked = head
            except ChainRpcError as exc:
                logger.warning("Chain read failed while awaiting block %d: %s", target_block, exc)
            await asyncio.sleep(self.poll_interval)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
