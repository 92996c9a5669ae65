"""
Tests for local signers and nonce snapshots.
"""

from unittest.mock import AsyncMock

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address

from rescuer.core.execution import LocalSigner, NonceCursor, NonceManager
from rescuer.core.execution.signer import to_0x_hex
from rescuer.core.recovery import ConfigurationError


# =============================================================================
# LocalSigner
# =============================================================================

class TestLocalSigner:
    """Tests for LocalSigner construction and signing."""

    def test_from_key(self):
        key = "0x" + "11" * 32
        signer = LocalSigner.from_key(key, label="recovery")
        assert signer.address == Account.from_key(key).address
        assert "recovery" in repr(signer)
        assert key not in repr(signer)

    def test_missing_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            LocalSigner.from_key("", label="compromised_private_key")
        assert exc_info.value.setting == "compromised_private_key"

    def test_invalid_key(self):
        with pytest.raises(ConfigurationError, match="Invalid private key"):
            LocalSigner.from_key("0x1234", label="recovery_private_key")

    def test_create_gives_distinct_identities(self):
        assert LocalSigner.create().address != LocalSigner.create().address

    def test_sign_text_recovers_to_signer(self, auth_signer):
        signature = auth_signer.sign_text("0xabc")
        recovered = Account.recover_message(encode_defunct(text="0xabc"), signature=signature)
        assert recovered == auth_signer.address

    def test_to_0x_hex(self):
        assert to_0x_hex(b"\x01\x02") == "0x0102"
        assert to_0x_hex("0102") == "0x0102"
        assert to_0x_hex("0x0102") == "0x0102"


# =============================================================================
# Nonces
# =============================================================================

class TestNonceCursor:
    def test_take_is_contiguous(self):
        cursor = NonceCursor(address="0x" + "11" * 20, start=10)
        assert [cursor.take(), cursor.take(), cursor.take()] == [10, 11, 12]
        assert cursor.issued == [10, 11, 12]
        assert cursor.peek() == 13


class TestNonceManager:
    """Tests for per-attempt nonce snapshots."""

    @pytest.mark.asyncio
    async def test_snapshot_reads_each_address(self):
        a = "0x" + "aa" * 20
        b = "0x" + "bb" * 20
        counts = {to_checksum_address(a): 3, to_checksum_address(b): 10}
        chain = AsyncMock()
        chain.get_transaction_count.side_effect = lambda address, block: counts[address]

        cursors = await NonceManager(chain).snapshot([a, b])

        assert set(cursors) == {to_checksum_address(a), to_checksum_address(b)}
        assert cursors[to_checksum_address(a)].start == 3
        assert cursors[to_checksum_address(b)].start == 10
        chain.get_transaction_count.assert_any_await(to_checksum_address(a), "latest")

    @pytest.mark.asyncio
    async def test_snapshot_is_fresh_every_time(self):
        address = "0x" + "aa" * 20
        chain = AsyncMock()
        chain.get_transaction_count.side_effect = [10, 11]
        manager = NonceManager(chain)

        first = await manager.snapshot([address])
        second = await manager.snapshot([address])

        assert first[to_checksum_address(address)].start == 10
        assert second[to_checksum_address(address)].start == 11
        assert chain.get_transaction_count.await_count == 2
