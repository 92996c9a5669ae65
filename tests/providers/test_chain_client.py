import httpx
import pytest
from eth_utils import to_checksum_address

from rescuer.core.recovery import ChainRpcError, ErrorCategory
from rescuer.providers.chain import ChainClient


RPC_URL = "https://node.invalid"
ADDRESS = "0x" + "aa" * 20


class _DummyResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            request = httpx.Request("POST", RPC_URL)
            raise httpx.HTTPStatusError(
                "error",
                request=request,
                response=httpx.Response(self.status_code, request=request),
            )
        return None

    def json(self):
        return self._payload


class _DummyClient:
    """Answers each JSON-RPC method from a dict of canned results."""

    def __init__(self, results=None, errors=None):
        self.results = results or {}
        self.errors = errors or {}
        self.requests = []
        self.closed = False

    async def post(self, url, json):
        self.requests.append({"url": url, "json": json})
        method = json["method"]
        if method in self.errors:
            error = self.errors[method]
            if isinstance(error, Exception):
                raise error
            return _DummyResponse({"jsonrpc": "2.0", "id": json["id"], "error": error})
        result = self.results[method]
        if callable(result):
            result = result(json["params"])
        return _DummyResponse({"jsonrpc": "2.0", "id": json["id"], "result": result})

    async def aclose(self):
        self.closed = True


def _client(**kwargs):
    dummy = _DummyClient(**kwargs)
    return ChainClient(RPC_URL, client=dummy), dummy


@pytest.mark.asyncio
async def test_get_block_parses_header():
    chain, dummy = _client(results={
        "eth_getBlockByNumber": {
            "number": "0x64",
            "baseFeePerGas": "0x3b9aca00",
            "hash": "0xabc",
            "timestamp": "0x10",
        }
    })

    block = await chain.get_block("latest")

    assert block.number == 100
    assert block.base_fee_per_gas == 10**9
    assert block.hash == "0xabc"
    assert block.timestamp == 16
    assert dummy.requests[0]["json"]["params"] == ["latest", False]


@pytest.mark.asyncio
async def test_get_block_by_number_sends_hex():
    chain, dummy = _client(results={"eth_getBlockByNumber": {"number": "0x64", "baseFeePerGas": "0x1"}})

    await chain.get_block(100)

    assert dummy.requests[0]["json"]["params"][0] == "0x64"


@pytest.mark.asyncio
async def test_get_block_without_base_fee_rejected():
    chain, _ = _client(results={"eth_getBlockByNumber": {"number": "0x64"}})

    with pytest.raises(ChainRpcError, match="base fee"):
        await chain.get_block()


@pytest.mark.asyncio
async def test_missing_block_rejected():
    chain, _ = _client(results={"eth_getBlockByNumber": None})

    with pytest.raises(ChainRpcError):
        await chain.get_block(12345)


@pytest.mark.asyncio
async def test_transaction_count_and_balance():
    chain, dummy = _client(results={
        "eth_getTransactionCount": "0xa",
        "eth_getBalance": "0xde0b6b3a7640000",
    })

    assert await chain.get_transaction_count(ADDRESS) == 10
    assert await chain.get_balance(ADDRESS) == 10**18
    assert dummy.requests[0]["json"]["params"] == [to_checksum_address(ADDRESS), "latest"]


@pytest.mark.asyncio
async def test_receipt_fields_converted():
    chain, _ = _client(results={
        "eth_getTransactionReceipt": {"blockNumber": "0x66", "status": "0x1", "transactionHash": "0x01"},
    })

    receipt = await chain.get_transaction_receipt("0x01")

    assert receipt["blockNumber"] == 102
    assert receipt["status"] == 1


@pytest.mark.asyncio
async def test_pending_receipt_is_none():
    chain, _ = _client(results={"eth_getTransactionReceipt": None})
    assert await chain.get_transaction_receipt("0x01") is None


@pytest.mark.asyncio
async def test_rpc_error_raises():
    chain, _ = _client(errors={"eth_getBalance": {"code": -32000, "message": "header not found"}})

    with pytest.raises(ChainRpcError) as exc_info:
        await chain.get_balance(ADDRESS)

    assert exc_info.value.method == "eth_getBalance"
    assert exc_info.value.context.category == ErrorCategory.RPC
    assert exc_info.value.context.recoverable


@pytest.mark.asyncio
async def test_transport_error_is_network_category():
    chain, _ = _client(errors={"eth_blockNumber": httpx.ConnectError("refused")})

    with pytest.raises(ChainRpcError) as exc_info:
        await chain.block_number()

    assert exc_info.value.context.category == ErrorCategory.NETWORK


@pytest.mark.asyncio
async def test_request_ids_increase():
    chain, dummy = _client(results={"eth_blockNumber": "0x1"})

    await chain.block_number()
    await chain.block_number()

    assert [r["json"]["id"] for r in dummy.requests] == [1, 2]


@pytest.mark.asyncio
async def test_watch_blocks_yields_new_heads_only():
    heads = iter(["0x64", "0x64", "0x65", "0x63", "0x67"])

    def next_head(_params):
        return {"number": next(heads), "baseFeePerGas": "0x1"}

    chain, _ = _client(results={"eth_getBlockByNumber": next_head})

    seen = []
    stream = chain.watch_blocks(poll_interval=0)
    async for block in stream:
        seen.append(block.number)
        if len(seen) == 3:
            break
    await stream.aclose()

    assert seen == [100, 101, 103]


@pytest.mark.asyncio
async def test_watch_blocks_survives_poll_errors():
    responses = iter([httpx.ReadTimeout("slow"), "0x64"])

    class _FlakyClient(_DummyClient):
        async def post(self, url, json):
            item = next(responses)
            if isinstance(item, Exception):
                raise item
            return _DummyResponse({"result": {"number": item, "baseFeePerGas": "0x1"}})

    chain = ChainClient(RPC_URL, client=_FlakyClient())

    stream = chain.watch_blocks(poll_interval=0)
    block = await stream.__anext__()
    await stream.aclose()

    assert block.number == 100


@pytest.mark.asyncio
async def test_async_context_manager_closes_client():
    dummy = _DummyClient()
    async with ChainClient(RPC_URL, client=dummy):
        pass
    assert dummy.closed
