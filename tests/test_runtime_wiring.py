"""
Tests for settings -> pipeline wiring and the CLI parser.
"""

import json
import logging
import sys
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

import cli
from rescuer.config import Settings
from rescuer.core.pipeline import OutcomeStatus, PipelineOutcome, PipelineState
from rescuer.core.recovery import ConfigurationError
from rescuer.logging_config import setup_logging
from rescuer.main import RescueRuntime, build_runtime, run_rescue


RECOVERY_KEY = "0x" + "11" * 32
COMPROMISED_KEY = "0x" + "22" * 32


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch):
    monkeypatch.setitem(Settings.model_config, "env_file", None)


def _settings(**overrides) -> Settings:
    values = dict(
        rpc_url="https://node.invalid",
        recovery_private_key=RECOVERY_KEY,
        compromised_private_key=COMPROMISED_KEY,
        asset_contract="0x" + "ab" * 20,
        asset_units=[5019, 5419],
        chain_id=1,
    )
    values.update(overrides)
    return Settings(**values)


class TestBuildRuntime:
    """Tests for build_runtime validation and wiring."""

    @pytest.mark.asyncio
    async def test_wires_default_relay(self):
        runtime = build_runtime(_settings())
        try:
            assert runtime.relay.relay_url == "https://relay.flashbots.net"
            assert runtime.relay.chain is runtime.chain
            assert runtime.pipeline.chain is runtime.chain
            assert runtime.pipeline.config.asset_units == (5019, 5419)
            assert runtime.pipeline.recovery.address != runtime.pipeline.compromised.address
        finally:
            await runtime.close()

    @pytest.mark.asyncio
    async def test_throwaway_auth_identity(self):
        first = build_runtime(_settings())
        second = build_runtime(_settings())
        try:
            assert first.relay.auth_signer.address != second.relay.auth_signer.address
        finally:
            await first.close()
            await second.close()

    @pytest.mark.asyncio
    async def test_configured_auth_identity(self, auth_signer):
        runtime = build_runtime(_settings(flashbots_auth_key="0x" + "33" * 32))
        try:
            assert runtime.relay.auth_signer.address == auth_signer.address
        finally:
            await runtime.close()

    @pytest.mark.parametrize(
        "overrides, setting",
        [
            ({"rpc_url": ""}, "rpc_url"),
            ({"chain_id": 424242}, "flashbots_relay_url"),
            ({"asset_units": []}, "asset_units"),
            ({"recovery_private_key": ""}, "recovery_private_key"),
            ({"compromised_private_key": "0xnothex"}, "compromised_private_key"),
        ],
    )
    def test_configuration_errors(self, overrides, setting):
        with pytest.raises(ConfigurationError) as exc_info:
            build_runtime(_settings(**overrides))
        assert exc_info.value.setting == setting


@pytest.mark.asyncio
async def test_run_rescue_closes_clients():
    outcome = PipelineOutcome(status=OutcomeStatus.STOPPED, state=PipelineState.STOPPED)
    pipeline = MagicMock()
    pipeline.run = AsyncMock(return_value=outcome)
    chain = MagicMock()
    chain.close = AsyncMock()
    relay = MagicMock()
    relay.close = AsyncMock()

    result = await run_rescue(_settings(), RescueRuntime(pipeline=pipeline, chain=chain, relay=relay))

    assert result is outcome
    relay.close.assert_awaited_once()
    chain.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_rescue_closes_clients_on_error():
    pipeline = MagicMock()
    pipeline.run = AsyncMock(side_effect=RuntimeError("boom"))
    chain = MagicMock()
    chain.close = AsyncMock()
    relay = MagicMock()
    relay.close = AsyncMock()

    with pytest.raises(RuntimeError):
        await run_rescue(_settings(), RescueRuntime(pipeline=pipeline, chain=chain, relay=relay))

    chain.close.assert_awaited_once()


class TestCliParser:
    def test_fees_command(self):
        args = cli.build_parser().parse_args(["fees", "--base-fee-gwei", "100"])
        assert args.command == "fees"
        assert args.base_fee_gwei == Decimal("100")
        assert args.blocks_in_future is None

    def test_run_command(self):
        assert cli.build_parser().parse_args(["run"]).command == "run"

    @pytest.mark.asyncio
    async def test_fees_zero_offset_not_replaced_by_setting(self, monkeypatch):
        settings = MagicMock(blocks_in_future=2, priority_fee_gwei=Decimal("20"))
        printed = MagicMock()
        monkeypatch.setattr(cli, "get_settings", lambda: settings)
        monkeypatch.setattr(cli, "print_fees", printed)
        monkeypatch.setattr(
            sys, "argv", ["cli.py", "fees", "--base-fee-gwei", "100", "--blocks-in-future", "0", "--priority-fee-gwei", "0"]
        )

        assert await cli.main() == 0
        printed.assert_called_once_with(Decimal("100"), 0, Decimal("0"))

    @pytest.mark.asyncio
    async def test_fees_offset_defaults_to_setting(self, monkeypatch):
        settings = MagicMock(blocks_in_future=2, priority_fee_gwei=Decimal("20"))
        printed = MagicMock()
        monkeypatch.setattr(cli, "get_settings", lambda: settings)
        monkeypatch.setattr(cli, "print_fees", printed)
        monkeypatch.setattr(sys, "argv", ["cli.py", "fees", "--base-fee-gwei", "100"])

        assert await cli.main() == 0
        printed.assert_called_once_with(Decimal("100"), 2, Decimal("20"))

    def test_print_fees(self, capsys):
        cli.print_fees(Decimal("100"), 2, Decimal("20"))
        out = capsys.readouterr().out
        assert "126.5625" in out
        assert "146.5625" in out


def test_setup_logging_sets_root_level():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("DEBUG")
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert len(root.handlers) == 1
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_json_lines_carry_attempt_context(capsys):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("INFO")
        structlog.contextvars.bind_contextvars(block_number=100, target_block=102, bundle_id=1)
        logging.getLogger("rescuer.core.pipeline").info("Bundle %d submitted", 1)
    finally:
        structlog.contextvars.clear_contextvars()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert line["event"] == "Bundle 1 submitted"
    assert line["level"] == "info"
    assert line["target_block"] == 102
    assert line["bundle_id"] == 1
