"""
Rescue submission pipeline.

Drives one bundle attempt per observed block:
- Build: fresh nonces, fee bounds for block + N, signed bundle
- Simulate against the target block
- Submit to the relay
- Await the relay outcome and either stop or wait for the next block
"""

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import AsyncIterable, List, Optional

import structlog
from eth_utils import to_checksum_address

from ..execution.bundle import BundleAssembler, BundleEntry
from ..execution.fees import FeeEstimator
from ..execution.models import BlockHeader, BundleResolution, RescueConfig, SignedBundle
from ..execution.nonce_manager import NonceManager
from ..execution.signer import Signer
from ..execution.tx_builder import AssetTransferCall, TransactionBuilder, encode_transfer_from
from ..recovery.errors import (
    AccountNonceTooHighError,
    ConfigurationError,
    RecoverableError,
    SimulationFailure,
    UnrecoverableError,
    classify_error,
)
from .models import (
    AttemptRecord,
    OutcomeStatus,
    PipelineOutcome,
    PipelineState,
    TransitionTrigger,
)
from .state_machine import PipelineStateMachine


async def _next_block(iterator):
    return await iterator.__anext__()


class RescuePipeline:
    """
    Block-driven bundle submission with at most one attempt in flight.

    A block that arrives mid-attempt is parked in a single deferred slot
    (newest wins) and handled once the attempt returns to idle. Terminal
    states are final: later blocks are ignored and the outcome is handed
    back to the caller instead of ending the process.
    """

    def __init__(
        self,
        config: RescueConfig,
        chain,
        relay,
        recovery_signer: Signer,
        compromised_signer: Signer,
        *,
        fee_estimator: Optional[FeeEstimator] = None,
        assembler: Optional[BundleAssembler] = None,
        asset_call: AssetTransferCall = encode_transfer_from,
        poll_interval: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ):
        if to_checksum_address(recovery_signer.address) == to_checksum_address(compromised_signer.address):
            raise ConfigurationError(
                "Recovery and compromised accounts must differ",
                setting="recovery_private_key",
            )

        self.config = config
        self.chain = chain
        self.relay = relay
        self.recovery = recovery_signer
        self.compromised = compromised_signer
        self.fee_estimator = fee_estimator or FeeEstimator(
            priority_fee_per_gas=config.priority_fee_per_gas,
            blocks_in_future=config.blocks_in_future,
        )
        self.assembler = assembler or BundleAssembler()
        self.asset_call = asset_call
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)

        self.nonce_manager = NonceManager(chain)
        self.machine = PipelineStateMachine(logger=self.logger)
        self.attempts: List[AttemptRecord] = []

        self._in_flight = False
        self._deferred: Optional[BlockHeader] = None
        self._last_attempted_block: Optional[int] = None
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        self._outcome: Optional[PipelineOutcome] = None

    @property
    def state(self) -> PipelineState:
        return self.machine.current_state

    @property
    def is_terminal(self) -> bool:
        return self.machine.is_terminal

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def outcome(self) -> Optional[PipelineOutcome]:
        return self._outcome

    # ---------------------------
    # Control
    # ---------------------------
    def stop(self, reason: str = "Stop requested") -> None:
        """Ask the pipeline to stop; takes effect between attempts."""
        self._stop_requested = True
        self._stop_event.set()
        if not self._in_flight and self.state == PipelineState.IDLE:
            self._finish(OutcomeStatus.STOPPED, PipelineState.STOPPED, TransitionTrigger.OPERATOR, reason=reason)

    async def on_block(self, block: BlockHeader) -> Optional[PipelineOutcome]:
        """
        Handle a newly observed block.

        Returns the outcome once the pipeline is terminal, else ``None``.
        """
        if self.is_terminal:
            self.logger.debug("Ignoring block %d: pipeline is %s", block.number, self.state.value)
            return self._outcome

        if self._in_flight:
            if self._deferred is None or block.number > self._deferred.number:
                self._deferred = block
            self.logger.info("Attempt in flight; deferring block %d", block.number)
            return None

        self._in_flight = True
        try:
            pending: Optional[BlockHeader] = block
            while pending is not None and not self.is_terminal:
                if self._stop_requested:
                    break
                if self._last_attempted_block is not None and pending.number <= self._last_attempted_block:
                    self.logger.debug(
                        "Ignoring block %d: not newer than %d",
                        pending.number,
                        self._last_attempted_block,
                    )
                else:
                    await self._attempt(pending)
                pending, self._deferred = self._deferred, None
        finally:
            self._in_flight = False

        if self._stop_requested and not self.is_terminal:
            self._finish(OutcomeStatus.STOPPED, PipelineState.STOPPED, TransitionTrigger.OPERATOR, reason="Stop requested")

        return self._outcome if self.is_terminal else None

    async def run(self, blocks: Optional[AsyncIterable[BlockHeader]] = None) -> PipelineOutcome:
        """
        Consume blocks until the pipeline reaches a terminal state.

        Uses the chain client's head stream unless ``blocks`` is given.
        Ending the stream, or calling :meth:`stop`, yields a STOPPED outcome.
        """
        source = blocks if blocks is not None else self.chain.watch_blocks(self.poll_interval)
        iterator = source.__aiter__()
        try:
            while not self.is_terminal and not self._stop_requested:
                next_block = asyncio.ensure_future(_next_block(iterator))
                stop_wait = asyncio.ensure_future(self._stop_event.wait())
                done, _ = await asyncio.wait({next_block, stop_wait}, return_when=asyncio.FIRST_COMPLETED)

                if next_block not in done:
                    next_block.cancel()
                    with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                        await next_block
                    break

                stop_wait.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stop_wait
                try:
                    block = next_block.result()
                except StopAsyncIteration:
                    self.logger.info("Block stream ended")
                    break
                await self.on_block(block)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        if not self.is_terminal:
            self._finish(
                OutcomeStatus.STOPPED,
                PipelineState.STOPPED,
                TransitionTrigger.OPERATOR,
                reason="Stop requested" if self._stop_requested else "Block stream ended",
            )
        return self._outcome

    # ---------------------------
    # Attempt
    # ---------------------------
    async def _attempt(self, block: BlockHeader) -> None:
        target_block = block.number + self.config.blocks_in_future
        self._last_attempted_block = block.number
        record = AttemptRecord(block_number=block.number, target_block=target_block)
        self.attempts.append(record)

        structlog.contextvars.bind_contextvars(block_number=block.number, target_block=target_block)
        try:
            self.machine.transition_to(PipelineState.BUILDING, TransitionTrigger.BLOCK, block.number)
            bundle = await self._build(block, target_block, record)

            self.machine.transition_to(PipelineState.SIMULATING, TransitionTrigger.RELAY, block.number)
            record.simulation = await self.relay.simulate(bundle)
            self.logger.info("Simulation Success: %s", record.simulation.to_dict())

            self.machine.transition_to(PipelineState.SUBMITTING, TransitionTrigger.RELAY, block.number)
            submission = await self.relay.send_bundle(bundle)
            record.bundle_hash = submission.bundle_hash
            self.logger.info("Bundle %d submitted for block %d; waiting", bundle.bundle_id, target_block)

            self.machine.transition_to(PipelineState.AWAITING_RESOLUTION, TransitionTrigger.RELAY, block.number)
            resolution = await self.relay.wait_for_resolution(submission)
            record.resolution = resolution
            self._resolve(resolution, record)

        except SimulationFailure as exc:
            record.error = str(exc)
            if self.config.retry_on_simulation_failure:
                exc.context.recoverable = True
                self.logger.warning("%s; retrying on next block", exc)
                self.machine.transition_to(
                    PipelineState.IDLE, TransitionTrigger.ERROR, block.number, reason="Simulation failed, retrying"
                )
            else:
                self._fail(exc, block.number)

        except UnrecoverableError as exc:
            record.error = str(exc)
            self._fail(exc, block.number)

        except RecoverableError as exc:
            record.error = str(exc)
            self._abandon(exc, block.number)

        except Exception as exc:  # noqa: BLE001
            record.error = str(exc)
            if classify_error(exc).recoverable:
                self._abandon(exc, block.number)
            else:
                self.logger.error("Unexpected error for block %d: %s", block.number, exc, exc_info=True)
                self._fail(exc, block.number)

        finally:
            record.completed_at = datetime.now(timezone.utc)
            structlog.contextvars.unbind_contextvars("block_number", "target_block", "bundle_id")

    async def _build(self, block: BlockHeader, target_block: int, record: AttemptRecord) -> SignedBundle:
        cursors = await self.nonce_manager.snapshot([self.recovery.address, self.compromised.address])
        recovery_cursor = cursors[to_checksum_address(self.recovery.address)]
        compromised_cursor = cursors[to_checksum_address(self.compromised.address)]
        record.nonces = {address: cursor.start for address, cursor in cursors.items()}

        compromised_balance = None
        if self.config.sweep_from_balance:
            compromised_balance = await self.chain.get_balance(self.compromised.address)

        fees = self.fee_estimator.estimate(block.base_fee_per_gas)
        record.max_fee_per_gas = fees.max_fee_per_gas

        plan = TransactionBuilder.build_rescue_plan(
            self.config,
            fees,
            recovery=recovery_cursor,
            compromised=compromised_cursor,
            compromised_balance=compromised_balance,
            encoder=self.asset_call,
        )

        signers = {
            to_checksum_address(self.recovery.address): self.recovery,
            to_checksum_address(self.compromised.address): self.compromised,
        }
        entries = [BundleEntry(signer=signers[tx.from_address], transaction=tx) for tx in plan.transactions]
        bundle = self.assembler.assemble(
            entries,
            target_block=target_block,
            expected_nonces=record.nonces,
        )
        record.bundle_id = bundle.bundle_id
        record.transaction_count = len(bundle)
        structlog.contextvars.bind_contextvars(bundle_id=bundle.bundle_id)
        return bundle

    def _resolve(self, resolution: BundleResolution, record: AttemptRecord) -> None:
        if resolution == BundleResolution.INCLUDED:
            self.logger.info("Congrats, included in %d", record.target_block)
            self._finish(
                OutcomeStatus.SUCCESS,
                PipelineState.SUCCEEDED,
                TransitionTrigger.RESOLUTION,
                block_number=record.block_number,
                reason=f"Included in {record.target_block}",
                resolution=resolution,
                included_block=record.target_block,
            )
        elif resolution == BundleResolution.ACCOUNT_NONCE_TOO_HIGH:
            error = AccountNonceTooHighError(
                "Nonce too high, bailing",
                target_block=record.target_block,
                accounts=list(record.nonces),
            )
            record.error = str(error)
            self._fail(error, record.block_number, resolution=resolution)
        else:
            self.logger.info("Not included in %d", record.target_block)
            self.machine.transition_to(
                PipelineState.IDLE,
                TransitionTrigger.RESOLUTION,
                record.block_number,
                reason=f"Not included in {record.target_block}",
            )

    def _abandon(self, error: Exception, block_number: int) -> None:
        """Drop the current attempt and wait for the next block."""
        if not self.machine.can_transition_to(PipelineState.IDLE):
            # SUBMITTING has no edge back to IDLE
            self._fail(error, block_number)
            return
        self.logger.warning("Attempt for block %d abandoned: %s", block_number, error)
        self.machine.transition_to(PipelineState.IDLE, TransitionTrigger.ERROR, block_number, reason=str(error))

    # ---------------------------
    # Terminal states
    # ---------------------------
    def _fail(
        self,
        error: Exception,
        block_number: Optional[int] = None,
        resolution: Optional[BundleResolution] = None,
    ) -> None:
        context = classify_error(error)
        self.logger.error(
            "Rescue stopped: %s [%s]%s",
            error,
            context.category.value,
            f" - {context.suggested_action}" if context.suggested_action else "",
        )
        self._finish(
            OutcomeStatus.FATAL,
            PipelineState.FAILED,
            TransitionTrigger.ERROR,
            block_number=block_number,
            reason=str(error),
            resolution=resolution,
            error=error,
        )

    def _finish(
        self,
        status: OutcomeStatus,
        state: PipelineState,
        trigger: TransitionTrigger,
        block_number: Optional[int] = None,
        reason: Optional[str] = None,
        resolution: Optional[BundleResolution] = None,
        included_block: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.machine.transition_to(state, trigger, block_number, reason=reason)
        self._outcome = PipelineOutcome(
            status=status,
            state=state,
            resolution=resolution,
            included_block=included_block,
            error=error,
            error_context=classify_error(error) if error else None,
            attempts=self.attempts,
            transitions=self.machine.history,
        )
        self._stop_event.set()
