"""
Submission Pipeline Models

Defines states, transitions, attempt records and outcomes for the
block-driven rescue pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..execution.models import BundleResolution, SimulationResult
from ..recovery.errors import ErrorContext


class PipelineState(str, Enum):
    """States the pipeline moves through for each block."""

    IDLE = "idle"                          # Waiting for the next block
    BUILDING = "building"                  # Reading nonces, building and signing
    SIMULATING = "simulating"              # Relay simulation of the bundle
    SUBMITTING = "submitting"              # Sending the bundle to the relay
    AWAITING_RESOLUTION = "awaiting_resolution"  # Waiting for the target block
    SUCCEEDED = "succeeded"                # Bundle included
    FAILED = "failed"                      # Fatal error, rescue stopped
    STOPPED = "stopped"                    # Operator stop or block stream ended


TERMINAL_STATES = frozenset({PipelineState.SUCCEEDED, PipelineState.FAILED, PipelineState.STOPPED})


class TransitionTrigger(str, Enum):
    """What triggered a state transition."""

    BLOCK = "block"                        # New block observed
    RELAY = "relay"                        # Relay call returned
    RESOLUTION = "resolution"              # Target block reached
    ERROR = "error"                        # Error occurred
    OPERATOR = "operator"                  # stop() requested


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FATAL = "fatal"
    STOPPED = "stopped"


@dataclass
class StateTransition:
    """Record of a state transition."""

    from_state: PipelineState
    to_state: PipelineState
    trigger: TransitionTrigger = TransitionTrigger.BLOCK
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    block_number: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "trigger": self.trigger.value,
            "timestamp": self.timestamp.isoformat(),
            "blockNumber": self.block_number,
            "reason": self.reason,
        }


@dataclass
class AttemptRecord:
    """What happened to the bundle built for one observed block."""

    block_number: int
    target_block: int
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    bundle_id: Optional[int] = None
    nonces: Dict[str, int] = field(default_factory=dict)
    max_fee_per_gas: Optional[int] = None
    transaction_count: int = 0
    simulation: Optional[SimulationResult] = None
    bundle_hash: Optional[str] = None
    resolution: Optional[BundleResolution] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockNumber": self.block_number,
            "targetBlock": self.target_block,
            "bundleId": self.bundle_id,
            "nonces": self.nonces,
            "maxFeePerGas": self.max_fee_per_gas,
            "transactionCount": self.transaction_count,
            "simulation": self.simulation.to_dict() if self.simulation else None,
            "bundleHash": self.bundle_hash,
            "resolution": self.resolution.value if self.resolution else None,
            "error": self.error,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class PipelineOutcome:
    """Terminal result handed back to the caller."""

    status: OutcomeStatus
    state: PipelineState
    resolution: Optional[BundleResolution] = None
    included_block: Optional[int] = None
    error: Optional[Exception] = None
    error_context: Optional[ErrorContext] = None
    attempts: List[AttemptRecord] = field(default_factory=list)
    transitions: List[StateTransition] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "state": self.state.value,
            "resolution": self.resolution.value if self.resolution else None,
            "includedBlock": self.included_block,
            "error": str(self.error) if self.error else None,
            "errorCategory": self.error_context.category.value if self.error_context else None,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        from_state: PipelineState,
        to_state: PipelineState,
        message: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or f"Cannot transition from {from_state.value} to {to_state.value}"
        super().__init__(self.message)
