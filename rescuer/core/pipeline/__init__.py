"""
Submission Pipeline

Block-driven state machine that builds, simulates, submits and resolves
one rescue bundle per observed block.
"""

from .models import (
    TERMINAL_STATES,
    AttemptRecord,
    InvalidTransitionError,
    OutcomeStatus,
    PipelineOutcome,
    PipelineState,
    StateTransition,
    TransitionTrigger,
)
from .state_machine import PipelineStateMachine
from .pipeline import RescuePipeline

__all__ = [
    "TERMINAL_STATES",
    "AttemptRecord",
    "InvalidTransitionError",
    "OutcomeStatus",
    "PipelineOutcome",
    "PipelineState",
    "StateTransition",
    "TransitionTrigger",
    "PipelineStateMachine",
    "RescuePipeline",
]
