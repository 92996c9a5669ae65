"""
Pipeline State Machine

Validates state transitions for the rescue pipeline and keeps the
transition history.
"""

import logging
from typing import Dict, List, Optional, Set

from .models import (
    TERMINAL_STATES,
    InvalidTransitionError,
    PipelineState,
    StateTransition,
    TransitionTrigger,
)


class PipelineStateMachine:
    """
    Tracks the pipeline's current state.

    Features:
    - Validates transitions against the allowed transition map
    - Records every transition
    - Refuses to leave terminal states
    """

    TRANSITIONS: Dict[PipelineState, Set[PipelineState]] = {
        PipelineState.IDLE: {
            PipelineState.BUILDING,
            PipelineState.STOPPED,
        },
        PipelineState.BUILDING: {
            PipelineState.SIMULATING,
            PipelineState.IDLE,       # Transient chain read failure
            PipelineState.FAILED,     # Malformed bundle, bad key material
        },
        PipelineState.SIMULATING: {
            PipelineState.SUBMITTING,
            PipelineState.IDLE,       # Simulation failure with retry enabled
            PipelineState.FAILED,
        },
        PipelineState.SUBMITTING: {
            PipelineState.AWAITING_RESOLUTION,
            PipelineState.FAILED,
        },
        PipelineState.AWAITING_RESOLUTION: {
            PipelineState.SUCCEEDED,
            PipelineState.IDLE,       # Block passed without inclusion
            PipelineState.FAILED,     # Account nonce too high
        },
        PipelineState.SUCCEEDED: set(),
        PipelineState.FAILED: set(),
        PipelineState.STOPPED: set(),
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._state = PipelineState.IDLE
        self.history: List[StateTransition] = []

    @property
    def current_state(self) -> PipelineState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_transition_to(self, to_state: PipelineState) -> bool:
        return to_state in self.TRANSITIONS.get(self._state, set())

    def get_allowed_transitions(self) -> Set[PipelineState]:
        return self.TRANSITIONS.get(self._state, set())

    def transition_to(
        self,
        to_state: PipelineState,
        trigger: TransitionTrigger = TransitionTrigger.BLOCK,
        block_number: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> StateTransition:
        """
        Move to ``to_state``.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        from_state = self._state
        if not self.can_transition_to(to_state):
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. "
                        f"Allowed: {sorted(s.value for s in self.get_allowed_transitions())}",
            )

        transition = StateTransition(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            block_number=block_number,
            reason=reason,
        )
        self._state = to_state
        self.history.append(transition)

        self.logger.info(
            "Pipeline %s -> %s%s",
            from_state.value,
            to_state.value,
            f" ({reason})" if reason else "",
        )
        return transition
