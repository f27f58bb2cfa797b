"""
Lead Engagement State Machine
Pure table lookups. No database, no clock, no side effects.
"""

from typing import Optional

from followup_gate.core.engagement_states import (
    EngagementEvent,
    LeadEngagementState,
    TRANSITIONS,
)


class InvalidTransition(ValueError):
    """Raised when (state, event) has no entry in the transition table."""

    def __init__(self, state: LeadEngagementState, event: EngagementEvent):
        self.state = LeadEngagementState(state)
        self.event = EngagementEvent(event)
        super().__init__(
            f"Illegal transition: {self.state.value} + {self.event.value}"
        )


def can_transition(
    current_state: LeadEngagementState, event: EngagementEvent
) -> Optional[LeadEngagementState]:
    """Pre-flight check. Returns the next state, or None if the move is illegal."""
    moves = TRANSITIONS[LeadEngagementState(current_state)]
    if event not in moves:
        return None
    return moves[event]


def transition_state(
    current_state: LeadEngagementState, event: EngagementEvent
) -> LeadEngagementState:
    """
    Look up the next state for an event.
    Fails loudly on anything the table does not list.
    """
    next_state = can_transition(current_state, event)

    if next_state is None:
        raise InvalidTransition(current_state, event)

    return next_state
