"""
Lead Engagement States
Every lead is in exactly ONE of these states at any time
"""

from enum import Enum


class LeadEngagementState(str, Enum):
    NEW = "NEW"                # Created, nothing sent yet
    CONTACTED = "CONTACTED"    # At least one outbound sent
    ENGAGED = "ENGAGED"        # They responded after our outbound
    PAUSED = "PAUSED"          # Manually paused
    CLOSED = "CLOSED"          # Terminated (terminal)


class EngagementEvent(str, Enum):
    LEAD_CREATED = "LEAD_CREATED"
    OUTBOUND_SENT = "OUTBOUND_SENT"
    INBOUND_RECEIVED = "INBOUND_RECEIVED"
    TIME_ELAPSED = "TIME_ELAPSED"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"
    TERMINATE = "TERMINATE"


# state -> {event -> next_state}
# Every state is listed. Anything missing here is an illegal move.
TRANSITIONS = {
    LeadEngagementState.NEW: {
        EngagementEvent.LEAD_CREATED: LeadEngagementState.NEW,
        EngagementEvent.OUTBOUND_SENT: LeadEngagementState.CONTACTED,
    },
    LeadEngagementState.CONTACTED: {
        EngagementEvent.INBOUND_RECEIVED: LeadEngagementState.ENGAGED,
        EngagementEvent.TIME_ELAPSED: LeadEngagementState.CONTACTED,
        EngagementEvent.MANUAL_OVERRIDE: LeadEngagementState.PAUSED,
        EngagementEvent.TERMINATE: LeadEngagementState.CLOSED,
    },
    LeadEngagementState.ENGAGED: {
        EngagementEvent.MANUAL_OVERRIDE: LeadEngagementState.PAUSED,
        EngagementEvent.TERMINATE: LeadEngagementState.CLOSED,
    },
    LeadEngagementState.PAUSED: {
        EngagementEvent.MANUAL_OVERRIDE: LeadEngagementState.CONTACTED,
        EngagementEvent.TERMINATE: LeadEngagementState.CLOSED,
    },
    LeadEngagementState.CLOSED: {},
}


# Terminal states - once a lead reaches these, it stops moving
TERMINAL_STATES = frozenset(
    state for state, moves in TRANSITIONS.items() if not moves
)


# Used in audit output and the API
STATE_DESCRIPTIONS = {
    LeadEngagementState.NEW:
        "Lead has been created but no outbound contact has been sent.",
    LeadEngagementState.CONTACTED:
        "At least one outbound message has been sent; awaiting response or time-based follow-up.",
    LeadEngagementState.ENGAGED:
        "Inbound response received after outbound contact; follow-ups are suppressed.",
    LeadEngagementState.PAUSED:
        "Lead engagement has been manually paused to prevent automated actions.",
    LeadEngagementState.CLOSED:
        "Lead lifecycle has been terminated; no further actions are permitted.",
}
