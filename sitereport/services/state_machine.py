from enum import Enum


class WorkflowState(str, Enum):
    IDLE = "idle"
    AWAITING_LOCATION = "awaiting_location"
    AWAITING_MEDIA = "awaiting_media"
    AWAITING_DESCRIPTION = "awaiting_description"


class EventKind(str, Enum):
    """What a normalized inbound event means to the workflow."""

    LOCATION = "location"
    MEDIA = "media"
    DESCRIPTION = "description"
    COMPLETE = "complete"
    SAVE_AND_NEW = "save_and_new"
    DISCARD_AND_CONTINUE = "discard_and_continue"
    OTHER = "other"


# Completion leaves no persisted state: the session is deleted instead.
VALID_TRANSITIONS = {
    WorkflowState.IDLE: [WorkflowState.AWAITING_LOCATION, WorkflowState.AWAITING_MEDIA, WorkflowState.AWAITING_DESCRIPTION],
    WorkflowState.AWAITING_LOCATION: [WorkflowState.AWAITING_MEDIA, WorkflowState.AWAITING_DESCRIPTION],
    WorkflowState.AWAITING_MEDIA: [WorkflowState.AWAITING_DESCRIPTION],
    WorkflowState.AWAITING_DESCRIPTION: [WorkflowState.AWAITING_LOCATION],
}

# Event kinds each state acts on; anything else is answered with a re-prompt.
EXPECTED_EVENTS = {
    WorkflowState.IDLE: {EventKind.LOCATION, EventKind.MEDIA},
    WorkflowState.AWAITING_LOCATION: {EventKind.LOCATION, EventKind.MEDIA},
    WorkflowState.AWAITING_MEDIA: {EventKind.LOCATION, EventKind.MEDIA},
    WorkflowState.AWAITING_DESCRIPTION: {
        EventKind.LOCATION,
        EventKind.MEDIA,
        EventKind.DESCRIPTION,
        EventKind.COMPLETE,
        EventKind.SAVE_AND_NEW,
        EventKind.DISCARD_AND_CONTINUE,
    },
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: WorkflowState, to_state: WorkflowState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: WorkflowState, to_state: WorkflowState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: WorkflowState, to_state: WorkflowState) -> WorkflowState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def is_expected(state: WorkflowState, kind: EventKind) -> bool:
    return kind in EXPECTED_EVENTS.get(state, set())


def after_location(has_media: bool, require_media: bool) -> WorkflowState:
    """State to move to once a location is on file."""
    if has_media or not require_media:
        return WorkflowState.AWAITING_DESCRIPTION
    return WorkflowState.AWAITING_MEDIA
