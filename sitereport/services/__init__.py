from sitereport.services.phone import normalize_reporter_key
from sitereport.services.state_machine import (
    EventKind,
    InvalidTransitionError,
    WorkflowState,
    can_transition,
    transition,
)
