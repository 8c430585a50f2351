from enum import Enum


class ConversationState(str, Enum):
    NEW = "new"
    AWAITING_IDENTITY_VERIFICATION = "awaiting_identity_verification"
    CHOOSING_INTAKE_METHOD = "choosing_intake_method"
    AWAITING_VOICE_DESCRIPTION = "awaiting_voice_description"
    AWAITING_STRUCTURED_FORM = "awaiting_structured_form"
    COLLECTING_REQUIRED_FIELDS = "collecting_required_fields"
    COLLECTING_PHOTOS = "collecting_photos"
    COLLECTING_OPTIONAL_NOTES = "collecting_optional_notes"
    CONFIRMING_SUMMARY = "confirming_summary"
    EDITING_FIELD = "editing_field"


INITIAL_STATE = ConversationState.NEW

# Every state may stay where it is (re-prompt) and fall back to NEW (cancel/reset);
# both are added in can_transition rather than repeated here.
VALID_TRANSITIONS = {
    ConversationState.NEW: [
        ConversationState.AWAITING_IDENTITY_VERIFICATION,
        ConversationState.CHOOSING_INTAKE_METHOD,
    ],
    ConversationState.AWAITING_IDENTITY_VERIFICATION: [ConversationState.CHOOSING_INTAKE_METHOD],
    ConversationState.CHOOSING_INTAKE_METHOD: [
        ConversationState.AWAITING_VOICE_DESCRIPTION,
        ConversationState.AWAITING_STRUCTURED_FORM,
    ],
    ConversationState.AWAITING_VOICE_DESCRIPTION: [
        ConversationState.COLLECTING_REQUIRED_FIELDS,
        ConversationState.COLLECTING_PHOTOS,
    ],
    ConversationState.AWAITING_STRUCTURED_FORM: [
        ConversationState.AWAITING_VOICE_DESCRIPTION,
        ConversationState.COLLECTING_REQUIRED_FIELDS,
        ConversationState.COLLECTING_PHOTOS,
    ],
    ConversationState.COLLECTING_REQUIRED_FIELDS: [ConversationState.COLLECTING_PHOTOS],
    ConversationState.COLLECTING_PHOTOS: [ConversationState.COLLECTING_OPTIONAL_NOTES],
    ConversationState.COLLECTING_OPTIONAL_NOTES: [ConversationState.CONFIRMING_SUMMARY],
    ConversationState.CONFIRMING_SUMMARY: [ConversationState.EDITING_FIELD],
    ConversationState.EDITING_FIELD: [ConversationState.CONFIRMING_SUMMARY],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: ConversationState, to_state: ConversationState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def coerce_state(value) -> ConversationState:
    """Read a persisted state; unknown or empty values fall back to NEW."""
    if isinstance(value, ConversationState):
        return value
    try:
        return ConversationState(value)
    except ValueError:
        return INITIAL_STATE


def can_transition(from_state: ConversationState, to_state: ConversationState) -> bool:
    """Check if transition is valid."""
    if to_state == from_state or to_state == INITIAL_STATE:
        return True
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: ConversationState, to_state: ConversationState) -> ConversationState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def reset(current_state: ConversationState) -> ConversationState:
    """Cancel or finish the current cycle, back to the initial state."""
    return transition(current_state, INITIAL_STATE)
