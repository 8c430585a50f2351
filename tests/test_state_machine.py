import pytest

from listing_intake.services.state_machine import (
    INITIAL_STATE,
    VALID_TRANSITIONS,
    ConversationState,
    InvalidTransitionError,
    can_transition,
    coerce_state,
    reset,
    transition,
)


class TestValidTransitions:
    def test_new_to_identity_verification(self):
        result = transition(ConversationState.NEW, ConversationState.AWAITING_IDENTITY_VERIFICATION)
        assert result == ConversationState.AWAITING_IDENTITY_VERIFICATION

    def test_required_fields_to_photos(self):
        result = transition(ConversationState.COLLECTING_REQUIRED_FIELDS, ConversationState.COLLECTING_PHOTOS)
        assert result == ConversationState.COLLECTING_PHOTOS

    def test_edit_cycle(self):
        assert transition(ConversationState.CONFIRMING_SUMMARY, ConversationState.EDITING_FIELD)
        assert transition(ConversationState.EDITING_FIELD, ConversationState.CONFIRMING_SUMMARY)

    def test_form_can_complete_every_field(self):
        result = transition(ConversationState.AWAITING_STRUCTURED_FORM, ConversationState.COLLECTING_PHOTOS)
        assert result == ConversationState.COLLECTING_PHOTOS

    def test_same_state_is_a_reprompt(self):
        for state in ConversationState:
            assert transition(state, state) == state

    def test_every_state_can_reset(self):
        for state in ConversationState:
            assert reset(state) == INITIAL_STATE


class TestInvalidTransitions:
    def test_new_to_photos(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationState.NEW, ConversationState.COLLECTING_PHOTOS)

    def test_photos_back_to_required_fields(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationState.COLLECTING_PHOTOS, ConversationState.COLLECTING_REQUIRED_FIELDS)

    def test_summary_cannot_skip_to_notes(self):
        assert can_transition(ConversationState.CONFIRMING_SUMMARY, ConversationState.COLLECTING_OPTIONAL_NOTES) is False

    def test_error_names_both_states(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(ConversationState.EDITING_FIELD, ConversationState.COLLECTING_PHOTOS)
        assert "editing_field -> collecting_photos" in str(exc_info.value)


class TestTransitionTable:
    def test_every_state_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(ConversationState)


class TestCoerceState:
    def test_known_value(self):
        assert coerce_state("collecting_photos") == ConversationState.COLLECTING_PHOTOS

    def test_enum_passthrough(self):
        assert coerce_state(ConversationState.EDITING_FIELD) == ConversationState.EDITING_FIELD

    def test_unknown_value_falls_back_to_new(self):
        assert coerce_state("sell_collecting") == ConversationState.NEW
        assert coerce_state(None) == ConversationState.NEW
