"""Unit tests for deterministic control-intent classification."""

import pytest

from agent.booking.control_intent import (
    MAX_CONTROL_TOKENS,
    ControlIntent,
    classify_control_intent,
    is_affirmative,
    is_negative,
    normalize_control_text,
)


class TestNormalizeControlText:
    """Tests for normalize_control_text."""

    def test_lowercases_and_strips_punctuation(self):
        assert normalize_control_text("  Yes, PLEASE!!  ") == "yes please"

    def test_collapses_whitespace(self):
        assert normalize_control_text("go    ahead\n") == "go ahead"


class TestClassifyControlIntent:
    """Tests for classify_control_intent."""

    @pytest.mark.parametrize("text", ["yes", "Okay", "book it", "Go ahead!", "sounds good"])
    def test_affirmative_phrases(self, text):
        assert classify_control_intent(text) == ControlIntent.AFFIRMATIVE

    def test_affirmative_pattern(self):
        """Longer confirmations are caught by patterns."""
        assert classify_control_intent("yes please book that one") == ControlIntent.AFFIRMATIVE

    @pytest.mark.parametrize("text", ["no", "nope", "show me others", "not this one"])
    def test_negative_phrases(self, text):
        assert classify_control_intent(text) == ControlIntent.NEGATIVE

    def test_cancel_wins_over_negative(self):
        """'cancel' belongs to both sets and resolves to CANCEL."""
        assert is_negative("cancel")
        assert classify_control_intent("cancel") == ControlIntent.CANCEL

    def test_agent_request(self):
        assert classify_control_intent("talk to human") == ControlIntent.AGENT

    def test_free_text_is_not_classified(self):
        assert classify_control_intent("I need an SUV from Lekki tomorrow") is None

    def test_long_messages_are_never_classified(self):
        text = "yes " + " ".join(["really"] * MAX_CONTROL_TOKENS)
        assert not is_affirmative(text)
        assert classify_control_intent(text) is None

    def test_empty_text(self):
        assert classify_control_intent("   ") is None
