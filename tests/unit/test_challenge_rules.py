"""Challenge lifecycle rules: validation, progress, completion and transitions."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from habitz.challenges.lifecycle import (
    challenge_progress,
    is_completed,
    participant_state,
    validate_challenge,
    validate_transition,
)
from habitz.errors import ConflictError, ValidationError


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestChallengeProgress:
    """Elapsed share of the challenge window."""

    def test_midpoint(self):
        assert challenge_progress(date(2024, 1, 1), date(2024, 1, 11), _utc(2024, 1, 6)) == 50

    def test_before_start_is_zero(self):
        assert challenge_progress(date(2024, 1, 1), date(2024, 1, 11), _utc(2023, 12, 25)) == 0

    def test_at_start_is_zero(self):
        assert challenge_progress(date(2024, 1, 1), date(2024, 1, 11), _utc(2024, 1, 1)) == 0

    def test_after_end_is_hundred(self):
        assert challenge_progress(date(2024, 1, 1), date(2024, 1, 11), _utc(2024, 2, 1)) == 100

    def test_single_day_challenge(self):
        assert challenge_progress(date(2024, 1, 1), date(2024, 1, 1), _utc(2024, 1, 1, 12)) == 100

    def test_rounds_to_nearest(self):
        # 1 of 3 days elapsed
        assert challenge_progress(date(2024, 1, 1), date(2024, 1, 4), _utc(2024, 1, 2)) == 33


class TestCompletion:
    """End date is still active; the day after is completed."""

    def test_end_date_is_active(self):
        assert is_completed(date(2024, 1, 11), _utc(2024, 1, 11, 23, 59)) is False

    def test_day_after_end_is_completed(self):
        assert is_completed(date(2024, 1, 11), _utc(2024, 1, 12, 0, 0)) is True

    def test_summary_completes_early(self):
        assert is_completed(date(2024, 1, 11), _utc(2024, 1, 5), has_summary=True) is True

    def test_participant_state(self):
        assert participant_state("pending", date(2024, 1, 11), _utc(2024, 1, 5)) == "pending"
        assert participant_state("declined", date(2024, 1, 11), _utc(2024, 1, 5)) == "declined"
        assert participant_state("accepted", date(2024, 1, 11), _utc(2024, 1, 5)) == "active"
        assert participant_state("accepted", date(2024, 1, 11), _utc(2024, 1, 20)) == "completed"


class TestValidation:
    """Creation-time validation."""

    def test_valid_challenge(self):
        validate_challenge(date(2024, 1, 1), date(2024, 1, 1), False, None)
        validate_challenge(date(2024, 1, 1), date(2024, 1, 2), True, Decimal("5"))

    def test_start_after_end(self):
        with pytest.raises(ValidationError):
            validate_challenge(date(2024, 1, 2), date(2024, 1, 1), False, None)

    def test_bet_needs_positive_amount(self):
        with pytest.raises(ValidationError):
            validate_challenge(date(2024, 1, 1), date(2024, 1, 2), True, None)
        with pytest.raises(ValidationError):
            validate_challenge(date(2024, 1, 1), date(2024, 1, 2), True, Decimal("0"))

    def test_amount_without_bet(self):
        with pytest.raises(ValidationError):
            validate_challenge(date(2024, 1, 1), date(2024, 1, 2), False, Decimal("5"))


class TestTransitions:
    """pending -> accepted | declined; both are terminal."""

    def test_pending_can_accept_or_decline(self):
        validate_transition("pending", "accepted")
        validate_transition("pending", "declined")

    @pytest.mark.parametrize("current", ["accepted", "declined"])
    def test_answered_is_terminal(self, current):
        with pytest.raises(ConflictError):
            validate_transition(current, "accepted")

    def test_unknown_status(self):
        with pytest.raises(ConflictError):
            validate_transition("expired", "accepted")
