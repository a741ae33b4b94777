"""Tests for turn timeout classification."""
from datetime import timedelta

from arbiter.config import Settings
from arbiter.core.turn_timeout import TurnTimeoutStatus, classify_turn


class FixedSettings(Settings):
    TURN_NUDGE_AFTER_MINUTES = 120
    TURN_SKIP_AFTER_MINUTES = 240
    AUTO_SKIP_GRACE_MINUTES = 30


class TestClassifyTurn:
    """Tests for the nudge and skip thresholds."""

    def test_just_under_nudge(self, now):
        """1h59m is still a normal turn."""
        result = classify_turn(now, now + timedelta(minutes=119), True, FixedSettings())
        assert result.status == TurnTimeoutStatus.NORMAL

    def test_nudge_at_two_hours(self, now):
        """Player turns get a nudge at exactly 2h."""
        result = classify_turn(now, now + timedelta(hours=2), True, FixedSettings())
        assert result.status == TurnTimeoutStatus.NUDGE_RECOMMENDED
        assert result.elapsed_seconds == 7200

    def test_skip_at_four_hours(self, now):
        """Any turn at 4h should be skipped."""
        result = classify_turn(now, now + timedelta(hours=4), True, FixedSettings())
        assert result.status == TurnTimeoutStatus.SKIP_REQUIRED

    def test_monsters_are_not_nudged(self, now):
        """A monster turn at 3h is normal; at 4h it must be skipped."""
        settings = FixedSettings()
        assert classify_turn(now, now + timedelta(hours=3), False, settings).status == TurnTimeoutStatus.NORMAL
        assert classify_turn(now, now + timedelta(hours=4), False, settings).status == TurnTimeoutStatus.SKIP_REQUIRED

    def test_no_turn_in_progress(self, now):
        """Without a start time there's nothing to time."""
        result = classify_turn(None, now, True, FixedSettings())
        assert result.status == TurnTimeoutStatus.NORMAL
        assert result.auto_skip_at is None

    def test_auto_skip_deadline(self, now):
        """Skip threshold plus grace, counted from the turn start."""
        result = classify_turn(now, now + timedelta(hours=1), True, FixedSettings())
        assert result.auto_skip_at == now + timedelta(minutes=270)
        assert result.seconds_until_auto_skip == 210 * 60
        assert result.to_dict()["status"] == "normal"
