"""Tests for dice rolling and notation parsing."""
from unittest.mock import patch

import pytest

from arbiter.core.dice import (
    parse_dice_notation,
    roll_d20,
    roll_damage,
    roll_die,
    roll_expression,
)


class TestRollDie:
    """Tests for single die rolls."""

    def test_roll_stays_in_range(self):
        """Every roll lands between 1 and the number of sides."""
        for _ in range(200):
            assert 1 <= roll_die(6) <= 6

    def test_invalid_die_raises(self):
        """A die needs at least one side."""
        with pytest.raises(ValueError):
            roll_die(0)


class TestRollD20:
    """Tests for d20 rolls with advantage and disadvantage."""

    def test_plain_roll_adds_modifier(self):
        """A single die plus the modifier."""
        with patch("arbiter.core.dice.roll_die", return_value=12):
            result = roll_d20(modifier=5)
        assert result.rolls == [12]
        assert result.total == 17

    def test_advantage_takes_higher(self):
        """Advantage rolls twice and keeps the higher die."""
        with patch("arbiter.core.dice.roll_die", side_effect=[5, 17]):
            result = roll_d20(modifier=1, advantage=True)
        assert result.rolls == [5, 17]
        assert result.total == 18

    def test_disadvantage_takes_lower(self):
        """Disadvantage rolls twice and keeps the lower die."""
        with patch("arbiter.core.dice.roll_die", side_effect=[5, 17]):
            result = roll_d20(disadvantage=True)
        assert result.total == 5

    def test_advantage_and_disadvantage_cancel(self):
        """Both together roll a single die."""
        with patch("arbiter.core.dice.roll_die", return_value=9) as mock_die:
            result = roll_d20(advantage=True, disadvantage=True)
        assert mock_die.call_count == 1
        assert result.advantage is False
        assert result.disadvantage is False

    def test_natural_20_and_1_flags(self):
        """Natural results are flagged from the kept die."""
        with patch("arbiter.core.dice.roll_die", return_value=20):
            assert roll_d20().natural_20 is True
        with patch("arbiter.core.dice.roll_die", return_value=1):
            assert roll_d20(modifier=10).natural_1 is True


class TestParseDiceNotation:
    """Tests for dice notation parsing."""

    def test_simple_notation(self):
        """'2d6+3' parses into one component with a modifier."""
        assert parse_dice_notation("2d6+3") == [(2, 6, 3)]

    def test_mixed_dice(self):
        """Several dice terms are kept apart."""
        assert parse_dice_notation("1d8+1d6") == [(1, 8, 0), (1, 6, 0)]

    def test_invalid_notation_raises(self):
        """Garbage is rejected."""
        with pytest.raises(ValueError):
            parse_dice_notation("banana")

    def test_empty_notation_raises(self):
        """Empty strings are rejected."""
        with pytest.raises(ValueError):
            parse_dice_notation("")


class TestRollDamage:
    """Tests for damage rolls."""

    def test_modifier_is_added(self):
        """Dice plus the ability modifier."""
        with patch("arbiter.core.dice.roll_die", return_value=4):
            result = roll_damage("1d8", modifier=3)
        assert result.total == 7

    def test_critical_doubles_dice_not_modifier(self):
        """A critical hit rolls twice the dice; the flat bonus is added once."""
        with patch("arbiter.core.dice.roll_die", return_value=3):
            result = roll_damage("2d6", critical=True, modifier=2)
        assert len(result.rolls) == 4
        assert result.total == 14
        assert result.is_critical is True

    def test_malformed_notation_falls_back_to_d6(self):
        """A bad reference entry still rolls damage."""
        with patch("arbiter.core.dice.roll_die", return_value=5):
            result = roll_damage("banana")
        assert result.used_fallback is True
        assert result.dice_notation == "1d6"
        assert result.total == 5

    def test_rolled_damage_is_at_least_one(self):
        """Penalties can't push rolled damage below 1."""
        with patch("arbiter.core.dice.roll_die", return_value=1):
            result = roll_damage("1d4-5")
        assert result.total == 1


class TestRollExpression:
    """Tests for free-form dice requests."""

    def test_expression_total(self):
        """'2d6+3' sums the dice and the modifier."""
        with patch("arbiter.core.dice.roll_die", return_value=4):
            result = roll_expression("2d6+3")
        assert result.expression == "2d6+3"
        assert result.total == 11
        assert result.to_dict()["rolls"] == [4, 4]

    def test_count_and_sides_are_clamped(self):
        """At most 100 dice of at most 100 sides."""
        result = roll_expression("500d1000")
        assert result.count == 100
        assert result.sides == 100
        assert len(result.rolls) == 100

    def test_tiny_die_is_raised_to_d2(self):
        """A d1 request becomes a d2."""
        result = roll_expression("3d1")
        assert result.sides == 2

    def test_unparseable_rolls_d20(self):
        """Anything unreadable rolls a single d20."""
        result = roll_expression("roll for initiative")
        assert result.count == 1
        assert result.sides == 20
        assert 1 <= result.total <= 20
