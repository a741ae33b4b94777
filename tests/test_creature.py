"""Tests for the creature resource ledger and death saving throws."""
from unittest.mock import patch

import pytest

from arbiter.core.conditions import Condition, ConditionType
from arbiter.core.creature import ActionResource, CreatureState
from arbiter.core.death_saves import (
    DeathSaveOutcome,
    DeathSaveState,
    roll_death_save,
    take_damage_while_dying,
)
from arbiter.core.errors import ResourceExhaustedError, RuleViolationError, ValidationError


class TestHitPoints:
    """Tests for damage and healing on the ledger."""

    def test_temp_hp_absorbs_first(self, fighter):
        """Temporary HP is spent before real HP."""
        fighter.temp_hp = 5
        outcome = fighter.apply_damage(8)
        assert outcome.temp_hp_absorbed == 5
        assert fighter.temp_hp == 0
        assert fighter.current_hp == 9

    def test_hp_never_negative(self, fighter):
        """HP stops at 0 and the character falls unconscious."""
        outcome = fighter.apply_damage(15)
        assert fighter.current_hp == 0
        assert outcome.dropped_to_zero is True
        assert outcome.died is False
        assert fighter.has_condition(ConditionType.UNCONSCIOUS)
        assert fighter.death_saves.is_clear

    def test_massive_damage_kills_outright(self, fighter):
        """Leftover damage of at least max HP is instant death."""
        outcome = fighter.apply_damage(24)
        assert outcome.instant_death is True
        assert fighter.is_dead
        assert not fighter.has_condition(ConditionType.UNCONSCIOUS)

    def test_damage_at_zero_adds_failures(self, fighter):
        """A hit on a dying character is a failure; a critical is two."""
        fighter.apply_damage(12)
        fighter.apply_damage(1)
        assert fighter.death_saves.failures == 1
        fighter.apply_damage(1, critical=True)
        assert fighter.death_saves.failures == 3
        assert fighter.is_dead

    def test_monster_dies_at_zero(self, goblin):
        """Monsters don't make death saves."""
        outcome = goblin.apply_damage(7)
        assert outcome.died is True
        assert goblin.is_dead

    def test_negative_damage_rejected(self, fighter):
        """Damage amounts are non-negative."""
        with pytest.raises(ValidationError):
            fighter.apply_damage(-1)

    def test_healing_caps_at_max(self, fighter):
        """Healing can't exceed max HP."""
        fighter.current_hp = 10
        outcome = fighter.apply_healing(20)
        assert fighter.current_hp == 12
        assert outcome.healed == 2

    def test_healing_from_zero_restores_consciousness(self, fighter):
        """Any healing at 0 HP wakes the character and clears death saves."""
        fighter.apply_damage(12)
        fighter.death_saves.failures = 2
        outcome = fighter.apply_healing(3)
        assert outcome.regained_consciousness is True
        assert fighter.current_hp == 3
        assert not fighter.has_condition(ConditionType.UNCONSCIOUS)
        assert fighter.death_saves.is_clear

    def test_dead_creatures_cannot_be_healed(self, fighter):
        """Healing the dead is a rule violation."""
        fighter.die()
        with pytest.raises(RuleViolationError) as exc_info:
            fighter.apply_healing(5)
        assert exc_info.value.details["rule"] == "dead"

    def test_temp_hp_does_not_stack(self, fighter):
        """The larger temporary HP value is kept."""
        assert fighter.grant_temp_hp(5) is True
        assert fighter.grant_temp_hp(3) is False
        assert fighter.temp_hp == 5


class TestLedgerConditions:
    """Tests for adding and removing conditions on a creature."""

    def test_duplicate_condition_not_added(self, fighter):
        """Adding the same condition twice is a no-op."""
        assert fighter.add_condition(Condition(ConditionType.PRONE)) is True
        assert fighter.add_condition(Condition(ConditionType.PRONE)) is False
        assert len(fighter.conditions) == 1

    def test_exhaustion_replaces_level(self, fighter):
        """Only one exhaustion level is tracked."""
        fighter.add_condition(Condition(ConditionType.EXHAUSTION, level=1))
        fighter.add_condition(Condition(ConditionType.EXHAUSTION, level=3))
        assert [str(c) for c in fighter.conditions] == ["exhaustion:3"]

    def test_condition_immunity(self, reference):
        """Immune creatures reject the condition."""
        from arbiter.core.initiative import spawn_monster

        elemental = spawn_monster(reference.get_monster("fire-elemental"), "elemental-1")
        with pytest.raises(RuleViolationError) as exc_info:
            elemental.add_condition(Condition(ConditionType.PARALYZED))
        assert exc_info.value.details["rule"] == "condition_immunity"

    def test_bare_kind_removes_every_instance(self, fighter):
        """Removing 'grappled' frees the creature from every grappler."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="orc-1"))
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="orc-2"))
        removed = fighter.remove_condition(Condition(ConditionType.GRAPPLED))
        assert len(removed) == 2
        assert fighter.conditions == []


class TestActionEconomy:
    """Tests for per-turn resources."""

    def test_action_consumed_once(self, fighter):
        """The action can be spent once per turn."""
        fighter.reset_turn_resources()
        fighter.consume_action_resource(ActionResource.ACTION)
        with pytest.raises(ResourceExhaustedError):
            fighter.consume_action_resource(ActionResource.ACTION)

    def test_resources_are_independent(self, fighter):
        """Spending the action leaves the bonus action and reaction."""
        fighter.reset_turn_resources()
        fighter.consume_action_resource(ActionResource.ACTION)
        assert fighter.has_resource(ActionResource.BONUS_ACTION)
        assert fighter.has_resource(ActionResource.REACTION)

    def test_movement_budget(self, fighter):
        """Movement is spent in feet and can't exceed what's left."""
        fighter.reset_turn_resources()
        fighter.consume_action_resource(ActionResource.MOVEMENT, 20)
        assert fighter.turn.movement_remaining == 10
        with pytest.raises(ResourceExhaustedError) as exc_info:
            fighter.consume_action_resource(ActionResource.MOVEMENT, 15)
        assert exc_info.value.details["available"] == 10
        assert exc_info.value.details["required"] == 15

    def test_reset_uses_effective_speed(self, fighter):
        """A grappled creature starts its turn with no movement."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="orc-1"))
        fighter.reset_turn_resources()
        assert fighter.turn.movement_remaining == 0

    def test_reset_drops_self_imposed_turn_conditions(self, fighter):
        """Disengaged ends when the creature's next turn starts."""
        fighter.add_condition(Condition(ConditionType.DISENGAGED))
        fighter.reset_turn_resources()
        assert fighter.conditions == []


class TestSnapshot:
    """Tests for creature snapshots."""

    def test_death_saves_only_at_zero(self, fighter):
        """Death save counters appear only while at 0 HP."""
        assert "death_saves" not in fighter.snapshot()
        fighter.apply_damage(12)
        assert fighter.snapshot()["death_saves"]["failures"] == 0

    def test_spell_slots_for_casters(self, wizard, fighter):
        """Casters show their slot table; others don't."""
        wizard.spell_slots_used[1] = 1
        slots = wizard.snapshot()["spell_slots"]
        assert slots["1"]["used"] == 1
        assert slots["3"]["total"] == 2
        assert "spell_slots" not in fighter.snapshot()

    def test_storage_round_trip(self, wizard):
        """to_dict/from_dict keep the ledger intact."""
        wizard.add_condition(Condition(ConditionType.GRAPPLED, source_id="orc-1"))
        wizard.spell_slots_used[2] = 1
        wizard.concentrating_on = "Hold Person"
        restored = CreatureState.from_dict(wizard.to_dict())
        assert restored.to_dict() == wizard.to_dict()


class TestDeathSaves:
    """Tests for death saving throws."""

    def test_success_on_ten(self):
        """10 or higher is a success."""
        state = DeathSaveState()
        with patch("arbiter.core.death_saves.roll_d20", return_value=10):
            result = roll_death_save(state)
        assert result.success is True
        assert state.successes == 1

    def test_natural_20_revives(self):
        """A natural 20 resets the counters and revives."""
        state = DeathSaveState(successes=1, failures=2)
        with patch("arbiter.core.death_saves.roll_d20", return_value=20):
            result = roll_death_save(state)
        assert result.outcome == DeathSaveOutcome.REVIVED
        assert state.is_clear

    def test_natural_1_counts_twice(self):
        """A natural 1 is two failures."""
        state = DeathSaveState()
        with patch("arbiter.core.death_saves.roll_d20", return_value=1):
            result = roll_death_save(state)
        assert state.failures == 2
        assert result.outcome == DeathSaveOutcome.CONTINUE

    def test_three_successes_stabilize(self):
        """The third success leaves the character stable."""
        state = DeathSaveState(successes=2)
        with patch("arbiter.core.death_saves.roll_d20", return_value=15):
            result = roll_death_save(state)
        assert result.outcome == DeathSaveOutcome.STABILIZED
        assert state.is_stable is True

    def test_three_failures_kill(self):
        """The third failure is death."""
        state = DeathSaveState(failures=2)
        with patch("arbiter.core.death_saves.roll_d20", return_value=5):
            result = roll_death_save(state)
        assert result.outcome == DeathSaveOutcome.DEAD
        assert state.is_dead is True

    def test_damage_ends_stability(self):
        """Taking damage while stable starts the dying again."""
        state = DeathSaveState(successes=3, is_stable=True)
        result = take_damage_while_dying(state)
        assert result["failures_added"] == 1
        assert state.is_stable is False
