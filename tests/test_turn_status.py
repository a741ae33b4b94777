"""Tests for the "my turn" summary."""
from datetime import timedelta
from unittest.mock import patch

import pytest

from arbiter.core.conditions import Condition, ConditionType
from arbiter.core.turn_status import available_verbs, build_turn_status, health_status


@pytest.fixture
def combat(session, fighter, cleric, goblin, now):
    """Order: Aria, goblin, Cora."""
    with patch("arbiter.core.initiative.roll_die", side_effect=[18, 1, 1]):
        session.start([fighter, cleric], [goblin], now)
    return session


class TestHealthStatus:
    """Tests for the coarse health labels."""

    def test_labels(self, make_character):
        """Thresholds at half and a quarter of max HP."""
        assert health_status(make_character(max_hp=20, current_hp=20)) == "healthy"
        assert health_status(make_character(max_hp=20, current_hp=10)) == "wounded"
        assert health_status(make_character(max_hp=20, current_hp=5)) == "critical"
        assert health_status(make_character(max_hp=20, current_hp=0)) == "unconscious"

    def test_dead(self, fighter):
        """Dead beats everything."""
        fighter.die()
        assert health_status(fighter) == "dead"


class TestAvailableVerbs:
    """Tests for the legal verb list."""

    def test_fresh_turn(self, combat, fighter):
        """Everything but casting for a fighter."""
        verbs = available_verbs(fighter, combat)
        assert "attack" in verbs
        assert "cast" not in verbs
        assert "move" in verbs
        assert verbs[-1] == "end_turn"

    def test_after_attack(self, combat, fighter):
        """The off-hand attack opens up once the action is spent."""
        fighter.turn.action_used = True
        fighter.turn.attack_action_taken = True
        verbs = available_verbs(fighter, combat)
        assert "attack" not in verbs
        assert "offhand_attack" in verbs

    def test_off_turn(self, combat, cleric):
        """Off-turn creatures can only react."""
        assert available_verbs(cleric, combat) == ["reaction"]

    def test_dying_on_own_turn(self, combat, fighter):
        """A dying character can roll or pass."""
        fighter.apply_damage(12)
        assert available_verbs(fighter, combat) == ["death_save", "end_turn"]

    def test_grappled_cannot_move(self, combat, fighter):
        """No move verb at speed 0."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="goblin-1"))
        assert "move" not in available_verbs(fighter, combat)


class TestBuildTurnStatus:
    """Tests for the full payload."""

    def test_payload(self, combat, fighter, cleric, goblin, reference, now):
        """Turn, party, enemies, timeout and suggestions in one call."""
        goblin.current_hp = 3
        roster = combat.roster({fighter.id: fighter, cleric.id: cleric})
        events = [f"event {i}" for i in range(8)]

        status = build_turn_status(
            fighter, combat, roster, events, now=now + timedelta(hours=2), reference=reference,
        )

        assert status["is_my_turn"] is True
        assert status["round"] == 1
        assert status["current_turn"]["combatant_id"] == "aria"
        assert [p["id"] for p in status["party_status"]] == ["cora"]
        assert status["enemies"] == [{"id": "goblin-1", "name": "Goblin", "status": "wounded", "ac": 15}]
        assert status["timeout"]["status"] == "nudge_recommended"
        assert "Attack the most wounded enemy in reach" in status["tactical_suggestions"]
        assert "Goblin is the most wounded enemy (3/7 HP)." in status["tactical_suggestions"]
        assert len(status["recent_events"]) == 5
        assert status["character"]["death_saves"] is None

    def test_out_of_combat(self, fighter, cleric):
        """Outside combat there's no turn or timeout."""
        status = build_turn_status(fighter, None, {fighter.id: fighter, cleric.id: cleric}, [])
        assert status["in_combat"] is False
        assert status["current_turn"] is None
        assert status["timeout"] is None

    def test_spellcasting_reminder(self, wizard):
        """Casters are reminded of their save DC."""
        status = build_turn_status(wizard, None, {wizard.id: wizard}, [])
        assert "Spell save DC 14" in status["rules_reminder"]["spellcasting"]
