"""
Tests for the combat session state machine.
Initiative rolls are patched at arbiter.core.initiative.roll_die.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from arbiter.core.conditions import Condition, ConditionType
from arbiter.core.errors import (
    CombatAlreadyActiveError,
    CombatNotActiveError,
    CombatantNotFoundError,
    ConcurrencyConflictError,
    InvariantViolationError,
    ResourceExhaustedError,
    RuleViolationError,
    ValidationError,
)
from arbiter.core.initiative import spawn_monster


def start_with_rolls(session, characters, monsters, rolls, now):
    with patch("arbiter.core.initiative.roll_die", side_effect=rolls):
        return session.start(characters, monsters, now)


# ==================== Party Fixtures ====================

@pytest.fixture
def party(fighter, cleric):
    return {fighter.id: fighter, cleric.id: cleric}


@pytest.fixture
def started(session, fighter, cleric, goblin, party, now):
    """Order: Cora (15), Aria (11), goblin (7)."""
    start_with_rolls(session, [fighter, cleric], [goblin], [10, 15, 5], now)
    return session


class TestStart:
    """Tests for starting combat."""

    def test_order_by_initiative(self, started):
        """Highest initiative goes first."""
        assert [e.combatant_id for e in started.turn_order] == ["cora", "aria", "goblin-1"]
        assert [e.initiative for e in started.turn_order] == [15, 11, 7]
        assert started.current_combatant_id == "cora"
        assert started.round == 1

    def test_dex_breaks_ties(self, session, fighter, goblin, now):
        """Equal totals go to the higher Dexterity score."""
        start_with_rolls(session, [fighter], [goblin], [10, 9], now)
        assert [e.combatant_id for e in session.turn_order] == ["goblin-1", "aria"]

    def test_monsters_are_embedded(self, started, goblin):
        """Monster state lives in its turn entry; characters don't."""
        assert started.find_entry("goblin-1").creature is goblin
        assert started.find_entry("aria").creature is None

    def test_start_twice(self, started, fighter, now):
        """An active session can't be started again."""
        with pytest.raises(CombatAlreadyActiveError):
            started.start([fighter], [], now)

    def test_start_without_combatants(self, session, now):
        """At least one combatant is required."""
        with pytest.raises(ValidationError):
            session.start([], [], now)
        assert session.is_active is False

    def test_turn_started_at(self, started, now):
        """The first turn starts at the request time."""
        assert started.turn_started_at == now


class TestAdvance:
    """Tests for moving the turn pointer."""

    def test_advance_moves_to_next(self, started, party, now):
        """End of Cora's turn hands it to Aria."""
        later = now + timedelta(minutes=5)
        change = started.advance(party, later)
        assert change.previous_id == "cora"
        assert change.current_id == "aria"
        assert change.new_round is False
        assert started.turn_started_at == later

    def test_wraparound_starts_new_round(self, started, party, fighter, now):
        """Past the last entry is round 2, Cora is up again with a fresh turn clock."""
        first = started.turn_order[0].combatant_id
        assert started.turn_started_at == now
        started.advance(party, now + timedelta(minutes=1))
        started.advance(party, now + timedelta(minutes=2))
        fighter.turn.reaction_used = True
        later = now + timedelta(minutes=3)
        change = started.advance(party, later)
        assert change.new_round is True
        assert started.round == 2
        assert started.current_turn_index == 0
        assert change.current_id == first == "cora"
        assert started.turn_started_at == later
        assert fighter.turn.reaction_used is False

    def test_incoming_resources_reset(self, started, party, fighter, now):
        """Aria's action comes back at the start of her turn."""
        fighter.turn.action_used = True
        started.advance(party, now)
        assert fighter.turn.action_used is False
        assert fighter.turn.movement_remaining == 30

    def test_advance_while_inactive(self, session, party, now):
        """Nothing to advance."""
        with pytest.raises(CombatNotActiveError):
            session.advance(party, now)

    def test_dodging_ends_with_own_turn(self, started, party, cleric, now):
        """The outgoing combatant stops dodging."""
        cleric.add_condition(Condition(ConditionType.DODGING))
        started.advance(party, now)
        assert not cleric.has_condition(ConditionType.DODGING)

    def test_help_expires_when_helper_turn_starts(self, started, party, fighter, now):
        """Help from Cora lasts until Cora's next turn."""
        fighter.add_condition(Condition(ConditionType.HELPED, source_id="cora"))
        started.advance(party, now)
        started.advance(party, now)
        assert fighter.has_condition(ConditionType.HELPED)
        started.advance(party, now)
        assert not fighter.has_condition(ConditionType.HELPED)

    def test_skip_records_last_skip(self, started, party, now):
        """A skip advances and remembers who was skipped."""
        change = started.skip(party, now)
        assert change.skipped is True
        assert change.current_id == "aria"
        assert started.last_skip["combatant_id"] == "cora"
        assert started.last_skip["round"] == 1


class TestInvariants:
    """Tests for corruption detection and optimistic checks."""

    def test_bad_index_deactivates(self, started, party, now):
        """An out-of-range index is reported, never repaired."""
        started.current_turn_index = 7
        with pytest.raises(InvariantViolationError):
            started.advance(party, now)
        assert started.is_active is False
        assert started.deactivation_reason == "Turn index is outside the turn order"

    def test_empty_order_deactivates(self, started, party):
        """An active session with nobody in it is corrupt."""
        started.turn_order = []
        with pytest.raises(InvariantViolationError):
            started.check_integrity(party)
        assert started.is_active is False

    def test_dangling_condition_source(self, started, party, fighter):
        """A grapple by a creature that doesn't exist is corruption."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="ghost"))
        with pytest.raises(InvariantViolationError) as exc_info:
            started.check_integrity(party)
        assert exc_info.value.details["dangling"][0]["condition"] == "grappled:ghost"

    def test_missing_character(self, started, fighter):
        """A turn entry for a character that isn't in the lobby is corruption."""
        with pytest.raises(InvariantViolationError):
            started.check_integrity({fighter.id: fighter})

    def test_stale_round(self, started):
        """A request against an old round conflicts."""
        started.check_expected(1, 0)
        with pytest.raises(ConcurrencyConflictError):
            started.check_expected(2, None)
        with pytest.raises(ConcurrencyConflictError):
            started.check_expected(None, 1)


class TestRosterChanges:
    """Tests for adding and removing combatants mid-fight."""

    def test_add_keeps_current_combatant(self, started, party, reference, now):
        """A faster newcomer doesn't steal the turn."""
        started.advance(party, now)
        newcomer = spawn_monster(reference.get_monster("goblin"), "goblin-2")
        with patch("arbiter.core.initiative.roll_die", return_value=20):
            started.add_combatants([newcomer])
        assert started.turn_order[0].combatant_id == "goblin-2"
        assert started.current_combatant_id == "aria"
        assert started.current_turn_index == 2

    def test_add_duplicate(self, started, goblin):
        """A combatant can only be in the order once."""
        with pytest.raises(ValidationError):
            started.add_combatants([goblin])

    def test_remove_current_hands_turn_on(self, started, party, now):
        """Removing Cora on her turn gives it to Aria."""
        result = started.remove_combatant("cora", party, now)
        assert result["turn_change"]["current"] == "aria"
        assert started.current_combatant_id == "aria"
        assert started.current_turn_index == 0

    def test_remove_earlier_entry_keeps_pointer(self, started, party, now):
        """Removing someone who already went shifts the index back."""
        started.advance(party, now)
        started.remove_combatant("cora", party, now)
        assert started.current_combatant_id == "aria"
        assert started.current_turn_index == 0

    def test_remove_releases_grapples(self, started, party, fighter, now):
        """Conditions the removed combatant imposed go with it."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="goblin-1"))
        result = started.remove_combatant("goblin-1", party, now)
        assert result["released"] == [{"creature_id": "aria", "condition": "grappled:goblin-1"}]
        assert fighter.conditions == []

    def test_remove_last_ends_combat(self, session, fighter, now):
        """Nobody left, no combat."""
        start_with_rolls(session, [fighter], [], [10], now)
        session.remove_combatant("aria", {fighter.id: fighter}, now)
        assert session.is_active is False

    def test_remove_unknown(self, started, party, now):
        """Unknown ids are reported."""
        with pytest.raises(CombatantNotFoundError):
            started.remove_combatant("nobody", party, now)


class TestEnd:
    """Tests for ending combat."""

    def test_end_strips_combat_only_conditions(self, started, party, fighter):
        """Dodging and monster grapples go; prone stays."""
        fighter.add_condition(Condition(ConditionType.DODGING))
        fighter.add_condition(Condition(ConditionType.PRONE))
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="goblin-1"))
        summary = started.end(party)
        assert [str(c) for c in fighter.conditions] == ["prone"]
        assert summary["released"] == [{"creature_id": "aria", "condition": "grappled:goblin-1"}]
        assert started.is_active is False
        assert started.turn_order == []

    def test_end_inactive(self, session, party):
        """Ending twice is refused."""
        with pytest.raises(CombatNotActiveError):
            session.end(party)


class TestLegendaryAndLair:
    """Tests for legendary and lair actions."""

    @pytest.fixture
    def dragon_fight(self, session, fighter, dragon, now):
        start_with_rolls(session, [fighter], [dragon], [15, 1], now)
        return session

    def test_spend_and_exhaust(self, dragon_fight, dragon):
        """Three points, then nothing left."""
        result = dragon_fight.use_legendary_action("dragon-1")
        assert result["legendary_actions"]["uses_remaining"] == 2
        dragon_fight.use_legendary_action("dragon-1", cost=2)
        with pytest.raises(ResourceExhaustedError):
            dragon_fight.use_legendary_action("dragon-1")
        assert dragon.legendary_actions.uses_remaining == 0

    def test_refill_on_own_turn(self, dragon_fight, dragon, fighter, now):
        """Points come back when the dragon's turn starts."""
        dragon_fight.use_legendary_action("dragon-1", cost=3)
        dragon_fight.advance({fighter.id: fighter}, now)
        assert dragon_fight.current_combatant_id == "dragon-1"
        assert dragon.legendary_actions.uses_remaining == 3

    def test_not_on_own_turn(self, dragon_fight, fighter, now):
        """Legendary actions happen on other creatures' turns."""
        dragon_fight.advance({fighter.id: fighter}, now)
        with pytest.raises(RuleViolationError) as exc_info:
            dragon_fight.use_legendary_action("dragon-1")
        assert exc_info.value.details["rule"] == "legendary_action"

    def test_goblins_have_none(self, started):
        """Ordinary monsters can't take legendary actions."""
        with pytest.raises(RuleViolationError):
            started.use_legendary_action("goblin-1")

    def test_lair_once_per_round(self, dragon_fight, fighter, now):
        """A second lair action waits for the next round."""
        assert dragon_fight.lair_action_available is True
        dragon_fight.use_lair_action("dragon-1")
        assert dragon_fight.lair_action_available is False
        with pytest.raises(RuleViolationError):
            dragon_fight.use_lair_action("dragon-1")
        dragon_fight.advance({fighter.id: fighter}, now)
        dragon_fight.advance({fighter.id: fighter}, now)
        assert dragon_fight.round == 2
        assert dragon_fight.use_lair_action("dragon-1") == {"monster_id": "dragon-1", "round": 2}
