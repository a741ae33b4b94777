"""Tests for condition parsing, queries and side effects."""
import pytest

from arbiter.core.conditions import (
    Condition,
    ConditionType,
    add_condition_with_effects,
    find_dangling_references,
    get_attack_modifiers,
    get_condition_catalogue,
    get_effective_speed,
    get_save_modifiers,
    is_incapacitated,
    release_grapples,
    without_combat_only,
    without_turn_scoped,
)
from arbiter.core.errors import ValidationError


def conds(*names):
    return [Condition.parse(n) for n in names]


class TestConditionParsing:
    """Tests for Condition.parse and string rendering."""

    def test_plain_condition(self):
        """A bare name parses to its kind."""
        cond = Condition.parse("Prone")
        assert cond.kind == ConditionType.PRONE
        assert str(cond) == "prone"

    def test_sourced_condition_keeps_source_id(self):
        """'grappled:<id>' records who is grappling."""
        cond = Condition.parse("grappled:Orc-1")
        assert cond.kind == ConditionType.GRAPPLED
        assert cond.source_id == "Orc-1"
        assert str(cond) == "grappled:Orc-1"

    def test_exhaustion_level(self):
        """'exhaustion:3' parses the level; a bare name is level 1."""
        assert Condition.parse("exhaustion:3").level == 3
        assert Condition.parse("exhaustion").level == 1

    def test_exhaustion_level_out_of_range(self):
        """Exhaustion only goes to 6."""
        with pytest.raises(ValidationError):
            Condition.parse("exhaustion:9")

    def test_unknown_condition(self):
        """Unknown names are rejected."""
        with pytest.raises(ValidationError):
            Condition.parse("sparkly")

    def test_parameter_on_plain_condition(self):
        """Conditions without a parameter reject one."""
        with pytest.raises(ValidationError):
            Condition.parse("prone:orc-1")


class TestConditionQueries:
    """Tests for incapacitation, speed and save effects."""

    def test_stunned_is_incapacitated(self):
        """Stunned stops actions and reactions."""
        incapacitated, reasons = is_incapacitated(conds("stunned"))
        assert incapacitated is True
        assert reasons == ["Stunned"]

    def test_prone_is_not_incapacitated(self):
        """Prone creatures can still act."""
        assert is_incapacitated(conds("prone"))[0] is False

    def test_grappled_speed_is_zero(self):
        """Grappled creatures can't move."""
        assert get_effective_speed(30, conds("grappled:orc-1")) == 0

    def test_exhaustion_speed(self):
        """Level 2 halves speed, level 5 stops it."""
        assert get_effective_speed(30, conds("exhaustion:1")) == 30
        assert get_effective_speed(30, conds("exhaustion:2")) == 15
        assert get_effective_speed(30, conds("exhaustion:5")) == 0

    def test_paralyzed_auto_fails_dex_saves(self):
        """Paralysis fails Strength and Dexterity saves."""
        mods = get_save_modifiers(conds("paralyzed"), "dexterity")
        assert mods.auto_fail is True
        assert get_save_modifiers(conds("paralyzed"), "wis").auto_fail is False

    def test_exhaustion_three_imposes_save_disadvantage(self):
        """Level 3 exhaustion gives disadvantage on every save."""
        assert get_save_modifiers(conds("exhaustion:3"), "wisdom").disadvantage is True

    def test_dodging_grants_dex_advantage(self):
        """Dodging creatures have advantage on Dexterity saves."""
        assert get_save_modifiers(conds("dodging"), "dex").advantage is True


class TestAttackModifiers:
    """Tests for condition effects on attack rolls."""

    def test_prone_target_melee_advantage(self):
        """Melee attacks against a prone target have advantage."""
        mods = get_attack_modifiers([], conds("prone"), is_melee=True)
        assert mods.roll_mode == "advantage"

    def test_prone_target_ranged_disadvantage(self):
        """Ranged attacks against a prone target have disadvantage."""
        mods = get_attack_modifiers([], conds("prone"), is_melee=False)
        assert mods.roll_mode == "disadvantage"

    def test_advantage_and_disadvantage_cancel(self):
        """A poisoned attacker against a stunned target rolls normally."""
        mods = get_attack_modifiers(conds("poisoned"), conds("stunned"))
        assert mods.advantage is True
        assert mods.disadvantage is True
        assert mods.roll_mode == "normal"

    def test_paralyzed_target_melee_auto_crit(self):
        """Melee hits against a paralyzed target are critical."""
        assert get_attack_modifiers([], conds("paralyzed"), is_melee=True).auto_critical is True
        assert get_attack_modifiers([], conds("paralyzed"), is_melee=False).auto_critical is False


class TestConditionLifetimes:
    """Tests for combat-only and turn-scoped conditions."""

    def test_without_turn_scoped_keeps_sourced_help(self):
        """Self-imposed turn-scoped conditions drop; help from an ally waits for the helper."""
        remaining = without_turn_scoped(conds("disengaged", "helped:aria", "prone"))
        assert [str(c) for c in remaining] == ["helped:aria", "prone"]

    def test_without_combat_only(self):
        """Dodging and hidden end with combat; prone doesn't."""
        remaining = without_combat_only(conds("dodging", "hidden", "prone"))
        assert [str(c) for c in remaining] == ["prone"]


class TestConditionEffects:
    """Tests for engine-initiated consequences."""

    def test_stunning_a_grappler_releases_its_grapples(self, fighter, goblin):
        """Incapacitating a grappler frees the creatures it holds in the same operation."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id=goblin.id))
        roster = {fighter.id: fighter, goblin.id: goblin}

        change = add_condition_with_effects(goblin, Condition(ConditionType.STUNNED), roster)

        assert change.added == ["stunned"]
        assert change.released == [{"creature_id": fighter.id, "condition": f"grappled:{goblin.id}"}]
        assert fighter.conditions == []

    def test_incapacitation_ends_concentration(self, wizard):
        """An incapacitated caster stops concentrating."""
        wizard.concentrating_on = "Hold Person"
        change = add_condition_with_effects(wizard, Condition(ConditionType.UNCONSCIOUS), {wizard.id: wizard})
        assert change.concentration_ended == "Hold Person"
        assert wizard.concentrating_on is None

    def test_release_grapples_only_touches_grapples(self, fighter, goblin):
        """Frightened by the same source stays."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id=goblin.id))
        fighter.add_condition(Condition(ConditionType.FRIGHTENED, source_id=goblin.id))
        released = release_grapples(goblin.id, {fighter.id: fighter})
        assert len(released) == 1
        assert [str(c) for c in fighter.conditions] == [f"frightened:{goblin.id}"]

    def test_find_dangling_references(self, fighter):
        """A condition naming a creature that no longer exists is reported."""
        fighter.add_condition(Condition(ConditionType.GRAPPLED, source_id="ghost"))
        dangling = find_dangling_references({fighter.id: fighter}, [fighter.id])
        assert dangling == [{"creature_id": fighter.id, "condition": "grappled:ghost"}]


class TestConditionCatalogue:
    """Tests for the condition display table."""

    def test_every_condition_listed(self):
        """Each condition kind has an entry."""
        ids = {entry["id"] for entry in get_condition_catalogue()}
        assert ids == {kind.value for kind in ConditionType}

    def test_effects_are_generated(self):
        """Paralyzed lists its mechanics."""
        paralyzed = next(e for e in get_condition_catalogue() if e["id"] == "paralyzed")
        assert "Speed becomes 0" in paralyzed["effects"]
        assert "Melee hits against it are critical hits" in paralyzed["effects"]
