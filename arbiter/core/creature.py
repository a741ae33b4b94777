"""
Character Resource Ledger.

CreatureState is the combat projection of a player character or monster:
HP and temporary HP, conditions, the per-turn action economy, spell slot
usage, death saves and concentration.

Invariants kept by every mutation:
- 0 <= current_hp <= max_hp
- death save counters are zero whenever current_hp > 0
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from arbiter.core.conditions import (
    Condition,
    ConditionType,
    get_condition_resistances,
    get_effective_speed,
    parse_conditions,
    serialize_conditions,
    without_turn_scoped,
)
from arbiter.core.death_saves import DeathSaveState, take_damage_while_dying
from arbiter.core.errors import ResourceExhaustedError, RuleViolationError, ValidationError
from arbiter.core.legendary import LegendaryPool
from arbiter.core.rules_engine import (
    ABILITY_SCORES,
    calculate_ability_modifier,
    calculate_proficiency_bonus,
    normalize_ability,
)
from arbiter.core.spell_slots import get_slot_summary


class CreatureKind(str, Enum):
    CHARACTER = "character"
    MONSTER = "monster"


class ActionResource(str, Enum):
    """Independent parts of the per-turn action economy."""
    ACTION = "action"
    BONUS_ACTION = "bonus_action"
    REACTION = "reaction"
    MOVEMENT = "movement"


@dataclass
class TurnResources:
    """Per-turn flags, reset at the start of the creature's own turn."""
    action_used: bool = False
    bonus_action_used: bool = False
    reaction_used: bool = False
    movement_remaining: int = 0
    bonus_action_spell_cast: bool = False
    action_spell_cast: bool = False
    attack_action_taken: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_used": self.action_used,
            "bonus_action_used": self.bonus_action_used,
            "reaction_used": self.reaction_used,
            "movement_remaining": self.movement_remaining,
            "bonus_action_spell_cast": self.bonus_action_spell_cast,
            "action_spell_cast": self.action_spell_cast,
            "attack_action_taken": self.attack_action_taken,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TurnResources":
        data = data or {}
        return cls(
            action_used=data.get("action_used", False),
            bonus_action_used=data.get("bonus_action_used", False),
            reaction_used=data.get("reaction_used", False),
            movement_remaining=data.get("movement_remaining", 0),
            bonus_action_spell_cast=data.get("bonus_action_spell_cast", False),
            action_spell_cast=data.get("action_spell_cast", False),
            attack_action_taken=data.get("attack_action_taken", False),
        )


@dataclass
class DamageOutcome:
    """What a single application of damage did to the ledger."""
    amount: int
    temp_hp_absorbed: int = 0
    hp_lost: int = 0
    previous_hp: int = 0
    current_hp: int = 0
    dropped_to_zero: bool = False
    instant_death: bool = False
    death_save_failures_added: int = 0
    died: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "temp_hp_absorbed": self.temp_hp_absorbed,
            "hp_lost": self.hp_lost,
            "previous_hp": self.previous_hp,
            "current_hp": self.current_hp,
            "dropped_to_zero": self.dropped_to_zero,
            "instant_death": self.instant_death,
            "death_save_failures_added": self.death_save_failures_added,
            "died": self.died,
        }


@dataclass
class HealingOutcome:
    amount: int
    healed: int
    previous_hp: int
    current_hp: int
    regained_consciousness: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "healed": self.healed,
            "previous_hp": self.previous_hp,
            "current_hp": self.current_hp,
            "regained_consciousness": self.regained_consciousness,
        }


def _default_abilities() -> Dict[str, int]:
    return {name: 10 for name in ABILITY_SCORES}


@dataclass
class CreatureState:
    """
    The ledger for one creature.

    Attributes:
        id: Character id, or generated id for a monster instance
        kind: Player character or ephemeral monster
        caster_type: "full", "half", "pact" or None; selects the slot table
        spell_slots_used: {spell level: slots spent}
        resistances/immunities/vulnerabilities: free-text damage entries
        save_proficiencies: abilities the creature adds proficiency to
        saving_throw_bonuses: flat save bonuses (monster stat blocks)
    """
    id: str
    name: str
    kind: CreatureKind = CreatureKind.CHARACTER
    lobby_id: Optional[str] = None
    abilities: Dict[str, int] = field(default_factory=_default_abilities)
    level: int = 1
    character_class: str = ""
    race: str = ""
    max_hp: int = 10
    current_hp: int = 10
    temp_hp: int = 0
    armor_class: int = 10
    speed: int = 30
    conditions: List[Condition] = field(default_factory=list)
    turn: TurnResources = field(default_factory=TurnResources)
    caster_type: Optional[str] = None
    spellcasting_ability: Optional[str] = None
    spell_slots_used: Dict[int, int] = field(default_factory=dict)
    death_saves: DeathSaveState = field(default_factory=DeathSaveState)
    concentrating_on: Optional[str] = None
    resistances: List[str] = field(default_factory=list)
    immunities: List[str] = field(default_factory=list)
    vulnerabilities: List[str] = field(default_factory=list)
    condition_immunities: List[str] = field(default_factory=list)
    save_proficiencies: List[str] = field(default_factory=list)
    saving_throw_bonuses: Dict[str, int] = field(default_factory=dict)
    equipment: List[str] = field(default_factory=list)
    proficiency_bonus_override: Optional[int] = None
    monster_slug: Optional[str] = None
    legendary_resistance: Optional[LegendaryPool] = None
    legendary_actions: Optional[LegendaryPool] = None
    has_lair_actions: bool = False

    # ---------------------------------------------------------------- queries

    @property
    def is_monster(self) -> bool:
        return self.kind == CreatureKind.MONSTER

    @property
    def is_dead(self) -> bool:
        return self.death_saves.is_dead

    @property
    def is_dying(self) -> bool:
        return self.current_hp == 0 and not self.is_dead and not self.death_saves.is_stable

    @property
    def proficiency_bonus(self) -> int:
        if self.proficiency_bonus_override is not None:
            return self.proficiency_bonus_override
        return calculate_proficiency_bonus(self.level)

    @property
    def effective_speed(self) -> int:
        return get_effective_speed(self.speed, self.conditions)

    def ability_score(self, ability: str) -> int:
        return self.abilities.get(normalize_ability(ability), 10)

    def ability_modifier(self, ability: str) -> int:
        return calculate_ability_modifier(self.ability_score(ability))

    def saving_throw_bonus(self, ability: str) -> int:
        ability = normalize_ability(ability)
        if ability in self.saving_throw_bonuses:
            return self.saving_throw_bonuses[ability]
        bonus = self.ability_modifier(ability)
        if ability in self.save_proficiencies:
            bonus += self.proficiency_bonus
        return bonus

    def has_condition(self, kind: ConditionType) -> bool:
        return any(c.kind == kind for c in self.conditions)

    def is_immune_to_condition(self, kind: ConditionType) -> bool:
        return kind.value in {c.lower() for c in self.condition_immunities}

    def all_resistances(self) -> List[str]:
        """Stat-block resistances plus those granted by conditions."""
        return list(self.resistances) + get_condition_resistances(self.conditions)

    # ------------------------------------------------------------- hit points

    def apply_damage(self, amount: int, critical: bool = False) -> DamageOutcome:
        """
        Apply final (post-pipeline) damage.

        Temporary HP absorbs first. Dropping to 0 knocks a character
        unconscious with fresh death saves, unless the leftover damage is at
        least max HP, which kills outright. Monsters die at 0 HP.
        """
        if amount < 0:
            raise ValidationError("amount", "Damage cannot be negative", amount)

        outcome = DamageOutcome(amount=amount, previous_hp=self.current_hp, current_hp=self.current_hp)
        if self.is_dead or amount == 0:
            return outcome

        absorbed = min(self.temp_hp, amount)
        self.temp_hp -= absorbed
        remaining = amount - absorbed
        outcome.temp_hp_absorbed = absorbed

        if remaining == 0:
            return outcome

        if self.current_hp == 0:
            # Already down
            if remaining >= self.max_hp or self.is_monster:
                self.die()
                outcome.instant_death = remaining >= self.max_hp
            else:
                result = take_damage_while_dying(self.death_saves, was_critical=critical)
                outcome.death_save_failures_added = result["failures_added"]
            outcome.died = self.is_dead
            return outcome

        hp_lost = min(self.current_hp, remaining)
        overage = remaining - hp_lost
        self.current_hp -= hp_lost
        outcome.hp_lost = hp_lost
        outcome.current_hp = self.current_hp

        if self.current_hp == 0:
            outcome.dropped_to_zero = True
            if overage >= self.max_hp:
                outcome.instant_death = True
                self.die()
            elif self.is_monster:
                self.die()
            else:
                self.death_saves.reset()
                if not self.has_condition(ConditionType.UNCONSCIOUS):
                    self.conditions.append(Condition(ConditionType.UNCONSCIOUS))
            outcome.died = self.is_dead

        return outcome

    def die(self) -> None:
        """Mark the creature dead and clear what death ends."""
        self.current_hp = 0
        self.temp_hp = 0
        self.death_saves.successes = 0
        self.death_saves.failures = 0
        self.death_saves.is_stable = False
        self.death_saves.is_dead = True
        self.concentrating_on = None
        self.conditions = [c for c in self.conditions if c.kind != ConditionType.UNCONSCIOUS]

    def apply_healing(self, amount: int) -> HealingOutcome:
        """Restore HP up to max. Healing from 0 HP restores consciousness."""
        if amount < 0:
            raise ValidationError("amount", "Healing cannot be negative", amount)
        if self.is_dead:
            raise RuleViolationError(
                f"{self.name} is dead and cannot be healed",
                rule="dead",
                details={"creature_id": self.id},
            )

        previous = self.current_hp
        self.current_hp = min(self.max_hp, self.current_hp + amount)
        outcome = HealingOutcome(
            amount=amount,
            healed=self.current_hp - previous,
            previous_hp=previous,
            current_hp=self.current_hp,
        )

        if previous == 0 and self.current_hp > 0:
            self.death_saves.reset()
            self.remove_condition(Condition(ConditionType.UNCONSCIOUS))
            outcome.regained_consciousness = True

        return outcome

    def grant_temp_hp(self, amount: int) -> bool:
        """Temporary HP doesn't stack; keep the larger value."""
        if amount < 0:
            raise ValidationError("amount", "Temporary HP cannot be negative", amount)
        if amount > self.temp_hp:
            self.temp_hp = amount
            return True
        return False

    # ------------------------------------------------------------- conditions

    def add_condition(self, condition: Condition) -> bool:
        """
        Add a condition. Returns False if it was already present.

        Exhaustion replaces any existing exhaustion level.
        """
        if self.is_immune_to_condition(condition.kind):
            raise RuleViolationError(
                f"{self.name} is immune to {condition.rule.name}",
                rule="condition_immunity",
                details={"creature_id": self.id, "condition": str(condition)},
            )
        if condition in self.conditions:
            return False
        if condition.kind == ConditionType.EXHAUSTION:
            self.conditions = [c for c in self.conditions if c.kind != ConditionType.EXHAUSTION]
        self.conditions.append(condition)
        return True

    def remove_condition(self, condition: Condition) -> List[Condition]:
        """
        Remove a condition and return what was removed.

        A bare kind (no source, no level) removes every instance of that kind.
        """
        if condition.source_id is None and condition.level is None:
            removed = [c for c in self.conditions if c.kind == condition.kind]
        else:
            removed = [c for c in self.conditions if c == condition]
        self.conditions = [c for c in self.conditions if c not in removed]
        return removed

    # ---------------------------------------------------------- action economy

    def consume_action_resource(self, kind: ActionResource, amount: int = 0) -> None:
        """Spend one part of this turn's action economy, or raise."""
        kind = ActionResource(kind)
        if kind == ActionResource.ACTION:
            if self.turn.action_used:
                raise ResourceExhaustedError("action", available=0, required=1)
            self.turn.action_used = True
        elif kind == ActionResource.BONUS_ACTION:
            if self.turn.bonus_action_used:
                raise ResourceExhaustedError("bonus_action", available=0, required=1)
            self.turn.bonus_action_used = True
        elif kind == ActionResource.REACTION:
            if self.turn.reaction_used:
                raise ResourceExhaustedError("reaction", available=0, required=1)
            self.turn.reaction_used = True
        elif kind == ActionResource.MOVEMENT:
            if amount < 0:
                raise ValidationError("movement_feet", "Movement cannot be negative", amount)
            if amount > self.turn.movement_remaining:
                raise ResourceExhaustedError(
                    "movement",
                    available=self.turn.movement_remaining,
                    required=amount,
                    message=f"Not enough movement: {amount} ft needed, {self.turn.movement_remaining} ft left",
                )
            self.turn.movement_remaining -= amount

    def has_resource(self, kind: ActionResource) -> bool:
        if kind == ActionResource.ACTION:
            return not self.turn.action_used
        if kind == ActionResource.BONUS_ACTION:
            return not self.turn.bonus_action_used
        if kind == ActionResource.REACTION:
            return not self.turn.reaction_used
        return self.turn.movement_remaining > 0

    def reset_turn_resources(self) -> None:
        """Start-of-own-turn refresh. Turn-scoped conditions expire."""
        self.conditions = without_turn_scoped(self.conditions)
        self.turn = TurnResources(movement_remaining=self.effective_speed)

    # ------------------------------------------------------------- spell slots

    def slot_summary(self) -> Dict[int, Dict[str, int]]:
        return get_slot_summary(self.caster_type, self.level, self.spell_slots_used)

    # ---------------------------------------------------------------- output

    def snapshot(self) -> Dict[str, Any]:
        """
        State returned by every mutating call.

        Death saves are only included while the creature is at 0 HP.
        """
        data = {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "current_hp": self.current_hp,
            "max_hp": self.max_hp,
            "temp_hp": self.temp_hp,
            "armor_class": self.armor_class,
            "conditions": serialize_conditions(self.conditions),
            "resources": {
                "action": not self.turn.action_used,
                "bonus_action": not self.turn.bonus_action_used,
                "reaction": not self.turn.reaction_used,
                "movement_remaining": self.turn.movement_remaining,
                "bonus_action_spell_cast": self.turn.bonus_action_spell_cast,
            },
            "concentrating_on": self.concentrating_on,
            "is_dead": self.is_dead,
        }
        slots = self.slot_summary()
        if slots:
            data["spell_slots"] = {str(level): info for level, info in slots.items()}
        if self.current_hp == 0:
            data["death_saves"] = self.death_saves.to_dict()
        if self.legendary_resistance:
            data["legendary_resistance"] = self.legendary_resistance.to_dict()
        if self.legendary_actions:
            data["legendary_actions"] = self.legendary_actions.to_dict()
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Full state for embedding in storage (monster turn entries)."""
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "lobby_id": self.lobby_id,
            "abilities": dict(self.abilities),
            "level": self.level,
            "character_class": self.character_class,
            "race": self.race,
            "max_hp": self.max_hp,
            "current_hp": self.current_hp,
            "temp_hp": self.temp_hp,
            "armor_class": self.armor_class,
            "speed": self.speed,
            "conditions": serialize_conditions(self.conditions),
            "turn": self.turn.to_dict(),
            "caster_type": self.caster_type,
            "spellcasting_ability": self.spellcasting_ability,
            "spell_slots_used": {str(k): v for k, v in self.spell_slots_used.items()},
            "death_saves": self.death_saves.to_dict(),
            "concentrating_on": self.concentrating_on,
            "resistances": list(self.resistances),
            "immunities": list(self.immunities),
            "vulnerabilities": list(self.vulnerabilities),
            "condition_immunities": list(self.condition_immunities),
            "save_proficiencies": list(self.save_proficiencies),
            "saving_throw_bonuses": dict(self.saving_throw_bonuses),
            "equipment": list(self.equipment),
            "proficiency_bonus_override": self.proficiency_bonus_override,
            "monster_slug": self.monster_slug,
            "legendary_resistance": self.legendary_resistance.to_dict() if self.legendary_resistance else None,
            "legendary_actions": self.legendary_actions.to_dict() if self.legendary_actions else None,
            "has_lair_actions": self.has_lair_actions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreatureState":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            kind=CreatureKind(data.get("kind", CreatureKind.CHARACTER.value)),
            lobby_id=data.get("lobby_id"),
            abilities=dict(data.get("abilities") or _default_abilities()),
            level=data.get("level", 1),
            character_class=data.get("character_class", ""),
            race=data.get("race", ""),
            max_hp=data.get("max_hp", 10),
            current_hp=data.get("current_hp", data.get("max_hp", 10)),
            temp_hp=data.get("temp_hp", 0),
            armor_class=data.get("armor_class", 10),
            speed=data.get("speed", 30),
            conditions=parse_conditions(data.get("conditions")),
            turn=TurnResources.from_dict(data.get("turn")),
            caster_type=data.get("caster_type"),
            spellcasting_ability=data.get("spellcasting_ability"),
            spell_slots_used={int(k): v for k, v in (data.get("spell_slots_used") or {}).items()},
            death_saves=DeathSaveState.from_dict(data.get("death_saves")),
            concentrating_on=data.get("concentrating_on"),
            resistances=list(data.get("resistances") or []),
            immunities=list(data.get("immunities") or []),
            vulnerabilities=list(data.get("vulnerabilities") or []),
            condition_immunities=list(data.get("condition_immunities") or []),
            save_proficiencies=list(data.get("save_proficiencies") or []),
            saving_throw_bonuses=dict(data.get("saving_throw_bonuses") or {}),
            equipment=list(data.get("equipment") or []),
            proficiency_bonus_override=data.get("proficiency_bonus_override"),
            monster_slug=data.get("monster_slug"),
            legendary_resistance=LegendaryPool.from_dict(data.get("legendary_resistance")),
            legendary_actions=LegendaryPool.from_dict(data.get("legendary_actions")),
            has_lair_actions=data.get("has_lair_actions", False),
        )
