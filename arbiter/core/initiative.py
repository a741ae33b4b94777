"""
Initiative System.

Rolls initiative for characters and monsters and keeps the turn order
sorted: highest initiative first, ties broken by raw Dexterity score.
Monster instances live inside their turn entry.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from arbiter.core.creature import CreatureKind, CreatureState
from arbiter.core.dice import roll_die
from arbiter.core.legendary import LegendaryPool
from arbiter.core.reference import MonsterRef
from arbiter.core.rules_engine import calculate_ability_modifier


@dataclass
class TurnEntry:
    """
    One slot in the initiative order.

    Attributes:
        combatant_id: Character id or monster instance id
        initiative: die_roll + DEX modifier + bonus
        dex_score: Raw DEX score, the tiebreaker
        creature: Embedded state for monsters, None for characters
    """
    combatant_id: str
    name: str
    combatant_type: CreatureKind
    initiative: int
    die_roll: int
    dex_score: int
    bonus: int = 0
    creature: Optional[CreatureState] = None

    @property
    def is_monster(self) -> bool:
        return self.combatant_type == CreatureKind.MONSTER

    def sort_key(self):
        return (-self.initiative, -self.dex_score)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "combatant_id": self.combatant_id,
            "name": self.name,
            "type": self.combatant_type.value,
            "initiative": self.initiative,
            "die_roll": self.die_roll,
            "dex_score": self.dex_score,
            "bonus": self.bonus,
        }
        if self.creature is not None:
            data["creature"] = self.creature.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TurnEntry":
        creature = data.get("creature")
        return cls(
            combatant_id=data["combatant_id"],
            name=data.get("name", data["combatant_id"]),
            combatant_type=CreatureKind(data.get("type", CreatureKind.CHARACTER.value)),
            initiative=data.get("initiative", 0),
            die_roll=data.get("die_roll", 0),
            dex_score=data.get("dex_score", 10),
            bonus=data.get("bonus", 0),
            creature=CreatureState.from_dict(creature) if creature else None,
        )


def roll_initiative(creature: CreatureState, bonus: int = 0) -> TurnEntry:
    """Roll a d20 + DEX modifier + bonus for one creature."""
    dex = creature.ability_score("dexterity")
    die = roll_die(20)
    return TurnEntry(
        combatant_id=creature.id,
        name=creature.name,
        combatant_type=creature.kind,
        initiative=die + calculate_ability_modifier(dex) + bonus,
        die_roll=die,
        dex_score=dex,
        bonus=bonus,
        creature=creature if creature.is_monster else None,
    )


def sort_turn_order(entries: List[TurnEntry]) -> List[TurnEntry]:
    """Initiative descending, then DEX descending. Stable for full ties."""
    return sorted(entries, key=TurnEntry.sort_key)


def spawn_monster(
    ref: MonsterRef,
    instance_id: str,
    name: Optional[str] = None,
    lobby_id: Optional[str] = None,
) -> CreatureState:
    """Build an ephemeral monster instance from its stat block."""
    abilities = {k.lower(): v for k, v in ref.abilities.items()}
    monster = CreatureState(
        id=instance_id,
        name=name or ref.name,
        kind=CreatureKind.MONSTER,
        lobby_id=lobby_id,
        max_hp=ref.hit_points,
        current_hp=ref.hit_points,
        armor_class=ref.armor_class,
        speed=ref.speed,
        resistances=list(ref.damage_resistances),
        immunities=list(ref.damage_immunities),
        vulnerabilities=list(ref.damage_vulnerabilities),
        condition_immunities=list(ref.condition_immunities),
        saving_throw_bonuses=dict(ref.saving_throws),
        proficiency_bonus_override=ref.proficiency_bonus,
        monster_slug=ref.slug,
        has_lair_actions=ref.lair_actions,
    )
    if abilities:
        monster.abilities.update(abilities)
    if ref.legendary_resistances:
        monster.legendary_resistance = LegendaryPool.full(ref.legendary_resistances)
    if ref.legendary_actions:
        monster.legendary_actions = LegendaryPool.full(ref.legendary_actions)
    return monster
