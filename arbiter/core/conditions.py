"""
Condition Effects System.

Every condition is a tagged value: a bare kind (``prone``) or a kind that
carries a typed parameter (``grappled:<creature id>``, ``exhaustion:<level>``).
Strings only exist at the storage/API boundary (``Condition.parse`` and
``str(condition)``).

CONDITION_RULES is the single source of truth: the display catalogue and the
mechanical predicates below are both derived from it.

Provides:
- Advantage/disadvantage grants on attack rolls (prone melee vs ranged)
- Save auto-fails, save advantage/disadvantage
- Speed reduction and movement checks
- Incapacitation checks
- Universal and typed resistance from conditions
- Grapple release when a grappler becomes incapacitated
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set, Tuple

from arbiter.core.errors import ValidationError

if TYPE_CHECKING:
    from arbiter.core.creature import CreatureState


class ConditionType(str, Enum):
    """Every condition the engine understands."""
    BLINDED = "blinded"
    CHARMED = "charmed"
    DEAFENED = "deafened"
    EXHAUSTION = "exhaustion"
    FRIGHTENED = "frightened"
    GRAPPLED = "grappled"
    INCAPACITATED = "incapacitated"
    INVISIBLE = "invisible"
    PARALYZED = "paralyzed"
    PETRIFIED = "petrified"
    POISONED = "poisoned"
    PRONE = "prone"
    RESTRAINED = "restrained"
    STUNNED = "stunned"
    UNCONSCIOUS = "unconscious"
    # Combat-transient
    DODGING = "dodging"
    DISENGAGED = "disengaged"
    HELPED = "helped"
    HIDDEN = "hidden"
    READIED = "readied"
    SURPRISED = "surprised"
    RAGING = "raging"
    # Environmental
    SILENCED = "silenced"
    UNDERWATER = "underwater"


@dataclass(frozen=True)
class ConditionRule:
    """Display text and mechanics for one condition kind."""
    name: str
    description: str
    incapacitated: bool = False
    speed_zero: bool = False
    auto_fail_saves: Tuple[str, ...] = ()
    save_disadvantage: Tuple[str, ...] = ()
    save_advantage: Tuple[str, ...] = ()
    attack_advantage: bool = False
    attack_disadvantage: bool = False
    attacks_against_advantage: bool = False
    attacks_against_disadvantage: bool = False
    melee_hits_are_critical: bool = False
    resistance_all: bool = False
    damage_resistances: Tuple[str, ...] = ()
    blocks_verbal: bool = False
    combat_only: bool = False
    turn_scoped: bool = False
    parameter: Optional[str] = None  # "source" or "level"

    def effect_lines(self) -> List[str]:
        """Human-readable mechanics, generated from the flags above."""
        lines = []
        if self.incapacitated:
            lines.append("Can't take actions or reactions")
        if self.speed_zero:
            lines.append("Speed becomes 0")
        if self.auto_fail_saves:
            lines.append(f"Automatically fails {_ability_list(self.auto_fail_saves)} saving throws")
        if self.save_disadvantage:
            lines.append(f"Disadvantage on {_ability_list(self.save_disadvantage)} saving throws")
        if self.save_advantage:
            lines.append(f"Advantage on {_ability_list(self.save_advantage)} saving throws")
        if self.attack_advantage:
            lines.append("Advantage on own attack rolls")
        if self.attack_disadvantage:
            lines.append("Disadvantage on own attack rolls")
        if self.attacks_against_advantage:
            lines.append("Attacks against it have advantage")
        if self.attacks_against_disadvantage:
            lines.append("Attacks against it have disadvantage")
        if self.melee_hits_are_critical:
            lines.append("Melee hits against it are critical hits")
        if self.resistance_all:
            lines.append("Resistance to all damage")
        if self.damage_resistances:
            lines.append(f"Resistance to {', '.join(self.damage_resistances)} damage")
        if self.blocks_verbal:
            lines.append("Can't cast spells with verbal components")
        if self.combat_only:
            lines.append("Ends when combat ends")
        if self.turn_scoped and self.parameter == "source":
            lines.append("Ends at the start of the imposing creature's next turn")
        elif self.turn_scoped:
            lines.append("Ends at the start of its next turn")
        return lines


_ABILITY_NAMES = {
    "str": "Strength",
    "dex": "Dexterity",
    "con": "Constitution",
    "int": "Intelligence",
    "wis": "Wisdom",
    "cha": "Charisma",
}

ALL_ABILITIES = tuple(_ABILITY_NAMES)


def _ability_key(ability: str) -> str:
    return (ability or "").strip().lower()[:3]


def _ability_list(keys: Tuple[str, ...]) -> str:
    if set(keys) == set(ALL_ABILITIES):
        return "all"
    return " and ".join(_ABILITY_NAMES[k] for k in keys)


CONDITION_RULES: Dict[ConditionType, ConditionRule] = {
    ConditionType.BLINDED: ConditionRule(
        name="Blinded",
        description="Can't see and automatically fails any ability check that requires sight.",
        attack_disadvantage=True,
        attacks_against_advantage=True,
    ),
    ConditionType.CHARMED: ConditionRule(
        name="Charmed",
        description="Can't attack the charmer or target it with harmful abilities or magical effects.",
        parameter="source",
    ),
    ConditionType.DEAFENED: ConditionRule(
        name="Deafened",
        description="Can't hear and automatically fails any ability check that requires hearing.",
    ),
    ConditionType.EXHAUSTION: ConditionRule(
        name="Exhaustion",
        description=(
            "Cumulative levels. Level 2 halves speed, level 3 imposes disadvantage on attack "
            "rolls and saving throws, level 5 reduces speed to 0."
        ),
        parameter="level",
    ),
    ConditionType.FRIGHTENED: ConditionRule(
        name="Frightened",
        description="Can't willingly move closer to the source of its fear.",
        attack_disadvantage=True,
        parameter="source",
    ),
    ConditionType.GRAPPLED: ConditionRule(
        name="Grappled",
        description="Held by another creature. Ends if the grappler is incapacitated.",
        speed_zero=True,
        parameter="source",
    ),
    ConditionType.INCAPACITATED: ConditionRule(
        name="Incapacitated",
        description="Can't take actions or reactions.",
        incapacitated=True,
    ),
    ConditionType.INVISIBLE: ConditionRule(
        name="Invisible",
        description="Impossible to see without magic or a special sense.",
        attack_advantage=True,
        attacks_against_disadvantage=True,
    ),
    ConditionType.PARALYZED: ConditionRule(
        name="Paralyzed",
        description="Can't move or speak. Any hit from within 5 feet is a critical hit.",
        incapacitated=True,
        speed_zero=True,
        auto_fail_saves=("str", "dex"),
        attacks_against_advantage=True,
        melee_hits_are_critical=True,
    ),
    ConditionType.PETRIFIED: ConditionRule(
        name="Petrified",
        description="Transformed into solid inanimate substance. Unaware of its surroundings.",
        incapacitated=True,
        speed_zero=True,
        auto_fail_saves=("str", "dex"),
        attacks_against_advantage=True,
        resistance_all=True,
    ),
    ConditionType.POISONED: ConditionRule(
        name="Poisoned",
        description="Disadvantage on attack rolls and ability checks.",
        attack_disadvantage=True,
    ),
    ConditionType.PRONE: ConditionRule(
        name="Prone",
        description=(
            "Lying on the ground. Melee attackers have advantage against it, ranged attackers "
            "have disadvantage. Crawling costs double movement."
        ),
        attack_disadvantage=True,
    ),
    ConditionType.RESTRAINED: ConditionRule(
        name="Restrained",
        description="Bound or entangled.",
        speed_zero=True,
        save_disadvantage=("dex",),
        attack_disadvantage=True,
        attacks_against_advantage=True,
    ),
    ConditionType.STUNNED: ConditionRule(
        name="Stunned",
        description="Can't move and can speak only falteringly.",
        incapacitated=True,
        speed_zero=True,
        auto_fail_saves=("str", "dex"),
        attacks_against_advantage=True,
    ),
    ConditionType.UNCONSCIOUS: ConditionRule(
        name="Unconscious",
        description="Unaware of its surroundings. Any hit from within 5 feet is a critical hit.",
        incapacitated=True,
        speed_zero=True,
        auto_fail_saves=("str", "dex"),
        attacks_against_advantage=True,
        melee_hits_are_critical=True,
    ),
    ConditionType.DODGING: ConditionRule(
        name="Dodging",
        description="Focused entirely on avoiding attacks.",
        save_advantage=("dex",),
        attacks_against_disadvantage=True,
        combat_only=True,
    ),
    ConditionType.DISENGAGED: ConditionRule(
        name="Disengaged",
        description="Movement doesn't provoke opportunity attacks this turn.",
        combat_only=True,
        turn_scoped=True,
    ),
    ConditionType.HELPED: ConditionRule(
        name="Helped",
        description="An ally is lending aid; the next attack roll has advantage. Ends at the start of the helper's next turn.",
        attack_advantage=True,
        combat_only=True,
        turn_scoped=True,
        parameter="source",
    ),
    ConditionType.HIDDEN: ConditionRule(
        name="Hidden",
        description="Unseen and unheard. Attacking reveals its position.",
        attack_advantage=True,
        combat_only=True,
    ),
    ConditionType.READIED: ConditionRule(
        name="Readied",
        description="Holding an action to use as a reaction to a trigger.",
        combat_only=True,
        turn_scoped=True,
    ),
    ConditionType.SURPRISED: ConditionRule(
        name="Surprised",
        description="Caught off guard at the start of combat.",
        combat_only=True,
    ),
    ConditionType.RAGING: ConditionRule(
        name="Raging",
        description="In a battle fury.",
        save_advantage=("str",),
        damage_resistances=("bludgeoning", "piercing", "slashing"),
        combat_only=True,
    ),
    ConditionType.SILENCED: ConditionRule(
        name="Silenced",
        description="Inside a zone of magical silence; no sound can be created.",
        blocks_verbal=True,
    ),
    ConditionType.UNDERWATER: ConditionRule(
        name="Underwater",
        description="Fully submerged. Fire damage is halved.",
    ),
}

MAX_EXHAUSTION = 6


@dataclass(frozen=True)
class Condition:
    """A condition instance: a kind plus its optional typed parameter."""
    kind: ConditionType
    source_id: Optional[str] = None
    level: Optional[int] = None

    @property
    def rule(self) -> ConditionRule:
        return CONDITION_RULES[self.kind]

    @classmethod
    def parse(cls, raw: str) -> "Condition":
        """Parse a stored/API condition string such as 'grappled:orc-1' or 'exhaustion:3'."""
        text = (raw or "").strip().lower()
        name, _, param = text.partition(":")
        try:
            kind = ConditionType(name)
        except ValueError:
            raise ValidationError("condition", f"Unknown condition '{raw}'", raw)

        rule = CONDITION_RULES[kind]
        if rule.parameter == "level":
            if not param:
                return cls(kind, level=1)
            if not param.isdigit() or not 1 <= int(param) <= MAX_EXHAUSTION:
                raise ValidationError("condition", f"Exhaustion level must be 1-{MAX_EXHAUSTION}", raw)
            return cls(kind, level=int(param))
        if rule.parameter == "source":
            return cls(kind, source_id=raw.strip().partition(":")[2] or None)
        if param:
            raise ValidationError("condition", f"Condition '{name}' takes no parameter", raw)
        return cls(kind)

    def __str__(self) -> str:
        if self.level is not None:
            return f"{self.kind.value}:{self.level}"
        if self.source_id:
            return f"{self.kind.value}:{self.source_id}"
        return self.kind.value


def parse_conditions(raw: Iterable[str]) -> List[Condition]:
    """Parse a stored list of condition strings."""
    return [Condition.parse(item) for item in raw or []]


def serialize_conditions(conditions: Iterable[Condition]) -> List[str]:
    return [str(c) for c in conditions]


# =============================================================================
# QUERIES
# =============================================================================

def has_condition(conditions: Iterable[Condition], kind: ConditionType) -> bool:
    return any(c.kind == kind for c in conditions)


def exhaustion_level(conditions: Iterable[Condition]) -> int:
    levels = [c.level or 1 for c in conditions if c.kind == ConditionType.EXHAUSTION]
    return max(levels) if levels else 0


def is_incapacitated(conditions: Iterable[Condition]) -> Tuple[bool, List[str]]:
    """
    Check if a creature is incapacitated (can't take actions or reactions).

    Returns:
        Tuple of (is_incapacitated, list_of_reasons)
    """
    reasons = [c.rule.name for c in conditions if c.rule.incapacitated]
    return len(reasons) > 0, reasons


def can_move(conditions: Iterable[Condition]) -> Tuple[bool, List[str]]:
    """
    Check whether a creature's speed is above zero.

    Returns:
        Tuple of (can_move, list_of_reasons_it_cannot)
    """
    conditions = list(conditions)
    reasons = [c.rule.name for c in conditions if c.rule.speed_zero]
    if exhaustion_level(conditions) >= 5:
        reasons.append(f"Exhaustion {exhaustion_level(conditions)}")
    return len(reasons) == 0, reasons


def get_effective_speed(base_speed: int, conditions: Iterable[Condition]) -> int:
    """Speed after condition effects."""
    conditions = list(conditions)
    movable, _ = can_move(conditions)
    if not movable:
        return 0
    if exhaustion_level(conditions) >= 2:
        return base_speed // 2
    return base_speed


def auto_fails_save(conditions: Iterable[Condition], ability: str) -> bool:
    key = _ability_key(ability)
    return any(key in c.rule.auto_fail_saves for c in conditions)


def is_auto_crit_target(conditions: Iterable[Condition], is_melee: bool = True) -> bool:
    """Hits from within 5 feet against a paralyzed or unconscious creature are crits."""
    if not is_melee:
        return False
    return any(c.rule.melee_hits_are_critical for c in conditions)


def get_save_disadvantage(conditions: Iterable[Condition], ability: str) -> bool:
    conditions = list(conditions)
    key = _ability_key(ability)
    if exhaustion_level(conditions) >= 3:
        return True
    return any(key in c.rule.save_disadvantage for c in conditions)


@dataclass
class SaveModifiers:
    """Condition effects on a single saving throw."""
    auto_fail: bool = False
    advantage: bool = False
    disadvantage: bool = False
    reasons: List[str] = field(default_factory=list)


def get_save_modifiers(conditions: Iterable[Condition], ability: str) -> SaveModifiers:
    """
    Calculate save modifiers for one ability.

    Args:
        conditions: Conditions on the creature making the save
        ability: Ability name or abbreviation ("dex", "Dexterity")
    """
    conditions = list(conditions)
    key = _ability_key(ability)
    result = SaveModifiers()

    for cond in conditions:
        rule = cond.rule
        if key in rule.auto_fail_saves:
            result.auto_fail = True
            result.reasons.append(f"{rule.name} (auto-fail)")
        if key in rule.save_disadvantage:
            result.disadvantage = True
            result.reasons.append(f"{rule.name} (disadvantage)")
        if key in rule.save_advantage:
            result.advantage = True
            result.reasons.append(f"{rule.name} (advantage)")

    level = exhaustion_level(conditions)
    if level >= 3:
        result.disadvantage = True
        result.reasons.append(f"Exhaustion {level} (disadvantage)")

    return result


@dataclass
class AttackModifiers:
    """Condition effects on one attack roll."""
    advantage: bool = False
    disadvantage: bool = False
    auto_critical: bool = False
    reasons: List[str] = field(default_factory=list)

    @property
    def roll_mode(self) -> str:
        if self.advantage and not self.disadvantage:
            return "advantage"
        if self.disadvantage and not self.advantage:
            return "disadvantage"
        return "normal"


def get_attack_modifiers(
    attacker_conditions: Iterable[Condition],
    target_conditions: Iterable[Condition],
    is_melee: bool = True,
) -> AttackModifiers:
    """
    Calculate attack advantage/disadvantage based on conditions.

    Args:
        attacker_conditions: Conditions on the attacker
        target_conditions: Conditions on the target
        is_melee: True for melee attacks (assumed within 5 feet), False for ranged

    Returns:
        AttackModifiers with advantage, disadvantage, and reasons
    """
    attacker_conditions = list(attacker_conditions)
    result = AttackModifiers()

    for cond in attacker_conditions:
        rule = cond.rule
        if rule.attack_disadvantage:
            result.disadvantage = True
            result.reasons.append(f"Attacker is {rule.name} (disadvantage)")
        if rule.attack_advantage:
            result.advantage = True
            result.reasons.append(f"Attacker is {rule.name} (advantage)")

    level = exhaustion_level(attacker_conditions)
    if level >= 3:
        result.disadvantage = True
        result.reasons.append(f"Attacker has Exhaustion {level} (disadvantage)")

    for cond in target_conditions:
        rule = cond.rule
        if rule.attacks_against_advantage:
            result.advantage = True
            result.reasons.append(f"Target is {rule.name} (advantage)")
        if rule.attacks_against_disadvantage:
            result.disadvantage = True
            result.reasons.append(f"Target is {rule.name} (disadvantage)")

        if cond.kind == ConditionType.PRONE:
            if is_melee:
                result.advantage = True
                result.reasons.append("Target is Prone (melee advantage)")
            else:
                result.disadvantage = True
                result.reasons.append("Target is Prone (ranged disadvantage)")

        if rule.melee_hits_are_critical and is_melee:
            result.auto_critical = True
            result.reasons.append(f"Target is {rule.name} (auto-crit on hit)")

    return result


def get_universal_resistance(conditions: Iterable[Condition]) -> Optional[str]:
    """Name of a condition granting resistance to all damage, if any."""
    for cond in conditions:
        if cond.rule.resistance_all:
            return cond.rule.name
    return None


def get_condition_resistances(conditions: Iterable[Condition]) -> List[str]:
    """Typed resistances granted by conditions (e.g. rage)."""
    resistances = []
    for cond in conditions:
        resistances.extend(cond.rule.damage_resistances)
    return resistances


def blocks_verbal_components(conditions: Iterable[Condition]) -> Optional[str]:
    for cond in conditions:
        if cond.rule.blocks_verbal:
            return cond.rule.name
    return None


def without_combat_only(conditions: Iterable[Condition]) -> List[Condition]:
    return [c for c in conditions if not c.rule.combat_only]


def without_turn_scoped(conditions: Iterable[Condition]) -> List[Condition]:
    """Drop self-imposed turn-scoped conditions. Sourced ones expire on the source's turn."""
    return [c for c in conditions if not (c.rule.turn_scoped and c.source_id is None)]


# =============================================================================
# CATALOGUE
# =============================================================================

def get_condition_catalogue() -> List[Dict[str, Any]]:
    """Display table for every condition, derived from CONDITION_RULES."""
    return [
        {
            "id": kind.value,
            "name": rule.name,
            "description": rule.description,
            "effects": rule.effect_lines(),
            "parameter": rule.parameter,
        }
        for kind, rule in CONDITION_RULES.items()
    ]


def get_condition_summary(conditions: Iterable[Condition]) -> List[Dict[str, Any]]:
    """Summaries of a creature's active conditions."""
    return [
        {
            "condition": str(cond),
            "name": cond.rule.name,
            "source_id": cond.source_id,
            "level": cond.level,
            "effects": cond.rule.effect_lines(),
        }
        for cond in conditions
    ]


# =============================================================================
# SIDE EFFECTS
# =============================================================================

@dataclass
class ConditionChange:
    """What an add/remove did, including effects on other creatures."""
    creature_id: str
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    released: List[Dict[str, str]] = field(default_factory=list)
    concentration_ended: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "creature_id": self.creature_id,
            "added": list(self.added),
            "removed": list(self.removed),
            "released": list(self.released),
            "concentration_ended": self.concentration_ended,
        }


def release_conditions_from(
    source_id: str,
    roster: Dict[str, "CreatureState"],
    kinds: Optional[Set[ConditionType]] = None,
) -> List[Dict[str, str]]:
    """
    Remove every condition sourced from ``source_id`` across the roster.

    Args:
        source_id: The grappler/charmer/frightener
        roster: Every creature that may carry such a condition
        kinds: Restrict to these kinds (all parameterized kinds when None)
    """
    released = []
    for creature in roster.values():
        for cond in list(creature.conditions):
            if cond.source_id != source_id:
                continue
            if kinds is not None and cond.kind not in kinds:
                continue
            creature.remove_condition(cond)
            released.append({"creature_id": creature.id, "condition": str(cond)})
    return released


def release_grapples(grappler_id: str, roster: Dict[str, "CreatureState"]) -> List[Dict[str, str]]:
    """Free everything held by ``grappler_id``."""
    return release_conditions_from(grappler_id, roster, kinds={ConditionType.GRAPPLED})


TURN_SCOPED_KINDS = frozenset(kind for kind, rule in CONDITION_RULES.items() if rule.turn_scoped)


def release_turn_scoped_from(source_id: str, roster: Dict[str, "CreatureState"]) -> List[Dict[str, str]]:
    """Expire turn-scoped conditions ``source_id`` imposed (help) at the start of its turn."""
    return release_conditions_from(source_id, roster, kinds=set(TURN_SCOPED_KINDS))


def apply_incapacitation_effects(
    creature: "CreatureState",
    roster: Dict[str, "CreatureState"],
    change: ConditionChange,
) -> None:
    """An incapacitated creature drops grapples and concentration."""
    incapacitated, _ = is_incapacitated(creature.conditions)
    if not incapacitated:
        return
    change.released.extend(release_grapples(creature.id, roster))
    if creature.concentrating_on:
        change.concentration_ended = creature.concentrating_on
        creature.concentrating_on = None


def add_condition_with_effects(
    target: "CreatureState",
    condition: Condition,
    roster: Dict[str, "CreatureState"],
) -> ConditionChange:
    """
    Add a condition and run the engine-initiated consequences.

    Incapacitating a grappler releases every creature it grapples in the
    same operation, and ends the target's concentration.
    """
    change = ConditionChange(creature_id=target.id)
    if target.add_condition(condition):
        change.added.append(str(condition))
    apply_incapacitation_effects(target, roster, change)
    return change


def remove_condition_with_effects(
    target: "CreatureState",
    condition: Condition,
) -> ConditionChange:
    change = ConditionChange(creature_id=target.id)
    change.removed.extend(str(c) for c in target.remove_condition(condition))
    return change


def find_dangling_references(
    roster: Dict[str, "CreatureState"],
    known_ids: Iterable[str],
) -> List[Dict[str, str]]:
    """Conditions that name a creature which no longer exists."""
    known = set(known_ids)
    dangling = []
    for creature in roster.values():
        for cond in creature.conditions:
            if cond.source_id and cond.source_id not in known:
                dangling.append({"creature_id": creature.id, "condition": str(cond)})
    return dangling
