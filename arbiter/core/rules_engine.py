"""
Core rules: ability modifiers, proficiency, saving throws, attack rolls
and concentration checks.
"""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from arbiter.core.conditions import (
    AttackModifiers,
    get_attack_modifiers,
    get_save_modifiers,
)
from arbiter.core.dice import D20Result, roll_d20
from arbiter.core.errors import ValidationError
from arbiter.core.legendary import try_legendary_resistance

if TYPE_CHECKING:
    from arbiter.core.creature import CreatureState

logger = logging.getLogger("arbiter.rules")

ABILITY_SCORES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)

_ABILITY_ALIASES = {name[:3]: name for name in ABILITY_SCORES}


def normalize_ability(ability: str) -> str:
    """'DEX', 'dex', 'Dexterity' -> 'dexterity'."""
    key = (ability or "").strip().lower()
    if key in ABILITY_SCORES:
        return key
    if key[:3] in _ABILITY_ALIASES and (len(key) == 3 or _ABILITY_ALIASES[key[:3]].startswith(key)):
        return _ABILITY_ALIASES[key[:3]]
    raise ValidationError("ability", f"Unknown ability '{ability}'", ability)


def calculate_ability_modifier(score: int) -> int:
    """
    Calculate ability modifier from ability score.

    Formula: floor((score - 10) / 2)

    Examples:
        10 -> 0, 14 -> +2, 8 -> -1, 20 -> +5, 1 -> -5
    """
    return (score - 10) // 2


def calculate_proficiency_bonus(level: int) -> int:
    """
    Proficiency bonus by level.

    Levels 1-4: +2, 5-8: +3, 9-12: +4, 13-16: +5, 17-20: +6
    """
    level = min(max(level, 1), 20)
    return 2 + (level - 1) // 4


def concentration_dc(damage: int) -> int:
    """DC to keep concentration after taking damage."""
    return max(10, damage // 2)


# =============================================================================
# SAVING THROWS
# =============================================================================

@dataclass
class SavingThrowResult:
    """Outcome of one saving throw."""
    creature_id: str
    ability: str
    dc: int
    success: bool
    roll: Optional[D20Result] = None
    total: int = 0
    auto_fail: bool = False
    legendary_resistance_used: bool = False
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "creature_id": self.creature_id,
            "ability": self.ability,
            "dc": self.dc,
            "success": self.success,
            "roll": self.roll.to_dict() if self.roll else None,
            "total": self.total,
            "auto_fail": self.auto_fail,
            "legendary_resistance_used": self.legendary_resistance_used,
            "reasons": list(self.reasons),
        }


def roll_saving_throw(
    creature: "CreatureState",
    ability: str,
    dc: int,
    allow_legendary: bool = True,
) -> SavingThrowResult:
    """
    Roll a saving throw with condition effects applied.

    Conditions can force an automatic failure (paralyzed vs. DEX) or
    grant advantage/disadvantage. A failed save may be turned into a
    success by legendary resistance.
    """
    ability = normalize_ability(ability)
    modifiers = get_save_modifiers(creature.conditions, ability)
    result = SavingThrowResult(
        creature_id=creature.id,
        ability=ability,
        dc=dc,
        success=False,
        reasons=list(modifiers.reasons),
    )

    if modifiers.auto_fail:
        result.auto_fail = True
    else:
        bonus = creature.saving_throw_bonus(ability)
        roll = roll_d20(bonus, advantage=modifiers.advantage, disadvantage=modifiers.disadvantage)
        result.roll = roll
        result.total = roll.total
        result.success = roll.total >= dc

    if not result.success and allow_legendary and try_legendary_resistance(creature.legendary_resistance):
        result.success = True
        result.legendary_resistance_used = True
        result.reasons.append("Legendary Resistance")
        logger.info("%s used legendary resistance against a DC %d %s save", creature.name, dc, ability)

    return result


# =============================================================================
# ATTACK ROLLS
# =============================================================================

@dataclass
class AttackRollResult:
    """Outcome of one attack roll."""
    roll: D20Result
    attack_bonus: int
    target_ac: int
    hit: bool
    critical: bool
    modifiers: AttackModifiers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roll": self.roll.to_dict(),
            "attack_bonus": self.attack_bonus,
            "target_ac": self.target_ac,
            "hit": self.hit,
            "critical": self.critical,
            "roll_mode": self.modifiers.roll_mode,
            "reasons": list(self.modifiers.reasons),
        }


def resolve_attack_roll(
    attacker: "CreatureState",
    target: "CreatureState",
    attack_bonus: int,
    is_melee: bool = True,
) -> AttackRollResult:
    """
    Roll to hit.

    Natural 20 always hits and crits; natural 1 always misses. A melee hit
    against a paralyzed or unconscious target is a critical.
    """
    modifiers = get_attack_modifiers(attacker.conditions, target.conditions, is_melee=is_melee)
    roll = roll_d20(attack_bonus, advantage=modifiers.advantage, disadvantage=modifiers.disadvantage)

    if roll.natural_20:
        hit = True
    elif roll.natural_1:
        hit = False
    else:
        hit = roll.total >= target.armor_class

    critical = roll.natural_20 or (hit and modifiers.auto_critical)

    return AttackRollResult(
        roll=roll,
        attack_bonus=attack_bonus,
        target_ac=target.armor_class,
        hit=hit,
        critical=critical,
        modifiers=modifiers,
    )


# =============================================================================
# CONCENTRATION
# =============================================================================

def check_concentration(creature: "CreatureState", damage: int) -> Optional[Dict[str, Any]]:
    """
    Constitution save to keep concentration after taking damage.

    Returns None when the creature isn't concentrating or took no damage.
    """
    if not creature.concentrating_on or damage <= 0:
        return None

    spell = creature.concentrating_on
    save = roll_saving_throw(creature, "constitution", concentration_dc(damage))
    if not save.success:
        creature.concentrating_on = None

    return {
        "spell": spell,
        "maintained": save.success,
        "save": save.to_dict(),
    }
