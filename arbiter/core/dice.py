"""
Dice rolling for the combat engine.

Handles:
- Single dice from a cryptographically secure source
- d20 rolls with advantage/disadvantage (both present cancel to a normal roll)
- Damage expressions ("2d6+3", "1d8+1d6"), doubled dice on critical hits
- Free-form roll requests with clamped dice counts and sizes
"""
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

logger = logging.getLogger("arbiter.dice")

# SystemRandom draws from os.urandom
_rng = random.SystemRandom()

FALLBACK_DAMAGE_DICE = "1d6"

MAX_ROLL_COUNT = 100
MIN_ROLL_SIDES = 2
MAX_ROLL_SIDES = 100


@dataclass
class D20Result:
    """Result of a d20 roll, tracking advantage/disadvantage and criticals."""
    rolls: List[int]  # Every d20 rolled, kept for audit
    modifier: int
    total: int
    advantage: bool = False
    disadvantage: bool = False
    natural_20: bool = False
    natural_1: bool = False

    @property
    def base_roll(self) -> int:
        """The d20 value used (after advantage/disadvantage selection)."""
        if self.advantage and not self.disadvantage:
            return max(self.rolls)
        elif self.disadvantage and not self.advantage:
            return min(self.rolls)
        return self.rolls[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rolls": list(self.rolls),
            "base_roll": self.base_roll,
            "modifier": self.modifier,
            "total": self.total,
            "advantage": self.advantage,
            "disadvantage": self.disadvantage,
            "natural_20": self.natural_20,
            "natural_1": self.natural_1,
        }


@dataclass
class DamageResult:
    """Result of a damage roll."""
    rolls: List[int]
    modifier: int
    total: int
    dice_notation: str
    is_critical: bool = False
    used_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rolls": list(self.rolls),
            "modifier": self.modifier,
            "total": self.total,
            "dice": self.dice_notation,
            "critical": self.is_critical,
        }


@dataclass
class RollResult:
    """Result of a free-form roll request."""
    expression: str
    count: int
    sides: int
    modifier: int
    rolls: List[int] = field(default_factory=list)
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dice": self.expression,
            "count": self.count,
            "sides": self.sides,
            "modifier": self.modifier,
            "rolls": list(self.rolls),
            "total": self.total,
        }


def roll_die(sides: int) -> int:
    """Roll a single die with the given number of sides."""
    if sides < 1:
        raise ValueError(f"Invalid die: d{sides}")
    return _rng.randint(1, sides)


def roll_d20(modifier: int = 0, advantage: bool = False, disadvantage: bool = False) -> D20Result:
    """
    Roll a d20 with optional advantage/disadvantage.

    Args:
        modifier: Bonus to add to the roll (attack bonus, save modifier, etc.)
        advantage: If True, roll twice and take the higher
        disadvantage: If True, roll twice and take the lower

    Returns:
        D20Result with all roll information

    Note: If both advantage and disadvantage are True, they cancel out
          and a single die is rolled.
    """
    if advantage and disadvantage:
        advantage = False
        disadvantage = False

    if advantage or disadvantage:
        rolls = [roll_die(20), roll_die(20)]
    else:
        rolls = [roll_die(20)]

    if advantage:
        base_roll = max(rolls)
    elif disadvantage:
        base_roll = min(rolls)
    else:
        base_roll = rolls[0]

    return D20Result(
        rolls=rolls,
        modifier=modifier,
        total=base_roll + modifier,
        advantage=advantage,
        disadvantage=disadvantage,
        natural_20=(base_roll == 20),
        natural_1=(base_roll == 1),
    )


def roll_with_advantage(modifier: int = 0) -> D20Result:
    """Roll two d20s and keep the higher."""
    return roll_d20(modifier=modifier, advantage=True)


def roll_with_disadvantage(modifier: int = 0) -> D20Result:
    """Roll two d20s and keep the lower."""
    return roll_d20(modifier=modifier, disadvantage=True)


def parse_dice_notation(notation: str) -> List[Tuple[int, int, int]]:
    """
    Parse dice notation into components.

    Args:
        notation: Dice notation like "2d6+3", "1d8+1d6", "3d4-1"

    Returns:
        List of (count, sides, modifier) tuples.
        For "2d6+3+1d4", returns [(2, 6, 0), (1, 4, 3)]

    Raises:
        ValueError: If notation is invalid
    """
    if not notation:
        raise ValueError("Empty dice notation")

    notation = notation.lower().replace(" ", "")
    components = []
    parts = re.split(r'(?=[+-])', notation)
    current_modifier = 0

    for part in parts:
        if not part:
            continue

        dice_match = re.match(r'^([+-]?)(\d*)d(\d+)$', part)
        if dice_match:
            sign = -1 if dice_match.group(1) == '-' else 1
            count = int(dice_match.group(2)) if dice_match.group(2) else 1
            sides = int(dice_match.group(3))
            if sides < 1:
                raise ValueError(f"Invalid dice notation: {notation}")
            components.append((sign * count, sides, 0))
        else:
            try:
                current_modifier += int(part)
            except ValueError:
                raise ValueError(f"Invalid dice notation: {notation}")

    if components:
        count, sides, _ = components[-1]
        components[-1] = (count, sides, current_modifier)
    elif current_modifier != 0:
        components.append((0, 0, current_modifier))
    else:
        raise ValueError(f"Invalid dice notation: {notation}")

    return components


def roll_damage(notation: str, critical: bool = False, modifier: int = 0) -> DamageResult:
    """
    Roll damage dice from notation.

    Malformed notation falls back to a single d6. Damage expressions come
    from reference data, so a bad entry should not stop resolution.

    Args:
        notation: Dice notation like "2d6", "1d8+2", "2d6+1d4"
        critical: If True, double the number of dice rolled (not the flat bonus)
        modifier: Additional modifier to add (ability bonus)

    Returns:
        DamageResult with all roll information

    Examples:
        roll_damage("1d8", modifier=3) -> rolls 1d8+3
        roll_damage("2d6", critical=True) -> rolls 4d6
    """
    used_fallback = False
    try:
        components = parse_dice_notation(notation)
    except ValueError:
        logger.warning("Malformed damage dice %r, falling back to %s", notation, FALLBACK_DAMAGE_DICE)
        components = parse_dice_notation(FALLBACK_DAMAGE_DICE)
        used_fallback = True

    all_rolls = []
    total = modifier
    rolled_dice = False

    for count, sides, flat_mod in components:
        if sides == 0:
            total += flat_mod
            continue

        num_dice = abs(count)
        if critical:
            num_dice *= 2

        sign = 1 if count >= 0 else -1
        for _ in range(num_dice):
            roll = roll_die(sides)
            all_rolls.append(roll * sign)
            total += roll * sign
            rolled_dice = True

        total += flat_mod

    # Rolled damage never drops below 1
    if rolled_dice:
        total = max(1, total)
    else:
        total = max(0, total)

    return DamageResult(
        rolls=all_rolls,
        modifier=modifier,
        total=total,
        dice_notation=FALLBACK_DAMAGE_DICE if used_fallback else notation,
        is_critical=critical,
        used_fallback=used_fallback,
    )


def roll_expression(expression: str) -> RollResult:
    """
    Roll a free-form "NdM[+K]" request.

    Count is clamped to 1-100 and sides to 2-100. An unparseable request
    rolls a single d20.
    """
    match = re.match(r'^\s*(\d*)\s*d\s*(\d+)\s*([+-]\s*\d+)?\s*$', expression or "", re.IGNORECASE)
    if match:
        count = int(match.group(1)) if match.group(1) else 1
        sides = int(match.group(2))
        modifier = int(match.group(3).replace(" ", "")) if match.group(3) else 0
    else:
        count, sides, modifier = 1, 20, 0

    count = min(max(count, 1), MAX_ROLL_COUNT)
    sides = min(max(sides, MIN_ROLL_SIDES), MAX_ROLL_SIDES)

    rolls = [roll_die(sides) for _ in range(count)]
    normalized = f"{count}d{sides}"
    if modifier:
        normalized += f"{modifier:+d}"

    return RollResult(
        expression=normalized,
        count=count,
        sides=sides,
        modifier=modifier,
        rolls=rolls,
        total=sum(rolls) + modifier,
    )
