"""
Spell slot tables by caster type.

Full casters (bard, cleric, druid, sorcerer, wizard), half casters
(paladin, ranger) and pact-magic warlocks use separate tables. Warlock
slots are all of a single level that rises with warlock level.
"""
from typing import Dict, Optional

FULL_CASTER = "full"
HALF_CASTER = "half"
PACT_CASTER = "pact"
CASTER_TYPES = (FULL_CASTER, HALF_CASTER, PACT_CASTER)

MAX_SPELL_LEVEL = 9

# Character level -> {spell level: slots}
FULL_CASTER_SLOTS = {
    1: {1: 2},
    2: {1: 3},
    3: {1: 4, 2: 2},
    4: {1: 4, 2: 3},
    5: {1: 4, 2: 3, 3: 2},
    6: {1: 4, 2: 3, 3: 3},
    7: {1: 4, 2: 3, 3: 3, 4: 1},
    8: {1: 4, 2: 3, 3: 3, 4: 2},
    9: {1: 4, 2: 3, 3: 3, 4: 3, 5: 1},
    10: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2},
    11: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2, 6: 1},
    12: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2, 6: 1},
    13: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2, 6: 1, 7: 1},
    14: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2, 6: 1, 7: 1},
    15: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2, 6: 1, 7: 1, 8: 1},
    16: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2, 6: 1, 7: 1, 8: 1},
    17: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2, 6: 1, 7: 1, 8: 1, 9: 1},
    18: {1: 4, 2: 3, 3: 3, 4: 3, 5: 3, 6: 1, 7: 1, 8: 1, 9: 1},
    19: {1: 4, 2: 3, 3: 3, 4: 3, 5: 3, 6: 2, 7: 1, 8: 1, 9: 1},
    20: {1: 4, 2: 3, 3: 3, 4: 3, 5: 3, 6: 2, 7: 2, 8: 1, 9: 1},
}

HALF_CASTER_SLOTS = {
    1: {},
    2: {1: 2},
    3: {1: 3},
    4: {1: 3},
    5: {1: 4, 2: 2},
    6: {1: 4, 2: 2},
    7: {1: 4, 2: 3},
    8: {1: 4, 2: 3},
    9: {1: 4, 2: 3, 3: 2},
    10: {1: 4, 2: 3, 3: 2},
    11: {1: 4, 2: 3, 3: 3},
    12: {1: 4, 2: 3, 3: 3},
    13: {1: 4, 2: 3, 3: 3, 4: 1},
    14: {1: 4, 2: 3, 3: 3, 4: 1},
    15: {1: 4, 2: 3, 3: 3, 4: 2},
    16: {1: 4, 2: 3, 3: 3, 4: 2},
    17: {1: 4, 2: 3, 3: 3, 4: 3, 5: 1},
    18: {1: 4, 2: 3, 3: 3, 4: 3, 5: 1},
    19: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2},
    20: {1: 4, 2: 3, 3: 3, 4: 3, 5: 2},
}

WARLOCK_PACT_SLOTS = {
    1: {"slots": 1, "level": 1},
    2: {"slots": 2, "level": 1},
    3: {"slots": 2, "level": 2},
    4: {"slots": 2, "level": 2},
    5: {"slots": 2, "level": 3},
    6: {"slots": 2, "level": 3},
    7: {"slots": 2, "level": 4},
    8: {"slots": 2, "level": 4},
    9: {"slots": 2, "level": 5},
    10: {"slots": 2, "level": 5},
    11: {"slots": 3, "level": 5},
    12: {"slots": 3, "level": 5},
    13: {"slots": 3, "level": 5},
    14: {"slots": 3, "level": 5},
    15: {"slots": 3, "level": 5},
    16: {"slots": 3, "level": 5},
    17: {"slots": 4, "level": 5},
    18: {"slots": 4, "level": 5},
    19: {"slots": 4, "level": 5},
    20: {"slots": 4, "level": 5},
}


def _clamp_level(level: int) -> int:
    return min(max(level, 1), 20)


def get_spell_slots(caster_type: Optional[str], level: int) -> Dict[int, int]:
    """
    Total slots by spell level for a caster.

    Args:
        caster_type: "full", "half", "pact", or None for non-casters
        level: Character level (clamped to 1-20)

    Returns:
        Dict of {spell level: total slots}. Empty for non-casters.
    """
    level = _clamp_level(level)
    if caster_type == PACT_CASTER:
        pact = WARLOCK_PACT_SLOTS[level]
        return {pact["level"]: pact["slots"]}
    if caster_type == HALF_CASTER:
        return HALF_CASTER_SLOTS[level].copy()
    if caster_type == FULL_CASTER:
        return FULL_CASTER_SLOTS[level].copy()
    return {}


def get_pact_slot_level(level: int) -> int:
    """The level every warlock slot is cast at."""
    return WARLOCK_PACT_SLOTS[_clamp_level(level)]["level"]


def get_slot_summary(caster_type: Optional[str], level: int, used: Dict[int, int]) -> Dict[int, Dict[str, int]]:
    """Total/used/remaining per spell level."""
    summary = {}
    for slot_level, total in sorted(get_spell_slots(caster_type, level).items()):
        spent = min(used.get(slot_level, 0), total)
        summary[slot_level] = {
            "total": total,
            "used": spent,
            "remaining": total - spent,
        }
    return summary
