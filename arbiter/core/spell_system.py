"""
Spell-Slot & Casting Resolver.

resolve_cast() validates a cast in a fixed order and only mutates the
caster (slot, economy flags, concentration) once every check passed:

1. Spell exists in the reference snapshot
2. Components can be provided (verbal vs. silence, material vs. focus)
3. Bonus-action spell rule for the current turn
4. Ritual casts need the ritual tag and use no slot
5. Cantrips use no slot and scale at levels 5, 11 and 17
6. Leveled spells need a slot at the requested level, or the pact level
   for warlocks

resolve_area_effect() is the multi-target form: one damage roll, one save
per target against a shared DC.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from arbiter.core.conditions import (
    Condition,
    add_condition_with_effects,
    blocks_verbal_components,
)
from arbiter.core.creature import ActionResource, CreatureState
from arbiter.core.damage import deal_damage
from arbiter.core.dice import DamageResult, roll_damage
from arbiter.core.errors import (
    MissingComponentError,
    ResourceExhaustedError,
    RuleViolationError,
    ValidationError,
)
from arbiter.core.reference import SPELL_FOCUS_PATTERN, ReferenceSnapshot, SpellRef
from arbiter.core.rules_engine import roll_saving_throw
from arbiter.core.spell_slots import (
    MAX_SPELL_LEVEL,
    PACT_CASTER,
    get_pact_slot_level,
    get_spell_slots,
)

logger = logging.getLogger("arbiter.spells")

CANTRIP_SCALING_LEVELS = (5, 11, 17)

_DICE_TERM = re.compile(r"(\d*)d(\d+)")


# =============================================================================
# CASTER NUMBERS
# =============================================================================

def casting_modifier(caster: CreatureState) -> int:
    """Modifier of the caster's spellcasting ability (best mental score when unset)."""
    if caster.spellcasting_ability:
        return caster.ability_modifier(caster.spellcasting_ability)
    return max(caster.ability_modifier(a) for a in ("intelligence", "wisdom", "charisma"))


def spell_save_dc(caster: CreatureState) -> int:
    """8 + proficiency + casting modifier."""
    return 8 + caster.proficiency_bonus + casting_modifier(caster)


def spell_attack_bonus(caster: CreatureState) -> int:
    """Proficiency + casting modifier."""
    return caster.proficiency_bonus + casting_modifier(caster)


def cantrip_die_multiplier(character_level: int) -> int:
    """1 below level 5, then one more die at 5, 11 and 17."""
    return 1 + sum(1 for threshold in CANTRIP_SCALING_LEVELS if character_level >= threshold)


def scale_dice(notation: str, multiplier: int) -> str:
    """'1d10' x2 -> '2d10'. Flat modifiers are left alone."""
    if multiplier == 1:
        return notation

    def _scale(match):
        count = int(match.group(1)) if match.group(1) else 1
        return f"{count * multiplier}d{match.group(2)}"

    return _DICE_TERM.sub(_scale, notation)


def spell_damage_dice(spell: SpellRef, caster_level: int, slot_level: Optional[int] = None) -> Optional[str]:
    """Damage dice after cantrip scaling or the upcast table."""
    if not spell.damage_dice:
        return None
    if spell.is_cantrip:
        return scale_dice(spell.damage_dice, cantrip_die_multiplier(caster_level))
    if slot_level is not None and slot_level in spell.damage_at_slot_level:
        return spell.damage_at_slot_level[slot_level]
    return spell.damage_dice


def spell_heal_dice(spell: SpellRef, slot_level: Optional[int] = None) -> Optional[str]:
    if not spell.heal_dice:
        return None
    if slot_level is not None and slot_level in spell.heal_at_slot_level:
        return spell.heal_at_slot_level[slot_level]
    return spell.heal_dice


def roll_spell_healing(spell: SpellRef, caster: CreatureState, slot_level: Optional[int] = None) -> Optional[DamageResult]:
    dice = spell_heal_dice(spell, slot_level)
    if dice is None:
        return None
    modifier = casting_modifier(caster) if spell.add_modifier_to_heal else 0
    return roll_damage(dice, modifier=modifier)


# =============================================================================
# VALIDATION
# =============================================================================

def has_spell_focus(equipment: List[str]) -> bool:
    """A component pouch or any spellcasting focus in the equipment list."""
    return any(SPELL_FOCUS_PATTERN.search(item.lower()) for item in equipment)


def check_components(caster: CreatureState, spell: SpellRef) -> None:
    """Raise MissingComponentError when a component can't be provided."""
    if spell.requires_verbal:
        blocker = blocks_verbal_components(caster.conditions)
        if blocker:
            raise MissingComponentError(spell.name, "V", f"verbal component blocked ({blocker})")
    if spell.requires_material and not has_spell_focus(caster.equipment):
        raise MissingComponentError(
            spell.name, "M", "material component requires a spellcasting focus or component pouch"
        )


def check_casting_economy(caster: CreatureState, spell: SpellRef) -> ActionResource:
    """
    Check this turn's action economy for a cast and return the resource it uses.

    After a bonus-action spell, the action can only cast a cantrip; after a
    leveled action spell, a bonus-action spell must be a cantrip.
    """
    resource = ActionResource(spell.economy)
    turn = caster.turn

    if resource == ActionResource.ACTION and turn.bonus_action_spell_cast and not spell.is_cantrip:
        raise RuleViolationError(
            "A bonus-action spell was cast this turn; only a cantrip can be cast with the action",
            rule="bonus_action_spell",
            details={"spell": spell.name, "spell_level": spell.level},
            recovery_hint="Cast a cantrip or take a different action",
        )
    if resource == ActionResource.BONUS_ACTION and turn.action_spell_cast and not spell.is_cantrip:
        raise RuleViolationError(
            "A leveled spell was cast with the action this turn; bonus-action spells are limited to cantrips",
            rule="bonus_action_spell",
            details={"spell": spell.name, "spell_level": spell.level},
            recovery_hint="Use the bonus action for something else",
        )
    if not caster.has_resource(resource):
        raise ResourceExhaustedError(resource.value, available=0, required=1)
    return resource


def _select_slot_level(caster: CreatureState, spell: SpellRef, requested: Optional[int]) -> int:
    if caster.caster_type == PACT_CASTER:
        pact_level = get_pact_slot_level(caster.level)
        if requested is not None and requested != pact_level:
            raise RuleViolationError(
                f"Pact magic slots are always level {pact_level}",
                rule="pact_magic",
                details={"requested": requested, "pact_level": pact_level},
                recovery_hint="Omit slot_level to cast at the pact level",
            )
        if spell.level > pact_level:
            raise ResourceExhaustedError(
                f"level_{spell.level}_spell_slot",
                available=0,
                required=1,
                message=f"No level-{spell.level} spell slots remaining",
            )
        return pact_level

    slot_level = requested if requested is not None else spell.level
    if slot_level < spell.level:
        raise ValidationError(
            "slot_level",
            f"{spell.name} is a level-{spell.level} spell and can't be cast with a level-{slot_level} slot",
            slot_level,
        )
    if slot_level > MAX_SPELL_LEVEL:
        raise ValidationError("slot_level", f"Spell slots only go up to level {MAX_SPELL_LEVEL}", slot_level)
    return slot_level


def _check_slot_available(caster: CreatureState, slot_level: int) -> None:
    total = get_spell_slots(caster.caster_type, caster.level).get(slot_level, 0)
    used = caster.spell_slots_used.get(slot_level, 0)
    if used >= total:
        raise ResourceExhaustedError(
            f"level_{slot_level}_spell_slot",
            available=max(0, total - used),
            required=1,
            message=f"No level-{slot_level} spell slots remaining",
        )


# =============================================================================
# CASTING
# =============================================================================

@dataclass
class CastResult:
    """What a successful cast consumed and changed on the caster."""
    spell: SpellRef
    effective_level: int
    slot_consumed: Optional[int] = None
    is_ritual: bool = False
    economy: Optional[str] = None
    cantrip_dice_multiplier: int = 1
    concentration_started: Optional[str] = None
    concentration_dropped: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spell": self.spell.slug,
            "spell_name": self.spell.name,
            "spell_level": self.spell.level,
            "effective_level": self.effective_level,
            "slot_consumed": self.slot_consumed,
            "is_ritual": self.is_ritual,
            "economy": self.economy,
            "cantrip_dice_multiplier": self.cantrip_dice_multiplier,
            "concentration_started": self.concentration_started,
            "concentration_dropped": self.concentration_dropped,
        }


def resolve_cast(
    caster: CreatureState,
    spell_slug: str,
    reference: ReferenceSnapshot,
    requested_slot_level: Optional[int] = None,
    is_ritual: bool = False,
    enforce_economy: bool = False,
) -> CastResult:
    """
    Validate and pay for a spell.

    Args:
        caster: The creature casting
        spell_slug: Slug or name of the spell
        reference: Snapshot holding the spell table
        requested_slot_level: Upcast level; pact casters auto-select
        is_ritual: Cast as a ritual (no slot)
        enforce_economy: Spend the action/bonus action/reaction (in combat)

    Raises:
        ValidationError: unknown spell or impossible slot level
        MissingComponentError: verbal or material component unavailable
        ResourceExhaustedError: no slot or economy resource left
        RuleViolationError: bonus-action spell rule, ritual tag missing
    """
    spell = reference.get_spell(spell_slug)
    if spell is None:
        raise ValidationError("spell_slug", f"Unknown spell '{spell_slug}'", spell_slug)

    check_components(caster, spell)

    resource = check_casting_economy(caster, spell) if enforce_economy else None

    result = CastResult(spell=spell, effective_level=spell.level, is_ritual=is_ritual)

    if is_ritual:
        if not spell.ritual:
            raise RuleViolationError(
                f"{spell.name} can't be cast as a ritual",
                rule="ritual",
                details={"spell": spell.slug},
            )
    elif spell.is_cantrip:
        result.cantrip_dice_multiplier = cantrip_die_multiplier(caster.level)
    else:
        slot_level = _select_slot_level(caster, spell, requested_slot_level)
        _check_slot_available(caster, slot_level)
        result.effective_level = slot_level
        result.slot_consumed = slot_level

    # Every check passed; mutate
    if result.slot_consumed is not None:
        caster.spell_slots_used[result.slot_consumed] = caster.spell_slots_used.get(result.slot_consumed, 0) + 1

    if resource is not None:
        caster.consume_action_resource(resource)
        result.economy = resource.value
        if resource == ActionResource.BONUS_ACTION:
            caster.turn.bonus_action_spell_cast = True
        elif resource == ActionResource.ACTION and not spell.is_cantrip:
            caster.turn.action_spell_cast = True

    if spell.concentration:
        if caster.concentrating_on and caster.concentrating_on != spell.name:
            result.concentration_dropped = caster.concentrating_on
        caster.concentrating_on = spell.name
        result.concentration_started = spell.name

    logger.debug(
        "%s cast %s (level %d, slot %s, ritual=%s)",
        caster.name, spell.name, result.effective_level, result.slot_consumed, is_ritual,
    )
    return result


# =============================================================================
# AREA EFFECTS
# =============================================================================

@dataclass
class AreaTargetResult:
    target_id: str
    name: str
    saved: bool = False
    save: Optional[Dict[str, Any]] = None
    damage: Optional[Dict[str, Any]] = None
    healing: Optional[Dict[str, Any]] = None
    conditions_applied: List[str] = field(default_factory=list)
    released: List[Dict[str, str]] = field(default_factory=list)
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "name": self.name,
            "saved": self.saved,
            "save": self.save,
            "damage": self.damage,
            "healing": self.healing,
            "conditions_applied": list(self.conditions_applied),
            "released": list(self.released),
            "snapshot": self.snapshot,
        }


@dataclass
class AreaEffectResult:
    spell: str
    save_dc: Optional[int]
    save_ability: Optional[str]
    dice: Optional[str]
    rolled: Optional[DamageResult]
    targets: List[AreaTargetResult] = field(default_factory=list)

    @property
    def total_damage(self) -> int:
        return sum((t.damage or {}).get("final_amount", 0) for t in self.targets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spell": self.spell,
            "save_dc": self.save_dc,
            "save_ability": self.save_ability,
            "dice": self.dice,
            "roll": self.rolled.to_dict() if self.rolled else None,
            "total_damage": self.total_damage,
            "targets": [t.to_dict() for t in self.targets],
        }


def apply_spell_conditions(
    spell: SpellRef,
    caster: CreatureState,
    target: CreatureState,
    roster: Dict[str, CreatureState],
) -> Dict[str, Any]:
    """Apply a spell's conditions to a target that failed its save. Immune targets are skipped."""
    applied = []
    released = []
    for name in spell.conditions_applied:
        condition = Condition.parse(name)
        if condition.rule.parameter == "source" and condition.source_id is None:
            condition = Condition(condition.kind, source_id=caster.id)
        if target.is_immune_to_condition(condition.kind):
            continue
        change = add_condition_with_effects(target, condition, roster)
        applied.extend(change.added)
        released.extend(change.released)
    return {"applied": applied, "released": released}


def resolve_area_effect(
    caster: CreatureState,
    spell: SpellRef,
    targets: List[CreatureState],
    roster: Dict[str, CreatureState],
    slot_level: Optional[int] = None,
    save_dc: Optional[int] = None,
) -> AreaEffectResult:
    """
    Resolve a spell against several targets at once.

    Damage is rolled once and shared. Each target saves against the same DC
    (the caster's unless ``save_dc`` is given), taking half on a success when
    the spell allows it. Each share goes through the damage pipeline.
    """
    if slot_level is None and not spell.is_cantrip:
        slot_level = spell.level

    dc = save_dc if save_dc is not None else spell_save_dc(caster)
    damage_dice = spell_damage_dice(spell, caster.level, slot_level)
    rolled = roll_damage(damage_dice) if damage_dice else None
    healing = roll_spell_healing(spell, caster, slot_level)

    result = AreaEffectResult(
        spell=spell.slug,
        save_dc=dc if spell.save_ability else None,
        save_ability=spell.save_ability,
        dice=damage_dice or spell_heal_dice(spell, slot_level),
        rolled=rolled or healing,
    )

    for target in targets:
        entry = AreaTargetResult(target_id=target.id, name=target.name)

        if spell.save_ability:
            save = roll_saving_throw(target, spell.save_ability, dc)
            entry.saved = save.success
            entry.save = save.to_dict()

        if rolled is not None and spell.damage_type:
            if entry.saved:
                share = rolled.total // 2 if spell.half_on_save else 0
            else:
                share = rolled.total
            report = deal_damage(target, share, spell.damage_type, roster, is_magical=True)
            entry.damage = report.to_dict()
            entry.released.extend(report.released)

        if healing is not None and not target.is_dead:
            entry.healing = target.apply_healing(healing.total).to_dict()

        if spell.conditions_applied and not entry.saved and not target.is_dead:
            applied = apply_spell_conditions(spell, caster, target, roster)
            entry.conditions_applied = applied["applied"]
            entry.released.extend(applied["released"])

        entry.snapshot = target.snapshot()
        result.targets.append(entry)

    logger.info(
        "%s: %s hit %d targets for %d total damage",
        caster.name, spell.name, len(targets), result.total_damage,
    )
    return result


def is_healing_spell(spell: SpellRef) -> bool:
    return spell.heal_dice is not None
