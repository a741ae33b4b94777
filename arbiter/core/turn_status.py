"""
Turn status summary.

Everything a stateless agent needs to decide its next move in one payload:
whose turn it is, how the character and party are doing, which verbs are
currently legal and a few tactical hints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from arbiter.config import Settings, get_settings
from arbiter.core.combat_session import CombatSession
from arbiter.core.conditions import ConditionType, can_move, get_condition_summary, is_incapacitated
from arbiter.core.creature import CreatureState
from arbiter.core.reference import ReferenceSnapshot
from arbiter.core.spell_system import spell_save_dc
from arbiter.core.turn_timeout import classify_turn

ACTION_VERBS = ["attack", "cast", "dash", "disengage", "dodge", "help", "hide", "ready"]


def health_status(creature: CreatureState) -> str:
    """healthy / wounded (<= half) / critical (<= quarter) / unconscious / dead."""
    if creature.is_dead:
        return "dead"
    if creature.current_hp == 0:
        return "unconscious"
    if creature.current_hp <= creature.max_hp // 4:
        return "critical"
    if creature.current_hp <= creature.max_hp // 2:
        return "wounded"
    return "healthy"


def _is_caster(creature: CreatureState) -> bool:
    return bool(creature.caster_type or creature.spellcasting_ability)


def available_verbs(creature: CreatureState, session: Optional[CombatSession]) -> List[str]:
    """Verbs the resolver would currently accept from this creature."""
    in_combat = bool(session and session.is_active and session.find_entry(creature.id))
    my_turn = in_combat and session.current_combatant_id == creature.id
    verbs: List[str] = []

    if creature.is_dying:
        verbs.append("death_save")
    incapacitated, _ = is_incapacitated(creature.conditions)
    if creature.is_dead or incapacitated:
        if my_turn:
            verbs.append("end_turn")
        return verbs

    if not in_combat:
        verbs.extend(v for v in ACTION_VERBS if v != "cast" or _is_caster(creature))
        verbs.append("move")
        if creature.has_condition(ConditionType.PRONE):
            verbs.append("stand")
        return verbs

    if not my_turn:
        if not creature.turn.reaction_used:
            verbs.append("reaction")
        return verbs

    turn = creature.turn
    if not turn.action_used:
        verbs.extend(v for v in ACTION_VERBS if v != "cast" or _is_caster(creature))
    elif _is_caster(creature) and not turn.bonus_action_used:
        verbs.append("cast")
    if turn.attack_action_taken and not turn.bonus_action_used:
        verbs.append("offhand_attack")
    movable, _ = can_move(creature.conditions)
    if movable and turn.movement_remaining > 0:
        verbs.append("move")
        if creature.has_condition(ConditionType.PRONE) and turn.movement_remaining >= creature.effective_speed // 2:
            verbs.append("stand")
    verbs.append("end_turn")
    return verbs


def _suggestions(
    character: CreatureState,
    party: List[Dict[str, Any]],
    enemies: List[CreatureState],
    reference: Optional[ReferenceSnapshot],
) -> List[str]:
    suggestions = []
    status = health_status(character)
    if status == "critical":
        suggestions.append("You're critically wounded. Consider retreating, healing, or using the Dodge action.")
    elif status == "unconscious" and character.is_dying:
        suggestions.append("You're dying. Roll a death saving throw.")

    for ally in party:
        if ally["status"] in ("critical", "unconscious"):
            suggestions.append(f"{ally['name']} is {ally['status']} and may need help.")

    living = [e for e in enemies if not e.is_dead]
    if living:
        weakest = min(living, key=lambda e: e.current_hp)
        if weakest.current_hp < weakest.max_hp:
            suggestions.append(f"{weakest.name} is the most wounded enemy ({weakest.current_hp}/{weakest.max_hp} HP).")

    if character.concentrating_on:
        suggestions.append(f"You're concentrating on {character.concentrating_on}; taking damage forces a Constitution save.")

    class_ref = reference.get_class(character.character_class) if reference else None
    if class_ref:
        suggestions.extend(class_ref.tactics)

    if not suggestions:
        suggestions.append("The party is in good shape. Press the attack or explore.")
    return suggestions


def build_turn_status(
    character: CreatureState,
    session: Optional[CombatSession],
    roster: Dict[str, CreatureState],
    recent_events: List[str],
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
    reference: Optional[ReferenceSnapshot] = None,
) -> Dict[str, Any]:
    """
    Build the "my turn" payload for a character.

    Args:
        character: The asking character
        session: The lobby's combat session, if any
        roster: Characters and monsters in the lobby, by id
        recent_events: Formatted log lines, oldest first
        settings: Timeout thresholds
        now: Current time (naive UTC)
        reference: Class tactics and spellcasting lookups
    """
    settings = settings or get_settings()
    in_combat = bool(session and session.is_active)

    current = None
    timeout = None
    if in_combat:
        entry = session.current_entry
        current = {"combatant_id": entry.combatant_id, "name": entry.name, "type": entry.combatant_type.value}
        if now is not None:
            timeout = classify_turn(session.turn_started_at, now, is_player=not entry.is_monster, settings=settings).to_dict()

    party = [
        {
            "id": c.id,
            "name": c.name,
            "class": c.character_class,
            "race": c.race,
            "hp": c.current_hp,
            "max_hp": c.max_hp,
            "ac": c.armor_class,
            "status": health_status(c),
            "conditions": [str(cond) for cond in c.conditions],
        }
        for c in roster.values()
        if not c.is_monster and c.id != character.id
    ]
    enemies = [c for c in roster.values() if c.is_monster]

    resources = character.snapshot()["resources"]
    rules_reminder = {}
    if character.spellcasting_ability:
        rules_reminder["spellcasting"] = (
            f"Your spellcasting ability is {character.spellcasting_ability}. "
            f"Spell save DC {spell_save_dc(character)} (8 + proficiency + {character.spellcasting_ability} modifier)."
        )
    if character.conditions:
        rules_reminder["conditions"] = get_condition_summary(character.conditions)

    return {
        "is_my_turn": in_combat and session.current_combatant_id == character.id,
        "in_combat": in_combat,
        "round": session.round if in_combat else None,
        "current_turn": current,
        "character": {
            "id": character.id,
            "name": character.name,
            "class": character.character_class,
            "race": character.race,
            "level": character.level,
            "hp": character.current_hp,
            "max_hp": character.max_hp,
            "temp_hp": character.temp_hp,
            "ac": character.armor_class,
            "status": health_status(character),
            "conditions": [str(cond) for cond in character.conditions],
            "concentrating_on": character.concentrating_on,
            "spell_slots": character.slot_summary(),
            "death_saves": character.death_saves.to_dict() if character.current_hp == 0 else None,
        },
        "resources": resources,
        "available_verbs": available_verbs(character, session),
        "party_status": party,
        "enemies": [
            {"id": e.id, "name": e.name, "status": health_status(e), "ac": e.armor_class}
            for e in enemies
        ],
        "tactical_suggestions": _suggestions(character, party, enemies, reference),
        "rules_reminder": rules_reminder,
        "timeout": timeout,
        "recent_events": recent_events[-settings.RECENT_EVENTS_LIMIT:] if recent_events else [],
    }
