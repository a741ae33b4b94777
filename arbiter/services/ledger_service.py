"""
GM ledger operations on a single creature.

Damage, healing, temporary HP and conditions, applied with the same
engine-initiated side effects the action resolver gets. Also registers
combat projections for new characters.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from arbiter.core.combat_storage import record_for_new_character
from arbiter.core.conditions import (
    Condition,
    add_condition_with_effects,
    remove_condition_with_effects,
)
from arbiter.core.creature import CreatureState
from arbiter.core.damage import deal_damage
from arbiter.core.errors import NotFoundError, ValidationError
from arbiter.core.rules_engine import ABILITY_SCORES, normalize_ability
from arbiter.core.spell_slots import CASTER_TYPES
from arbiter.services.lobby import LobbyService

logger = logging.getLogger("arbiter.services.ledger")


class LedgerService(LobbyService):

    async def register_character(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a combat projection for a character.

        Speed and racial resistances come from the race entry; save
        proficiencies and spellcasting from the class entry unless given.
        """
        class_ref = self.reference.get_class(data.get("character_class"))
        race_ref = self.reference.get_race(data.get("race"))

        abilities = {a: 10 for a in ABILITY_SCORES}
        for key, score in (data.get("abilities") or {}).items():
            ability = normalize_ability(key)
            if not 1 <= int(score) <= 30:
                raise ValidationError("abilities", f"{ability} must be between 1 and 30", score)
            abilities[ability] = int(score)

        max_hp = int(data["max_hp"])
        current_hp = data.get("current_hp")
        current_hp = max_hp if current_hp is None else int(current_hp)
        if max_hp < 1:
            raise ValidationError("max_hp", "Max HP must be at least 1", max_hp)
        if not 0 <= current_hp <= max_hp:
            raise ValidationError("current_hp", f"Current HP must be between 0 and {max_hp}", current_hp)

        resistances: List[str] = list(data.get("resistances") or [])
        if race_ref:
            resistances.extend(r for r in race_ref.damage_resistances if r not in resistances)

        caster_type = data.get("caster_type") or (class_ref.caster_type if class_ref else None)
        if caster_type is not None and caster_type not in CASTER_TYPES:
            raise ValidationError("caster_type", "caster_type must be full, half or pact", caster_type)

        creature = CreatureState(
            id=data.get("id") or str(uuid4()),
            name=data["name"],
            lobby_id=data["lobby_id"],
            abilities=abilities,
            level=int(data.get("level") or 1),
            character_class=data.get("character_class") or "",
            race=data.get("race") or "",
            max_hp=max_hp,
            current_hp=current_hp,
            armor_class=int(data.get("armor_class") or 10),
            speed=int(data.get("speed") or self.reference.race_speed(data.get("race"))),
            caster_type=caster_type,
            spellcasting_ability=data.get("spellcasting_ability") or (class_ref.spellcasting_ability if class_ref else None),
            resistances=resistances,
            immunities=list(data.get("immunities") or []),
            vulnerabilities=list(data.get("vulnerabilities") or []),
            condition_immunities=list(data.get("condition_immunities") or []),
            save_proficiencies=[
                normalize_ability(a)
                for a in (data.get("save_proficiencies") or (class_ref.saving_throws if class_ref else ()))
            ],
            equipment=list(data.get("equipment") or []),
        )
        if await self.characters.get_by_id(creature.id) is not None:
            raise ValidationError("id", f"Character '{creature.id}' already exists", creature.id)

        await self.characters.create(record_for_new_character(creature))
        logger.info("Registered %s (%s) in lobby %s", creature.name, creature.id, creature.lobby_id)
        return creature.snapshot()

    async def get(self, creature_id: str, lobby_id: Optional[str] = None) -> Dict[str, Any]:
        lobby_id = await self.lobby_of(creature_id, lobby_id)
        state = await self.load(lobby_id)
        creature = self.find_creature(state, creature_id)
        return {**creature.snapshot(), "spell_slot_summary": creature.slot_summary()}

    async def damage(
        self,
        creature_id: str,
        amount: int,
        damage_type: str = "",
        lobby_id: Optional[str] = None,
        is_magical: Optional[bool] = None,
        critical: bool = False,
    ) -> Dict[str, Any]:
        """Run GM-applied damage through the full damage pipeline."""
        if amount < 0:
            raise ValidationError("amount", "Damage cannot be negative", amount)
        lobby_id = await self.lobby_of(creature_id, lobby_id)
        state = await self.load(lobby_id)
        target = self.find_creature(state, creature_id)

        report = deal_damage(
            target, amount, damage_type or "", state.roster,
            critical=critical, is_magical=is_magical,
        )
        await self.save(state)
        await self.record(
            state, "damage", actor=target,
            description=f"{amount} {damage_type or 'untyped'} damage",
            result=f"takes {report.final_amount} damage ({target.current_hp}/{target.max_hp} HP)",
        )
        return {"damage": report.to_dict(), "creature": target.snapshot()}

    async def heal(self, creature_id: str, amount: int, lobby_id: Optional[str] = None) -> Dict[str, Any]:
        lobby_id = await self.lobby_of(creature_id, lobby_id)
        state = await self.load(lobby_id)
        target = self.find_creature(state, creature_id)

        outcome = target.apply_healing(amount)
        await self.save(state)
        await self.record(
            state, "heal", actor=target,
            description=f"{amount} healing",
            result=f"regains {outcome.healed} HP ({target.current_hp}/{target.max_hp} HP)",
        )
        return {"healing": outcome.to_dict(), "creature": target.snapshot()}

    async def grant_temp_hp(self, creature_id: str, amount: int, lobby_id: Optional[str] = None) -> Dict[str, Any]:
        lobby_id = await self.lobby_of(creature_id, lobby_id)
        state = await self.load(lobby_id)
        target = self.find_creature(state, creature_id)

        replaced = target.grant_temp_hp(amount)
        await self.save(state)
        await self.record(
            state, "temp_hp", actor=target,
            description=f"{amount} temporary HP",
            result=f"has {target.temp_hp} temporary HP" if replaced else "keeps existing temporary HP",
        )
        return {"applied": replaced, "creature": target.snapshot()}

    async def add_condition(self, creature_id: str, raw: str, lobby_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Add a condition with its side effects.

        A sourced condition (``grappled:<id>``) must name a creature in the
        same lobby.
        """
        lobby_id = await self.lobby_of(creature_id, lobby_id)
        state = await self.load(lobby_id)
        target = self.find_creature(state, creature_id)
        condition = Condition.parse(raw)
        if condition.source_id is not None:
            if condition.source_id not in state.roster:
                raise ValidationError(
                    "condition",
                    f"Source '{condition.source_id}' is not a creature in this lobby",
                    raw,
                )
            if condition.source_id == target.id:
                raise ValidationError("condition", "A creature can't be the source of its own condition", raw)

        change = add_condition_with_effects(target, condition, state.roster)
        await self.save(state)
        await self.record(
            state, "condition_added", actor=target,
            description=str(condition),
            result=f"is now {condition.rule.name.lower()}" if change.added else f"was already {condition.rule.name.lower()}",
            data={"released": change.released},
        )
        return {"change": change.to_dict(), "creature": target.snapshot()}

    async def remove_condition(self, creature_id: str, raw: str, lobby_id: Optional[str] = None) -> Dict[str, Any]:
        lobby_id = await self.lobby_of(creature_id, lobby_id)
        state = await self.load(lobby_id)
        target = self.find_creature(state, creature_id)

        change = remove_condition_with_effects(target, Condition.parse(raw))
        if not change.removed:
            raise NotFoundError("condition", raw)
        await self.save(state)
        await self.record(
            state, "condition_removed", actor=target,
            description=raw,
            result=f"no longer {', '.join(change.removed)}",
        )
        return {"change": change.to_dict(), "creature": target.snapshot()}
