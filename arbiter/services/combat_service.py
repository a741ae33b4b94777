"""
Combat session control (GM side).

Start, advance, skip and end a lobby's combat, change the turn order, spend
legendary and lair actions and adjudicate area effects. Every operation is
logged to the lobby's action log.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from arbiter.core.creature import CreatureState
from arbiter.core.errors import CharacterNotFoundError, ValidationError
from arbiter.core.initiative import spawn_monster
from arbiter.core.spell_system import resolve_area_effect
from arbiter.core.turn_timeout import classify_turn
from arbiter.services.lobby import LobbyService

logger = logging.getLogger("arbiter.services.combat")


class CombatService(LobbyService):
    """Session control for one lobby per call."""

    def _spawn_monsters(self, lobby_id: str, monsters: List[Dict[str, Any]]) -> List[CreatureState]:
        """
        Build monster instances from ``{"slug", "name"?, "count"?}`` entries.

        Instance ids are ``<slug>-<6 hex>``; several of one kind get numbered names.
        """
        spawned = []
        for spec in monsters:
            slug = spec.get("slug")
            ref = self.reference.get_monster(slug)
            if ref is None:
                raise ValidationError("monsters", f"Unknown monster '{slug}'", slug)
            count = int(spec.get("count") or 1)
            if count < 1:
                raise ValidationError("count", "Monster count must be at least 1", count)
            base_name = spec.get("name") or ref.name
            for n in range(1, count + 1):
                name = f"{base_name} {n}" if count > 1 else base_name
                spawned.append(spawn_monster(ref, f"{ref.slug}-{uuid4().hex[:6]}", name=name, lobby_id=lobby_id))
        return spawned

    @staticmethod
    def _bonuses(monster_specs: List[Dict[str, Any]], spawned: List[CreatureState], extra: Optional[Dict[str, int]]) -> Dict[str, int]:
        bonuses = dict(extra or {})
        by_slug = {}
        for spec in monster_specs:
            by_slug[spec.get("slug")] = int(spec.get("initiative_bonus") or 0)
        for monster in spawned:
            bonuses.setdefault(monster.id, by_slug.get(monster.monster_slug, 0))
        return bonuses

    async def start(
        self,
        lobby_id: str,
        now: datetime,
        monsters: Optional[List[Dict[str, Any]]] = None,
        character_ids: Optional[List[str]] = None,
        initiative_bonuses: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        """Roll initiative for the lobby's characters (or a subset) plus any monsters."""
        state = await self.load(lobby_id)
        if character_ids is None:
            party = [c for c in state.characters.values() if not c.is_dead]
        else:
            party = []
            for cid in character_ids:
                if cid not in state.characters:
                    raise CharacterNotFoundError(cid)
                party.append(state.characters[cid])

        spawned = self._spawn_monsters(lobby_id, monsters or [])
        bonuses = self._bonuses(monsters or [], spawned, initiative_bonuses)
        order = state.session.start(party, spawned, now, bonuses)

        await self.save(state)
        await self.record(
            state, "combat_start",
            description=f"Combat begins with {len(order)} combatants",
            result=", ".join(f"{e.name} ({e.initiative})" for e in order),
        )
        return {
            "initiative": [e.to_dict() for e in order],
            "status": await self.status(lobby_id, now, state=state),
        }

    async def advance(
        self,
        lobby_id: str,
        now: datetime,
        expected_round: Optional[int] = None,
        expected_turn_index: Optional[int] = None,
        skip: bool = False,
    ) -> Dict[str, Any]:
        """Hand the turn to the next combatant (``skip`` records it as skipped)."""
        state = await self.load(lobby_id)
        session = state.session

        def transition():
            session.require_active()
            session.check_expected(expected_round, expected_turn_index)
            session.check_integrity(state.characters)
            if skip:
                return session.skip(state.characters, now)
            return session.advance(state.characters, now)

        change = await self.run_guarded(state, transition)
        await self.save(state)
        incoming = state.roster.get(change.current_id)
        await self.record(
            state, "turn_skip" if skip else "turn_advance",
            description=f"Round {change.round}",
            result=f"{'Skipped' if skip else 'Ended'} {change.previous_id}'s turn; {incoming.name if incoming else change.current_id} is up",
        )
        return {"turn_change": change.to_dict(), "status": await self.status(lobby_id, now, state=state)}

    async def end(self, lobby_id: str, now: datetime) -> Dict[str, Any]:
        state = await self.load(lobby_id)
        summary = state.session.end(state.characters)
        await self.save(state)
        await self.record(state, "combat_end", description="Combat ends", result=f"Combat ended after {summary['rounds']} rounds")
        return {"summary": summary, "status": await self.status(lobby_id, now, state=state)}

    async def add_combatants(
        self,
        lobby_id: str,
        now: datetime,
        character_ids: Optional[List[str]] = None,
        monsters: Optional[List[Dict[str, Any]]] = None,
        initiative_bonuses: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        state = await self.load(lobby_id)
        newcomers = []
        for cid in character_ids or []:
            if cid not in state.characters:
                raise CharacterNotFoundError(cid)
            newcomers.append(state.characters[cid])
        spawned = self._spawn_monsters(lobby_id, monsters or [])
        if not newcomers and not spawned:
            raise ValidationError("combatants", "Nothing to add")
        bonuses = self._bonuses(monsters or [], spawned, initiative_bonuses)

        added = await self.run_guarded(
            state, lambda: state.session.add_combatants(newcomers + spawned, bonuses)
        )
        await self.save(state)
        await self.record(
            state, "combatants_added",
            result=", ".join(f"{e.name} ({e.initiative})" for e in added),
        )
        return {"added": [e.to_dict() for e in added], "status": await self.status(lobby_id, now, state=state)}

    async def remove_combatant(self, lobby_id: str, combatant_id: str, now: datetime) -> Dict[str, Any]:
        state = await self.load(lobby_id)
        result = await self.run_guarded(
            state, lambda: state.session.remove_combatant(combatant_id, state.characters, now)
        )
        await self.save(state)
        await self.record(
            state, "combatant_removed",
            result=f"{result['removed']['name']} leaves combat",
            data={"released": result["released"]},
        )
        return {**result, "status": await self.status(lobby_id, now, state=state)}

    async def legendary_action(
        self,
        lobby_id: str,
        monster_id: str,
        now: datetime,
        cost: int = 1,
        description: str = "",
    ) -> Dict[str, Any]:
        state = await self.load(lobby_id)
        result = await self.run_guarded(state, lambda: state.session.use_legendary_action(monster_id, cost))
        await self.save(state)
        monster = state.roster[monster_id]
        await self.record(
            state, "legendary_action", actor=monster,
            description=description, result=f"spends {cost} legendary action point(s)",
        )
        return {**result, "status": await self.status(lobby_id, now, state=state)}

    async def lair_action(self, lobby_id: str, monster_id: str, now: datetime, description: str = "") -> Dict[str, Any]:
        state = await self.load(lobby_id)
        result = await self.run_guarded(state, lambda: state.session.use_lair_action(monster_id))
        await self.save(state)
        await self.record(
            state, "lair_action", actor=state.roster[monster_id],
            description=description, result=f"lair action in round {result['round']}",
        )
        return {**result, "status": await self.status(lobby_id, now, state=state)}

    async def area_effect(
        self,
        lobby_id: str,
        caster_id: str,
        spell_slug: str,
        target_ids: List[str],
        save_dc: Optional[int] = None,
        slot_level: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        GM-adjudicated area spell: one damage roll, a save per target.

        No slot or action is spent here; a caster casting on their own turn
        goes through the action endpoint instead.
        """
        state = await self.load(lobby_id)
        spell = self.reference.get_spell(spell_slug)
        if spell is None:
            raise ValidationError("spell_slug", f"Unknown spell '{spell_slug}'", spell_slug)
        if not target_ids:
            raise ValidationError("target_ids", "An area effect needs at least one target")
        if slot_level is not None and (slot_level < spell.level or slot_level > 9):
            raise ValidationError("slot_level", f"{spell.name} can't be cast at level {slot_level}", slot_level)
        caster = self.find_creature(state, caster_id)
        targets = [self.find_creature(state, tid) for tid in target_ids]

        result = resolve_area_effect(
            caster, spell, targets, state.roster,
            slot_level=None if spell.is_cantrip else slot_level,
            save_dc=save_dc,
        )
        await self.save(state)
        await self.record(
            state, "area_effect", actor=caster,
            description=f"{spell.name} on {', '.join(t.name for t in targets)}",
            result=f"{result.total_damage} total damage" if spell.damage_dice else f"{len(targets)} affected",
            data={"spell": spell.slug, "targets": target_ids},
        )
        return result.to_dict()

    async def status(self, lobby_id: str, now: datetime, state=None) -> Dict[str, Any]:
        """Session status plus timeout classification and the recent event feed."""
        if state is None:
            state = await self.load(lobby_id)
        session = state.session
        payload = session.status()
        entry = session.current_entry
        payload["timeout"] = (
            classify_turn(session.turn_started_at, now, is_player=not entry.is_monster, settings=self.settings).to_dict()
            if entry else None
        )
        payload["recent_events"] = await self.recent_events(lobby_id)
        return payload
