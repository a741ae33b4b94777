"""
Storage bridge for lobby combat state.

Loads a lobby's characters and combat session out of the database into
domain objects, and writes back whatever a request changed. String
conditions are parsed here and nowhere else.

Only rows whose state differs from what was loaded are written, each with
a versioned compare-and-swap. The one exception is an active combat
session: its version is bumped on every write-back, so anything done
against a turn pointer that has since moved is rejected.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from arbiter.core.combat_session import CombatSession
from arbiter.core.creature import CreatureState
from arbiter.core.initiative import TurnEntry
from arbiter.database.models import CharacterRecord, CombatSessionRecord
from arbiter.database.repositories import CharacterRepository, CombatSessionRepository

logger = logging.getLogger("arbiter.storage")


# =============================================================================
# RECORD <-> DOMAIN
# =============================================================================

def creature_from_record(record: CharacterRecord) -> CreatureState:
    """Columns win over the JSON blob for the fields both carry."""
    data = dict(record.state or {})
    data.update(
        id=record.id,
        lobby_id=record.lobby_id,
        name=record.name,
        character_class=record.character_class,
        race=record.race,
        level=record.level,
        max_hp=record.max_hp,
        current_hp=record.current_hp,
        temp_hp=record.temp_hp,
        armor_class=record.armor_class,
        conditions=list(record.conditions or []),
    )
    return CreatureState.from_dict(data)


def character_values(creature: CreatureState) -> Dict[str, Any]:
    """Column values for a character row."""
    state = creature.to_dict()
    return {
        "lobby_id": creature.lobby_id,
        "name": creature.name,
        "character_class": creature.character_class,
        "race": creature.race,
        "level": creature.level,
        "max_hp": creature.max_hp,
        "current_hp": creature.current_hp,
        "temp_hp": creature.temp_hp,
        "armor_class": creature.armor_class,
        "conditions": state["conditions"],
        "state": state,
    }


def record_for_new_character(creature: CreatureState) -> CharacterRecord:
    return CharacterRecord(id=creature.id, **character_values(creature))


def session_from_record(record: CombatSessionRecord) -> CombatSession:
    return CombatSession(
        lobby_id=record.lobby_id,
        id=record.id,
        round=record.round,
        current_turn_index=record.current_turn_index,
        is_active=record.is_active,
        turn_started_at=record.turn_started_at,
        turn_order=[TurnEntry.from_dict(e) for e in record.turn_order or []],
        lair_action_round=record.lair_action_round,
        last_skip=record.last_skip,
        deactivation_reason=record.deactivation_reason,
        version=record.version,
    )


def session_values(session: CombatSession) -> Dict[str, Any]:
    return {
        "round": session.round,
        "current_turn_index": session.current_turn_index,
        "is_active": session.is_active,
        "turn_started_at": session.turn_started_at,
        "turn_order": [e.to_dict() for e in session.turn_order],
        "lair_action_round": session.lair_action_round,
        "last_skip": session.last_skip,
        "deactivation_reason": session.deactivation_reason,
    }


# =============================================================================
# LOBBY STATE
# =============================================================================

@dataclass
class LobbyState:
    """Everything one request may read or change for a lobby."""
    lobby_id: str
    characters: Dict[str, CreatureState]
    session: CombatSession
    character_versions: Dict[str, int] = field(default_factory=dict)
    session_exists: bool = False
    _character_baseline: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False)
    _session_baseline: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def roster(self) -> Dict[str, CreatureState]:
        return self.session.roster(self.characters)

    def changed_characters(self):
        for cid, creature in self.characters.items():
            if cid not in self._character_baseline:
                continue
            if character_values(creature) != self._character_baseline[cid]:
                yield creature

    def session_changed(self) -> bool:
        return session_values(self.session) != self._session_baseline

    @property
    def loaded_in_combat(self) -> bool:
        return self.session_exists and bool(self._session_baseline and self._session_baseline["is_active"])


async def load_lobby_state(
    lobby_id: str,
    characters: CharacterRepository,
    sessions: CombatSessionRepository,
) -> LobbyState:
    """Read a lobby's characters and session (a fresh inactive one if none)."""
    records = await characters.list_for_lobby(lobby_id)
    session_record = await sessions.get_for_lobby(lobby_id)

    creatures = {r.id: creature_from_record(r) for r in records}
    if session_record is not None:
        session = session_from_record(session_record)
    else:
        session = CombatSession(lobby_id=lobby_id)

    return LobbyState(
        lobby_id=lobby_id,
        characters=creatures,
        session=session,
        character_versions={r.id: r.version for r in records},
        session_exists=session_record is not None,
        _character_baseline={cid: character_values(c) for cid, c in creatures.items()},
        _session_baseline=session_values(session),
    )


async def persist_lobby_state(
    state: LobbyState,
    characters: CharacterRepository,
    sessions: CombatSessionRepository,
) -> None:
    """
    Write back every changed row.

    While combat is running the session's version moves on every write,
    even when only a character changed.

    Raises:
        ConcurrencyConflictError: a row was written by someone else since load
    """
    for creature in state.changed_characters():
        values = character_values(creature)
        state.character_versions[creature.id] = await characters.update_versioned(
            creature.id, state.character_versions[creature.id], **values
        )
        state._character_baseline[creature.id] = values

    if not state.session_changed():
        if state.loaded_in_combat:
            state.session.version = await sessions.update_versioned(state.session.id, state.session.version)
        return

    values = session_values(state.session)
    if state.session_exists:
        state.session.version = await sessions.update_versioned(state.session.id, state.session.version, **values)
    else:
        record = await sessions.create(CombatSessionRecord(lobby_id=state.lobby_id, **values))
        state.session.id = record.id
        state.session.version = record.version
        state.session_exists = True
    state._session_baseline = values
    logger.debug("Persisted lobby %s (session version %d)", state.lobby_id, state.session.version)
