"""
Shared plumbing for services that work on one lobby per request.

A request loads the lobby, runs synchronous engine code against the domain
objects, writes back what changed and appends to the action log. A broken
session invariant is persisted and committed before the error reaches the
caller, so the deactivation survives the request's rollback.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from arbiter.config import Settings, get_settings
from arbiter.core.combat_storage import LobbyState, load_lobby_state, persist_lobby_state
from arbiter.core.creature import CreatureState
from arbiter.core.errors import (
    CharacterNotFoundError,
    CombatantNotFoundError,
    InvariantViolationError,
    LobbyMismatchError,
)
from arbiter.core.reference import ReferenceSnapshot
from arbiter.database.models import ActionLogEntry
from arbiter.database.repositories import (
    ActionLogRepository,
    CharacterRepository,
    CombatSessionRepository,
)

logger = logging.getLogger("arbiter.services")

T = TypeVar("T")


def format_event(entry: ActionLogEntry) -> str:
    """'Aria attack: hits the goblin for 7' or 'Aria: swings wildly'."""
    name = entry.actor_name or entry.character_id or "GM"
    if entry.result:
        return f"{name} {entry.action_type}: {entry.result}"
    return f"{name}: {entry.description}"


class LobbyService:
    """Base for the combat, action and ledger services."""

    def __init__(
        self,
        db: AsyncSession,
        reference: ReferenceSnapshot,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.reference = reference
        self.settings = settings or get_settings()
        self.characters = CharacterRepository(db)
        self.sessions = CombatSessionRepository(db)
        self.log = ActionLogRepository(db)

    async def load(self, lobby_id: str) -> LobbyState:
        return await load_lobby_state(lobby_id, self.characters, self.sessions)

    async def save(self, state: LobbyState) -> None:
        await persist_lobby_state(state, self.characters, self.sessions)

    async def lobby_of(self, creature_id: str, lobby_id: Optional[str] = None) -> str:
        """
        Work out which lobby a creature id belongs to.

        Characters carry their lobby. Monster ids only exist inside a
        session, so the caller has to name the lobby for them.
        """
        record = await self.characters.get_by_id(creature_id)
        if record is not None:
            if lobby_id is not None and record.lobby_id != lobby_id:
                raise LobbyMismatchError(creature_id, lobby_id, record.lobby_id)
            return record.lobby_id
        if lobby_id is None:
            raise CharacterNotFoundError(creature_id)
        return lobby_id

    @staticmethod
    def find_creature(state: LobbyState, creature_id: str) -> CreatureState:
        creature = state.roster.get(creature_id)
        if creature is None:
            raise CombatantNotFoundError(creature_id)
        return creature

    async def run_guarded(self, state: LobbyState, operation: Callable[[], T]) -> T:
        """
        Run engine code that may find the session corrupted.

        On InvariantViolationError the deactivated session is written and
        committed, then the error propagates.
        """
        try:
            return operation()
        except InvariantViolationError as e:
            logger.error("Lobby %s session deactivated: %s", state.lobby_id, e.message)
            if not state.session.deactivation_reason:
                state.session.deactivate(e.message)
            await self.save(state)
            await self.db.commit()
            raise

    async def record(
        self,
        state: LobbyState,
        action_type: str,
        actor: Optional[CreatureState] = None,
        description: str = "",
        result: str = "",
        data: Optional[Dict[str, Any]] = None,
    ) -> ActionLogEntry:
        return await self.log.append(
            lobby_id=state.lobby_id,
            action_type=action_type,
            description=description,
            result=result,
            character_id=actor.id if actor else None,
            actor_name=actor.name if actor else "GM",
            round_number=state.session.round if state.session.is_active else None,
            data=data,
        )

    async def recent_events(self, lobby_id: str) -> List[str]:
        entries = await self.log.recent(lobby_id, self.settings.RECENT_EVENTS_LIMIT)
        return [format_event(e) for e in entries]
