"""
Repository pattern for database access.

Writes to characters and combat sessions are compare-and-swap on the
``version`` column: ``UPDATE ... WHERE id = ? AND version = ?``. Zero rows
updated means another request got there first.
"""
import logging
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from arbiter.core.errors import ConcurrencyConflictError
from arbiter.database.models import (
    ActionLogEntry,
    CharacterRecord,
    CombatSessionRecord,
    utc_now,
)

logger = logging.getLogger("arbiter.database")


async def _compare_and_swap(
    session: AsyncSession,
    model: Type[SQLModel],
    entity: str,
    entity_id: str,
    expected_version: int,
    values: Dict[str, Any],
) -> int:
    """Versioned update. Returns the new version or raises ConcurrencyConflictError."""
    new_version = expected_version + 1
    result = await session.execute(
        update(model)
        .where(model.id == entity_id)
        .where(model.version == expected_version)
        .values(**values, version=new_version, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Stale write on %s %s (expected version %d)", entity, entity_id, expected_version)
        raise ConcurrencyConflictError(entity, entity_id, {"expected_version": expected_version})
    return new_version


# =============================================================================
# CHARACTER REPOSITORY
# =============================================================================

class CharacterRepository:
    """Repository for character combat projections."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, record: CharacterRecord) -> CharacterRecord:
        """Insert a new character."""
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_by_id(self, character_id: str) -> Optional[CharacterRecord]:
        """Get a character by ID, always reading the current row."""
        result = await self.session.execute(
            select(CharacterRecord)
            .where(CharacterRecord.id == character_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_lobby(self, lobby_id: str) -> List[CharacterRecord]:
        """Every character registered in a lobby, oldest first."""
        result = await self.session.execute(
            select(CharacterRecord)
            .where(CharacterRecord.lobby_id == lobby_id)
            .order_by(CharacterRecord.created_at, CharacterRecord.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def update_versioned(self, character_id: str, expected_version: int, **values: Any) -> int:
        """Write new column values if nobody else has since the read."""
        return await _compare_and_swap(
            self.session, CharacterRecord, "character", character_id, expected_version, values
        )


# =============================================================================
# COMBAT SESSION REPOSITORY
# =============================================================================

class CombatSessionRepository:
    """Repository for per-lobby combat sessions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, record: CombatSessionRecord) -> CombatSessionRecord:
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_for_lobby(self, lobby_id: str) -> Optional[CombatSessionRecord]:
        """The lobby's session row (active or not)."""
        result = await self.session.execute(
            select(CombatSessionRecord)
            .where(CombatSessionRecord.lobby_id == lobby_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_versioned(self, session_id: str, expected_version: int, **values: Any) -> int:
        return await _compare_and_swap(
            self.session, CombatSessionRecord, "combat_session", session_id, expected_version, values
        )


# =============================================================================
# ACTION LOG REPOSITORY
# =============================================================================

class ActionLogRepository:
    """Append-only action log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        lobby_id: str,
        action_type: str,
        description: str = "",
        result: str = "",
        character_id: Optional[str] = None,
        actor_name: str = "",
        round_number: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ActionLogEntry:
        """Create a new log entry."""
        entry = ActionLogEntry(
            lobby_id=lobby_id,
            character_id=character_id,
            actor_name=actor_name,
            action_type=action_type,
            description=description,
            result=result,
            round=round_number,
            data=data or {},
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def recent(self, lobby_id: str, limit: int = 5) -> List[ActionLogEntry]:
        """The last ``limit`` entries for a lobby, oldest first."""
        result = await self.session.execute(
            select(ActionLogEntry)
            .where(ActionLogEntry.lobby_id == lobby_id)
            .order_by(ActionLogEntry.id.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))
