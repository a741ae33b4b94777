"""
Database models for the combat arbiter.

Uses SQLModel (SQLAlchemy + Pydantic) for type-safe database access.
Conditions and nested state are stored as JSON; parsing into domain
objects happens in ``arbiter.core.combat_storage``.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import DateTime, Text
from sqlmodel import JSON, Column, Field, SQLModel


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime (naive, as stored)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# CHARACTER MODEL
# =============================================================================

class CharacterRecord(SQLModel, table=True):
    """
    Combat projection of a character.

    HP, AC and conditions are columns so the GM can query them; the rest of
    the ledger (turn flags, slots, death saves, defenses) lives in ``state``.
    """
    __tablename__ = "characters"

    id: str = Field(default_factory=generate_uuid, primary_key=True)
    lobby_id: str = Field(index=True)

    # Basic info
    name: str = Field(index=True)
    character_class: str = Field(default="")
    race: str = Field(default="")
    level: int = Field(default=1, ge=1, le=20)

    # Hit points
    max_hp: int = Field(default=1)
    current_hp: int = Field(default=1)
    temp_hp: int = Field(default=0)
    armor_class: int = Field(default=10)

    conditions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    state: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # Optimistic lock
    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))


# =============================================================================
# COMBAT SESSION MODEL
# =============================================================================

class CombatSessionRecord(SQLModel, table=True):
    """
    Persistent combat state for a lobby.

    Monster instances are embedded in ``turn_order`` and are not stored
    anywhere else.
    """
    __tablename__ = "combat_sessions"

    id: str = Field(default_factory=generate_uuid, primary_key=True)
    lobby_id: str = Field(index=True, unique=True)

    round: int = Field(default=1)
    current_turn_index: int = Field(default=0)
    is_active: bool = Field(default=False)
    turn_started_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))

    turn_order: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    lair_action_round: Optional[int] = None
    last_skip: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    deactivation_reason: Optional[str] = Field(default=None, sa_column=Column(Text))

    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))


# =============================================================================
# ACTION LOG MODEL
# =============================================================================

class ActionLogEntry(SQLModel, table=True):
    """
    One resolved action or GM operation.

    The most recent entries per lobby make up the "recent events" feed.
    """
    __tablename__ = "action_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    lobby_id: str = Field(index=True)
    character_id: Optional[str] = Field(default=None, index=True)
    actor_name: str = Field(default="")

    action_type: str
    description: str = Field(default="", sa_column=Column(Text))
    result: str = Field(default="", sa_column=Column(Text))
    round: Optional[int] = None

    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))
