"""Database package for the combat arbiter."""
from arbiter.database.engine import (
    close_db,
    get_engine,
    get_session,
    init_db,
)
from arbiter.database.models import (
    ActionLogEntry,
    CharacterRecord,
    CombatSessionRecord,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_db",
    "close_db",
    "CharacterRecord",
    "CombatSessionRecord",
    "ActionLogEntry",
]
