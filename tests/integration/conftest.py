"""
Integration fixtures: an in-memory database, the services on top of it,
and an HTTP client against the real app.
"""
from typing import Any, Dict

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from arbiter.config import Settings, get_settings
from arbiter.services.action_service import ActionService
from arbiter.services.combat_service import CombatService
from arbiter.services.ledger_service import LedgerService


def aria_payload(**overrides: Any) -> Dict[str, Any]:
    data = {
        "id": "aria",
        "lobby_id": "lobby-1",
        "name": "Aria",
        "character_class": "fighter",
        "race": "human",
        "level": 1,
        "abilities": {"str": 16, "dex": 12, "con": 14, "int": 10, "wis": 10, "cha": 8},
        "max_hp": 12,
        "armor_class": 16,
        "equipment": ["Longsword", "Dagger"],
    }
    data.update(overrides)
    return data


def cora_payload(**overrides: Any) -> Dict[str, Any]:
    data = {
        "id": "cora",
        "lobby_id": "lobby-1",
        "name": "Cora",
        "character_class": "cleric",
        "race": "dwarf",
        "level": 3,
        "abilities": {"str": 12, "dex": 10, "con": 14, "int": 10, "wis": 16, "cha": 10},
        "max_hp": 24,
        "armor_class": 18,
        "equipment": ["Mace", "Holy symbol"],
    }
    data.update(overrides)
    return data


# ==================== Database Fixtures ====================

@pytest_asyncio.fixture
async def db_factory():
    """Session factory over a fresh in-memory SQLite database per test."""
    from arbiter.database import models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_factory):
    async with db_factory() as session:
        yield session


# ==================== Service Fixtures ====================

@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def ledger(db_session, reference, settings) -> LedgerService:
    return LedgerService(db_session, reference, settings)


@pytest.fixture
def combat_service(db_session, reference, settings) -> CombatService:
    return CombatService(db_session, reference, settings)


@pytest.fixture
def action_service(db_session, reference, settings) -> ActionService:
    return ActionService(db_session, reference, settings)


@pytest.fixture
def payloads():
    """Registration payload builders, keyed by character id."""
    return {"aria": aria_payload, "cora": cora_payload}


@pytest_asyncio.fixture
async def registered(ledger):
    """Aria and Cora registered in lobby-1."""
    await ledger.register_character(aria_payload())
    await ledger.register_character(cora_payload())
    await ledger.db.commit()
    return ledger


# ==================== API Fixtures ====================

@pytest.fixture
def client(tmp_path, monkeypatch):
    """The real app on a throwaway SQLite file."""
    from arbiter.database import engine as engine_module
    from arbiter.main import app

    monkeypatch.setattr(get_settings(), "DATABASE_URL", f"sqlite:///{tmp_path / 'arbiter.db'}")
    monkeypatch.setattr(engine_module, "_engine", None)
    monkeypatch.setattr(engine_module, "_session_factory", None)

    with TestClient(app) as test_client:
        yield test_client
