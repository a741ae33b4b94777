"""
Combat Arbiter - Test Configuration and Fixtures
Shared creatures and reference data for pytest.
"""
from datetime import datetime
from typing import Any, Dict

import pytest

from arbiter.core.combat_session import CombatSession
from arbiter.core.creature import CreatureState
from arbiter.core.initiative import spawn_monster
from arbiter.core.reference import load_reference_snapshot

LOBBY_ID = "lobby-1"
NOW = datetime(2026, 3, 1, 12, 0, 0)


def build_character(**overrides: Any) -> CreatureState:
    """A level 1 human fighter unless told otherwise."""
    data: Dict[str, Any] = {
        "id": "aria",
        "name": "Aria",
        "lobby_id": LOBBY_ID,
        "character_class": "fighter",
        "race": "human",
        "level": 1,
        "abilities": {
            "strength": 16,
            "dexterity": 12,
            "constitution": 14,
            "intelligence": 10,
            "wisdom": 10,
            "charisma": 8,
        },
        "max_hp": 12,
        "current_hp": 12,
        "armor_class": 16,
        "speed": 30,
        "save_proficiencies": ["strength", "constitution"],
        "equipment": ["Longsword", "Dagger"],
    }
    data.update(overrides)
    return CreatureState(**data)


# ==================== Reference Fixtures ====================

@pytest.fixture(scope="session")
def reference():
    """The bundled reference snapshot."""
    return load_reference_snapshot()


# ==================== Creature Fixtures ====================

@pytest.fixture
def make_character():
    """Factory for characters; keyword overrides replace the fighter defaults."""
    return build_character


@pytest.fixture
def fighter() -> CreatureState:
    """Aria, a level 1 fighter."""
    return build_character()


@pytest.fixture
def wizard() -> CreatureState:
    """Bram, a level 5 wizard with a component pouch."""
    return build_character(
        id="bram",
        name="Bram",
        character_class="wizard",
        level=5,
        abilities={
            "strength": 8,
            "dexterity": 14,
            "constitution": 12,
            "intelligence": 16,
            "wisdom": 12,
            "charisma": 10,
        },
        max_hp=22,
        current_hp=22,
        armor_class=12,
        caster_type="full",
        spellcasting_ability="intelligence",
        save_proficiencies=["intelligence", "wisdom"],
        equipment=["Quarterstaff", "Component pouch"],
    )


@pytest.fixture
def cleric() -> CreatureState:
    """Cora, a level 3 cleric carrying a holy symbol."""
    return build_character(
        id="cora",
        name="Cora",
        character_class="cleric",
        race="dwarf",
        level=3,
        abilities={
            "strength": 12,
            "dexterity": 10,
            "constitution": 14,
            "intelligence": 10,
            "wisdom": 16,
            "charisma": 10,
        },
        max_hp=24,
        current_hp=24,
        armor_class=18,
        speed=25,
        caster_type="full",
        spellcasting_ability="wisdom",
        save_proficiencies=["wisdom", "charisma"],
        resistances=["poison"],
        equipment=["Mace", "Holy symbol"],
    )


@pytest.fixture
def goblin(reference) -> CreatureState:
    """A fresh goblin instance."""
    return spawn_monster(reference.get_monster("goblin"), "goblin-1", lobby_id=LOBBY_ID)


@pytest.fixture
def dragon(reference) -> CreatureState:
    """An adult red dragon with legendary and lair actions."""
    return spawn_monster(reference.get_monster("adult-red-dragon"), "dragon-1", lobby_id=LOBBY_ID)


# ==================== Session Fixtures ====================

@pytest.fixture
def now() -> datetime:
    """A fixed request time (naive UTC)."""
    return NOW


@pytest.fixture
def session() -> CombatSession:
    """An inactive combat session for the test lobby."""
    return CombatSession(lobby_id=LOBBY_ID)
