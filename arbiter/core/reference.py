"""
Reference data snapshot (spells, monsters, classes, races, weapons).

The snapshot is built once from JSON, never mutated, and handed to the
engines that need it. Reloading means building a new snapshot.
"""
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("arbiter.reference")

DEFAULT_REFERENCE_PATH = Path(__file__).parent.parent / "data" / "reference.json"

DEFAULT_SPEED = 30
SPELL_FOCUS_ITEMS = (
    "component pouch",
    "arcane focus",
    "holy symbol",
    "druidic focus",
    "spellcasting focus",
    "crystal",
    "orb",
    "rod",
    "staff",
    "wand",
    "amulet",
    "emblem",
    "reliquary",
    "totem",
    "instrument",
    "lute",
)

# Whole words only: a quarterstaff is a weapon, not a staff focus.
SPELL_FOCUS_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(f) for f in SPELL_FOCUS_ITEMS) + r")s?\b")


def slugify(name: str) -> str:
    """'Hunter's Mark' -> 'hunters-mark'."""
    text = (name or "").strip().lower().replace("'", "").replace("+", "plus-")
    return re.sub(r"[^a-z0-9]+", "-", text).strip("-")


# =============================================================================
# ENTRY MODELS
# =============================================================================

class SpellRef(BaseModel):
    """A spell as the resolver needs it."""
    slug: str
    name: str
    level: int = Field(default=0, ge=0, le=9)
    school: str = ""
    casting_time: str = "1 action"
    range: str = ""
    components: Tuple[str, ...] = ()
    material: Optional[str] = None
    ritual: bool = False
    concentration: bool = False
    duration: str = "Instantaneous"
    damage_dice: Optional[str] = None
    damage_type: Optional[str] = None
    damage_at_slot_level: Dict[int, str] = Field(default_factory=dict)
    heal_dice: Optional[str] = None
    heal_at_slot_level: Dict[int, str] = Field(default_factory=dict)
    add_modifier_to_heal: bool = False
    save_ability: Optional[str] = None
    half_on_save: bool = True
    attack_type: Optional[str] = None  # "melee" or "ranged"
    auto_hit: bool = False
    area: bool = False
    conditions_applied: Tuple[str, ...] = ()
    classes: Tuple[str, ...] = ()
    description: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def is_cantrip(self) -> bool:
        return self.level == 0

    @property
    def economy(self) -> str:
        """Which action-economy slot casting uses."""
        text = self.casting_time.lower()
        if "bonus" in text:
            return "bonus_action"
        if "reaction" in text:
            return "reaction"
        return "action"

    @property
    def requires_verbal(self) -> bool:
        return "V" in self.components

    @property
    def requires_material(self) -> bool:
        return "M" in self.components


class MonsterAction(BaseModel):
    name: str
    attack_bonus: int = 0
    damage_dice: str = "1d6"
    damage_type: str = "bludgeoning"
    is_melee: bool = True
    magical: bool = False

    model_config = ConfigDict(frozen=True)


class MonsterRef(BaseModel):
    slug: str
    name: str
    size: str = "Medium"
    type: str = ""
    armor_class: int = 10
    hit_points: int = 1
    hit_dice: str = ""
    speed: int = DEFAULT_SPEED
    abilities: Dict[str, int] = Field(default_factory=dict)
    challenge_rating: str = "0"
    proficiency_bonus: int = 2
    saving_throws: Dict[str, int] = Field(default_factory=dict)
    damage_resistances: Tuple[str, ...] = ()
    damage_immunities: Tuple[str, ...] = ()
    damage_vulnerabilities: Tuple[str, ...] = ()
    condition_immunities: Tuple[str, ...] = ()
    actions: Tuple[MonsterAction, ...] = ()
    legendary_resistances: int = 0
    legendary_actions: int = 0
    lair_actions: bool = False

    model_config = ConfigDict(frozen=True)


class ClassRef(BaseModel):
    slug: str
    name: str
    hit_die: int = 8
    saving_throws: Tuple[str, ...] = ()
    spellcasting_ability: Optional[str] = None
    caster_type: Optional[str] = None  # "full", "half", "pact"
    tactics: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class RaceRef(BaseModel):
    slug: str
    name: str
    speed: int = DEFAULT_SPEED
    size: str = "Medium"
    damage_resistances: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class WeaponRef(BaseModel):
    slug: str
    name: str
    category: str = "simple"
    weapon_type: str = "melee"  # "melee" or "ranged"
    damage_dice: str = "1d4"
    damage_type: str = "bludgeoning"
    properties: Tuple[str, ...] = ()
    magical: bool = False

    model_config = ConfigDict(frozen=True)

    def has_property(self, prop: str) -> bool:
        return any(p.lower() == prop for p in self.properties)

    @property
    def is_ranged(self) -> bool:
        return self.weapon_type == "ranged"

    @property
    def uses_dexterity(self) -> bool:
        return self.is_ranged or self.has_property("finesse")


UNARMED_STRIKE = WeaponRef(
    slug="unarmed",
    name="Improvised Strike",
    damage_dice="1d4",
    damage_type="bludgeoning",
)


# =============================================================================
# SNAPSHOT
# =============================================================================

T = TypeVar("T", bound=BaseModel)


def _index(model: type, entries: Iterable[Dict[str, Any]]) -> Mapping[str, Any]:
    table = {}
    for raw in entries or []:
        entry = model(**raw)
        table[entry.slug] = entry
    return MappingProxyType(table)


def _longest_name_match(text: str, table: Mapping[str, T]) -> Optional[T]:
    haystack = f" {(text or '').lower()} "
    best = None
    best_len = 0
    for entry in table.values():
        for candidate in {entry.name.lower(), entry.slug.replace("-", " ")}:
            if len(candidate) <= best_len:
                continue
            if re.search(rf"(?<![a-z0-9]){re.escape(candidate)}(?![a-z0-9])", haystack):
                best, best_len = entry, len(candidate)
    return best


@dataclass(frozen=True)
class ReferenceSnapshot:
    """Read-only lookup tables keyed by slug."""
    spells: Mapping[str, SpellRef]
    monsters: Mapping[str, MonsterRef]
    classes: Mapping[str, ClassRef]
    races: Mapping[str, RaceRef]
    weapons: Mapping[str, WeaponRef]
    source: str = "inline"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "inline") -> "ReferenceSnapshot":
        return cls(
            spells=_index(SpellRef, data.get("spells")),
            monsters=_index(MonsterRef, data.get("monsters")),
            classes=_index(ClassRef, data.get("classes")),
            races=_index(RaceRef, data.get("races")),
            weapons=_index(WeaponRef, data.get("weapons")),
            source=source,
        )

    @classmethod
    def from_json_file(cls, path: Path) -> "ReferenceSnapshot":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        snapshot = cls.from_dict(data, source=str(path))
        logger.info(
            "Loaded reference snapshot from %s: %d spells, %d monsters, %d classes, %d races, %d weapons",
            path, len(snapshot.spells), len(snapshot.monsters), len(snapshot.classes),
            len(snapshot.races), len(snapshot.weapons),
        )
        return snapshot

    def get_spell(self, slug_or_name: Optional[str]) -> Optional[SpellRef]:
        return self.spells.get(slugify(slug_or_name)) if slug_or_name else None

    def get_monster(self, slug_or_name: Optional[str]) -> Optional[MonsterRef]:
        return self.monsters.get(slugify(slug_or_name)) if slug_or_name else None

    def get_class(self, slug_or_name: Optional[str]) -> Optional[ClassRef]:
        return self.classes.get(slugify(slug_or_name)) if slug_or_name else None

    def get_race(self, slug_or_name: Optional[str]) -> Optional[RaceRef]:
        return self.races.get(slugify(slug_or_name)) if slug_or_name else None

    def get_weapon(self, slug_or_name: Optional[str]) -> Optional[WeaponRef]:
        return self.weapons.get(slugify(slug_or_name)) if slug_or_name else None

    def race_speed(self, race: Optional[str]) -> int:
        """Walking speed for a race, 30 when unknown."""
        entry = self.get_race(race)
        return entry.speed if entry else DEFAULT_SPEED

    def find_weapon_in_text(self, text: str) -> Optional[WeaponRef]:
        """The longest weapon name mentioned in free text."""
        return _longest_name_match(text, self.weapons)

    def find_spell_in_text(self, text: str) -> Optional[SpellRef]:
        """The longest spell name mentioned in free text."""
        return _longest_name_match(text, self.spells)


def load_reference_snapshot(path: Optional[str] = None) -> ReferenceSnapshot:
    """Build a snapshot from ``path`` or the bundled data file."""
    return ReferenceSnapshot.from_json_file(Path(path) if path else DEFAULT_REFERENCE_PATH)
