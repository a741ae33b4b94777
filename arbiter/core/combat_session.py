"""
Combat Session State Machine.

A session is either inactive or active with exactly one current
combatant and a turn start timestamp. Every transition takes ``now``
explicitly and the lobby's characters as a dict keyed by id; monster
instances live inside their turn entries.

Invariants:
- while active, the turn order is non-empty and the index points into it
- legendary-action points refill at the start of the monster's own turn
- at most one lair action per round

A broken invariant deactivates the session and raises
InvariantViolationError. It is never patched up silently.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from arbiter.core.conditions import (
    Condition,
    ConditionType,
    find_dangling_references,
    is_incapacitated,
    release_conditions_from,
    release_turn_scoped_from,
    without_combat_only,
)
from arbiter.core.creature import CreatureState
from arbiter.core.errors import (
    CombatAlreadyActiveError,
    CombatNotActiveError,
    CombatantNotFoundError,
    ConcurrencyConflictError,
    IncapacitatedError,
    InvariantViolationError,
    RuleViolationError,
    ValidationError,
)
from arbiter.core.initiative import TurnEntry, roll_initiative, sort_turn_order

logger = logging.getLogger("arbiter.combat")


@dataclass
class TurnChange:
    """Result of advance/skip/remove: who had the turn and who has it now."""
    previous_id: Optional[str]
    current_id: Optional[str]
    round: int
    new_round: bool = False
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous": self.previous_id,
            "current": self.current_id,
            "round": self.round,
            "new_round": self.new_round,
            "skipped": self.skipped,
        }


@dataclass
class CombatSession:
    """Combat state for one lobby."""
    lobby_id: str
    id: Optional[str] = None
    round: int = 1
    current_turn_index: int = 0
    is_active: bool = False
    turn_started_at: Optional[datetime] = None
    turn_order: List[TurnEntry] = field(default_factory=list)
    lair_action_round: Optional[int] = None
    last_skip: Optional[Dict[str, Any]] = None
    deactivation_reason: Optional[str] = None
    version: int = 0

    # ------------------------------------------------------------ lookups

    @property
    def current_entry(self) -> Optional[TurnEntry]:
        if not self.is_active or not 0 <= self.current_turn_index < len(self.turn_order):
            return None
        return self.turn_order[self.current_turn_index]

    @property
    def current_combatant_id(self) -> Optional[str]:
        entry = self.current_entry
        return entry.combatant_id if entry else None

    @property
    def lair_action_available(self) -> bool:
        if not self.is_active or self.lair_action_round == self.round:
            return False
        return any(e.creature is not None and e.creature.has_lair_actions for e in self.turn_order)

    def find_entry(self, combatant_id: str) -> Optional[TurnEntry]:
        for entry in self.turn_order:
            if entry.combatant_id == combatant_id:
                return entry
        return None

    def monsters(self) -> Dict[str, CreatureState]:
        return {e.combatant_id: e.creature for e in self.turn_order if e.creature is not None}

    def roster(self, characters: Dict[str, CreatureState]) -> Dict[str, CreatureState]:
        """Every creature in the lobby: characters plus monster instances."""
        merged = dict(characters)
        merged.update(self.monsters())
        return merged

    def creature_for(self, entry: TurnEntry, characters: Dict[str, CreatureState]) -> CreatureState:
        if entry.creature is not None:
            return entry.creature
        creature = characters.get(entry.combatant_id)
        if creature is None:
            raise self._corrupt(
                f"Turn order references missing character '{entry.combatant_id}'",
                {"combatant_id": entry.combatant_id},
            )
        return creature

    def pointer(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "current_turn_index": self.current_turn_index,
            "current_combatant_id": self.current_combatant_id,
            "is_active": self.is_active,
        }

    # ------------------------------------------------------------- guards

    def require_active(self) -> None:
        if not self.is_active:
            raise CombatNotActiveError(self.lobby_id)
        self.check_pointer()

    def check_pointer(self) -> None:
        if not self.turn_order:
            raise self._corrupt("Active session has an empty turn order")
        if not 0 <= self.current_turn_index < len(self.turn_order):
            raise self._corrupt(
                "Turn index is outside the turn order",
                {"current_turn_index": self.current_turn_index, "turn_order_length": len(self.turn_order)},
            )

    def check_expected(self, expected_round: Optional[int], expected_turn_index: Optional[int]) -> None:
        """Reject a request made against a stale view of the turn pointer."""
        if expected_round is not None and expected_round != self.round:
            raise ConcurrencyConflictError(
                "CombatSession", self.id or self.lobby_id,
                details={"expected_round": expected_round, "round": self.round},
            )
        if expected_turn_index is not None and expected_turn_index != self.current_turn_index:
            raise ConcurrencyConflictError(
                "CombatSession", self.id or self.lobby_id,
                details={
                    "expected_turn_index": expected_turn_index,
                    "current_turn_index": self.current_turn_index,
                },
            )

    def check_integrity(self, characters: Dict[str, CreatureState]) -> None:
        """Raise (and deactivate) on an empty order, bad index, or dangling references."""
        if not self.is_active:
            return
        self.check_pointer()
        for entry in self.turn_order:
            self.creature_for(entry, characters)
        roster = self.roster(characters)
        dangling = find_dangling_references(roster, roster.keys())
        if dangling:
            raise self._corrupt("Conditions reference creatures that no longer exist", {"dangling": dangling})

    def deactivate(self, reason: str) -> None:
        self.is_active = False
        self.deactivation_reason = reason
        self.turn_started_at = None

    def _corrupt(self, message: str, details: Optional[Dict[str, Any]] = None) -> InvariantViolationError:
        self.deactivate(message)
        logger.error("Combat session for lobby %s deactivated: %s %s", self.lobby_id, message, details or {})
        return InvariantViolationError(message, details={"lobby_id": self.lobby_id, **(details or {})})

    # -------------------------------------------------------- transitions

    def start(
        self,
        characters: List[CreatureState],
        monsters: List[CreatureState],
        now: datetime,
        initiative_bonuses: Optional[Dict[str, int]] = None,
    ) -> List[TurnEntry]:
        """Roll initiative for everyone and hand the first turn out."""
        if self.is_active:
            raise CombatAlreadyActiveError(self.lobby_id)

        combatants = list(characters) + list(monsters)
        if not combatants:
            raise ValidationError("combatants", "Combat needs at least one combatant")
        ids = [c.id for c in combatants]
        if len(set(ids)) != len(ids):
            raise ValidationError("combatants", "Combatant ids must be unique", ids)

        bonuses = initiative_bonuses or {}
        self.turn_order = sort_turn_order([roll_initiative(c, bonuses.get(c.id, 0)) for c in combatants])
        self.round = 1
        self.current_turn_index = 0
        self.is_active = True
        self.turn_started_at = now
        self.lair_action_round = None
        self.last_skip = None
        self.deactivation_reason = None

        for creature in combatants:
            creature.reset_turn_resources()
            if creature.legendary_actions:
                creature.legendary_actions.reset()

        logger.info(
            "Combat started in lobby %s: %s",
            self.lobby_id, ", ".join(f"{e.name} ({e.initiative})" for e in self.turn_order),
        )
        return self.turn_order

    def advance(self, characters: Dict[str, CreatureState], now: datetime) -> TurnChange:
        """
        End the current turn and start the next one.

        The outgoing combatant stops dodging. Wrapping past the last entry
        starts a new round and restores every creature's reaction.
        """
        self.require_active()
        outgoing = self.creature_for(self.turn_order[self.current_turn_index], characters)
        outgoing.remove_condition(Condition(ConditionType.DODGING))

        change = self._move_to(self.current_turn_index + 1, characters, now)
        change.previous_id = outgoing.id
        logger.info("Lobby %s: round %d, %s's turn", self.lobby_id, self.round, change.current_id)
        return change

    def skip(self, characters: Dict[str, CreatureState], now: datetime) -> TurnChange:
        """Advance past a combatant who didn't act, and record the skip."""
        self.require_active()
        skipped = self.turn_order[self.current_turn_index]
        skipped_round = self.round
        change = self.advance(characters, now)
        change.skipped = True
        self.last_skip = {
            "combatant_id": skipped.combatant_id,
            "name": skipped.name,
            "round": skipped_round,
            "skipped_at": now.isoformat(),
        }
        logger.info("Lobby %s: skipped %s in round %d", self.lobby_id, skipped.name, skipped_round)
        return change

    def end(self, characters: Dict[str, CreatureState]) -> Dict[str, Any]:
        """Deactivate and strip combat-only conditions from everyone."""
        if not self.is_active:
            raise CombatNotActiveError(self.lobby_id)

        monsters = self.monsters()
        released = []
        for monster_id in monsters:
            released.extend(release_conditions_from(monster_id, characters))
        for creature in characters.values():
            creature.conditions = without_combat_only(creature.conditions)

        summary = {
            "rounds": self.round,
            "released": released,
            "monsters": {mid: m.snapshot() for mid, m in monsters.items()},
        }
        self.is_active = False
        self.turn_started_at = None
        self.turn_order = []
        self.current_turn_index = 0
        self.lair_action_round = None
        logger.info("Combat ended in lobby %s after %d rounds", self.lobby_id, summary["rounds"])
        return summary

    def add_combatants(
        self,
        creatures: List[CreatureState],
        initiative_bonuses: Optional[Dict[str, int]] = None,
    ) -> List[TurnEntry]:
        """Roll initiative for newcomers and slot them in; the current turn doesn't move."""
        self.require_active()
        existing = {e.combatant_id for e in self.turn_order}
        for creature in creatures:
            if creature.id in existing:
                raise ValidationError("combatant_id", f"'{creature.id}' is already in combat", creature.id)

        bonuses = initiative_bonuses or {}
        current_id = self.current_combatant_id
        added = [roll_initiative(c, bonuses.get(c.id, 0)) for c in creatures]
        for creature in creatures:
            creature.reset_turn_resources()
            if creature.legendary_actions:
                creature.legendary_actions.reset()

        self.turn_order = sort_turn_order(self.turn_order + added)
        self.current_turn_index = self._index_of(current_id)
        return added

    def remove_combatant(
        self,
        combatant_id: str,
        characters: Dict[str, CreatureState],
        now: datetime,
    ) -> Dict[str, Any]:
        """
        Take a combatant out of the order.

        Conditions it imposed on others are released. Removing the current
        combatant hands the turn to the next entry; removing the last
        entry ends the session.
        """
        self.require_active()
        index = next((i for i, e in enumerate(self.turn_order) if e.combatant_id == combatant_id), None)
        if index is None:
            raise CombatantNotFoundError(combatant_id)

        roster = self.roster(characters)
        removed = self.turn_order.pop(index)
        released = release_conditions_from(combatant_id, roster)
        result = {"removed": removed.to_dict(), "released": released, "turn_change": None}

        if not self.turn_order:
            self.is_active = False
            self.turn_started_at = None
            self.current_turn_index = 0
            logger.info("Lobby %s: last combatant removed, combat over", self.lobby_id)
            return result

        if index < self.current_turn_index:
            self.current_turn_index -= 1
        elif index == self.current_turn_index:
            # The next entry slid into this index
            change = self._move_to(index, characters, now)
            change.previous_id = combatant_id
            result["turn_change"] = change.to_dict()

        return result

    def use_legendary_action(self, monster_id: str, cost: int = 1) -> Dict[str, Any]:
        """Spend legendary-action points outside the monster's own turn."""
        self.require_active()
        entry = self.find_entry(monster_id)
        if entry is None or entry.creature is None:
            raise CombatantNotFoundError(monster_id)
        monster = entry.creature
        if monster.legendary_actions is None:
            raise RuleViolationError(
                f"{monster.name} has no legendary actions",
                rule="legendary_action",
                details={"monster_id": monster_id},
            )
        if self.current_combatant_id == monster_id:
            raise RuleViolationError(
                "Legendary actions are taken at the end of another creature's turn",
                rule="legendary_action",
                details={"monster_id": monster_id},
                recovery_hint="Use the monster's normal actions on its own turn",
            )
        incapacitated, reasons = is_incapacitated(monster.conditions)
        if incapacitated or monster.is_dead:
            raise IncapacitatedError(monster.name, reasons or ["Dead"])

        remaining = monster.legendary_actions.spend("legendary_actions", cost)
        logger.info("%s spent %d legendary action point(s), %d left", monster.name, cost, remaining)
        return {"monster_id": monster_id, "cost": cost, "legendary_actions": monster.legendary_actions.to_dict()}

    def use_lair_action(self, monster_id: str) -> Dict[str, Any]:
        """Fire the lair action; at most once per round."""
        self.require_active()
        entry = self.find_entry(monster_id)
        if entry is None or entry.creature is None:
            raise CombatantNotFoundError(monster_id)
        if not entry.creature.has_lair_actions:
            raise RuleViolationError(
                f"{entry.creature.name} has no lair actions",
                rule="lair_action",
                details={"monster_id": monster_id},
            )
        if self.lair_action_round == self.round:
            raise RuleViolationError(
                "A lair action was already taken this round",
                rule="lair_action",
                details={"round": self.round},
                recovery_hint="Wait for the next round",
            )
        self.lair_action_round = self.round
        return {"monster_id": monster_id, "round": self.round}

    # ------------------------------------------------------------ helpers

    def _index_of(self, combatant_id: Optional[str]) -> int:
        for i, entry in enumerate(self.turn_order):
            if entry.combatant_id == combatant_id:
                return i
        raise self._corrupt("Current combatant vanished from the turn order", {"combatant_id": combatant_id})

    def _move_to(self, index: int, characters: Dict[str, CreatureState], now: datetime) -> TurnChange:
        new_round = index >= len(self.turn_order)
        if new_round:
            index = 0
            self.round += 1
            for creature in self.roster(characters).values():
                creature.turn.reaction_used = False

        self.current_turn_index = index
        incoming = self.creature_for(self.turn_order[index], characters)
        release_turn_scoped_from(incoming.id, self.roster(characters))
        incoming.reset_turn_resources()
        if incoming.legendary_actions:
            incoming.legendary_actions.reset()
        self.turn_started_at = now

        return TurnChange(previous_id=None, current_id=incoming.id, round=self.round, new_round=new_round)

    # -------------------------------------------------------- serialization

    def status(self) -> Dict[str, Any]:
        entry = self.current_entry
        return {
            "lobby_id": self.lobby_id,
            "is_active": self.is_active,
            "round": self.round,
            "current_turn_index": self.current_turn_index,
            "current_turn": {
                "combatant_id": entry.combatant_id,
                "name": entry.name,
                "type": entry.combatant_type.value,
                "started_at": self.turn_started_at.isoformat() if self.turn_started_at else None,
            } if entry else None,
            "turn_order": [
                {
                    "combatant_id": e.combatant_id,
                    "name": e.name,
                    "type": e.combatant_type.value,
                    "initiative": e.initiative,
                    "snapshot": e.creature.snapshot() if e.creature else None,
                }
                for e in self.turn_order
            ],
            "lair_action_available": self.lair_action_available,
            "last_skip": self.last_skip,
            "deactivation_reason": self.deactivation_reason,
            "version": self.version,
        }
