"""
Death Saving Throws.

- DC 10 saving throw on the creature's turn while at 0 HP
- Natural 20: regain 1 HP and consciousness
- Natural 1: counts as 2 failures
- 3 successes: stable (unconscious but no longer dying)
- 3 failures: dead
- Damage while at 0 HP: 1 failure, 2 on a critical hit
"""

from dataclasses import dataclass
from typing import Dict, Any
from enum import Enum

from arbiter.core.dice import roll_die

DEATH_SAVE_DC = 10


class DeathSaveOutcome(str, Enum):
    """Possible outcomes of a death save."""
    CONTINUE = "continue"
    STABILIZED = "stabilized"
    REVIVED = "revived"
    DEAD = "dead"


@dataclass
class DeathSaveState:
    """Tracks death saving throws for a creature at 0 HP."""
    successes: int = 0
    failures: int = 0
    is_stable: bool = False
    is_dead: bool = False

    def reset(self):
        """Reset counters (healed, revived, or newly dropped to 0)."""
        self.successes = 0
        self.failures = 0
        self.is_stable = False

    @property
    def is_clear(self) -> bool:
        return self.successes == 0 and self.failures == 0 and not self.is_stable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": self.successes,
            "failures": self.failures,
            "is_stable": self.is_stable,
            "is_dead": self.is_dead,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "DeathSaveState":
        data = data or {}
        return cls(
            successes=data.get("successes", 0),
            failures=data.get("failures", 0),
            is_stable=data.get("is_stable", False),
            is_dead=data.get("is_dead", False),
        )


@dataclass
class DeathSaveResult:
    """Result of a single death saving throw."""
    roll: int
    success: bool
    critical_success: bool
    critical_failure: bool
    total_successes: int
    total_failures: int
    outcome: DeathSaveOutcome
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roll": self.roll,
            "dc": DEATH_SAVE_DC,
            "success": self.success,
            "critical_success": self.critical_success,
            "critical_failure": self.critical_failure,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
            "outcome": self.outcome.value,
            "description": self.description,
        }


def roll_d20() -> int:
    """Roll a d20."""
    return roll_die(20)


def roll_death_save(state: DeathSaveState) -> DeathSaveResult:
    """
    Make a death saving throw. ``state`` is modified in place.

    A natural 20 resets the counters; the caller restores 1 HP.
    """
    roll = roll_d20()

    if roll == 20:
        state.reset()
        return DeathSaveResult(
            roll=roll,
            success=True,
            critical_success=True,
            critical_failure=False,
            total_successes=0,
            total_failures=0,
            outcome=DeathSaveOutcome.REVIVED,
            description="Natural 20! Consciousness returns with 1 HP",
        )

    if roll == 1:
        state.failures = min(3, state.failures + 2)
        outcome = DeathSaveOutcome.DEAD if state.failures >= 3 else DeathSaveOutcome.CONTINUE
        if outcome == DeathSaveOutcome.DEAD:
            state.is_dead = True
        return DeathSaveResult(
            roll=roll,
            success=False,
            critical_success=False,
            critical_failure=True,
            total_successes=state.successes,
            total_failures=state.failures,
            outcome=outcome,
            description=f"Natural 1! Two death save failures ({state.failures}/3)"
            + (" - the character has died" if outcome == DeathSaveOutcome.DEAD else ""),
        )

    success = roll >= DEATH_SAVE_DC
    if success:
        state.successes += 1
        if state.successes >= 3:
            state.is_stable = True
            outcome = DeathSaveOutcome.STABILIZED
            description = f"Success ({state.successes}/3) - the character is stable"
        else:
            outcome = DeathSaveOutcome.CONTINUE
            description = f"Success ({state.successes}/3 successes, {state.failures}/3 failures)"
    else:
        state.failures += 1
        if state.failures >= 3:
            state.is_dead = True
            outcome = DeathSaveOutcome.DEAD
            description = f"Failure ({state.failures}/3) - the character has died"
        else:
            outcome = DeathSaveOutcome.CONTINUE
            description = f"Failure ({state.successes}/3 successes, {state.failures}/3 failures)"

    return DeathSaveResult(
        roll=roll,
        success=success,
        critical_success=False,
        critical_failure=False,
        total_successes=state.successes,
        total_failures=state.failures,
        outcome=outcome,
        description=description,
    )


def take_damage_while_dying(state: DeathSaveState, was_critical: bool = False) -> Dict[str, Any]:
    """
    Handle taking damage while at 0 HP.

    Any damage is one failure; a critical hit is two. Damage also ends
    stability. Massive damage is handled by the ledger.
    """
    failures_added = 2 if was_critical else 1
    state.failures = min(3, state.failures + failures_added)
    state.is_stable = False

    result = {
        "failures_added": failures_added,
        "total_failures": state.failures,
        "died": False,
    }
    if state.failures >= 3:
        state.is_dead = True
        result["died"] = True
    return result
