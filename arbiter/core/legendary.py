"""
Legendary Resistance and Legendary Actions.

Legendary creatures carry two pools:
- legendary resistance: turn a failed save into a success (N/day)
- legendary actions: points spent at the end of other creatures' turns,
  refilled at the start of the creature's own turn

Lair actions are gated per round by the combat session.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional

from arbiter.core.errors import ResourceExhaustedError


@dataclass
class LegendaryPool:
    """A refillable pool of legendary uses."""
    max_uses: int = 0
    uses_remaining: int = 0

    @classmethod
    def full(cls, uses: int) -> "LegendaryPool":
        return cls(max_uses=uses, uses_remaining=uses)

    def spend(self, resource_name: str, cost: int = 1) -> int:
        """Spend ``cost`` uses, raising when the pool can't cover it."""
        if cost < 1:
            raise ValueError("cost must be positive")
        if self.uses_remaining < cost:
            raise ResourceExhaustedError(resource_name, available=self.uses_remaining, required=cost)
        self.uses_remaining -= cost
        return self.uses_remaining

    def reset(self) -> None:
        self.uses_remaining = self.max_uses

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_uses": self.max_uses,
            "uses_remaining": self.uses_remaining,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["LegendaryPool"]:
        if not data:
            return None
        return cls(
            max_uses=data.get("max_uses", 0),
            uses_remaining=data.get("uses_remaining", 0),
        )


def try_legendary_resistance(pool: Optional[LegendaryPool]) -> bool:
    """
    Spend one legendary resistance to succeed on a failed save.

    Monsters always spend it when available; the GM can remove the pool
    to opt out.
    """
    if pool is None or pool.uses_remaining <= 0:
        return False
    pool.uses_remaining -= 1
    return True
