"""
Turn Timeout Monitor.

Classifies how long the current turn has been running. Purely advisory:
nothing here mutates a session, the GM (or a scheduler) decides whether
to skip.

    < nudge threshold          normal
    nudge .. skip threshold    nudge_recommended (player turns only)
    >= skip threshold          skip_required
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from arbiter.config import Settings, get_settings


class TurnTimeoutStatus(str, Enum):
    NORMAL = "normal"
    NUDGE_RECOMMENDED = "nudge_recommended"
    SKIP_REQUIRED = "skip_required"


def utc_now() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class TurnTimeout:
    status: TurnTimeoutStatus
    elapsed_seconds: int
    auto_skip_at: Optional[datetime]
    seconds_until_auto_skip: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "elapsed_seconds": self.elapsed_seconds,
            "auto_skip_at": self.auto_skip_at.isoformat() if self.auto_skip_at else None,
            "seconds_until_auto_skip": self.seconds_until_auto_skip,
            "message": self.message,
        }


def classify_turn(
    turn_started_at: Optional[datetime],
    now: datetime,
    is_player: bool,
    settings: Optional[Settings] = None,
) -> TurnTimeout:
    """
    Classify the elapsed time of the current turn.

    Monster turns are never nudged; they stay normal until the skip
    threshold. The auto-skip deadline is the skip threshold plus the grace
    period.
    """
    settings = settings or get_settings()
    if turn_started_at is None:
        return TurnTimeout(
            status=TurnTimeoutStatus.NORMAL,
            elapsed_seconds=0,
            auto_skip_at=None,
            seconds_until_auto_skip=0,
            message="No turn in progress",
        )

    elapsed = max(timedelta(0), now - turn_started_at)
    nudge_after = timedelta(minutes=settings.TURN_NUDGE_AFTER_MINUTES)
    skip_after = timedelta(minutes=settings.TURN_SKIP_AFTER_MINUTES)
    auto_skip_at = turn_started_at + skip_after + timedelta(minutes=settings.AUTO_SKIP_GRACE_MINUTES)
    until_skip = max(0, int((auto_skip_at - now).total_seconds()))

    if elapsed >= skip_after:
        status = TurnTimeoutStatus.SKIP_REQUIRED
        message = f"Turn has run {_hours(elapsed)}; the GM should skip it"
    elif elapsed >= nudge_after and is_player:
        status = TurnTimeoutStatus.NUDGE_RECOMMENDED
        message = f"Turn has run {_hours(elapsed)}; nudge the player"
    else:
        status = TurnTimeoutStatus.NORMAL
        message = "Turn in progress"

    return TurnTimeout(
        status=status,
        elapsed_seconds=int(elapsed.total_seconds()),
        auto_skip_at=auto_skip_at,
        seconds_until_auto_skip=until_skip,
        message=message,
    )


def _hours(delta: timedelta) -> str:
    hours = delta.total_seconds() / 3600
    return f"{hours:.1f}h"
