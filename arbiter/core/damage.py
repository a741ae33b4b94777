"""
Damage Resolution Pipeline.

Order of application:
1. Immunity -> 0, stop
2. Universal resistance from a condition (petrified) -> half, skips type checks
3. Vulnerability x2 / resistance half; both together cancel
4. Environment (underwater halves fire), only without a universal halving

Resistance entries are free text ("bludgeoning, piercing, and slashing from
nonmagical attacks") matched case-insensitively by substring.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from arbiter.core.conditions import (
    ConditionType,
    get_universal_resistance,
    release_grapples,
)
from arbiter.core.creature import CreatureState, DamageOutcome
from arbiter.core.errors import ValidationError
from arbiter.core.rules_engine import check_concentration

logger = logging.getLogger("arbiter.damage")

UNDERWATER = "underwater"


@dataclass
class DamageResolution:
    """Final damage after the pipeline, with every modifier that applied."""
    raw_amount: int
    damage_type: str
    final_amount: int
    applied_modifiers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_amount": self.raw_amount,
            "damage_type": self.damage_type,
            "final_amount": self.final_amount,
            "applied_modifiers": list(self.applied_modifiers),
        }


def _entry_applies(entry: str, damage_type: str, is_magical: Optional[bool]) -> bool:
    text = entry.lower()
    if damage_type not in text:
        return False
    if ("nonmagical" in text or "non-magical" in text) and is_magical is True:
        return False
    return True


def _matches(entries: Iterable[str], damage_type: str, is_magical: Optional[bool]) -> Optional[str]:
    for entry in entries:
        if _entry_applies(entry, damage_type, is_magical):
            return entry
    return None


def resolve_damage(
    target: CreatureState,
    raw: int,
    damage_type: str,
    environment: Iterable[str] = (),
    is_magical: Optional[bool] = None,
) -> DamageResolution:
    """
    Run raw damage through immunity, resistance, vulnerability and
    environment modifiers.

    Args:
        target: Creature taking the damage
        raw: Rolled damage
        damage_type: "fire", "slashing", ...
        environment: Extra environment tags; the target's own
            underwater condition counts too
        is_magical: True/False when the source is known, None when not
    """
    if raw < 0:
        raise ValidationError("amount", "Damage cannot be negative", raw)

    damage_type = (damage_type or "").strip().lower()
    resolution = DamageResolution(raw_amount=raw, damage_type=damage_type, final_amount=raw)
    if not damage_type:
        return resolution

    immune = _matches(target.immunities, damage_type, is_magical)
    if immune:
        resolution.final_amount = 0
        resolution.applied_modifiers.append(f"immunity ({immune})")
        return resolution

    amount = raw
    universal = get_universal_resistance(target.conditions)
    if universal:
        amount //= 2
        resolution.applied_modifiers.append(f"resistance to all damage ({universal})")
    else:
        vulnerable = _matches(target.vulnerabilities, damage_type, is_magical)
        resistant = _matches(target.all_resistances(), damage_type, is_magical)
        if vulnerable and resistant:
            resolution.applied_modifiers.append("resistance and vulnerability cancel")
        elif vulnerable:
            amount *= 2
            resolution.applied_modifiers.append(f"vulnerability ({vulnerable})")
        elif resistant:
            amount //= 2
            resolution.applied_modifiers.append(f"resistance ({resistant})")

    tags = {t.lower() for t in environment}
    if target.has_condition(ConditionType.UNDERWATER):
        tags.add(UNDERWATER)
    if UNDERWATER in tags and damage_type == "fire" and not universal:
        amount //= 2
        resolution.applied_modifiers.append("underwater (fire halved)")

    resolution.final_amount = amount
    return resolution


@dataclass
class DamageReport:
    """Pipeline result plus what the damage did to the ledger."""
    target_id: str
    resolution: DamageResolution
    outcome: DamageOutcome
    concentration: Optional[Dict[str, Any]] = None
    released: List[Dict[str, str]] = field(default_factory=list)
    concentration_ended: Optional[str] = None

    @property
    def final_amount(self) -> int:
        return self.resolution.final_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            **self.resolution.to_dict(),
            "outcome": self.outcome.to_dict(),
            "concentration": self.concentration,
            "released": list(self.released),
            "concentration_ended": self.concentration_ended,
        }


def deal_damage(
    target: CreatureState,
    raw: int,
    damage_type: str,
    roster: Optional[Dict[str, CreatureState]] = None,
    critical: bool = False,
    environment: Iterable[str] = (),
    is_magical: Optional[bool] = None,
) -> DamageReport:
    """
    Resolve and apply damage to ``target``.

    Dropping to 0 HP releases the target's grapples across the roster and
    ends its concentration. Otherwise a concentrating target makes a
    Constitution save.
    """
    roster = roster if roster is not None else {target.id: target}
    resolution = resolve_damage(target, raw, damage_type, environment=environment, is_magical=is_magical)
    was_concentrating = target.concentrating_on

    outcome = target.apply_damage(resolution.final_amount, critical=critical)
    report = DamageReport(target_id=target.id, resolution=resolution, outcome=outcome)

    if target.current_hp == 0:
        report.released = release_grapples(target.id, roster)
        if was_concentrating:
            target.concentrating_on = None
            report.concentration_ended = was_concentrating
    elif outcome.hp_lost or outcome.temp_hp_absorbed:
        report.concentration = check_concentration(target, resolution.final_amount)
        if report.concentration and not report.concentration["maintained"]:
            report.concentration_ended = report.concentration["spell"]

    if outcome.died:
        logger.info("%s died (%d %s damage)", target.name, resolution.final_amount, resolution.damage_type)

    return report
