"""
Character ledger API Routes.

Registration plus GM adjustments: damage, healing, temporary HP and
conditions. Monster ids work too when ``lobby_id`` is passed.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from arbiter.database.dependencies import get_ledger_service
from arbiter.services.ledger_service import LedgerService

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class RegisterCharacterRequest(BaseModel):
    """Combat projection of a character sheet."""
    id: Optional[str] = None
    lobby_id: str
    name: str = Field(min_length=1, max_length=64)
    character_class: str = ""
    race: str = ""
    level: int = Field(default=1, ge=1, le=20)
    abilities: Dict[str, int] = Field(default_factory=dict)
    max_hp: int = Field(ge=1)
    current_hp: Optional[int] = Field(default=None, ge=0)
    armor_class: int = Field(default=10, ge=0, le=40)
    speed: Optional[int] = Field(default=None, ge=0)
    caster_type: Optional[str] = None
    spellcasting_ability: Optional[str] = None
    save_proficiencies: List[str] = Field(default_factory=list)
    resistances: List[str] = Field(default_factory=list)
    immunities: List[str] = Field(default_factory=list)
    vulnerabilities: List[str] = Field(default_factory=list)
    condition_immunities: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)


class DamageRequest(BaseModel):
    amount: int = Field(ge=0)
    damage_type: str = ""
    is_magical: Optional[bool] = None
    critical: bool = False


class AmountRequest(BaseModel):
    amount: int = Field(ge=0)


class ConditionRequest(BaseModel):
    """``prone``, ``grappled:<source id>``, ``exhaustion:2`` and so on."""
    condition: str


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def register_character(
    request: RegisterCharacterRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    return await service.register_character(request.model_dump())


@router.get("/{creature_id}")
async def get_character(
    creature_id: str,
    lobby_id: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    return await service.get(creature_id, lobby_id)


@router.post("/{creature_id}/damage")
async def apply_damage(
    creature_id: str,
    request: DamageRequest,
    lobby_id: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    """Apply damage through resistances, temp HP, death saves and concentration."""
    return await service.damage(
        creature_id, request.amount, request.damage_type,
        lobby_id=lobby_id, is_magical=request.is_magical, critical=request.critical,
    )


@router.post("/{creature_id}/heal")
async def heal(
    creature_id: str,
    request: AmountRequest,
    lobby_id: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    return await service.heal(creature_id, request.amount, lobby_id=lobby_id)


@router.post("/{creature_id}/temp-hp")
async def grant_temp_hp(
    creature_id: str,
    request: AmountRequest,
    lobby_id: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    return await service.grant_temp_hp(creature_id, request.amount, lobby_id=lobby_id)


@router.post("/{creature_id}/conditions")
async def add_condition(
    creature_id: str,
    request: ConditionRequest,
    lobby_id: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    return await service.add_condition(creature_id, request.condition, lobby_id=lobby_id)


@router.delete("/{creature_id}/conditions/{condition}")
async def remove_condition(
    creature_id: str,
    condition: str,
    lobby_id: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    return await service.remove_condition(creature_id, condition, lobby_id=lobby_id)
