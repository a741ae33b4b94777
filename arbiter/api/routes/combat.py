"""
Combat API Routes.

GM endpoints for a lobby's combat session:
- Start/advance/skip/end combat
- Add and remove combatants
- Legendary and lair actions
- Area effects
- Session status
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from arbiter.core.turn_timeout import utc_now
from arbiter.database.dependencies import get_combat_service
from arbiter.services.combat_service import CombatService

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class MonsterSpawn(BaseModel):
    """Monsters to spawn from the reference snapshot."""
    slug: str
    name: Optional[str] = None
    count: int = Field(default=1, ge=1, le=20)
    initiative_bonus: int = 0


class StartCombatRequest(BaseModel):
    monsters: List[MonsterSpawn] = Field(default_factory=list)
    character_ids: Optional[List[str]] = None
    initiative_bonuses: Dict[str, int] = Field(default_factory=dict)


class TurnRequest(BaseModel):
    """Optional pointer the caller last saw; a mismatch is rejected."""
    expected_round: Optional[int] = None
    expected_turn_index: Optional[int] = None


class AddCombatantsRequest(BaseModel):
    character_ids: List[str] = Field(default_factory=list)
    monsters: List[MonsterSpawn] = Field(default_factory=list)
    initiative_bonuses: Dict[str, int] = Field(default_factory=dict)


class LegendaryActionRequest(BaseModel):
    monster_id: str
    cost: int = Field(default=1, ge=1, le=3)
    description: str = ""


class LairActionRequest(BaseModel):
    monster_id: str
    description: str = ""


class AreaEffectRequest(BaseModel):
    spell_slug: str
    caster_id: str
    target_ids: List[str]
    save_dc: Optional[int] = Field(default=None, ge=1, le=30)
    slot_level: Optional[int] = Field(default=None, ge=1, le=9)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/{lobby_id}/start")
async def start_combat(
    lobby_id: str,
    request: Optional[StartCombatRequest] = None,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    """Roll initiative and begin combat."""
    request = request or StartCombatRequest()
    return await service.start(
        lobby_id,
        utc_now(),
        monsters=[m.model_dump() for m in request.monsters],
        character_ids=request.character_ids,
        initiative_bonuses=request.initiative_bonuses,
    )


@router.post("/{lobby_id}/advance")
async def advance_turn(
    lobby_id: str,
    request: Optional[TurnRequest] = None,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    request = request or TurnRequest()
    return await service.advance(
        lobby_id, utc_now(),
        expected_round=request.expected_round,
        expected_turn_index=request.expected_turn_index,
    )


@router.post("/{lobby_id}/skip")
async def skip_turn(
    lobby_id: str,
    request: Optional[TurnRequest] = None,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    """Skip a stalled turn; the skip is recorded on the session."""
    request = request or TurnRequest()
    return await service.advance(
        lobby_id, utc_now(),
        expected_round=request.expected_round,
        expected_turn_index=request.expected_turn_index,
        skip=True,
    )


@router.post("/{lobby_id}/end")
async def end_combat(
    lobby_id: str,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    return await service.end(lobby_id, utc_now())


@router.post("/{lobby_id}/combatants")
async def add_combatants(
    lobby_id: str,
    request: AddCombatantsRequest,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    return await service.add_combatants(
        lobby_id, utc_now(),
        character_ids=request.character_ids,
        monsters=[m.model_dump() for m in request.monsters],
        initiative_bonuses=request.initiative_bonuses,
    )


@router.delete("/{lobby_id}/combatants/{combatant_id}")
async def remove_combatant(
    lobby_id: str,
    combatant_id: str,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    return await service.remove_combatant(lobby_id, combatant_id, utc_now())


@router.post("/{lobby_id}/legendary-action")
async def legendary_action(
    lobby_id: str,
    request: LegendaryActionRequest,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    return await service.legendary_action(
        lobby_id, request.monster_id, utc_now(), cost=request.cost, description=request.description
    )


@router.post("/{lobby_id}/lair-action")
async def lair_action(
    lobby_id: str,
    request: LairActionRequest,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    return await service.lair_action(lobby_id, request.monster_id, utc_now(), description=request.description)


@router.post("/{lobby_id}/area-effect")
async def area_effect(
    lobby_id: str,
    request: AreaEffectRequest,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    """Resolve an area spell against several targets with one damage roll."""
    return await service.area_effect(
        lobby_id,
        caster_id=request.caster_id,
        spell_slug=request.spell_slug,
        target_ids=request.target_ids,
        save_dc=request.save_dc,
        slot_level=request.slot_level,
    )


@router.get("/{lobby_id}/status")
async def combat_status(
    lobby_id: str,
    service: CombatService = Depends(get_combat_service),
) -> Dict[str, Any]:
    return await service.status(lobby_id, utc_now())
