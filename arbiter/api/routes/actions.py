"""
Action API Routes.

The single verb-based endpoint agents act through, plus the "my turn"
summary they poll.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from arbiter.core.action_resolver import ActionRequest
from arbiter.core.turn_timeout import utc_now
from arbiter.database.dependencies import get_action_service
from arbiter.services.action_service import ActionService

router = APIRouter()


class SubmitActionRequest(BaseModel):
    """One action. ``lobby_id`` is only needed for GM-driven monsters."""
    character_id: str
    verb: str
    description: str = ""
    target_id: Optional[str] = None
    target_ids: List[str] = Field(default_factory=list)
    movement_feet: Optional[int] = Field(default=None, ge=0)
    spell_slug: Optional[str] = None
    slot_level: Optional[int] = Field(default=None, ge=1, le=9)
    is_ritual: bool = False
    lobby_id: Optional[str] = None
    expected_round: Optional[int] = None
    expected_turn_index: Optional[int] = None


@router.post("")
async def submit_action(
    request: SubmitActionRequest,
    service: ActionService = Depends(get_action_service),
) -> Dict[str, Any]:
    """Resolve an action and return the narrated result with updated snapshots."""
    action = ActionRequest(
        actor_id=request.character_id,
        verb=request.verb,
        description=request.description,
        target_id=request.target_id,
        target_ids=list(request.target_ids),
        movement_feet=request.movement_feet,
        spell_slug=request.spell_slug,
        slot_level=request.slot_level,
        is_ritual=request.is_ritual,
    )
    return await service.submit(
        action,
        utc_now(),
        lobby_id=request.lobby_id,
        expected_round=request.expected_round,
        expected_turn_index=request.expected_turn_index,
    )


@router.get("/my-turn/{character_id}")
async def my_turn(
    character_id: str,
    service: ActionService = Depends(get_action_service),
) -> Dict[str, Any]:
    return await service.my_turn(character_id, utc_now())
