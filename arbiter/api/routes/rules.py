"""
Rules reference and dice API Routes.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Query

from arbiter.core.conditions import get_condition_catalogue
from arbiter.core.dice import roll_expression

router = APIRouter()


@router.get("/rules/conditions")
async def list_conditions() -> List[Dict[str, Any]]:
    """Every condition with its description and mechanical effects."""
    return get_condition_catalogue()


@router.get("/roll")
async def roll(dice: str = Query(..., examples=["2d6+3"])) -> Dict[str, Any]:
    """Roll a dice expression such as ``1d20+5``."""
    return roll_expression(dice).to_dict()
