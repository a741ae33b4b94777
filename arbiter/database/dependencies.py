"""
FastAPI dependencies for database access.

Wires the per-request AsyncSession and the app's reference snapshot into
the services.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from arbiter.config import get_settings
from arbiter.core.reference import ReferenceSnapshot
from arbiter.database.engine import get_session
from arbiter.services.action_service import ActionService
from arbiter.services.combat_service import CombatService
from arbiter.services.ledger_service import LedgerService


def get_reference(request: Request) -> ReferenceSnapshot:
    """The snapshot loaded at startup."""
    return request.app.state.reference


async def get_combat_service(
    session: AsyncSession = Depends(get_session),
    reference: ReferenceSnapshot = Depends(get_reference),
) -> CombatService:
    """Dependency for CombatService."""
    return CombatService(session, reference, get_settings())


async def get_action_service(
    session: AsyncSession = Depends(get_session),
    reference: ReferenceSnapshot = Depends(get_reference),
) -> ActionService:
    """Dependency for ActionService."""
    return ActionService(session, reference, get_settings())


async def get_ledger_service(
    session: AsyncSession = Depends(get_session),
    reference: ReferenceSnapshot = Depends(get_reference),
) -> LedgerService:
    """Dependency for LedgerService."""
    return LedgerService(session, reference, get_settings())
