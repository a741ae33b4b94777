"""
Services package for the combat arbiter.

Each service loads one lobby per call, runs the rules engines and writes
back what changed.
"""

from .action_service import ActionService
from .combat_service import CombatService
from .ledger_service import LedgerService

__all__ = [
    'ActionService',
    'CombatService',
    'LedgerService',
]
