"""
Arbiter Combat Engine - Custom Error Types
Structured exceptions for rules errors with recovery hints.

Three families reach the caller:
- validation failures (bad input, unknown verb or creature, lobby mismatch)
- rule violations (missing economy resource, incapacitation, no spell slot,
  missing component), carrying which resource and current vs. required
- invariant violations (empty turn order, dangling condition reference),
  which deactivate the session and are never recoverable by retrying
"""
from typing import Dict, Any, List, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the combat engine."""
    # General errors
    UNKNOWN = "UNKNOWN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Validation errors
    UNKNOWN_VERB = "UNKNOWN_VERB"
    LOBBY_MISMATCH = "LOBBY_MISMATCH"
    CHARACTER_NOT_FOUND = "CHARACTER_NOT_FOUND"
    COMBATANT_NOT_FOUND = "COMBATANT_NOT_FOUND"

    # Rule violations
    RULE_VIOLATION = "RULE_VIOLATION"
    COMBAT_NOT_ACTIVE = "COMBAT_NOT_ACTIVE"
    COMBAT_ALREADY_ACTIVE = "COMBAT_ALREADY_ACTIVE"
    COMBAT_NOT_YOUR_TURN = "COMBAT_NOT_YOUR_TURN"
    COMBAT_RESOURCE_EXHAUSTED = "COMBAT_RESOURCE_EXHAUSTED"
    CREATURE_INCAPACITATED = "CREATURE_INCAPACITATED"
    SPELL_COMPONENT_MISSING = "SPELL_COMPONENT_MISSING"

    # Invariant violations
    SESSION_CORRUPTED = "SESSION_CORRUPTED"

    # Persistence
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"


class GameError(Exception):
    """
    Base exception for all rules-engine errors.

    Provides structured error information with:
    - Error code for programmatic handling
    - Human-readable message
    - Additional context details
    - Recovery hints for the calling agent
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.UNKNOWN,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
        recovery_hint: Optional[str] = None,
        http_status: int = 500
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON response."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "recoverable": self.recoverable,
                "recovery_hint": self.recovery_hint
            }
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


# =============================================================================
# Validation Failures
# =============================================================================

class ValidationError(GameError):
    """Raised when request data is invalid."""

    def __init__(self, field: str, message: str, value: Any = None):
        details = {"field": field}
        if value is not None:
            details["value"] = value
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
            http_status=400,
            recovery_hint=f"Correct the '{field}' value and resubmit"
        )


class UnknownVerbError(GameError):
    """Raised when an action verb is not recognised."""

    def __init__(self, verb: str, allowed: List[str]):
        super().__init__(
            code=ErrorCode.UNKNOWN_VERB,
            message=f"Unknown action '{verb}'",
            details={"verb": verb, "allowed": allowed},
            http_status=400,
            recovery_hint="Use one of the allowed verbs"
        )


class NotFoundError(GameError):
    """Raised when a requested resource doesn't exist."""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        details = {"resource_type": resource_type}
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{resource_type.capitalize()} not found",
            details=details,
            http_status=404
        )


class CharacterNotFoundError(GameError):
    """Raised when a character is not found."""

    def __init__(self, character_id: Optional[str] = None):
        details = {}
        if character_id:
            details["character_id"] = character_id
        super().__init__(
            code=ErrorCode.CHARACTER_NOT_FOUND,
            message="Character not found",
            details=details,
            http_status=404,
            recovery_hint="Register the character in the lobby first"
        )


class CombatantNotFoundError(GameError):
    """Raised when a combatant id is not part of the lobby or turn order."""

    def __init__(self, combatant_id: str):
        super().__init__(
            code=ErrorCode.COMBATANT_NOT_FOUND,
            message=f"Combatant '{combatant_id}' not found",
            details={"combatant_id": combatant_id},
            http_status=404,
            recovery_hint="Check the turn order in the combat status"
        )


class LobbyMismatchError(GameError):
    """Raised when a creature is addressed through the wrong lobby."""

    def __init__(self, creature_id: str, expected_lobby: str, actual_lobby: Optional[str]):
        super().__init__(
            code=ErrorCode.LOBBY_MISMATCH,
            message=f"'{creature_id}' does not belong to lobby '{expected_lobby}'",
            details={
                "creature_id": creature_id,
                "expected_lobby": expected_lobby,
                "actual_lobby": actual_lobby,
            },
            http_status=400
        )


# =============================================================================
# Rule Violations
# =============================================================================

class RuleViolationError(GameError):
    """An action is well-formed but the rules forbid it right now."""

    def __init__(
        self,
        message: str = "Action not allowed",
        rule: str = "rule_violation",
        code: ErrorCode = ErrorCode.RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        details = dict(details or {})
        details.setdefault("rule", rule)
        kwargs.setdefault("http_status", 422)
        super().__init__(code=code, message=message, details=details, **kwargs)


class NotYourTurnError(RuleViolationError):
    """Raised when attempting action outside your turn."""

    def __init__(self, current_combatant: Optional[str] = None):
        details = {}
        if current_combatant:
            details["current_turn"] = current_combatant
        super().__init__(
            code=ErrorCode.COMBAT_NOT_YOUR_TURN,
            message="It's not your turn",
            rule="turn_order",
            details=details,
            recovery_hint="Wait for your turn in the initiative order"
        )


class ResourceExhaustedError(RuleViolationError):
    """Raised when an action-economy resource or spell slot is exhausted."""

    def __init__(
        self,
        resource_name: str,
        available: int = 0,
        required: int = 1,
        message: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.COMBAT_RESOURCE_EXHAUSTED,
            message=message or f"Not enough {resource_name}",
            rule="resource",
            details={
                "resource": resource_name,
                "available": available,
                "required": required
            },
            recovery_hint=f"Wait for {resource_name} to refresh or choose a different action"
        )


class IncapacitatedError(RuleViolationError):
    """Raised when an incapacitated creature tries to act."""

    def __init__(self, creature_name: str, reasons: List[str]):
        super().__init__(
            code=ErrorCode.CREATURE_INCAPACITATED,
            message=f"{creature_name} is incapacitated",
            rule="incapacitated",
            details={"reasons": reasons},
            recovery_hint="End the turn, or make a death save if at 0 HP"
        )


class MissingComponentError(RuleViolationError):
    """Raised when a spell component cannot be provided."""

    def __init__(self, spell_name: str, component: str, reason: str):
        super().__init__(
            code=ErrorCode.SPELL_COMPONENT_MISSING,
            message=f"Cannot cast {spell_name}: {reason}",
            rule="spell_components",
            details={"spell": spell_name, "component": component},
            recovery_hint="Choose a spell without that component"
        )


class CombatNotActiveError(RuleViolationError):
    """Raised when a combat operation is attempted outside combat."""

    def __init__(self, lobby_id: Optional[str] = None):
        details = {}
        if lobby_id:
            details["lobby_id"] = lobby_id
        super().__init__(
            code=ErrorCode.COMBAT_NOT_ACTIVE,
            message="No active combat",
            rule="combat_active",
            details=details,
            recovery_hint="Start combat for the lobby first"
        )


class CombatAlreadyActiveError(RuleViolationError):
    """Raised when combat is started twice in a lobby."""

    def __init__(self, lobby_id: str):
        super().__init__(
            code=ErrorCode.COMBAT_ALREADY_ACTIVE,
            message="Combat is already active in this lobby",
            rule="combat_active",
            details={"lobby_id": lobby_id},
            recovery_hint="End the current combat or add combatants to it"
        )


# =============================================================================
# Invariant Violations and Persistence
# =============================================================================

class InvariantViolationError(GameError):
    """Session state is corrupt. The session is deactivated."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.SESSION_CORRUPTED,
            message=message,
            details=details,
            recoverable=False,
            http_status=409,
            recovery_hint="The session was deactivated; the GM must restart combat"
        )


class ConcurrencyConflictError(GameError):
    """Another request changed the same row first."""

    def __init__(self, entity: str, entity_id: str, details: Optional[Dict[str, Any]] = None):
        merged = {"entity": entity, "entity_id": entity_id}
        merged.update(details or {})
        super().__init__(
            code=ErrorCode.CONCURRENT_MODIFICATION,
            message=f"{entity} {entity_id} was modified by another request",
            details=merged,
            http_status=409,
            recovery_hint="Poll the current state and resubmit"
        )
