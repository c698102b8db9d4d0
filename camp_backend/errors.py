"""Domain error types.

Models raise these; the application turns them into JSON error responses
with the matching HTTP status.
"""
from typing import Any, Dict, Optional


class CampError(Exception):
    """Base class for all expected, user-facing failures."""

    status_code: int = 400
    error: str = 'error'

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'success': False,
            'error': self.error,
            'message': self.message,
        }
        payload.update(self.details)
        return payload


class NotFoundError(CampError):
    status_code = 404
    error = 'not_found'


class ValidationError(CampError):
    status_code = 400
    error = 'validation_error'


class StateConflictError(CampError):
    """Raised when an entity is not in the state an operation requires.

    The entity is left unchanged and its current state is reported back.
    """

    status_code = 409
    error = 'state_conflict'

    def __init__(self, message: str, current_state: Optional[str] = None,
                 **details: Any) -> None:
        super().__init__(message, current_state=current_state, **details)
        self.current_state = current_state


class DatabaseUnavailableError(CampError):
    """The database could not be reached; retried on the next request."""

    status_code = 503
    error = 'database_unavailable'
