"""
Domain errors raised by the cycle count services.

Route functions translate these into HTTPException responses:
- NotFoundError -> 404
- InvalidStateTransitionError -> 400

Persistence errors (SQLAlchemyError) are never wrapped; services roll back
and re-raise them unchanged.
"""


class CycleCountError(Exception):
    """Base class for cycle count domain errors."""


class NotFoundError(CycleCountError, LookupError):
    """A plan, entry, tolerance or schedule does not exist."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class InvalidStateTransitionError(CycleCountError, ValueError):
    """The requested change is not allowed from the current status."""

    def __init__(self, message: str, current_status: str = None, requested_status: str = None):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(message)
