"""Error kinds raised by the tryout services and rendered by the UI."""
from typing import Any, Optional


class TryoutError(Exception):
    """Base exception for SKD Tryout."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(TryoutError):
    """A package, question, session or user does not exist in the store."""

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} {entity_id} not found")


class ValidationError(TryoutError):
    """Input rejected before it reaches the store."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class RemoteOperationFailure(TryoutError):
    """A store or auth call failed (network, constraint, permission)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
