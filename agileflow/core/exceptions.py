from typing import Any, Dict, Optional


class AgileflowError(Exception):
    """Base class for every error raised by the workflow engine.

    ``details`` carries machine-readable context (current status, offending
    story ids, ...) so callers can act without parsing the message.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}


class NotFoundError(AgileflowError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(AgileflowError):
    """Structurally invalid input; nothing was mutated."""


class InvalidStateError(AgileflowError):
    """Operation not legal for the aggregate's current state or relationships."""


__all__ = [
    "AgileflowError",
    "NotFoundError",
    "ValidationError",
    "InvalidStateError",
]
