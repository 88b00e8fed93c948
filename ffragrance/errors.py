"""Domain errors raised by ffragrance services.

Every error is raised before any mutation takes place, so a rejected
operation leaves the inventory and formulas exactly as they were.
"""

from typing import Optional


class FfragranceError(Exception):
    """Base class for rejected operations."""


class EntityNotFound(FfragranceError):
    """An id did not resolve to a stored entity."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} '{entity_id}' not found")


class InvalidScaleTarget(FfragranceError):
    """Scaling requested on a zero-weight formula, or to a non-positive target."""

    def __init__(self, current_weight: float, target_weight: float):
        self.current_weight = current_weight
        self.target_weight = target_weight
        if current_weight <= 0:
            message = "cannot scale a zero-weight formula"
        else:
            message = f"cannot scale formula to {target_weight} g"
        super().__init__(message)


class NonFiniteInput(FfragranceError):
    """A NaN or infinite amount reached the engine."""

    def __init__(self, field: str, value: float):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be a finite number, got {value}")


class DeleteBlockedByReference(FfragranceError):
    """A category or chemical is still referenced and cannot be deleted."""

    def __init__(self, kind: str, name: str, referenced_by: Optional[list[str]] = None):
        self.kind = kind
        self.name = name
        self.referenced_by = referenced_by or []
        if kind == "category":
            message = f"category '{name}' still has ingredients and can't be deleted"
        else:
            message = f"'{name}' is used in one or more formulas and can't be deleted"
        super().__init__(message)
