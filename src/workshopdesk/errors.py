from __future__ import annotations


class WorkshopDeskError(Exception):
    kind = "error"


class ValidationError(WorkshopDeskError):
    kind = "validation"


class NotFoundError(WorkshopDeskError):
    kind = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class PermissionDeniedError(WorkshopDeskError):
    kind = "permission_denied"


class InvalidTransitionError(WorkshopDeskError):
    kind = "invalid_transition"

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        msg = f"Cannot move from {current} to {target}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.current = current
        self.target = target


class ConflictError(WorkshopDeskError):
    kind = "conflict"


class UpstreamUnavailableError(WorkshopDeskError):
    kind = "upstream_unavailable"
