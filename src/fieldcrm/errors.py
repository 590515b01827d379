"""Exception taxonomy shared by the order and inventory engines.

Every error carries a stable ``code`` so a transport layer can map it to
its own status without inspecting the class.
"""


class FieldCrmError(Exception):
    """Base exception for domain failures."""

    code = "INTERNAL"

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return self.message + "\n" + "\n".join(
            f"  - {d}" for d in self.details
        )


class NotFoundError(FieldCrmError):
    """Order, item, technician or material is absent."""

    code = "NOT_FOUND"


class ConflictError(FieldCrmError):
    """The requested change collides with existing state."""

    code = "CONFLICT"


class BadRequestError(FieldCrmError):
    """The payload is structurally or semantically invalid."""

    code = "BAD_REQUEST"


class ForbiddenError(FieldCrmError):
    """Ownership or permission violation."""

    code = "FORBIDDEN"


class InternalError(FieldCrmError):
    """Unexpected failure; the surrounding transaction is aborted."""

    code = "INTERNAL"


class ActiveOrderExistsError(ConflictError):
    """An open attempt already exists for this order number."""


class OrderAlreadyCompletedError(BadRequestError):
    """The order number was completed; no new attempts are allowed."""
