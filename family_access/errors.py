"""Error types raised by the family access services."""


class FamilyAccessError(Exception):
    """Base class for family access errors."""
    pass


class ValidationError(FamilyAccessError):
    """Raised when invitation input is malformed."""
    pass


class NotFoundError(FamilyAccessError):
    """Raised when a token or record does not resolve.

    Unknown, already-used, rejected and expired tokens all raise this with the
    same message so callers cannot tell them apart.
    """
    pass


class AuthorizationError(FamilyAccessError):
    """Raised when an actor touches a record they did not create."""
    pass


class InvalidTransition(FamilyAccessError):
    """Raised when an invitation status change is not allowed."""
    pass


class PartialFailure(FamilyAccessError):
    """One health-data category could not be fetched.

    Logged by the projector, never raised out of an aggregated read.
    """

    def __init__(self, category: str, cause: Exception):
        super().__init__(f"Failed to fetch {category}: {cause}")
        self.category = category
        self.cause = cause
