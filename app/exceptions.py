"""Domain errors raised by the break-glass core.

Services raise these; app.main translates them to HTTP responses in one place.
`str(error)` is the internal message for the process log, `detail` is what a
caller is allowed to see.
"""


class BreakGlassError(Exception):
    """Base class for domain errors."""

    status_code = 500
    default_detail = "Request failed"

    def __init__(self, message: str = None, detail: str = None):
        super().__init__(message or detail or self.default_detail)
        self.detail = detail or message or self.default_detail


class NotFoundError(BreakGlassError):
    """Target user, activating user, or session does not exist."""

    status_code = 404
    default_detail = "Not found"


class InvalidStateError(BreakGlassError):
    """The requested transition is not valid from the current state."""

    status_code = 409
    default_detail = "Invalid session state"


class AuthorizationError(BreakGlassError):
    """Caller lacks the role or permission for the transition."""

    status_code = 403
    default_detail = "Forbidden"


class UnauthenticatedError(AuthorizationError):
    """No authenticated caller."""

    status_code = 401
    default_detail = "Authentication required"


class ForbiddenError(AuthorizationError):
    """Authenticated, but not allowed."""

    status_code = 403
    default_detail = "Forbidden"


class CredentialError(BreakGlassError):
    """Promotion code failed verification.

    The public detail is fixed so callers cannot tell a missing session from
    a wrong code.
    """

    status_code = 400
    default_detail = "Invalid promotion code"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_detail, detail=self.default_detail)


class PersistenceError(BreakGlassError):
    """The transactional role + session write failed and was rolled back."""

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_detail, detail=self.default_detail)
