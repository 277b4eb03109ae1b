"""
Error taxonomy shared by the planner core and the HTTP layer.

ValidationError   - bad user input, recovered locally, never reaches the store
AuthError         - no authenticated user
ForbiddenError    - authenticated, but not the owner of the plan or session
StoreError        - the persistent store failed (network, constraint, timeout)
ConflictError     - a version-stamped write lost against a newer revision
NotFound          - a plan, course or session id did not resolve
SessionStateError - an operation was invoked in the wrong session state
"""


class DegreePlanError(Exception):
    """Base class for planner errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(DegreePlanError):
    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AuthError(DegreePlanError):
    pass


class ForbiddenError(AuthError):
    """Authenticated, but not allowed to touch this plan or session."""


class StoreError(DegreePlanError):
    """Raised by the persistence gateway.

    `applied_ids` lists course ids that were written before the failure,
    so callers can report partial application of a batch.
    """

    def __init__(self, message: str, applied_ids: list[str] | None = None):
        self.applied_ids = applied_ids or []
        super().__init__(message)


class ConflictError(StoreError):
    def __init__(self, message: str, expected: int | None = None, actual: int | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class NotFound(DegreePlanError):
    def __init__(self, message: str, resource_id: str | None = None):
        self.resource_id = resource_id
        super().__init__(message)


class SessionStateError(DegreePlanError):
    pass


class SaveInProgressError(SessionStateError):
    pass
