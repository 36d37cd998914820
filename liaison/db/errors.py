"""Store error hierarchy.

Store backends wrap backend-specific failures in one of these types.
"""


class StoreError(Exception):
    """Base exception for all store errors."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConnectionError(StoreError):
    """Raised when the backing service is unreachable."""

    pass


class NotFoundError(StoreError):
    """Raised when a session, operator or note lookup fails."""

    pass


class ValidationError(StoreError):
    """Raised when a write would break a record invariant.

    Examples:
        - operator_id set on a session that is not WITH_OPERATOR
        - closed_at missing on a CLOSED session
    """

    pass


class LockTimeoutError(StoreError):
    """Raised when a session lock could not be acquired in time.

    Contention is transient; callers retry a bounded number of times.
    """

    def __init__(
        self,
        session_id: str,
        timeout: float,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            f"Timed out after {timeout}s waiting for lock on session {session_id}",
            cause,
        )
        self.session_id = session_id
        self.timeout = timeout
