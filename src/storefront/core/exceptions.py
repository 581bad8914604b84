"""Domain exceptions for the storefront client library."""


class StorefrontError(Exception):
    """Base class for all storefront library exceptions."""


class ConfigurationError(StorefrontError):
    """Raised when an environment setting cannot be parsed."""


class StorageError(StorefrontError):
    """Raised when credential persistence is unavailable during a write.

    The refresh coordinator treats this exactly like a rejected refresh:
    the session ends and the user is sent back to the login screen.
    """


class SessionExpiredError(StorefrontError):
    """Raised when the session could not be recovered by a refresh.

    This is the only error that crosses into application code as a
    forced logout rather than a per-call failure.  Callers should route
    the user to the login screen.
    """


class RefreshRejectedError(StorefrontError):
    """Raised internally when the refresh exchange cannot produce a new pair.

    Attributes:
        outcome: The last :class:`~storefront.core.outcomes.Outcome` of the
            exchange, or ``None`` when the response body was unusable.
    """

    def __init__(self, message: str, outcome=None):
        super().__init__(message)
        self.outcome = outcome


class ApiError(StorefrontError):
    """Raised by :meth:`Outcome.unwrap` for any non-success outcome.

    Attributes:
        status: HTTP status code, or ``0`` for transport failures.
        payload: Decoded response body, if any.
        code: Backend error code, or ``"NETWORK_ERROR"``.
    """

    def __init__(
        self,
        message: str,
        status: int,
        payload=None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.payload = payload
        self.code = code
