"""Domain errors raised by the generation services and mapped to HTTP statuses in main."""


class NotFoundError(Exception):
    """Raised when a generation or generation item does not exist."""


class UnauthorizedError(Exception):
    """Raised when the caller does not own the generation."""


class InvalidStateError(Exception):
    """Raised when an operation is not allowed in the current status."""


class AuthenticationRequiredError(Exception):
    """Raised when an endpoint needs a signed-in user and there is none."""


class RateLimitExceededError(Exception):
    """Raised when a client submits too many generations in the window."""
