class LifecycleError(Exception):
    """Base engine error."""


class LifecycleValidationError(LifecycleError):
    """Raised when input is malformed, e.g. salary_min greater than salary_max."""


class LifecycleNotFoundError(LifecycleError):
    """Raised when the requested entity does not exist or is masked for the caller."""


class LifecyclePermissionError(LifecycleError):
    """Raised when the principal may not perform the action."""


class RoleConflictError(LifecycleError):
    """Raised when a principal already holds a different role."""


class InvalidTransitionError(LifecycleError):
    """Raised when an event is not legal from the entity's current state."""


class TerminalStateViolationError(InvalidTransitionError):
    """Raised when a transition is attempted from a terminal state."""


class UpstreamUnavailableError(LifecycleError):
    """Raised when the store, auth provider or blob storage is unavailable."""


class AuthenticationError(LifecycleError):
    """Raised when credentials or a bearer token are rejected by the auth provider."""
