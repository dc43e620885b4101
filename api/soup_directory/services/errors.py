class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the backing store is unavailable or not configured."""


class RepositoryIntegrityError(RepositoryUnavailableError):
    """Raised when a multi-write moderation action could not be committed as a unit."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist or is not visible to the actor."""


class RepositoryInvalidStateError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""
