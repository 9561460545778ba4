class UAVGuardError(Exception):
    """Base class for errors surfaced by the analysis API."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(UAVGuardError):
    """Missing or invalid client input (user-correctable)."""

    status_code = 400


class NotFoundError(UAVGuardError):
    """The requested analysis does not exist."""

    status_code = 404


class PersistenceError(UAVGuardError):
    """The store was unavailable or a write failed."""

    status_code = 500


class SequenceAlreadyRunning(UAVGuardError):
    """A stage sequence is already active for the analysis."""

    status_code = 409
