"""Error taxonomy shared by the store, relay, gatekeeper and API layers."""


class TrialGateError(Exception):
    """Base class for every failure the service maps to an HTTP status."""

    status_code = 500
    public_message = "Internal server error. Please try again."

    def __init__(self, message: str = "", *, status_code: int | None = None):
        super().__init__(message or self.public_message)
        if status_code is not None:
            self.status_code = status_code


class ValidationError(TrialGateError):
    """Empty or missing input. The client's fault, never retried."""

    status_code = 400
    public_message = "No message provided."


class InvalidSession(TrialGateError):
    status_code = 401
    public_message = "Invalid or expired session token."


class SessionUnlocked(TrialGateError):
    """The session already reached the reveal and accepts no more answers."""

    status_code = 409
    public_message = "This trial is already complete."


class StoreUnavailable(TrialGateError):
    status_code = 503
    public_message = "Transcript store unavailable. Please try again."


class RelayError(TrialGateError):
    status_code = 502
    public_message = "Internal server error. Please try again."


class TransientUpstreamError(RelayError):
    """Temporary upstream unavailability; absorbed by the retry loop."""

    def __init__(self, message: str = "", *, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamRejected(RelayError):
    """Non-transient upstream failure, surfaced without retry."""

    def __init__(self, message: str = "", *, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamUnavailable(RelayError):
    """Every attempt failed transiently."""

    status_code = 503

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        super().__init__(f"upstream unavailable after {attempts} attempts: {last_error!r}")
        self.attempts = attempts
        self.last_error = last_error
