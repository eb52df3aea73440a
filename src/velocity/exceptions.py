class VelocityException(Exception):
    """Base class for every error raised by velocity."""


class AuthenticationError(VelocityException):
    pass


class RateLimitError(VelocityException):
    """The provider refused the request until ``reset_time`` seconds pass."""

    def __init__(self, reset_time: int | None = None, *args: object) -> None:
        super().__init__(*args)
        self.reset_time = reset_time


class ResourceNotFoundError(VelocityException):
    pass


class APIError(VelocityException):
    def __init__(
        self, status_code: int | None = None, message: str = "", *args: object
    ) -> None:
        super().__init__(message, *args)
        self.status_code = status_code
        self.message = message


class ConfigurationError(VelocityException):
    pass


class SecurityError(VelocityException):
    """A path or value was rejected before touching the filesystem."""


class ValidationError(VelocityException):
    pass


class NetworkError(VelocityException):
    pass


class TimeoutError(VelocityException):
    pass


class MetricUnavailableError(VelocityException):
    """A metric could not be computed from the data the provider returned."""

    def __init__(self, metric: str, reason: str) -> None:
        super().__init__(f"{metric} unavailable: {reason}")
        self.metric = metric
        self.reason = reason
