import pytest

from velocity.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    MetricUnavailableError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    SecurityError,
    TimeoutError,
    ValidationError,
    VelocityException,
)


def test_should_keep_reset_seconds_on_rate_limit_error() -> None:
    error = RateLimitError(42, "Rate limit exceeded")

    assert error.reset_time == 42
    assert "Rate limit exceeded" in str(error)


def test_should_default_reset_time_to_none() -> None:
    assert RateLimitError().reset_time is None


def test_should_carry_status_code_and_message_on_api_error() -> None:
    error = APIError(status_code=500, message="Internal server error")

    assert error.status_code == 500
    assert error.message == "Internal server error"
    assert str(error) == "Internal server error"


def test_should_describe_metric_and_reason_when_metric_is_unavailable() -> None:
    error = MetricUnavailableError("lead time", "no commits between releases")

    assert str(error) == "lead time unavailable: no commits between releases"
    assert error.metric == "lead time"
    assert error.reason == "no commits between releases"


@pytest.mark.parametrize(
    "exc_class",
    [
        AuthenticationError,
        RateLimitError,
        ResourceNotFoundError,
        APIError,
        ConfigurationError,
        SecurityError,
        ValidationError,
        NetworkError,
        TimeoutError,
    ],
)
def test_should_derive_every_error_from_velocity_exception(exc_class) -> None:
    instance = exc_class("test")

    assert isinstance(instance, VelocityException)


def test_should_not_shadow_builtin_timeout_error_hierarchy() -> None:
    assert not issubclass(TimeoutError, OSError)
