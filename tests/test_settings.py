import pytest
from pydantic import ValidationError

from bucketgate.app.core.config import Settings


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("RL_RELOAD", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)

    settings = Settings(_env_file=None)

    assert settings.redis_url == "redis://localhost:6379"
    assert settings.rate_limit_capacity == 20
    assert settings.rate_limit_refill_rate == 10
    assert settings.rate_limit_reload is False
    assert settings.rate_limit_fail_closed is False


def test_redis_url_from_env(monkeypatch) -> None:
    monkeypatch.setenv("REDIS_URL", "redis://cache:6380/2")

    assert Settings(_env_file=None).redis_url == "redis://cache:6380/2"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("true", True), ("0", False), ("false", False)],
)
def test_reload_flag_from_env(monkeypatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("RL_RELOAD", raw)

    assert Settings(_env_file=None).rate_limit_reload is expected


def test_bucket_parameters_from_env(monkeypatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_CAPACITY", "5")
    monkeypatch.setenv("RATE_LIMIT_REFILL_RATE", "0.5")

    settings = Settings(_env_file=None)
    assert settings.rate_limit_capacity == 5
    assert settings.rate_limit_refill_rate == 0.5


@pytest.mark.parametrize(
    "field",
    ["rate_limit_capacity", "rate_limit_refill_rate", "redis_socket_timeout"],
)
@pytest.mark.parametrize("value", [0, -1])
def test_non_positive_values_rejected(field: str, value: float) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_infinite_capacity_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, rate_limit_capacity=float("inf"))


def test_log_format_normalized() -> None:
    assert Settings(_env_file=None, log_format="JSON").log_format == "json"

    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_format="xml")
