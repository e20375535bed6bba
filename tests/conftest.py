"""Pytest fixtures for mq-reconciler tests."""

from collections.abc import Callable
from typing import Any

import pytest

from mq_reconciler.models import BrokerSpec, EngineType, UserSpec

PASSWORD = "correct-Horse99"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so no test can reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep reconciler settings from the developer's shell out of tests."""
    for name in (
        "MQR_REGION",
        "MQR_ENDPOINT_URL",
        "MQR_POLL_INTERVAL",
        "MQR_POLL_DELAY",
        "MQR_CREATE_TIMEOUT",
        "MQR_UPDATE_TIMEOUT",
        "MQR_DELETE_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def password() -> str:
    """A password that satisfies the broker password policy."""
    return PASSWORD


@pytest.fixture
def make_user() -> Callable[..., UserSpec]:
    """Factory for valid users."""

    def _make(username: str = "alice", **kwargs: Any) -> UserSpec:
        kwargs.setdefault("password", PASSWORD)
        return UserSpec(username=username, **kwargs)

    return _make


@pytest.fixture
def make_spec(make_user) -> Callable[..., BrokerSpec]:
    """Factory for valid ActiveMQ broker declarations with one user."""

    def _make(**overrides: Any) -> BrokerSpec:
        values: dict[str, Any] = {
            "broker_name": "orders",
            "engine_type": EngineType.ACTIVEMQ,
            "engine_version": "5.17.6",
            "host_instance_type": "mq.t3.micro",
            "users": (make_user("alice"),),
            "security_groups": frozenset({"sg-1"}),
            "subnet_ids": frozenset({"subnet-1"}),
        }
        values.update(overrides)
        return BrokerSpec(**values)

    return _make


@pytest.fixture
def broker_spec(make_spec) -> BrokerSpec:
    """A valid ActiveMQ broker declaration."""
    return make_spec()


@pytest.fixture
def manifest_yaml() -> str:
    """A valid broker manifest."""
    return f"""
broker:
  broker_name: orders
  engine_type: ActiveMQ
  engine_version: "5.17.6"
  host_instance_type: mq.t3.micro
  security_groups: [sg-1]
  subnet_ids: [subnet-1]
  maintenance_window:
    day_of_week: monday
    time_of_day: "02:00"
  logs:
    general: true
  tags:
    team: payments
  users:
    - username: alice
      password: {PASSWORD}
      console_access: true
      groups: [admins, ops]
"""
