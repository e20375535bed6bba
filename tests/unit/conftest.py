"""Unit test fixtures: an in-memory Amazon MQ control plane."""

import dataclasses
from typing import Any

import pytest

from mq_reconciler.config import ReconcilerConfig
from mq_reconciler.exceptions import RemoteNotFoundError
from mq_reconciler.models import (
    BrokerInstance,
    BrokerSpec,
    BrokerState,
    ConfigurationRef,
    LiveState,
    UserSpec,
    UserSummary,
)
from mq_reconciler.poller import StatePoller
from mq_reconciler.reconciler import BrokerReconciler

_SETTLED = {
    BrokerState.CREATION_IN_PROGRESS: BrokerState.RUNNING,
    BrokerState.REBOOT_IN_PROGRESS: BrokerState.RUNNING,
}


@dataclasses.dataclass
class FakeBroker:
    broker_id: str
    arn: str
    spec: BrokerSpec
    status: BrokerState
    users: dict[str, UserSpec]
    settle_in: int = 1


class FakeMqClient:
    """
    Stand-in for MqClient that keeps brokers in memory.

    Every broker in a transitional state settles after ``settle_after``
    DescribeBroker calls. RabbitMQ brokers do not report users, like the
    real API. ``fail_on`` maps a method name to an exception raised on its
    next call.
    """

    def __init__(self, settle_after: int = 1) -> None:
        self.settle_after = settle_after
        self.brokers: dict[str, FakeBroker] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_on: dict[str, Exception] = {}
        self._next_id = 0

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        error = self.fail_on.pop(method, None)
        if error is not None:
            raise error

    def _broker(self, operation: str, broker_id: str) -> FakeBroker:
        broker = self.brokers.get(broker_id)
        if broker is None:
            raise RemoteNotFoundError(operation, f"Broker {broker_id} not found")
        return broker

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    async def __aenter__(self) -> "FakeMqClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        pass

    async def create_broker(
        self, spec: BrokerSpec, replaces: str | None = None
    ) -> tuple[str, str]:
        self._record("create_broker", spec, replaces)
        self._next_id += 1
        broker_id = f"b-{self._next_id:04d}"
        arn = f"arn:aws:mq:us-east-1:123456789012:broker:{spec.broker_name}:{broker_id}"
        configuration = spec.configuration or ConfigurationRef(id=f"c-{broker_id}", revision=1)
        ldap = spec.ldap_server_metadata
        if ldap is not None:
            ldap = dataclasses.replace(ldap, service_account_password=None)
        self.brokers[broker_id] = FakeBroker(
            broker_id=broker_id,
            arn=arn,
            spec=dataclasses.replace(
                spec, users=(), configuration=configuration, ldap_server_metadata=ldap
            ),
            status=BrokerState.CREATION_IN_PROGRESS,
            users={u.username: dataclasses.replace(u, password=None) for u in spec.users},
            settle_in=self.settle_after,
        )
        return broker_id, arn

    async def describe_broker(self, broker_id: str) -> LiveState:
        self._record("describe_broker", broker_id)
        broker = self._broker("DescribeBroker", broker_id)
        if broker.settle_in > 0:
            broker.settle_in -= 1
        elif broker.status is BrokerState.DELETION_IN_PROGRESS:
            del self.brokers[broker_id]
            raise RemoteNotFoundError("DescribeBroker", f"Broker {broker_id} not found")
        else:
            broker.status = _SETTLED.get(broker.status, broker.status)

        summaries: tuple[UserSummary, ...] = ()
        if not broker.spec.is_rabbitmq:
            summaries = tuple(UserSummary(username=name) for name in sorted(broker.users))
        return LiveState(
            broker_id=broker.broker_id,
            arn=broker.arn,
            status=broker.status,
            spec=dataclasses.replace(broker.spec, apply_immediately=False),
            instances=(
                BrokerInstance(
                    console_url=f"https://{broker_id}.mq.us-east-1.amazonaws.com:8162",
                    endpoints=(f"ssl://{broker_id}.mq.us-east-1.amazonaws.com:61617",),
                    ip_address="10.0.0.10",
                ),
            ),
            user_summaries=summaries,
        )

    async def update_broker(self, broker_id: str, **fields: Any) -> None:
        self._record("update_broker", broker_id, fields)
        broker = self._broker("UpdateBroker", broker_id)
        changes: dict[str, Any] = {}
        if "SecurityGroups" in fields:
            changes["security_groups"] = frozenset(fields["SecurityGroups"])
        if "EngineVersion" in fields:
            changes["engine_version"] = fields["EngineVersion"]
        if "HostInstanceType" in fields:
            changes["host_instance_type"] = fields["HostInstanceType"]
        if "AutoMinorVersionUpgrade" in fields:
            changes["auto_minor_version_upgrade"] = fields["AutoMinorVersionUpgrade"]
        broker.spec = dataclasses.replace(broker.spec, **changes)

    async def reboot_broker(self, broker_id: str) -> None:
        self._record("reboot_broker", broker_id)
        broker = self._broker("RebootBroker", broker_id)
        broker.status = BrokerState.REBOOT_IN_PROGRESS
        broker.settle_in = self.settle_after

    async def delete_broker(self, broker_id: str) -> None:
        self._record("delete_broker", broker_id)
        broker = self._broker("DeleteBroker", broker_id)
        broker.status = BrokerState.DELETION_IN_PROGRESS
        broker.settle_in = self.settle_after

    async def create_user(self, broker_id: str, params: dict[str, Any]) -> None:
        self._record("create_user", broker_id, params)
        broker = self._broker("CreateUser", broker_id)
        broker.users[params["Username"]] = _user_from_params(params)

    async def update_user(self, broker_id: str, params: dict[str, Any]) -> None:
        self._record("update_user", broker_id, params)
        broker = self._broker("UpdateUser", broker_id)
        broker.users[params["Username"]] = _user_from_params(params)

    async def delete_user(self, broker_id: str, username: str) -> None:
        self._record("delete_user", broker_id, username)
        broker = self._broker("DeleteUser", broker_id)
        broker.users.pop(username, None)

    async def describe_user(self, broker_id: str, username: str) -> UserSpec:
        self._record("describe_user", broker_id, username)
        broker = self._broker("DescribeUser", broker_id)
        if username not in broker.users:
            raise RemoteNotFoundError("DescribeUser", f"User {username} not found")
        return broker.users[username]

    async def create_tags(self, arn: str, tags: dict[str, str]) -> None:
        self._record("create_tags", arn, tags)
        for broker in self.brokers.values():
            if broker.arn == arn:
                broker.spec = dataclasses.replace(broker.spec, tags={**broker.spec.tags, **tags})

    async def delete_tags(self, arn: str, keys: list[str]) -> None:
        self._record("delete_tags", arn, keys)
        for broker in self.brokers.values():
            if broker.arn == arn:
                tags = {k: v for k, v in broker.spec.tags.items() if k not in keys}
                broker.spec = dataclasses.replace(broker.spec, tags=tags)


def _user_from_params(params: dict[str, Any]) -> UserSpec:
    return UserSpec(
        username=params["Username"],
        console_access=params.get("ConsoleAccess", False),
        replication_user=params.get("ReplicationUser", False),
        groups=tuple(params.get("Groups") or ()),
    )


@pytest.fixture
def fake_mq() -> FakeMqClient:
    """In-memory control plane where brokers settle after one describe."""
    return FakeMqClient()


@pytest.fixture
def fast_poller() -> StatePoller:
    """Poller that never sleeps."""
    return StatePoller(interval=0, delay=0, not_found_checks=2)


@pytest.fixture
def reconciler(fake_mq, fast_poller) -> BrokerReconciler:
    """Reconciler wired to the in-memory control plane."""
    return BrokerReconciler(
        fake_mq,  # type: ignore[arg-type]
        config=ReconcilerConfig(create_timeout=5, update_timeout=5, delete_timeout=5),
        poller=fast_poller,
    )
