"""Core models for mq-reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EngineType(Enum):
    """Broker engine. Parsed case-insensitively."""

    ACTIVEMQ = "ACTIVEMQ"
    RABBITMQ = "RABBITMQ"

    @classmethod
    def parse(cls, value: str | EngineType) -> EngineType:
        if isinstance(value, EngineType):
            return value
        return cls(value.upper())


class DeploymentMode(Enum):
    """Broker deployment topology."""

    SINGLE_INSTANCE = "SINGLE_INSTANCE"
    ACTIVE_STANDBY_MULTI_AZ = "ACTIVE_STANDBY_MULTI_AZ"
    CLUSTER_MULTI_AZ = "CLUSTER_MULTI_AZ"

    @classmethod
    def parse(cls, value: str | DeploymentMode) -> DeploymentMode:
        if isinstance(value, DeploymentMode):
            return value
        return cls(value.upper())


class BrokerState(Enum):
    """Lifecycle states reported by the control plane."""

    CREATION_IN_PROGRESS = "CREATION_IN_PROGRESS"
    CREATION_FAILED = "CREATION_FAILED"
    DELETION_IN_PROGRESS = "DELETION_IN_PROGRESS"
    RUNNING = "RUNNING"
    REBOOT_IN_PROGRESS = "REBOOT_IN_PROGRESS"
    CRITICAL_ACTION_REQUIRED = "CRITICAL_ACTION_REQUIRED"
    REPLICA = "REPLICA"


STORAGE_TYPES = frozenset({"EBS", "EFS"})
AUTHENTICATION_STRATEGIES = frozenset({"SIMPLE", "LDAP"})
DAYS_OF_WEEK = frozenset(
    {"MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"}
)

REDACTED = "********"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class UserSpec:
    """
    A broker user declaration.

    ``password`` is write-only: the control plane never returns it, so users
    read back from the broker carry ``None`` unless a prior declaration
    supplies it.

    Equality is explicit (see :meth:`matches`): group membership is compared
    as a set, every other field exactly, including the password.
    """

    username: str
    password: str | None = field(default=None, repr=False)
    console_access: bool = False
    replication_user: bool = False
    groups: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.username:
            raise ValueError("username is required")
        # Accept any iterable of group names
        object.__setattr__(self, "groups", tuple(self.groups))

    def matches(self, other: UserSpec) -> bool:
        """True if both declarations would leave the remote user identical."""
        return (
            self.username == other.username
            and self.password == other.password
            and self.console_access == other.console_access
            and self.replication_user == other.replication_user
            and set(self.groups) == set(other.groups)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UserSpec):
            return NotImplemented
        return self.matches(other)

    def __hash__(self) -> int:
        return hash(
            (
                self.username,
                self.password,
                self.console_access,
                self.replication_user,
                frozenset(self.groups),
            )
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> UserSpec:
        return cls(
            username=d["username"],
            password=d.get("password"),
            console_access=bool(d.get("console_access", False)),
            replication_user=bool(d.get("replication_user", False)),
            groups=tuple(d.get("groups") or ()),
        )

    def to_dict(self, redact: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = {
            "username": self.username,
            "console_access": self.console_access,
            "replication_user": self.replication_user,
        }
        if self.password is not None:
            result["password"] = REDACTED if redact else self.password
        if self.groups:
            result["groups"] = list(self.groups)
        return result


@dataclass(frozen=True)
class UserSummary:
    """User identity as returned by DescribeBroker (no detail)."""

    username: str
    pending_change: str | None = None


# ---------------------------------------------------------------------------
# Nested option blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EncryptionOptions:
    """At-rest encryption settings. Creation-only."""

    use_aws_owned_key: bool = True
    kms_key_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> EncryptionOptions:
        return cls(
            use_aws_owned_key=bool(d.get("use_aws_owned_key", True)),
            kms_key_id=d.get("kms_key_id") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"use_aws_owned_key": self.use_aws_owned_key}
        if self.kms_key_id is not None:
            result["kms_key_id"] = self.kms_key_id
        return result


@dataclass(frozen=True)
class LogsOptions:
    """CloudWatch log publishing. ``audit=None`` means unset, distinct from False."""

    general: bool | None = None
    audit: bool | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LogsOptions:
        return cls(general=d.get("general"), audit=d.get("audit"))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.general is not None:
            result["general"] = self.general
        if self.audit is not None:
            result["audit"] = self.audit
        return result


@dataclass(frozen=True)
class MaintenanceWindow:
    """Weekly maintenance window start time."""

    day_of_week: str
    time_of_day: str
    time_zone: str = "UTC"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MaintenanceWindow:
        return cls(
            day_of_week=str(d["day_of_week"]).upper(),
            time_of_day=d["time_of_day"],
            time_zone=d.get("time_zone", "UTC"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "time_of_day": self.time_of_day,
            "time_zone": self.time_zone,
        }


@dataclass(frozen=True)
class ConfigurationRef:
    """Reference to a broker configuration revision."""

    id: str
    revision: int | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ConfigurationRef:
        revision = d.get("revision")
        return cls(id=d["id"], revision=int(revision) if revision else None)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id}
        if self.revision is not None:
            result["revision"] = self.revision
        return result


@dataclass(frozen=True)
class LdapServerMetadata:
    """
    LDAP integration settings. Creation-only.

    ``service_account_password`` is write-only, like user passwords.
    """

    hosts: tuple[str, ...] = ()
    role_base: str | None = None
    role_name: str | None = None
    role_search_matching: str | None = None
    role_search_subtree: bool | None = None
    service_account_password: str | None = field(default=None, repr=False)
    service_account_username: str | None = None
    user_base: str | None = None
    user_role_name: str | None = None
    user_search_matching: str | None = None
    user_search_subtree: bool | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LdapServerMetadata:
        return cls(
            hosts=tuple(d.get("hosts") or ()),
            role_base=d.get("role_base"),
            role_name=d.get("role_name"),
            role_search_matching=d.get("role_search_matching"),
            role_search_subtree=d.get("role_search_subtree"),
            service_account_password=d.get("service_account_password"),
            service_account_username=d.get("service_account_username"),
            user_base=d.get("user_base"),
            user_role_name=d.get("user_role_name"),
            user_search_matching=d.get("user_search_matching"),
            user_search_subtree=d.get("user_search_subtree"),
        )

    def to_dict(self, redact: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.hosts:
            result["hosts"] = list(self.hosts)
        for name in (
            "role_base",
            "role_name",
            "role_search_matching",
            "role_search_subtree",
            "service_account_username",
            "user_base",
            "user_role_name",
            "user_search_matching",
            "user_search_subtree",
        ):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.service_account_password is not None:
            result["service_account_password"] = (
                REDACTED if redact else self.service_account_password
            )
        return result


# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BrokerSpec:
    """
    The complete declared configuration for one broker (the desired state).

    Supplied fresh on every reconciliation pass and never mutated.
    ``apply_immediately`` is a reconciliation option, not a remote field.
    """

    broker_name: str
    engine_type: EngineType
    engine_version: str
    host_instance_type: str
    users: tuple[UserSpec, ...] = ()
    deployment_mode: DeploymentMode = DeploymentMode.SINGLE_INSTANCE
    publicly_accessible: bool = False
    auto_minor_version_upgrade: bool = False
    authentication_strategy: str | None = None
    storage_type: str | None = None
    security_groups: frozenset[str] = frozenset()
    subnet_ids: frozenset[str] = frozenset()
    configuration: ConfigurationRef | None = None
    encryption_options: EncryptionOptions | None = None
    logs: LogsOptions | None = None
    maintenance_window: MaintenanceWindow | None = None
    ldap_server_metadata: LdapServerMetadata | None = None
    tags: dict[str, str] = field(default_factory=dict)
    apply_immediately: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "engine_type", EngineType.parse(self.engine_type))
        object.__setattr__(self, "deployment_mode", DeploymentMode.parse(self.deployment_mode))
        object.__setattr__(self, "users", tuple(self.users))
        object.__setattr__(self, "security_groups", frozenset(self.security_groups))
        object.__setattr__(self, "subnet_ids", frozenset(self.subnet_ids))

    @property
    def is_rabbitmq(self) -> bool:
        return self.engine_type is EngineType.RABBITMQ

    def user(self, username: str) -> UserSpec | None:
        """Look up a declared user by username."""
        for user in self.users:
            if user.username == username:
                return user
        return None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BrokerSpec:
        def block(key: str, parser: Any) -> Any:
            value = d.get(key)
            return parser(value) if value else None

        return cls(
            broker_name=d["broker_name"],
            engine_type=EngineType.parse(d["engine_type"]),
            engine_version=str(d["engine_version"]),
            host_instance_type=d["host_instance_type"],
            users=tuple(UserSpec.from_dict(u) for u in d.get("users") or ()),
            deployment_mode=DeploymentMode.parse(
                d.get("deployment_mode") or DeploymentMode.SINGLE_INSTANCE
            ),
            publicly_accessible=bool(d.get("publicly_accessible", False)),
            auto_minor_version_upgrade=bool(d.get("auto_minor_version_upgrade", False)),
            authentication_strategy=_upper(d.get("authentication_strategy")),
            storage_type=_upper(d.get("storage_type")),
            security_groups=frozenset(d.get("security_groups") or ()),
            subnet_ids=frozenset(d.get("subnet_ids") or ()),
            configuration=block("configuration", ConfigurationRef.from_dict),
            encryption_options=block("encryption_options", EncryptionOptions.from_dict),
            logs=block("logs", LogsOptions.from_dict),
            maintenance_window=block("maintenance_window", MaintenanceWindow.from_dict),
            ldap_server_metadata=block("ldap_server_metadata", LdapServerMetadata.from_dict),
            tags={str(k): str(v) for k, v in (d.get("tags") or {}).items()},
            apply_immediately=bool(d.get("apply_immediately", False)),
        )

    def to_dict(self, redact: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = {
            "broker_name": self.broker_name,
            "engine_type": self.engine_type.value,
            "engine_version": self.engine_version,
            "host_instance_type": self.host_instance_type,
            "deployment_mode": self.deployment_mode.value,
            "publicly_accessible": self.publicly_accessible,
            "auto_minor_version_upgrade": self.auto_minor_version_upgrade,
            "apply_immediately": self.apply_immediately,
            "users": [u.to_dict(redact=redact) for u in self.users],
        }
        if self.authentication_strategy is not None:
            result["authentication_strategy"] = self.authentication_strategy
        if self.storage_type is not None:
            result["storage_type"] = self.storage_type
        if self.security_groups:
            result["security_groups"] = sorted(self.security_groups)
        if self.subnet_ids:
            result["subnet_ids"] = sorted(self.subnet_ids)
        if self.configuration is not None:
            result["configuration"] = self.configuration.to_dict()
        if self.encryption_options is not None:
            result["encryption_options"] = self.encryption_options.to_dict()
        if self.logs is not None:
            result["logs"] = self.logs.to_dict()
        if self.maintenance_window is not None:
            result["maintenance_window"] = self.maintenance_window.to_dict()
        if self.ldap_server_metadata is not None:
            result["ldap_server_metadata"] = self.ldap_server_metadata.to_dict(redact=redact)
        if self.tags:
            result["tags"] = dict(self.tags)
        return result


@dataclass(frozen=True)
class BrokerInstance:
    """A running broker node."""

    console_url: str | None = None
    endpoints: tuple[str, ...] = ()
    ip_address: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BrokerInstance:
        return cls(
            console_url=d.get("console_url"),
            endpoints=tuple(d.get("endpoints") or ()),
            ip_address=d.get("ip_address"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "console_url": self.console_url,
            "endpoints": list(self.endpoints),
            "ip_address": self.ip_address,
        }


@dataclass(frozen=True)
class LiveState:
    """
    The last observed remote representation of a broker.

    ``spec`` mirrors the declared fields as the control plane reports them,
    with write-only secrets merged in from the prior declaration.
    ``user_summaries`` is the identity-only list from DescribeBroker.
    """

    broker_id: str
    arn: str
    status: BrokerState
    spec: BrokerSpec
    instances: tuple[BrokerInstance, ...] = ()
    user_summaries: tuple[UserSummary, ...] = ()

    @property
    def users(self) -> tuple[UserSpec, ...]:
        return self.spec.users

    @property
    def is_running(self) -> bool:
        return self.status is BrokerState.RUNNING

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LiveState:
        return cls(
            broker_id=d["broker_id"],
            arn=d["arn"],
            status=BrokerState(d["status"]),
            spec=BrokerSpec.from_dict(d["spec"]),
            instances=tuple(BrokerInstance.from_dict(i) for i in d.get("instances") or ()),
            user_summaries=tuple(
                UserSummary(username=u["username"], pending_change=u.get("pending_change"))
                for u in d.get("user_summaries") or ()
            ),
        )

    def to_dict(self, redact: bool = False) -> dict[str, Any]:
        return {
            "broker_id": self.broker_id,
            "arn": self.arn,
            "status": self.status.value,
            "spec": self.spec.to_dict(redact=redact),
            "instances": [i.to_dict() for i in self.instances],
            "user_summaries": [
                {"username": u.username, "pending_change": u.pending_change}
                for u in self.user_summaries
            ],
        }


def _upper(value: str | None) -> str | None:
    return value.upper() if value else None
