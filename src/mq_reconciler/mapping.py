"""Translation between models and Amazon MQ API request/response shapes.

Requests use the boto3 parameter names (PascalCase). Optional values
are omitted rather than sent as None, since the API distinguishes
"unset" from "empty".
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from .models import (
    BrokerInstance,
    BrokerSpec,
    BrokerState,
    ConfigurationRef,
    DeploymentMode,
    EncryptionOptions,
    EngineType,
    LdapServerMetadata,
    LiveState,
    LogsOptions,
    MaintenanceWindow,
    UserSpec,
    UserSummary,
)

logger = logging.getLogger(__name__)

_TOKEN_NAMESPACE = uuid.UUID("6f1c3c1e-4b5f-4d39-9a4e-6d0f2b8d7a11")

_LDAP_FIELDS = (
    ("role_base", "RoleBase"),
    ("role_name", "RoleName"),
    ("role_search_matching", "RoleSearchMatching"),
    ("role_search_subtree", "RoleSearchSubtree"),
    ("service_account_username", "ServiceAccountUsername"),
    ("user_base", "UserBase"),
    ("user_role_name", "UserRoleName"),
    ("user_search_matching", "UserSearchMatching"),
    ("user_search_subtree", "UserSearchSubtree"),
)


def creator_request_id(broker_name: str, replaces: str | None = None) -> str:
    """Idempotency token for CreateBroker, stable for a given broker name.

    A replacement broker is salted with the id of the broker it replaces so
    the service does not match it against the deleted one.
    """
    seed = broker_name if replaces is None else f"{broker_name}/{replaces}"
    return f"mqr-{uuid.uuid5(_TOKEN_NAMESPACE, seed)}"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def user_request(user: UserSpec, *, creating: bool) -> dict[str, Any]:
    """Build CreateUser/UpdateUser parameters (without BrokerId).

    On create an empty group list is omitted entirely; on update it is sent
    so that existing memberships are cleared.
    """
    params: dict[str, Any] = {
        "Username": user.username,
        "ConsoleAccess": user.console_access,
        "ReplicationUser": user.replication_user,
    }
    if user.password is not None:
        params["Password"] = user.password
    if user.groups or not creating:
        params["Groups"] = list(user.groups)
    return params


def logs_request(engine_type: EngineType, logs: LogsOptions | None) -> dict[str, Any] | None:
    if logs is None:
        return None
    params: dict[str, Any] = {}
    if logs.general is not None:
        params["General"] = logs.general
    if logs.audit is not None:
        if engine_type is EngineType.RABBITMQ:
            logger.warning("Ignoring logs.audit: not supported for RabbitMQ brokers")
        else:
            params["Audit"] = logs.audit
    return params


def configuration_request(configuration: ConfigurationRef | None) -> dict[str, Any] | None:
    if configuration is None:
        return None
    params: dict[str, Any] = {"Id": configuration.id}
    if configuration.revision:
        params["Revision"] = configuration.revision
    return params


def maintenance_window_request(window: MaintenanceWindow | None) -> dict[str, Any] | None:
    if window is None:
        return None
    return {
        "DayOfWeek": window.day_of_week,
        "TimeOfDay": window.time_of_day,
        "TimeZone": window.time_zone,
    }


def encryption_request(options: EncryptionOptions | None) -> dict[str, Any] | None:
    if options is None:
        return None
    params: dict[str, Any] = {"UseAwsOwnedKey": options.use_aws_owned_key}
    if options.kms_key_id:
        params["KmsKeyId"] = options.kms_key_id
    return params


def ldap_request(ldap: LdapServerMetadata | None) -> dict[str, Any] | None:
    if ldap is None:
        return None
    params: dict[str, Any] = {}
    if ldap.hosts:
        params["Hosts"] = list(ldap.hosts)
    for attr, key in _LDAP_FIELDS:
        value = getattr(ldap, attr)
        if value is not None and value != "":
            params[key] = value
    if ldap.service_account_password:
        params["ServiceAccountPassword"] = ldap.service_account_password
    return params


def create_broker_request(spec: BrokerSpec, replaces: str | None = None) -> dict[str, Any]:
    """Build CreateBroker parameters for a declaration."""
    params: dict[str, Any] = {
        "BrokerName": spec.broker_name,
        "CreatorRequestId": creator_request_id(spec.broker_name, replaces),
        "EngineType": spec.engine_type.value,
        "EngineVersion": spec.engine_version,
        "HostInstanceType": spec.host_instance_type,
        "DeploymentMode": spec.deployment_mode.value,
        "PubliclyAccessible": spec.publicly_accessible,
        "AutoMinorVersionUpgrade": spec.auto_minor_version_upgrade,
        "Users": [user_request(u, creating=True) for u in spec.users],
    }
    if spec.authentication_strategy:
        params["AuthenticationStrategy"] = spec.authentication_strategy
    if spec.storage_type:
        params["StorageType"] = spec.storage_type
    if spec.security_groups:
        params["SecurityGroups"] = sorted(spec.security_groups)
    if spec.subnet_ids:
        params["SubnetIds"] = sorted(spec.subnet_ids)
    if spec.tags:
        params["Tags"] = dict(spec.tags)

    optional = {
        "Configuration": configuration_request(spec.configuration),
        "EncryptionOptions": encryption_request(spec.encryption_options),
        "LdapServerMetadata": ldap_request(spec.ldap_server_metadata),
        "Logs": logs_request(spec.engine_type, spec.logs),
        "MaintenanceWindowStartTime": maintenance_window_request(spec.maintenance_window),
    }
    params.update({k: v for k, v in optional.items() if v is not None})
    return params


def configuration_update_request(spec: BrokerSpec) -> dict[str, Any]:
    """Build the combined configuration/logs/engine-version UpdateBroker parameters."""
    params: dict[str, Any] = {"EngineVersion": spec.engine_version}
    configuration = configuration_request(spec.configuration)
    if configuration is not None:
        params["Configuration"] = configuration
    logs = logs_request(spec.engine_type, spec.logs)
    if logs is not None:
        params["Logs"] = logs
    return params


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def user_from_response(response: dict[str, Any]) -> UserSpec:
    """Build a user (without password) from a DescribeUser response."""
    return UserSpec(
        username=response["Username"],
        console_access=bool(response.get("ConsoleAccess", False)),
        replication_user=bool(response.get("ReplicationUser", False)),
        groups=tuple(response.get("Groups") or ()),
    )


def live_state_from_response(
    response: dict[str, Any],
    users: tuple[UserSpec, ...] = (),
) -> LiveState:
    """Build a live state from a DescribeBroker response.

    Args:
        response: DescribeBroker output
        users: Detailed users to place in the observed spec (DescribeBroker
            only returns summaries)
    """
    spec = BrokerSpec(
        broker_name=response["BrokerName"],
        engine_type=EngineType.parse(response["EngineType"]),
        engine_version=response.get("EngineVersion", ""),
        host_instance_type=response.get("HostInstanceType", ""),
        users=users,
        deployment_mode=DeploymentMode.parse(
            response.get("DeploymentMode") or DeploymentMode.SINGLE_INSTANCE
        ),
        publicly_accessible=bool(response.get("PubliclyAccessible", False)),
        auto_minor_version_upgrade=bool(response.get("AutoMinorVersionUpgrade", False)),
        authentication_strategy=response.get("AuthenticationStrategy"),
        storage_type=response.get("StorageType"),
        security_groups=frozenset(response.get("SecurityGroups") or ()),
        subnet_ids=frozenset(response.get("SubnetIds") or ()),
        configuration=_configuration_from_response(response.get("Configurations")),
        encryption_options=_encryption_from_response(response.get("EncryptionOptions")),
        logs=_logs_from_response(response.get("Logs")),
        maintenance_window=_maintenance_window_from_response(
            response.get("MaintenanceWindowStartTime")
        ),
        ldap_server_metadata=_ldap_from_response(response.get("LdapServerMetadata")),
        tags=dict(response.get("Tags") or {}),
    )
    return LiveState(
        broker_id=response["BrokerId"],
        arn=response.get("BrokerArn", ""),
        status=BrokerState(response["BrokerState"]),
        spec=spec,
        instances=tuple(
            BrokerInstance(
                console_url=i.get("ConsoleURL"),
                endpoints=tuple(i.get("Endpoints") or ()),
                ip_address=i.get("IpAddress"),
            )
            for i in response.get("BrokerInstances") or ()
        ),
        user_summaries=tuple(
            UserSummary(username=u["Username"], pending_change=u.get("PendingChange"))
            for u in response.get("Users") or ()
        ),
    )


def _configuration_from_response(configurations: dict[str, Any] | None) -> ConfigurationRef | None:
    if not configurations or not configurations.get("Current"):
        return None
    current = configurations["Current"]
    return ConfigurationRef(id=current["Id"], revision=current.get("Revision"))


def _encryption_from_response(options: dict[str, Any] | None) -> EncryptionOptions | None:
    if not options:
        return None
    return EncryptionOptions(
        use_aws_owned_key=bool(options.get("UseAwsOwnedKey", True)),
        kms_key_id=options.get("KmsKeyId") or None,
    )


def _logs_from_response(logs: dict[str, Any] | None) -> LogsOptions | None:
    if not logs:
        return None
    return LogsOptions(general=logs.get("General"), audit=logs.get("Audit"))


def _maintenance_window_from_response(window: dict[str, Any] | None) -> MaintenanceWindow | None:
    if not window:
        return None
    return MaintenanceWindow(
        day_of_week=window.get("DayOfWeek", ""),
        time_of_day=window.get("TimeOfDay", ""),
        time_zone=window.get("TimeZone", "UTC"),
    )


def _ldap_from_response(ldap: dict[str, Any] | None) -> LdapServerMetadata | None:
    if not ldap:
        return None
    values: dict[str, Any] = {attr: ldap.get(key) for attr, key in _LDAP_FIELDS}
    return LdapServerMetadata(hosts=tuple(ldap.get("Hosts") or ()), **values)
