"""Classifies declared changes into independently updatable field groups."""

from __future__ import annotations

from dataclasses import dataclass, fields

from .differ import compute_user_diff
from .models import BrokerSpec

CREATION_ONLY_FIELDS = (
    "broker_name",
    "engine_type",
    "deployment_mode",
    "publicly_accessible",
    "subnet_ids",
    "encryption_options",
    "ldap_server_metadata",
    "authentication_strategy",
    "storage_type",
)
"""Fields the control plane cannot change after creation."""


@dataclass(frozen=True)
class FieldChangeSet:
    """
    One flag per independently updatable field group.

    Attributes:
        security_groups: Security group membership changed
        configuration: Configuration, logs or engine version changed (one combined call)
        users: At least one user create, update or delete is needed
        host_instance_type: Instance type changed
        auto_minor_version_upgrade: Auto minor version upgrade flag changed
        maintenance_window: Maintenance window start time changed
        tags: Resource tags changed
    """

    security_groups: bool = False
    configuration: bool = False
    users: bool = False
    host_instance_type: bool = False
    auto_minor_version_upgrade: bool = False
    maintenance_window: bool = False
    tags: bool = False

    def __bool__(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    @property
    def changed(self) -> list[str]:
        """Names of the flagged groups, in declaration order."""
        return [f.name for f in fields(self) if getattr(self, f.name)]

    @property
    def requires_reboot(self) -> bool:
        """True if applying these groups leaves the broker with pending configuration.

        Security groups and tags take effect without a reboot.
        """
        return (
            self.configuration
            or self.users
            or self.host_instance_type
            or self.auto_minor_version_upgrade
            or self.maintenance_window
        )


def classify_changes(old: BrokerSpec, new: BrokerSpec) -> FieldChangeSet:
    """Compare two declarations of the same broker.

    Changes to creation-only fields never set a flag; use
    :func:`replacement_fields` to detect them.

    Args:
        old: Previously applied declaration.
        new: Newly declared configuration.

    Returns:
        FieldChangeSet with a flag set for each group that differs.
    """
    return FieldChangeSet(
        security_groups=old.security_groups != new.security_groups,
        configuration=(
            # Undeclared configuration and maintenance window keep the broker's current values
            (new.configuration is not None and old.configuration != new.configuration)
            or old.logs != new.logs
            or old.engine_version != new.engine_version
        ),
        users=bool(compute_user_diff(old.users, new.users)),
        host_instance_type=old.host_instance_type != new.host_instance_type,
        auto_minor_version_upgrade=(
            old.auto_minor_version_upgrade != new.auto_minor_version_upgrade
        ),
        maintenance_window=(
            new.maintenance_window is not None
            and old.maintenance_window != new.maintenance_window
        ),
        tags=old.tags != new.tags,
    )


def replacement_fields(old: BrokerSpec, new: BrokerSpec) -> list[str]:
    """List creation-only fields that differ between two declarations."""
    return [name for name in CREATION_ONLY_FIELDS if getattr(old, name) != getattr(new, name)]
