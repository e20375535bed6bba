"""Validation for declared broker configuration.

Everything here runs before any remote call. A failure raises
:class:`~mq_reconciler.exceptions.ValidationError` and is never retried.
"""

import re

from .exceptions import ValidationError
from .models import (
    AUTHENTICATION_STRATEGIES,
    DAYS_OF_WEEK,
    STORAGE_TYPES,
    BrokerSpec,
    UserSpec,
)

PASSWORD_MIN_LENGTH = 12
PASSWORD_MAX_LENGTH = 250
PASSWORD_MIN_UNIQUE = 4

BROKER_NAME_MAX_LENGTH = 50
BROKER_NAME_PATTERN = re.compile(r"^[0-9A-Za-z_-]+$")

USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 100
GROUP_MIN_LENGTH = 2
GROUP_MAX_LENGTH = 100
MAX_GROUPS_PER_USER = 20
MAX_SECURITY_GROUPS = 5


def validate_password(password: str | None, field: str = "password") -> None:
    """
    Validate a broker user password.

    Passwords must be 12-250 characters, contain at least 4 distinct
    characters and no commas. The value is never included in the error.

    Raises:
        ValidationError: If the password violates the policy
    """
    if not password:
        raise ValidationError(field, None, "Password is required")
    if "," in password:
        raise ValidationError(field, None, "Must not contain commas")
    if len(set(password)) < PASSWORD_MIN_UNIQUE:
        raise ValidationError(
            field, None, f"Must contain at least {PASSWORD_MIN_UNIQUE} unique characters"
        )
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise ValidationError(
            field,
            None,
            f"Must be {PASSWORD_MIN_LENGTH} to {PASSWORD_MAX_LENGTH} characters long "
            f"(provided length: {len(password)})",
        )


def validate_broker_name(name: str) -> None:
    """
    Validate a broker name.

    Raises:
        ValidationError: If the name is empty, too long or has invalid characters
    """
    if not name:
        raise ValidationError("broker_name", name, "Name cannot be empty")
    if len(name) > BROKER_NAME_MAX_LENGTH:
        raise ValidationError(
            "broker_name", name, f"Exceeds {BROKER_NAME_MAX_LENGTH} character limit"
        )
    if not BROKER_NAME_PATTERN.match(name):
        raise ValidationError(
            "broker_name",
            name,
            "Must contain only alphanumeric characters, hyphens and underscores",
        )


def validate_user(user: UserSpec) -> None:
    """Validate a single user declaration, including its password."""
    if not USERNAME_MIN_LENGTH <= len(user.username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(
            "user.username",
            user.username,
            f"Must be {USERNAME_MIN_LENGTH} to {USERNAME_MAX_LENGTH} characters long",
        )

    prefix = f"user[{user.username}]"
    validate_password(user.password, field=f"{prefix}.password")

    if len(user.groups) > MAX_GROUPS_PER_USER:
        raise ValidationError(
            f"{prefix}.groups",
            list(user.groups),
            f"At most {MAX_GROUPS_PER_USER} groups are allowed",
        )
    for group in user.groups:
        if not GROUP_MIN_LENGTH <= len(group) <= GROUP_MAX_LENGTH:
            raise ValidationError(
                f"{prefix}.groups",
                group,
                f"Group names must be {GROUP_MIN_LENGTH} to {GROUP_MAX_LENGTH} characters long",
            )


def validate_users(users: tuple[UserSpec, ...]) -> None:
    """Validate every user and that usernames are unique."""
    seen: set[str] = set()
    for user in users:
        if user.username in seen:
            raise ValidationError("user.username", user.username, "Duplicate username")
        seen.add(user.username)
        validate_user(user)


def validate_broker_spec(spec: BrokerSpec) -> None:
    """
    Validate a complete broker declaration.

    Raises:
        ValidationError: On the first violation found
    """
    validate_broker_name(spec.broker_name)

    if not spec.engine_version:
        raise ValidationError("engine_version", spec.engine_version, "Engine version is required")
    if not spec.host_instance_type:
        raise ValidationError(
            "host_instance_type", spec.host_instance_type, "Host instance type is required"
        )
    if not spec.users:
        raise ValidationError("user", [], "At least one user is required")

    validate_users(spec.users)

    if len(spec.security_groups) > MAX_SECURITY_GROUPS:
        raise ValidationError(
            "security_groups",
            sorted(spec.security_groups),
            f"At most {MAX_SECURITY_GROUPS} security groups are allowed",
        )
    if spec.storage_type is not None and spec.storage_type not in STORAGE_TYPES:
        raise ValidationError(
            "storage_type", spec.storage_type, f"Must be one of {sorted(STORAGE_TYPES)}"
        )
    if (
        spec.authentication_strategy is not None
        and spec.authentication_strategy not in AUTHENTICATION_STRATEGIES
    ):
        raise ValidationError(
            "authentication_strategy",
            spec.authentication_strategy,
            f"Must be one of {sorted(AUTHENTICATION_STRATEGIES)}",
        )
    if (
        spec.maintenance_window is not None
        and spec.maintenance_window.day_of_week not in DAYS_OF_WEEK
    ):
        raise ValidationError(
            "maintenance_window.day_of_week",
            spec.maintenance_window.day_of_week,
            "Must be a day of the week (e.g., 'MONDAY')",
        )

    # RabbitMQ brokers cannot publish audit logs
    if spec.is_rabbitmq and spec.logs is not None and spec.logs.audit:
        raise ValidationError("logs.audit", True, "Can not be configured when engine is RabbitMQ")
