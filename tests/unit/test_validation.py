"""Tests for declaration validation."""

import dataclasses

import pytest

from mq_reconciler.exceptions import ValidationError
from mq_reconciler.models import EngineType, LogsOptions, MaintenanceWindow
from mq_reconciler.validation import (
    validate_broker_name,
    validate_broker_spec,
    validate_password,
    validate_user,
    validate_users,
)


class TestValidatePassword:
    """Tests for the broker password policy."""

    @pytest.mark.parametrize(
        "password,reason",
        [
            ("short1", "12 to 250"),
            ("aaaaaaaaaaaa", "4 unique"),
            ("abc,defghijk", "commas"),
            ("", "required"),
            (None, "required"),
            ("abcd" * 63, "12 to 250"),
        ],
    )
    def test_rejected(self, password, reason):
        """Passwords violating the policy are rejected."""
        with pytest.raises(ValidationError, match=reason):
            validate_password(password)

    @pytest.mark.parametrize("password", ["correct-Horse99", "abcdabcdabcd", "x1y2" * 62 + "z"])
    def test_accepted(self, password):
        """Passwords within the policy pass."""
        validate_password(password)

    def test_value_never_echoed(self):
        """The rejected password does not appear in the error."""
        with pytest.raises(ValidationError) as exc_info:
            validate_password("abc,defghijk", field="user[alice].password")

        assert "abc,defghijk" not in str(exc_info.value)
        assert exc_info.value.field == "user[alice].password"
        assert exc_info.value.value is None


class TestValidateBrokerName:
    """Tests for broker name validation."""

    @pytest.mark.parametrize("name", ["orders", "orders-prod_1", "a" * 50])
    def test_valid(self, name):
        validate_broker_name(name)

    @pytest.mark.parametrize("name", ["", "a" * 51, "orders.prod", "orders prod"])
    def test_invalid(self, name):
        with pytest.raises(ValidationError):
            validate_broker_name(name)


class TestValidateUsers:
    """Tests for user validation."""

    def test_username_too_short(self, make_user):
        with pytest.raises(ValidationError, match="2 to 100"):
            validate_user(make_user("a"))

    def test_too_many_groups(self, make_user):
        user = make_user("alice", groups=tuple(f"group-{i}" for i in range(21)))

        with pytest.raises(ValidationError, match="At most 20 groups"):
            validate_user(user)

    def test_group_name_too_short(self, make_user):
        with pytest.raises(ValidationError, match="Group names"):
            validate_user(make_user("alice", groups=("x",)))

    def test_password_error_names_the_user(self, make_user):
        """Password errors identify the offending user."""
        with pytest.raises(ValidationError, match=r"user\[alice\]\.password"):
            validate_user(make_user("alice", password="short1"))

    def test_duplicate_usernames(self, make_user):
        """Usernames are unique within a declaration."""
        with pytest.raises(ValidationError, match="Duplicate username"):
            validate_users((make_user("alice"), make_user("alice")))


class TestValidateBrokerSpec:
    """Tests for full declaration validation."""

    def test_valid_spec(self, broker_spec):
        validate_broker_spec(broker_spec)

    def test_requires_a_user(self, broker_spec):
        with pytest.raises(ValidationError, match="At least one user"):
            validate_broker_spec(dataclasses.replace(broker_spec, users=()))

    def test_requires_engine_version(self, broker_spec):
        with pytest.raises(ValidationError, match="engine_version"):
            validate_broker_spec(dataclasses.replace(broker_spec, engine_version=""))

    def test_too_many_security_groups(self, broker_spec):
        groups = frozenset(f"sg-{i}" for i in range(6))

        with pytest.raises(ValidationError, match="At most 5 security groups"):
            validate_broker_spec(dataclasses.replace(broker_spec, security_groups=groups))

    def test_unknown_storage_type(self, broker_spec):
        with pytest.raises(ValidationError, match="storage_type"):
            validate_broker_spec(dataclasses.replace(broker_spec, storage_type="S3"))

    def test_unknown_authentication_strategy(self, broker_spec):
        with pytest.raises(ValidationError, match="authentication_strategy"):
            validate_broker_spec(
                dataclasses.replace(broker_spec, authentication_strategy="KERBEROS")
            )

    def test_bad_maintenance_day(self, broker_spec):
        window = MaintenanceWindow(day_of_week="FUNDAY", time_of_day="02:00")

        with pytest.raises(ValidationError, match="day of the week"):
            validate_broker_spec(dataclasses.replace(broker_spec, maintenance_window=window))

    def test_rabbitmq_audit_logs_rejected(self, broker_spec):
        """RabbitMQ brokers cannot enable audit logs."""
        spec = dataclasses.replace(
            broker_spec,
            engine_type=EngineType.RABBITMQ,
            logs=LogsOptions(general=True, audit=True),
        )

        with pytest.raises(ValidationError, match="RabbitMQ"):
            validate_broker_spec(spec)

    def test_rabbitmq_audit_false_allowed(self, broker_spec):
        """An explicit audit=False is not an error for RabbitMQ."""
        spec = dataclasses.replace(
            broker_spec,
            engine_type=EngineType.RABBITMQ,
            logs=LogsOptions(general=True, audit=False),
        )

        validate_broker_spec(spec)
