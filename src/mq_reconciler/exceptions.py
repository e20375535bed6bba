"""Exceptions for mq-reconciler."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import LiveState


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class MQReconcilerError(Exception):
    """
    Base exception for all mq-reconciler errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.
    """

    pass


# ---------------------------------------------------------------------------
# Category Exceptions
# ---------------------------------------------------------------------------


class RemoteError(MQReconcilerError):
    """
    Base exception for errors returned by the Amazon MQ control plane.

    Attributes:
        operation: API operation that failed (e.g., 'DescribeBroker')
        code: Error code reported by the API, if any
        cause: The underlying botocore exception
    """

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        code: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.operation = operation
        self.code = code
        self.cause = cause
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.code:
            return f"{self.operation} failed ({self.code}): {self.message}"
        return f"{self.operation} failed: {self.message}"


class PollError(MQReconcilerError):
    """
    Base exception for state polling failures.

    Attributes:
        broker_id: Broker being waited on
        last_state: Last observed live state (None if never observed)
    """

    def __init__(
        self,
        message: str,
        *,
        broker_id: str | None = None,
        last_state: "LiveState | None" = None,
    ) -> None:
        self.broker_id = broker_id
        self.last_state = last_state
        super().__init__(message)


class ReconcileError(MQReconcilerError):
    """
    Base exception for reconciliation sequencing failures.

    This includes partially applied updates, changes that need a full
    replacement, and caller deadlines expiring mid-sequence.
    """

    pass


# ---------------------------------------------------------------------------
# Validation Exceptions
# ---------------------------------------------------------------------------


class ValidationError(MQReconcilerError):
    """
    Raised when a declared value is rejected before any remote call.

    Secret fields pass ``value=None`` so the value is never echoed.

    Attributes:
        field: Name of the offending field (e.g., 'user[alice].password')
        value: The rejected value, or None for secrets
        reason: Human-readable explanation
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        if value is None:
            msg = f"Invalid {field}: {reason}"
        else:
            msg = f"Invalid {field} {value!r}: {reason}"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Remote Exceptions
# ---------------------------------------------------------------------------


class RemoteNotFoundError(RemoteError):
    """Raised when the broker or user does not exist remotely."""

    pass


class RemoteForbiddenError(RemoteError):
    """Raised when access to the broker is denied."""

    pass


class RemoteConflictError(RemoteError):
    """Raised when the request conflicts with current remote state (incl. already exists)."""

    pass


class RemoteTransientError(RemoteError):
    """Raised for throttling, service-side and connection failures that may be retried."""

    pass


class RemoteValidationError(RemoteError):
    """Raised when the API rejects the request parameters."""

    pass


class RemoteUnknownError(RemoteError):
    """Raised for any unclassified API failure."""

    pass


# ---------------------------------------------------------------------------
# Poll Exceptions
# ---------------------------------------------------------------------------


class PollTimeoutError(PollError):
    """Raised when the broker does not reach a target state in time."""

    def __init__(
        self,
        broker_id: str | None,
        timeout: float,
        last_state: "LiveState | None" = None,
    ) -> None:
        self.timeout = timeout
        observed = last_state.status.value if last_state is not None else "unknown"
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for broker {broker_id} "
            f"(last state: {observed})",
            broker_id=broker_id,
            last_state=last_state,
        )


class UnexpectedStateError(PollError):
    """Raised when the broker moves to a state outside the expected pending/target set."""

    def __init__(
        self,
        broker_id: str | None,
        state: str,
        expected: list[str],
        last_state: "LiveState | None" = None,
    ) -> None:
        self.state = state
        self.expected = expected
        super().__init__(
            f"Broker {broker_id} entered unexpected state {state} "
            f"(expected one of: {', '.join(expected) or 'absent'})",
            broker_id=broker_id,
            last_state=last_state,
        )


# ---------------------------------------------------------------------------
# Reconcile Exceptions
# ---------------------------------------------------------------------------


class PartialReconcileError(ReconcileError):
    """
    Raised when a step fails after earlier remote mutations were issued.

    Nothing is rolled back. The next pass recomputes the diff from the
    remote state and resumes from there.

    Attributes:
        step: Step that failed (e.g., 'update users')
        applied: Descriptions of remote mutations already applied
        cause: The underlying exception
        broker_id: Broker the mutations went to (None if none was created)
    """

    def __init__(
        self,
        step: str,
        applied: list[str],
        cause: Exception,
        broker_id: str | None = None,
    ) -> None:
        self.step = step
        self.broker_id = broker_id
        self.applied = list(applied)
        self.cause = cause
        msg = f"Reconcile failed during {step}: {cause}"
        if self.applied:
            msg += f" (already applied: {', '.join(self.applied)})"
        super().__init__(msg)


class ReplacementRequiredError(ReconcileError):
    """Raised when creation-only fields change and the broker must be replaced."""

    def __init__(self, broker_name: str, fields: list[str]) -> None:
        self.broker_name = broker_name
        self.fields = list(fields)
        super().__init__(
            f"Broker {broker_name} must be replaced to change: {', '.join(self.fields)}"
        )


class ReconcileDeadlineError(ReconcileError):
    """Raised when the caller-supplied deadline expires mid-sequence."""

    def __init__(
        self, deadline: float, applied: list[str], broker_id: str | None = None
    ) -> None:
        self.deadline = deadline
        self.broker_id = broker_id
        self.applied = list(applied)
        msg = f"Reconcile deadline of {deadline:.1f}s exceeded"
        if self.applied:
            msg += f" (already applied: {', '.join(self.applied)})"
        super().__init__(msg)
