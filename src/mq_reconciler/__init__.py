"""
mq-reconciler: Declarative reconciliation of Amazon MQ brokers.

This library drives an Amazon MQ broker and its users towards a declared
configuration:
- Validation of broker and user declarations before any remote call
- Minimal create/update/delete operations for broker users
- Independently updatable field groups, each applied with one call
- Waiting on broker state transitions with timeouts
- Reboot-or-defer handling for changes that need a restart

Example:
    from mq_reconciler import BrokerReconciler, MqClient, load_manifest

    spec = load_manifest("broker.yaml")

    async with MqClient(region="us-east-1") as client:
        reconciler = BrokerReconciler(client)
        result = await reconciler.apply(spec)
        print(result.live.broker_id, result.live.status)
"""

# ---------------------------------------------------------------------------
# Lazy imports
# ---------------------------------------------------------------------------
# MqClient and BrokerReconciler are imported lazily via
# __getattr__ below. MqClient depends on aioboto3; keeping it out of the
# eager imports lets models, validation, diffing and manifests be used
# (e.g. for offline plan checks) where only boto3 is installed.
# ---------------------------------------------------------------------------
from typing import TYPE_CHECKING

from .classifier import CREATION_ONLY_FIELDS, FieldChangeSet, classify_changes, replacement_fields
from .config import ReconcilerConfig
from .differ import UserChange, UserDiff, compute_user_diff
from .exceptions import (
    MQReconcilerError,
    PartialReconcileError,
    PollError,
    PollTimeoutError,
    ReconcileDeadlineError,
    ReconcileError,
    RemoteConflictError,
    RemoteError,
    RemoteForbiddenError,
    RemoteNotFoundError,
    RemoteTransientError,
    RemoteUnknownError,
    RemoteValidationError,
    ReplacementRequiredError,
    UnexpectedStateError,
    ValidationError,
)
from .manifest import load_manifest, manifest_from_yaml, parse_manifest
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
from .poller import StatePoller
from .state import StateRecord, StateStore
from .validation import validate_broker_spec, validate_password

if TYPE_CHECKING:
    from .client import MqClient as MqClient
    from .reconciler import BrokerReconciler as BrokerReconciler
    from .reconciler import ReconcilePlan as ReconcilePlan
    from .reconciler import ReconcileResult as ReconcileResult

try:
    from ._version import __version__
except ImportError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Main classes
    "BrokerReconciler",
    "MqClient",
    "StatePoller",
    "ReconcilerConfig",
    "ReconcilePlan",
    "ReconcileResult",
    "StateStore",
    "StateRecord",
    # Models
    "BrokerSpec",
    "UserSpec",
    "UserSummary",
    "LiveState",
    "BrokerInstance",
    "ConfigurationRef",
    "EncryptionOptions",
    "LdapServerMetadata",
    "LogsOptions",
    "MaintenanceWindow",
    # Enums
    "BrokerState",
    "DeploymentMode",
    "EngineType",
    # Diffing
    "UserChange",
    "UserDiff",
    "compute_user_diff",
    "FieldChangeSet",
    "CREATION_ONLY_FIELDS",
    "classify_changes",
    "replacement_fields",
    # Manifests and validation
    "load_manifest",
    "manifest_from_yaml",
    "parse_manifest",
    "validate_broker_spec",
    "validate_password",
    # Exceptions - Base
    "MQReconcilerError",
    # Exceptions - Categories
    "RemoteError",
    "PollError",
    "ReconcileError",
    "ValidationError",
    # Exceptions - Remote
    "RemoteNotFoundError",
    "RemoteForbiddenError",
    "RemoteConflictError",
    "RemoteTransientError",
    "RemoteValidationError",
    "RemoteUnknownError",
    # Exceptions - Poll
    "PollTimeoutError",
    "UnexpectedStateError",
    # Exceptions - Reconcile
    "PartialReconcileError",
    "ReplacementRequiredError",
    "ReconcileDeadlineError",
]


def __getattr__(name: str) -> type:
    """Lazy import for modules that require aioboto3.

    See Also:
        PEP 562 -- Module __getattr__ and __dir__
    """
    if name == "MqClient":
        from .client import MqClient

        return MqClient
    if name in ("BrokerReconciler", "ReconcilePlan", "ReconcileResult"):
        from . import reconciler

        return getattr(reconciler, name)  # type: ignore[no-any-return]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
