"""Reconciliation of a declared broker against the Amazon MQ control plane.

A pass is strictly sequential: every remote call is awaited before the
next one is issued. Nothing is rolled back on failure; the next pass
recomputes the diff from whatever state the broker was left in.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator, Awaitable, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field

from .classifier import FieldChangeSet, classify_changes, replacement_fields
from .client import MqClient
from .config import ReconcilerConfig
from .differ import UserDiff, compute_user_diff
from .exceptions import (
    PartialReconcileError,
    PollError,
    ReconcileDeadlineError,
    RemoteError,
    RemoteForbiddenError,
    RemoteNotFoundError,
    ReplacementRequiredError,
)
from .mapping import configuration_update_request, maintenance_window_request, user_request
from .models import BrokerSpec, LdapServerMetadata, LiveState, UserSpec
from .poller import StatePoller
from .validation import validate_broker_spec

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """
    Outcome of a reconciliation step.

    Attributes:
        broker_id: Broker that was reconciled (None if it never existed)
        applied: Remote mutations issued, in order
        rebooted: True if the broker was rebooted to activate changes
        pending_reboot: True if applied changes await a reboot or the
            next maintenance window
        live: State read back after the step, if any
    """

    broker_id: str | None = None
    applied: list[str] = field(default_factory=list)
    rebooted: bool = False
    pending_reboot: bool = False
    live: LiveState | None = None

    @property
    def changed(self) -> bool:
        return bool(self.applied)


@dataclass
class ReconcilePlan:
    """What a reconciliation pass would do, computed without remote calls."""

    action: str  # "create", "update", "replace", "noop"
    users: UserDiff = field(default_factory=UserDiff)
    changes: FieldChangeSet = field(default_factory=FieldChangeSet)
    replace_fields: list[str] = field(default_factory=list)
    requires_reboot: bool = False


class BrokerReconciler:
    """
    Drives a broker towards its declared configuration.

    The reconciler keeps no state of its own. Callers persist the live
    state and the last applied declaration and hand them back on every
    call; the prior declaration supplies write-only passwords that reads
    cannot return.

    Example:
        async with MqClient(region="us-east-1") as client:
            reconciler = BrokerReconciler(client)
            result = await reconciler.apply(spec, live=previous_live, prior=previous_spec)
    """

    def __init__(
        self,
        client: MqClient,
        config: ReconcilerConfig | None = None,
        poller: StatePoller | None = None,
    ) -> None:
        self.client = client
        self.config = config or ReconcilerConfig()
        self.poller = poller or StatePoller(
            interval=self.config.poll_interval,
            delay=self.config.poll_delay,
            not_found_checks=self.config.not_found_checks,
        )

    # -----------------------------------------------------------------------
    # Public lifecycle operations
    # -----------------------------------------------------------------------

    async def create(self, spec: BrokerSpec, deadline: float | None = None) -> ReconcileResult:
        """
        Create a broker, wait for it to run, and read it back.

        Args:
            spec: Declared configuration
            deadline: Optional overall time budget in seconds

        Raises:
            ValidationError: Before any remote call, if the declaration is invalid
            RemoteError: If CreateBroker is rejected
            PartialReconcileError: If the broker was created but never reached
                RUNNING (carries the new broker id)
            ReconcileDeadlineError: If ``deadline`` expires
        """
        result = ReconcileResult()
        async with _bounded(deadline, result):
            await self._create(spec, result)
        return result

    async def read(
        self,
        broker_id: str,
        prior: BrokerSpec | None = None,
        is_new: bool = False,
    ) -> LiveState | None:
        """
        Read a broker and its users.

        Write-only secrets (user passwords and the LDAP service account
        password) are merged in from ``prior``. Users the prior declaration
        does not know about come back without a password.

        Args:
            broker_id: Broker to read
            prior: Last applied declaration
            is_new: True while the broker is being created; absence is then an error

        Returns:
            The live state, or None if the broker is gone (or inaccessible)
            and the caller should drop its record
        """
        try:
            live = await self.client.describe_broker(broker_id)
        except (RemoteNotFoundError, RemoteForbiddenError):
            if is_new:
                raise
            logger.warning("Broker %s not found, removing from state", broker_id)
            return None

        if live.spec.is_rabbitmq and not live.user_summaries and prior is not None:
            # RabbitMQ does not report users after creation
            users = prior.users
        else:
            users = tuple(
                [
                    await self.client.describe_user(broker_id, summary.username)
                    for summary in live.user_summaries
                ]
            )
            users = merge_passwords(users, prior)

        spec = dataclasses.replace(
            live.spec,
            users=users,
            ldap_server_metadata=_merge_ldap_password(live.spec, prior),
            apply_immediately=prior.apply_immediately if prior is not None else False,
        )
        return dataclasses.replace(live, spec=spec)

    async def update(
        self,
        broker_id: str,
        old: BrokerSpec,
        new: BrokerSpec,
        arn: str | None = None,
        deadline: float | None = None,
    ) -> ReconcileResult:
        """
        Apply the difference between two declarations to an existing broker.

        Groups are applied in a fixed order: security groups, configuration
        (with logs and engine version), users (creates, deletes, updates),
        host instance type, auto minor version upgrade, maintenance window,
        tags. If anything other than security groups or tags was applied,
        the broker is rebooted when ``new.apply_immediately`` is set;
        otherwise the result reports a pending reboot.

        Args:
            broker_id: Broker to update
            old: Previously applied declaration
            new: New declaration
            arn: Broker ARN (only needed for tag changes; looked up if missing)
            deadline: Optional overall time budget in seconds

        Raises:
            ValidationError: Before any remote call, if ``new`` is invalid
            ReplacementRequiredError: If a creation-only field changed
            RemoteError: If the first remote call fails
            PartialReconcileError: If a later remote call fails or the reboot
                does not complete
            ReconcileDeadlineError: If ``deadline`` expires
        """
        result = ReconcileResult(broker_id=broker_id)
        async with _bounded(deadline, result):
            await self._update(broker_id, old, new, arn, result)
        return result

    async def delete(self, broker_id: str, deadline: float | None = None) -> ReconcileResult:
        """
        Delete a broker and wait for it to disappear.

        A broker that is already gone counts as deleted.
        """
        result = ReconcileResult(broker_id=broker_id)
        async with _bounded(deadline, result):
            await self._delete(broker_id, result)
        return result

    async def apply(
        self,
        spec: BrokerSpec,
        live: LiveState | None = None,
        prior: BrokerSpec | None = None,
        allow_replace: bool = False,
        deadline: float | None = None,
    ) -> ReconcileResult:
        """
        Converge a broker on ``spec`` and read it back.

        Creates the broker when there is no live state, updates it
        otherwise. When creation-only fields change, the broker is deleted
        and recreated if ``allow_replace`` is set.

        Args:
            spec: Declared configuration
            live: Last observed live state (None if the broker was never created)
            prior: Last applied declaration (defaults to ``live.spec``)
            allow_replace: Permit delete-and-recreate for creation-only changes
            deadline: Optional overall time budget in seconds
        """
        result = ReconcileResult(broker_id=live.broker_id if live is not None else None)
        async with _bounded(deadline, result):
            if live is None:
                await self._create(spec, result)
                return result

            old = prior if prior is not None else live.spec
            changed = replacement_fields(old, spec)
            if changed:
                if not allow_replace:
                    raise ReplacementRequiredError(spec.broker_name, changed)
                logger.info(
                    "Replacing broker %s to change %s", spec.broker_name, ", ".join(changed)
                )
                await self._delete(live.broker_id, result)
                await self._create(spec, result, replaces=live.broker_id)
                return result

            await self._update(live.broker_id, old, spec, live.arn, result)
            with _resumable(result, "read broker"):
                result.live = await self.read(live.broker_id, spec)
        return result

    def plan(self, old: BrokerSpec | None, new: BrokerSpec) -> ReconcilePlan:
        """
        Compute what :meth:`apply` would do without calling the control plane.

        Args:
            old: Last applied declaration (None if the broker does not exist)
            new: New declaration

        Raises:
            ValidationError: If the declaration is invalid
        """
        validate_broker_spec(new)
        if old is None:
            return ReconcilePlan(action="create", users=compute_user_diff((), new.users))

        changed = replacement_fields(old, new)
        if changed:
            return ReconcilePlan(action="replace", replace_fields=changed)

        changes = self._effective_changes(old, new)
        users = compute_user_diff(old.users, new.users) if changes.users else UserDiff()
        return ReconcilePlan(
            action="update" if changes else "noop",
            users=users,
            changes=changes,
            requires_reboot=changes.requires_reboot,
        )

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    async def _create(
        self, spec: BrokerSpec, result: ReconcileResult, replaces: str | None = None
    ) -> None:
        validate_broker_spec(spec)

        step = f"create broker {spec.broker_name}"
        logger.info("Creating broker %s", spec.broker_name)
        with _resumable(result, step):
            broker_id, _ = await self.client.create_broker(spec, replaces=replaces)
        result.broker_id = broker_id
        result.applied.append(step)

        with _resumable(result, "wait for broker to run"):
            await self.poller.wait_created(
                lambda: self.client.describe_broker(broker_id),
                self.config.create_timeout,
                broker_id,
            )
            result.live = await self.read(broker_id, spec, is_new=True)

    async def _update(
        self,
        broker_id: str,
        old: BrokerSpec,
        new: BrokerSpec,
        arn: str | None,
        result: ReconcileResult,
    ) -> None:
        validate_broker_spec(new)

        changed = replacement_fields(old, new)
        if changed:
            raise ReplacementRequiredError(new.broker_name, changed)

        changes = self._effective_changes(old, new)
        if not changes:
            logger.info("Broker %s is up to date", broker_id)
            return

        requires_reboot = False

        if changes.security_groups:
            await self._step(
                result,
                "update security groups",
                self.client.update_broker(broker_id, SecurityGroups=sorted(new.security_groups)),
            )

        if changes.configuration:
            await self._step(
                result,
                "update configuration",
                self.client.update_broker(broker_id, **configuration_update_request(new)),
            )
            requires_reboot = True

        if changes.users:
            if await self._apply_users(broker_id, old.users, new.users, result):
                requires_reboot = True

        if changes.host_instance_type:
            await self._step(
                result,
                "update host instance type",
                self.client.update_broker(broker_id, HostInstanceType=new.host_instance_type),
            )
            requires_reboot = True

        if changes.auto_minor_version_upgrade:
            await self._step(
                result,
                "update auto minor version upgrade",
                self.client.update_broker(
                    broker_id, AutoMinorVersionUpgrade=new.auto_minor_version_upgrade
                ),
            )
            requires_reboot = True

        if changes.maintenance_window:
            await self._step(
                result,
                "update maintenance window",
                self.client.update_broker(
                    broker_id,
                    MaintenanceWindowStartTime=maintenance_window_request(new.maintenance_window),
                ),
            )
            requires_reboot = True

        if changes.tags:
            await self._apply_tags(broker_id, arn, old.tags, new.tags, result)

        if not requires_reboot:
            return

        if new.apply_immediately:
            await self._step(result, "reboot broker", self.client.reboot_broker(broker_id))
            result.rebooted = True
            with _resumable(result, "wait for reboot"):
                await self.poller.wait_rebooted(
                    lambda: self.client.describe_broker(broker_id),
                    self.config.update_timeout,
                    broker_id,
                )
        else:
            result.pending_reboot = True
            logger.info(
                "Broker %s has changes pending until the next reboot or maintenance window",
                broker_id,
            )

    async def _apply_users(
        self,
        broker_id: str,
        old: tuple[UserSpec, ...],
        new: tuple[UserSpec, ...],
        result: ReconcileResult,
    ) -> bool:
        diff = compute_user_diff(old, new)
        for change in diff:
            if change.action == "delete":
                call = self.client.delete_user(broker_id, change.username)
            else:
                assert change.user is not None
                params = user_request(change.user, creating=change.action == "create")
                if change.action == "create":
                    call = self.client.create_user(broker_id, params)
                else:
                    call = self.client.update_user(broker_id, params)
            await self._step(result, change.describe(), call)
        return bool(diff)

    async def _apply_tags(
        self,
        broker_id: str,
        arn: str | None,
        old: dict[str, str],
        new: dict[str, str],
        result: ReconcileResult,
    ) -> None:
        if not arn:
            with _resumable(result, "look up broker arn"):
                arn = (await self.client.describe_broker(broker_id)).arn

        removed = sorted(set(old) - set(new))
        upserted = {k: v for k, v in new.items() if old.get(k) != v}
        if removed:
            await self._step(result, "delete tags", self.client.delete_tags(arn, removed))
        if upserted:
            await self._step(result, "update tags", self.client.create_tags(arn, upserted))

    async def _delete(self, broker_id: str, result: ReconcileResult) -> None:
        logger.info("Deleting broker %s", broker_id)
        try:
            await self.client.delete_broker(broker_id)
        except RemoteNotFoundError:
            logger.info("Broker %s already deleted", broker_id)
            return
        result.applied.append(f"delete broker {broker_id}")

        with _resumable(result, "wait for deletion"):
            await self.poller.wait_deleted(
                lambda: self.client.describe_broker(broker_id),
                self.config.delete_timeout,
                broker_id,
            )
        result.live = None

    async def _step(self, result: ReconcileResult, step: str, call: Awaitable[None]) -> None:
        """Await one remote mutation, recording it or reporting partial progress."""
        logger.info("Broker %s: %s", result.broker_id, step)
        with _resumable(result, step):
            await call
        result.applied.append(step)

    def _effective_changes(self, old: BrokerSpec, new: BrokerSpec) -> FieldChangeSet:
        changes = classify_changes(old, new)
        if changes.users and new.is_rabbitmq:
            # RabbitMQ users can only be managed from the broker console after creation
            logger.warning(
                "Ignoring user changes for RabbitMQ broker %s: users are write-once",
                new.broker_name,
            )
            changes = dataclasses.replace(changes, users=False)
        return changes


def merge_passwords(
    users: tuple[UserSpec, ...], prior: BrokerSpec | None
) -> tuple[UserSpec, ...]:
    """Fill in write-only passwords from the prior declaration, keyed by username."""
    merged = []
    for user in users:
        known = prior.user(user.username) if prior is not None else None
        password = known.password if known is not None else None
        merged.append(dataclasses.replace(user, password=password))
    return tuple(merged)


def _merge_ldap_password(
    observed: BrokerSpec, prior: BrokerSpec | None
) -> LdapServerMetadata | None:
    ldap = observed.ldap_server_metadata
    if ldap is None or prior is None or prior.ldap_server_metadata is None:
        return ldap
    return dataclasses.replace(
        ldap, service_account_password=prior.ldap_server_metadata.service_account_password
    )


@contextmanager
def _resumable(result: ReconcileResult, step: str) -> Iterator[None]:
    """Report failures after earlier mutations as partial progress.

    Remote and polling errors raised before anything was applied propagate
    unchanged.
    """
    try:
        yield
    except (RemoteError, PollError) as e:
        if not result.applied:
            raise
        raise PartialReconcileError(step, result.applied, e, broker_id=result.broker_id) from e


@asynccontextmanager
async def _bounded(deadline: float | None, result: ReconcileResult) -> AsyncIterator[None]:
    """Bound a sequence of remote calls by an overall deadline."""
    if deadline is None:
        yield
        return
    try:
        async with asyncio.timeout(deadline):
            yield
    except TimeoutError as e:
        raise ReconcileDeadlineError(deadline, result.applied, result.broker_id) from e
