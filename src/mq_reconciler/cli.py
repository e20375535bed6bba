"""Command-line interface for reconciling Amazon MQ brokers from manifests."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click
import yaml

from ._version import __version__
from .client import MqClient
from .config import ReconcilerConfig
from .exceptions import (
    MQReconcilerError,
    PartialReconcileError,
    PollError,
    ReconcileDeadlineError,
)
from .manifest import load_manifest
from .models import BrokerSpec, LiveState
from .reconciler import BrokerReconciler, ReconcilePlan, ReconcileResult
from .state import StateStore
from .validation import validate_broker_spec

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_MANIFEST_OPTION = click.option(
    "--file",
    "-f",
    "manifest",
    type=click.Path(exists=True, dir_okay=False),
    help="Broker manifest (YAML)",
)
_STATE_FILE_OPTION = click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    help="State file (default: <manifest>.state.json)",
)
_TIMEOUT_OPTION = click.option(
    "--timeout",
    type=float,
    help="Overall deadline in seconds (default: no deadline beyond per-wait timeouts)",
)


@click.group()
@click.version_option(version=__version__, prog_name="mq-reconciler")
@click.option(
    "--region",
    help="AWS region (default: MQR_REGION or the AWS SDK defaults)",
)
@click.option(
    "--endpoint-url",
    help=(
        "AWS endpoint URL "
        "(e.g., http://localhost:4566 for LocalStack, or other AWS-compatible services)"
    ),
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase log verbosity (-v for INFO, -vv for DEBUG)",
)
@click.pass_context
def cli(ctx: click.Context, region: str | None, endpoint_url: str | None, verbose: int) -> None:
    """Declarative reconciler for Amazon MQ brokers."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["region"] = region
    ctx.obj["endpoint_url"] = endpoint_url


@cli.command()
@_MANIFEST_OPTION
def validate(manifest: str | None) -> None:
    """Parse and validate a manifest without contacting AWS."""
    _load_spec(manifest)
    click.echo("Manifest is valid.")


@cli.command()
@_MANIFEST_OPTION
@_STATE_FILE_OPTION
@click.pass_context
def plan(ctx: click.Context, manifest: str | None, state_file: str | None) -> None:
    """Show what apply would change, without contacting AWS."""
    spec = _load_spec(manifest)
    store = _state_store(manifest, state_file)
    try:
        record = store.load()
        reconciler = BrokerReconciler(_client(ctx), _config(ctx))
        result = reconciler.plan(record.applied if record else None, spec)
    except MQReconcilerError as e:
        raise click.ClickException(str(e)) from e

    for line in format_plan(spec, result):
        click.echo(line)


@cli.command()
@_MANIFEST_OPTION
@_STATE_FILE_OPTION
@_TIMEOUT_OPTION
@click.option(
    "--allow-replace",
    is_flag=True,
    help="Delete and recreate the broker when creation-only fields change",
)
@click.pass_context
def apply(
    ctx: click.Context,
    manifest: str | None,
    state_file: str | None,
    timeout: float | None,
    allow_replace: bool,
) -> None:
    """Create or update the broker described by a manifest."""
    spec = _load_spec(manifest)
    store = _state_store(manifest, state_file)
    config = _config(ctx)

    async def _apply() -> ReconcileResult:
        record = store.load()
        async with MqClient(config.region, config.endpoint_url) as client:
            reconciler = BrokerReconciler(client, config)
            try:
                return await reconciler.apply(
                    spec,
                    live=record.live if record else None,
                    prior=record.applied if record else None,
                    allow_replace=allow_replace,
                    deadline=timeout,
                )
            except (PartialReconcileError, ReconcileDeadlineError) as e:
                broker_id = e.broker_id or (record.live.broker_id if record else None)
                if e.applied and broker_id is not None:
                    await _refresh_state(
                        reconciler,
                        store,
                        broker_id,
                        _password_source(record.applied if record else None, spec),
                        fallback=_last_observed(e),
                    )
                raise

    click.echo(f"Reconciling broker: {spec.broker_name}")
    result = _run(_apply())

    if result.live is None:
        store.delete()
        raise click.ClickException(
            f"Broker {spec.broker_name} disappeared during reconciliation; state removed"
        )
    store.save(result.live, spec)

    if not result.applied:
        click.echo("✓ No changes")
    else:
        for step in result.applied:
            click.echo(f"  {step}")
        click.echo(f"✓ Broker {result.live.broker_id} is {result.live.status.value}")
    if result.rebooted:
        click.echo("  Broker was rebooted to apply changes")
    if result.pending_reboot:
        click.echo("  Changes are pending until the next reboot or maintenance window")


@cli.command()
@_MANIFEST_OPTION
@_STATE_FILE_OPTION
def show(manifest: str | None, state_file: str | None) -> None:
    """Print the stored live state (secrets redacted)."""
    store = _state_store(manifest, state_file)
    try:
        record = store.load()
    except MQReconcilerError as e:
        raise click.ClickException(str(e)) from e
    if record is None:
        raise click.ClickException(f"No state found at {store.path}")

    click.echo(yaml.safe_dump(record.live.to_dict(redact=True), sort_keys=False).rstrip())
    if record.updated_at:
        click.echo(f"# updated at {record.updated_at}")


@cli.command()
@_MANIFEST_OPTION
@_STATE_FILE_OPTION
@_TIMEOUT_OPTION
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Skip confirmation prompt",
)
@click.pass_context
def destroy(
    ctx: click.Context,
    manifest: str | None,
    state_file: str | None,
    timeout: float | None,
    yes: bool,
) -> None:
    """Delete the broker recorded in the state file."""
    store = _state_store(manifest, state_file)
    try:
        record = store.load()
    except MQReconcilerError as e:
        raise click.ClickException(str(e)) from e
    if record is None:
        raise click.ClickException(f"No state found at {store.path}")

    broker_id = record.live.broker_id
    if not yes:
        click.confirm(
            f"Are you sure you want to delete broker '{record.live.spec.broker_name}' "
            f"({broker_id})?",
            abort=True,
        )

    config = _config(ctx)

    async def _destroy() -> ReconcileResult:
        async with MqClient(config.region, config.endpoint_url) as client:
            return await BrokerReconciler(client, config).delete(broker_id, deadline=timeout)

    click.echo(f"Deleting broker: {broker_id}")
    _run(_destroy())
    store.delete()
    click.echo(f"✓ Broker '{broker_id}' deleted")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_plan(spec: BrokerSpec, plan: ReconcilePlan) -> list[str]:
    """Render a plan as human-readable lines."""
    if plan.action == "create":
        lines = [f"Broker {spec.broker_name} will be created"]
        lines.extend(f"  + {change.describe()}" for change in plan.users)
        return lines
    if plan.action == "replace":
        return [
            f"Broker {spec.broker_name} must be replaced to change: "
            f"{', '.join(plan.replace_fields)}",
            "  Run apply with --allow-replace to delete and recreate it",
        ]
    if plan.action == "noop":
        return [f"Broker {spec.broker_name} is up to date"]

    symbols = {"create": "+", "delete": "-", "update": "~"}
    lines = [f"Broker {spec.broker_name} will be updated"]
    for group in plan.changes.changed:
        if group == "users":
            lines.extend(f"  {symbols[c.action]} {c.describe()}" for c in plan.users)
        else:
            lines.append(f"  ~ {group}")
    if plan.requires_reboot:
        if spec.apply_immediately:
            lines.append("  Broker will be rebooted")
        else:
            lines.append("  Changes will wait for the next reboot or maintenance window")
    return lines


def _configure_logging(verbose: int) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _load_spec(manifest: str | None) -> BrokerSpec:
    if manifest is None:
        raise click.UsageError("Missing option '--file' / '-f'")
    try:
        spec = load_manifest(manifest)
        validate_broker_spec(spec)
    except MQReconcilerError as e:
        raise click.ClickException(str(e)) from e
    return spec


def _state_store(manifest: str | None, state_file: str | None) -> StateStore:
    if state_file:
        return StateStore(state_file)
    if manifest:
        return StateStore.for_manifest(Path(manifest))
    raise click.UsageError("Either '--file' or '--state-file' is required")


def _config(ctx: click.Context) -> ReconcilerConfig:
    try:
        return ReconcilerConfig.from_env(
            region=ctx.obj.get("region"), endpoint_url=ctx.obj.get("endpoint_url")
        )
    except MQReconcilerError as e:
        raise click.ClickException(str(e)) from e


def _client(ctx: click.Context) -> MqClient:
    config = _config(ctx)
    return MqClient(config.region, config.endpoint_url)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except MQReconcilerError as e:
        raise click.ClickException(str(e)) from e


async def _refresh_state(
    reconciler: BrokerReconciler,
    store: StateStore,
    broker_id: str,
    prior: BrokerSpec,
    fallback: LiveState | None = None,
) -> None:
    """Record what the broker looks like after a failed pass.

    The refreshed observation becomes the baseline for the next diff, so
    mutations that did go through are not repeated. If the broker cannot
    be read, the last state observed while waiting is kept instead so the
    broker id is never lost.
    """
    try:
        live = await reconciler.read(broker_id, prior)
    except MQReconcilerError as e:
        logger.warning("Could not refresh state for broker %s: %s", broker_id, e)
        if fallback is not None:
            store.save(fallback, prior)
        return
    if live is None:
        store.delete()
    else:
        store.save(live, live.spec)


def _password_source(prior: BrokerSpec | None, spec: BrokerSpec) -> BrokerSpec:
    """Prior declaration extended with users this pass may have created."""
    if prior is None:
        return spec
    added = tuple(u for u in spec.users if prior.user(u.username) is None)
    return dataclasses.replace(prior, users=(*prior.users, *added))


def _last_observed(error: PartialReconcileError | ReconcileDeadlineError) -> LiveState | None:
    cause = getattr(error, "cause", None)
    return cause.last_state if isinstance(cause, PollError) else None
