"""Poll-based waiting for broker state transitions."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Collection

from .config import DEFAULT_NOT_FOUND_CHECKS, DEFAULT_POLL_DELAY, DEFAULT_POLL_INTERVAL
from .exceptions import PollTimeoutError, RemoteNotFoundError, UnexpectedStateError
from .models import BrokerState, LiveState

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[LiveState]]

CREATED_PENDING = (BrokerState.CREATION_IN_PROGRESS, BrokerState.REBOOT_IN_PROGRESS)
CREATED_TARGET = (BrokerState.RUNNING,)

REBOOTED_PENDING = (BrokerState.REBOOT_IN_PROGRESS,)
REBOOTED_TARGET = (BrokerState.RUNNING,)

DELETED_PENDING = (
    BrokerState.CREATION_FAILED,
    BrokerState.DELETION_IN_PROGRESS,
    BrokerState.REBOOT_IN_PROGRESS,
    BrokerState.RUNNING,
)
DELETED_TARGET: tuple[BrokerState, ...] = ()


class StatePoller:
    """
    Waits for a broker to reach a target state.

    One :meth:`poll` call is one logical wait; the poller keeps no state
    between calls and may be shared. Cancelling the awaiting task aborts
    the wait at the next sleep.
    """

    def __init__(
        self,
        interval: float = DEFAULT_POLL_INTERVAL,
        delay: float = DEFAULT_POLL_DELAY,
        not_found_checks: int = DEFAULT_NOT_FOUND_CHECKS,
    ) -> None:
        """
        Initialize poller.

        Args:
            interval: Seconds between fetches
            delay: Seconds to wait before the first fetch
            not_found_checks: Consecutive not-found results treated as pending
                when the target is non-empty
        """
        self.interval = interval
        self.delay = delay
        self.not_found_checks = not_found_checks

    async def poll(
        self,
        fetch: Fetch,
        pending: Collection[BrokerState],
        target: Collection[BrokerState],
        timeout: float,
        broker_id: str | None = None,
    ) -> LiveState | None:
        """
        Fetch repeatedly until the broker reaches a target state.

        An empty ``target`` means the broker is expected to disappear: a
        not-found result is success and ``None`` is returned.

        Args:
            fetch: Coroutine function returning the current live state, raising
                RemoteNotFoundError if the broker is absent
            pending: States that mean "keep waiting"
            target: States that mean "done"
            timeout: Seconds before giving up
            broker_id: Broker identifier (for messages only)

        Returns:
            The live state in a target state, or None if the broker is gone
            and ``target`` is empty

        Raises:
            PollTimeoutError: If the timeout elapses (carries the last state)
            UnexpectedStateError: If the broker enters a state outside pending/target
            RemoteNotFoundError: If the broker stays absent for more than
                ``not_found_checks`` fetches while a target state is expected
        """
        start = time.monotonic()
        last: LiveState | None = None
        not_found = 0

        if self.delay > 0:
            await asyncio.sleep(min(self.delay, timeout))

        while True:
            try:
                state = await fetch()
            except RemoteNotFoundError:
                if not target:
                    logger.debug("Broker %s no longer exists", broker_id)
                    return None
                not_found += 1
                if not_found > self.not_found_checks:
                    raise
                logger.debug(
                    "Broker %s not found yet (%d/%d)", broker_id, not_found, self.not_found_checks
                )
            else:
                not_found = 0
                last = state
                logger.debug("Broker %s is %s", broker_id, state.status.value)
                if state.status in target:
                    return state
                if state.status not in pending:
                    raise UnexpectedStateError(
                        broker_id,
                        state.status.value,
                        [s.value for s in (*pending, *target)],
                        last_state=state,
                    )

            remaining = timeout - (time.monotonic() - start)
            if remaining <= 0:
                raise PollTimeoutError(broker_id, timeout, last_state=last)
            await asyncio.sleep(min(self.interval, remaining))

    async def wait_created(self, fetch: Fetch, timeout: float, broker_id: str) -> LiveState:
        """Wait for a newly created broker to be running."""
        state = await self.poll(fetch, CREATED_PENDING, CREATED_TARGET, timeout, broker_id)
        assert state is not None
        logger.info("Broker %s is running", broker_id)
        return state

    async def wait_rebooted(self, fetch: Fetch, timeout: float, broker_id: str) -> LiveState:
        """Wait for a rebooting broker to be running again."""
        state = await self.poll(fetch, REBOOTED_PENDING, REBOOTED_TARGET, timeout, broker_id)
        assert state is not None
        logger.info("Broker %s finished rebooting", broker_id)
        return state

    async def wait_deleted(self, fetch: Fetch, timeout: float, broker_id: str) -> None:
        """Wait for a broker to disappear."""
        await self.poll(fetch, DELETED_PENDING, DELETED_TARGET, timeout, broker_id)
        logger.info("Broker %s deleted", broker_id)
