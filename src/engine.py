"""
Reconciliation Engine - Submit desired state, then wait for convergence.

Every object kind in the control plane is reconciled asynchronously by a
remote controller. The engine submits a desired-state document through the
cloud client and then polls until the readiness policy of the kind accepts
the reported conditions, the object disappears (for deletes), or the poll
deadline elapses.

The engine holds no per-object state, so one instance may be shared by
concurrent operations on distinct objects.
"""

import asyncio
import copy
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from cloud_client import CloudAPIError, NotFoundError
from identity import Identity
from readiness import Condition, ReadinessPolicy, is_ready, parse_conditions

logger = logging.getLogger(__name__)


@dataclass
class PollPolicy:
    """How long and how often to poll for one operation."""

    deadline: float  # seconds
    interval: float = 10.0  # seconds between reads
    initial_delay: float = 0.0  # seconds before the first read
    jitter: float = 0.0  # max extra seconds added to each interval

    def next_delay(self) -> float:
        if self.jitter <= 0:
            return self.interval
        return self.interval + random.uniform(0, self.jitter)


@dataclass
class ResourceTimeouts:
    """Poll policies for the create, update and delete of one kind."""

    create: PollPolicy
    update: PollPolicy
    delete: PollPolicy

    @classmethod
    def uniform(
        cls,
        minutes: float,
        interval: float = 10.0,
        initial_delay: float = 0.0,
        jitter: float = 0.0,
    ) -> "ResourceTimeouts":
        """Build timeouts that use the same policy for every operation."""
        return cls(
            create=PollPolicy(minutes * 60, interval, initial_delay, jitter),
            update=PollPolicy(minutes * 60, interval, initial_delay, jitter),
            delete=PollPolicy(minutes * 60, interval, initial_delay, jitter),
        )


@dataclass
class ObservedState:
    """The control plane's last-known view of one object."""

    identity: Identity
    obj: Dict[str, Any]
    conditions: List[Condition] = field(default_factory=list)

    @classmethod
    def from_object(
        cls, obj: Dict[str, Any], fallback: Optional[Identity] = None
    ) -> "ObservedState":
        metadata = obj.get("metadata") or {}
        namespace = metadata.get("namespace") or (fallback.namespace if fallback else "")
        name = metadata.get("name") or (fallback.name if fallback else "")
        return cls(
            identity=Identity(namespace, name),
            obj=obj,
            conditions=parse_conditions(obj),
        )


class OutcomeStatus(Enum):
    CONVERGED = "converged"
    DELETED = "deleted"
    FAILED = "failed"


class FailureCause(Enum):
    SUBMISSION = "submission"
    READ = "read"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class OperationOutcome:
    """Result of one create, update or delete."""

    status: OutcomeStatus
    identity: Optional[Identity] = None
    observed: Optional[ObservedState] = None
    cause: Optional[FailureCause] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

    @classmethod
    def converged(cls, observed: ObservedState) -> "OperationOutcome":
        return cls(
            status=OutcomeStatus.CONVERGED,
            identity=observed.identity,
            observed=observed,
        )

    @classmethod
    def deleted(cls, identity: Identity) -> "OperationOutcome":
        return cls(status=OutcomeStatus.DELETED, identity=identity)

    @classmethod
    def failed(
        cls,
        cause: FailureCause,
        identity: Optional[Identity] = None,
        observed: Optional[ObservedState] = None,
        error: Optional[BaseException] = None,
    ) -> "OperationOutcome":
        return cls(
            status=OutcomeStatus.FAILED,
            identity=identity,
            observed=observed,
            cause=cause,
            error=error,
        )


class ReconciliationEngine:
    """
    Generic create/update/delete-with-wait for one object kind.

    The readiness policy may be None for kinds the control plane accepts
    synchronously; those converge as soon as the submission succeeds.
    ``settled`` is an optional extra check on the observed object for
    convergence that is not expressed as a condition.
    """

    def __init__(
        self,
        client: Any,
        plural: str,
        readiness: Optional[ReadinessPolicy],
        timeouts: ResourceTimeouts,
        cancel_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        settled: Optional[Callable[[Dict[str, Any]], bool]] = None,
    ):
        self.client = client
        self.plural = plural
        self.readiness = readiness
        self.timeouts = timeouts
        self.cancel_event = cancel_event
        self.clock = clock
        self.sleep = sleep
        self.settled = settled

    async def read(self, identity: Identity) -> Optional[ObservedState]:
        """
        Fetch the current state of an object.

        Returns:
            The ObservedState, or None if the object does not exist.

        Raises:
            CloudAPIError: On any failure other than not-found.
        """
        try:
            obj = await self.client.get(identity.namespace, self.plural, identity.name)
        except NotFoundError:
            return None
        return ObservedState.from_object(obj, fallback=identity)

    async def create(self, desired: Dict[str, Any]) -> OperationOutcome:
        """Submit a new object and wait for it to converge."""
        desired = copy.deepcopy(desired)
        identity = _identity_of(desired)
        start = self.clock()

        logger.info(f"Creating {self.plural} {identity}")
        try:
            response = await self.client.create(identity.namespace, self.plural, desired)
        except NotFoundError as e:
            if not identity.name:
                return self._fail(FailureCause.SUBMISSION, identity, None, e)
            logger.warning(
                f"Create of {self.plural} {identity} reported not found, "
                f"polling anyway"
            )
            response = None
        except CloudAPIError as e:
            return self._fail(FailureCause.SUBMISSION, identity, None, e)

        return await self._converge(
            response, identity, self.timeouts.create, start
        )

    async def update(
        self, identity: Identity, desired: Dict[str, Any]
    ) -> OperationOutcome:
        """Replace an existing object and wait for it to converge again."""
        desired = copy.deepcopy(desired)
        start = self.clock()

        logger.info(f"Updating {self.plural} {identity}")
        try:
            response = await self.client.update(
                identity.namespace, self.plural, identity.name, desired
            )
        except NotFoundError:
            logger.warning(
                f"Update of {self.plural} {identity} reported not found, "
                f"polling anyway"
            )
            response = None
        except CloudAPIError as e:
            return self._fail(FailureCause.SUBMISSION, identity, None, e)

        return await self._converge(
            response, identity, self.timeouts.update, start
        )

    async def delete(self, identity: Identity) -> OperationOutcome:
        """Delete an object and wait until it is gone. Deleting twice is fine."""
        start = self.clock()
        policy = self.timeouts.delete

        logger.info(f"Deleting {self.plural} {identity}")
        try:
            await self.client.delete(identity.namespace, self.plural, identity.name)
        except NotFoundError:
            logger.info(f"{self.plural} {identity} already deleted")
            return OperationOutcome.deleted(identity)
        except CloudAPIError as e:
            return self._fail(FailureCause.SUBMISSION, identity, None, e)

        observed = None
        await self._wait(policy.initial_delay, start, policy)
        while True:
            if self._cancelled():
                return self._fail(FailureCause.CANCELLED, identity, observed)

            try:
                current = await self.read(identity)
            except CloudAPIError as e:
                return self._fail(FailureCause.READ, identity, observed, e)

            if current is None:
                logger.info(f"Deleted {self.plural} {identity}")
                return OperationOutcome.deleted(identity)

            observed = current
            logger.debug(
                f"{self.plural} {identity} still present "
                f"({_render(observed.conditions)})"
            )

            if self.clock() - start >= policy.deadline:
                return self._fail(FailureCause.TIMEOUT, identity, observed)
            await self._wait(policy.next_delay(), start, policy)

    # Private helper methods

    async def _converge(
        self,
        response: Optional[Dict[str, Any]],
        identity: Identity,
        policy: PollPolicy,
        start: float,
    ) -> OperationOutcome:
        observed = None
        if response is not None:
            observed = ObservedState.from_object(response, fallback=identity)
            identity = observed.identity

            if self.readiness is None:
                logger.info(f"Submitted {self.plural} {identity}")
                return OperationOutcome.converged(observed)

            if self._converged(observed):
                logger.info(f"{self.plural} {identity} converged on submission")
                return OperationOutcome.converged(observed)

        await self._wait(policy.initial_delay, start, policy)
        while True:
            if self._cancelled():
                return self._fail(FailureCause.CANCELLED, identity, observed)

            try:
                current = await self.read(identity)
            except CloudAPIError as e:
                return self._fail(FailureCause.READ, identity, observed, e)

            if current is not None:
                observed = current
                if self._converged(observed):
                    logger.info(f"{self.plural} {identity} converged")
                    return OperationOutcome.converged(observed)
                logger.debug(
                    f"{self.plural} {identity} not ready yet "
                    f"({_render(observed.conditions)})"
                )
            else:
                logger.debug(f"{self.plural} {identity} not found yet")

            if self.clock() - start >= policy.deadline:
                return self._fail(FailureCause.TIMEOUT, identity, observed)
            await self._wait(policy.next_delay(), start, policy)

    async def _wait(self, delay: float, start: float, policy: PollPolicy) -> None:
        """Sleep for ``delay`` clipped to the deadline, waking early on cancel."""
        remaining = policy.deadline - (self.clock() - start)
        delay = min(delay, remaining)
        if delay <= 0:
            return

        if self.cancel_event is None:
            await self.sleep(delay)
            return

        sleeper = asyncio.ensure_future(self.sleep(delay))
        waiter = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait(
                {sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()

    def _converged(self, observed: ObservedState) -> bool:
        if self.readiness is not None and not is_ready(
            observed.conditions, self.readiness
        ):
            return False
        return self.settled is None or self.settled(observed.obj)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _fail(
        self,
        cause: FailureCause,
        identity: Optional[Identity],
        observed: Optional[ObservedState],
        error: Optional[BaseException] = None,
    ) -> OperationOutcome:
        detail = f": {error}" if error else ""
        logger.error(f"{self.plural} {identity} failed ({cause.value}){detail}")
        return OperationOutcome.failed(cause, identity, observed, error)


def _identity_of(obj: Dict[str, Any]) -> Identity:
    metadata = obj.get("metadata") or {}
    return Identity(metadata.get("namespace") or "", metadata.get("name") or "")


def _render(conditions: List[Condition]) -> str:
    return ", ".join(str(c) for c in conditions) or "no conditions"
