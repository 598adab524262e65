"""
Provider - The orchestrator boundary.

The orchestrator hands the provider a resource type name and a flat
attribute map and expects a ResourceState back. The provider looks up the
adapter for the type, runs the pre-submission checks, drives the
reconciliation engine and flattens the observed object into attributes.
Failed outcomes are raised as ProviderError.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from auth import TokenSource
from cloud_client import CloudAPIError, CloudClient
from config import Config, get_config
from engine import (
    FailureCause,
    ObservedState,
    OperationOutcome,
    ReconciliationEngine,
)
from identity import Identity, format_id, parse_id
from immutability import ImmutableFieldError, check_change
from readiness import Condition
from resources.base import ResourceAdapter
from resources.registry import ResourceRegistry, register_builtin_resources

logger = logging.getLogger(__name__)

# Collections that can be listed by name
LISTABLE_RESOURCES = (
    "pools",
    "poolmembers",
    "pulsarclusters",
    "pulsarinstances",
    "cloudconnections",
    "cloudenvironments",
    "catalogs",
)


@dataclass
class ResourceState:
    """What the orchestrator records for one object."""

    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)


class ProviderError(Exception):
    """Raised when an operation does not reach its target state."""

    def __init__(
        self,
        kind: str,
        identity: Optional[Identity],
        cause: Optional[FailureCause] = None,
        error: Optional[BaseException] = None,
        conditions: Optional[List[Condition]] = None,
        message: str = "",
    ):
        self.kind = kind
        self.identity = identity
        self.cause = cause
        self.error = error
        self.conditions = list(conditions or [])

        parts = [f"{kind} {identity if identity is not None else '?'}"]
        if cause is not None:
            parts.append(f"failed ({cause.value})")
        if message:
            parts.append(message)
        text = " ".join(parts)
        if error is not None:
            text += f": {error}"
        if self.conditions:
            text += f" [last conditions: {self.rendered_conditions}]"
        super().__init__(text)

    @property
    def rendered_conditions(self) -> str:
        return ", ".join(str(c) for c in self.conditions)


class Provider:
    """
    Create, read, update, delete and import control-plane objects.

    One engine is built per operation from the adapter of the resource
    type, so a provider instance can serve concurrent operations.
    """

    def __init__(
        self,
        client: Any,
        config: Optional[Config] = None,
        registry: Optional[ResourceRegistry] = None,
        cancel_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.config = config or get_config()
        self.registry = registry or register_builtin_resources()
        self.cancel_event = cancel_event
        self.clock = clock
        self.sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: Optional[Config] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "Provider":
        """Build a provider talking to the configured API server."""
        config = config or get_config()
        client = CloudClient(
            config.cloud.api_server,
            token_source=TokenSource(config.cloud),
            timeout=config.cloud.request_timeout,
        )
        return cls(client, config=config, cancel_event=cancel_event)

    def adapter(self, kind: str) -> ResourceAdapter:
        return self.registry.get(kind)

    def writable_adapter(self, kind: str) -> ResourceAdapter:
        """
        Get the adapter for a kind that can be created and changed.

        Raises:
            ValueError: If the kind is unknown or read-only.
        """
        adapter = self.adapter(kind)
        if adapter.read_only:
            raise ValueError(f"{kind} is read-only and can only be looked up")
        return adapter

    def engine(
        self, adapter: ResourceAdapter, attributes: Dict[str, Any]
    ) -> ReconciliationEngine:
        return ReconciliationEngine(
            self.client,
            adapter.plural,
            adapter.readiness(attributes),
            adapter.timeouts(self.config.polling),
            cancel_event=self.cancel_event,
            clock=self.clock,
            sleep=self.sleep,
            settled=lambda obj: adapter.settled(attributes, obj),
        )

    # Orchestrator entry points

    def validate_diff(
        self, kind: str, old: Optional[Dict[str, Any]], new: Dict[str, Any]
    ) -> None:
        """
        Check a planned change before anything is submitted.

        Raises:
            ValidationError: If the new attributes are invalid.
            ImmutableFieldError: If the change touches an immutable field.
        """
        adapter = self.writable_adapter(kind)
        adapter.check_attributes(new)

        ok, offending = check_change(
            old,
            new,
            adapter.immutable_fields,
            identity_fields=adapter.identity_fields,
            generated_fields=adapter.generated_fields,
        )
        if not ok:
            logger.warning(f"Rejected change to immutable fields of {kind}: {offending}")
            raise ImmutableFieldError(kind, offending)

    async def create(self, kind: str, attributes: Dict[str, Any]) -> ResourceState:
        adapter = self.writable_adapter(kind)
        adapter.check_attributes(attributes)
        identity = adapter.identity(attributes)

        try:
            prepared = await adapter.prepare(self.client, attributes)
        except CloudAPIError as e:
            raise ProviderError(kind, identity, FailureCause.SUBMISSION, e) from e

        desired = adapter.build(prepared)
        outcome = await self.engine(adapter, prepared).create(desired)
        observed = self._require(kind, outcome)

        try:
            await adapter.after_create(self.client, prepared, observed)
        except CloudAPIError as e:
            raise ProviderError(
                kind, observed.identity, FailureCause.SUBMISSION, e
            ) from e

        return self._state(adapter, observed, prepared)

    async def read(
        self,
        kind: str,
        resource_id: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Optional[ResourceState]:
        """
        Refresh one object.

        Returns:
            The current state, or None if the object no longer exists.
        """
        adapter = self.adapter(kind)
        identity = parse_id(resource_id)
        attributes = attributes or {}

        try:
            observed = await self.engine(adapter, attributes).read(identity)
        except CloudAPIError as e:
            raise ProviderError(kind, identity, FailureCause.READ, e) from e

        if observed is None:
            logger.info(f"{kind} {identity} no longer exists")
            return None
        return self._state(adapter, observed, attributes)

    async def update(
        self,
        kind: str,
        resource_id: str,
        old: Dict[str, Any],
        new: Dict[str, Any],
    ) -> ResourceState:
        self.validate_diff(kind, old, new)
        adapter = self.adapter(kind)
        identity = parse_id(resource_id)
        attributes = carry_forward(adapter, old, new)
        engine = self.engine(adapter, attributes)

        try:
            current = await engine.read(identity)
        except CloudAPIError as e:
            raise ProviderError(kind, identity, FailureCause.READ, e) from e
        if current is None:
            raise ProviderError(kind, identity, message="does not exist")

        desired = adapter.build(attributes, existing=current.obj)
        outcome = await engine.update(identity, desired)
        observed = self._require(kind, outcome)
        return self._state(adapter, observed, attributes)

    async def delete(self, kind: str, resource_id: str) -> None:
        adapter = self.writable_adapter(kind)
        identity = parse_id(resource_id)
        outcome = await self.engine(adapter, {}).delete(identity)
        self._require(kind, outcome)

    async def import_resource(
        self, kind: str, resource_id: str
    ) -> Optional[ResourceState]:
        """
        Adopt an existing object by its "namespace/name" id.

        Raises:
            MalformedIdentityError: If the id has no "/" separator.
        """
        logger.info(f"Importing {kind} {resource_id}")
        return await self.read(kind, resource_id)

    async def check_destroyed(self, kind: str, resource_id: str) -> None:
        """
        Verify that an object is gone.

        Raises:
            ProviderError: If the object still exists.
        """
        state = await self.read(kind, resource_id)
        if state is not None:
            raise ProviderError(kind, parse_id(resource_id), message="still exists")

    # Lookups

    async def lookup(self, kind: str, organization: str, name: str) -> ResourceState:
        """
        Look up an object that may not be managed here.

        Works for every registered kind, read-only ones included.

        Raises:
            ProviderError: If the object does not exist or cannot be read.
        """
        resource_id = format_id(organization, name)
        state = await self.read(
            kind, resource_id, {"organization": organization, "name": name}
        )
        if state is None:
            raise ProviderError(kind, Identity(organization, name), message="not found")
        return state

    async def list_names(self, organization: str, resource: str) -> ResourceState:
        """
        List the names of every object in one collection.

        Args:
            organization: The organization to list in.
            resource: A collection name such as "pulsarclusters".

        Raises:
            ValueError: If the collection cannot be listed.
            ProviderError: If the control plane rejects the request.
        """
        plural = resource.lower()
        if plural not in LISTABLE_RESOURCES:
            raise ValueError(
                f"Cannot list {resource}, expected one of: "
                f"{', '.join(LISTABLE_RESOURCES)}"
            )

        try:
            items = await self.client.list(organization, plural)
        except CloudAPIError as e:
            raise ProviderError(
                plural, Identity(organization, ""), FailureCause.READ, e
            ) from e

        names = [(item.get("metadata") or {}).get("name", "") for item in items]
        return ResourceState(
            id=format_id(organization, plural),
            attributes={"organization": organization, "resource": plural, "names": names},
        )

    # Private helper methods

    def _require(self, kind: str, outcome: OperationOutcome) -> ObservedState:
        if not outcome.succeeded:
            conditions = outcome.observed.conditions if outcome.observed else []
            raise ProviderError(
                kind, outcome.identity, outcome.cause, outcome.error, conditions
            )
        return outcome.observed

    def _state(
        self,
        adapter: ResourceAdapter,
        observed: ObservedState,
        attributes: Dict[str, Any],
    ) -> ResourceState:
        return ResourceState(
            id=format_id(*observed.identity),
            attributes=adapter.flatten(observed, attributes),
        )


def carry_forward(
    adapter: ResourceAdapter, old: Dict[str, Any], new: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Build the attributes to submit on update.

    The new plan wins; only computed and server-generated values it does
    not carry are taken from the old state. Anything else the plan leaves
    out is dropped, so optional attributes can be removed.
    """
    attributes = dict(new)
    for name in tuple(adapter.computed_fields) + tuple(adapter.generated_fields):
        if not attributes.get(name) and old.get(name):
            attributes[name] = old[name]
    return attributes
