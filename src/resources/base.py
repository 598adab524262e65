"""
Resource Adapter Base - Abstract interface for control-plane object kinds.

An adapter translates between the flat attribute map the orchestrator works
with and the control-plane object for one kind. It also declares what the
engine and the immutability guard need to know about that kind: its
collection name, readiness policy, poll timeouts and immutable fields.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from cloud_client import API_GROUP, API_VERSION
from config import PollingConfig
from engine import ObservedState, ResourceTimeouts
from identity import Identity
from readiness import AnyType, ReadinessPolicy
from validation import validate_attributes

logger = logging.getLogger(__name__)

API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Non-blank string: anything but whitespace and quotes
NOT_BLANK = {"type": "string", "pattern": "[^\\s\"]"}

OPERATIONS = ("create", "update", "delete")


class ResourceAdapter(ABC):
    """
    Abstract base class for resource adapters.

    Subclasses set the kind metadata and implement build() and flatten().
    Everything else has a default suited to the common case: an object
    addressed by organization and name that converges when its Ready
    condition is True.
    """

    immutable_fields: Sequence[str] = ("organization", "name")
    identity_fields: Sequence[str] = ("organization", "name")
    generated_fields: Sequence[str] = ()
    # Values computed on create that a later plan does not carry
    computed_fields: Sequence[str] = ()
    read_only = False

    @property
    @abstractmethod
    def type_name(self) -> str:
        """Resource type name used by the orchestrator."""
        pass

    @property
    @abstractmethod
    def kind(self) -> str:
        """Control-plane object kind."""
        pass

    @property
    @abstractmethod
    def plural(self) -> str:
        """Control-plane collection name."""
        pass

    @property
    @abstractmethod
    def schema(self) -> Dict[str, Any]:
        """JSON Schema of the attribute map."""
        pass

    @abstractmethod
    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Expand attributes into a desired-state object.

        Args:
            attributes: The flat attribute map.
            existing: The current object on update, None on create.

        Returns:
            The object to submit.
        """
        pass

    @abstractmethod
    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Flatten an observed object back into attributes.

        Args:
            observed: The latest observation.
            attributes: The attributes known so far, used for values the
                control plane never returns.

        Returns:
            The new attribute map.
        """
        pass

    # Optional hooks

    def readiness(self, attributes: Dict[str, Any]) -> Optional[ReadinessPolicy]:
        """Readiness policy for this kind, or None to skip waiting."""
        return AnyType("Ready")

    def settled(self, attributes: Dict[str, Any], obj: Dict[str, Any]) -> bool:
        """Extra convergence check on the observed object."""
        return True

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        """Cross-field checks the schema cannot express."""
        return []

    async def prepare(self, client: Any, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve references against the control plane before create."""
        return attributes

    async def after_create(
        self, client: Any, attributes: Dict[str, Any], observed: ObservedState
    ) -> None:
        """Create companion objects once the object has converged."""
        pass

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(10, interval=interval, jitter=jitter)

    # Shared behavior

    def timeouts(self, config: PollingConfig) -> ResourceTimeouts:
        """Poll policies for this kind, with configured overrides applied."""
        timeouts = self.default_timeouts(config.poll_interval, config.poll_jitter)
        for operation in OPERATIONS:
            minutes = config.timeout_override(self.type_name, operation)
            if minutes is not None:
                getattr(timeouts, operation).deadline = minutes * 60
        return timeouts

    def check_attributes(self, attributes: Dict[str, Any]) -> None:
        """Validate attributes against the schema and the cross-field checks."""
        validate_attributes(
            self.type_name, attributes, self.schema, self.validate(attributes)
        )

    def identity(self, attributes: Dict[str, Any]) -> Identity:
        return Identity(attributes.get("organization") or "", attributes.get("name") or "")

    def new_object(
        self,
        attributes: Dict[str, Any],
        existing: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Start a desired-state object.

        On update this is a copy of the existing object without its status,
        so fields the adapter does not manage are submitted unchanged.
        """
        if existing is not None:
            obj = copy.deepcopy(existing)
            obj.pop("status", None)
            obj.setdefault("spec", {})
            return obj

        metadata = {"namespace": attributes["organization"]}
        name = name if name is not None else attributes.get("name")
        if name:
            metadata["name"] = name
        return {
            "apiVersion": API_GROUP_VERSION,
            "kind": self.kind,
            "metadata": metadata,
            "spec": {},
        }

    def base_attributes(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Start a flattened attribute map from the object's identity."""
        result = dict(attributes)
        result["organization"] = observed.identity.namespace
        result["name"] = observed.identity.name
        return result


class ReadOnlyAdapter(ResourceAdapter):
    """
    Adapter for kinds that can be looked up but are never managed,
    such as the pools the control plane provisions itself.
    """

    read_only = True

    def readiness(self, attributes: Dict[str, Any]) -> Optional[ReadinessPolicy]:
        return None

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        raise NotImplementedError(f"{self.type_name} is read-only")


def ready_status(observed: ObservedState, condition_type: str = "Ready") -> str:
    """Render the status of one condition as "True"/"False"/"Unknown"."""
    for condition in observed.conditions:
        if condition.matches(condition_type):
            return condition.status.value
    return "False"


def set_annotation(obj: Dict[str, Any], key: str, value: str) -> None:
    metadata = obj.setdefault("metadata", {})
    annotations = metadata.get("annotations") or {}
    annotations[key] = value
    metadata["annotations"] = annotations


def get_annotation(obj: Dict[str, Any], key: str) -> Optional[str]:
    return ((obj.get("metadata") or {}).get("annotations") or {}).get(key)


def object_schema(
    properties: Dict[str, Any], required: Sequence[str] = ("organization", "name")
) -> Dict[str, Any]:
    """Build an attribute schema with the organization property included."""
    return {
        "type": "object",
        "required": list(required),
        "properties": {"organization": NOT_BLANK, **properties},
    }
