"""Pulsar instances placed on a pool."""

import logging
from typing import Any, Dict, Optional

from engine import ObservedState, ResourceTimeouts
from resources.base import (
    NOT_BLANK,
    ResourceAdapter,
    get_annotation,
    object_schema,
    ready_status,
    set_annotation,
)

logger = logging.getLogger(__name__)

ENGINE_ANNOTATION = "cloud.streamnative.io/engine"
ENGINE_URSA = "ursa"

# Pool deployment type -> instance type
DEPLOYMENT_TYPES = {
    "hosted": "serverless",
    "managed": "byoc",
    "managed-pro": "byoc-pro",
}


class PulsarInstanceAdapter(ResourceAdapter):
    immutable_fields = (
        "organization",
        "name",
        "availability_mode",
        "pool_name",
        "pool_namespace",
        "type",
    )

    @property
    def type_name(self) -> str:
        return "streamnative_pulsar_instance"

    @property
    def kind(self) -> str:
        return "PulsarInstance"

    @property
    def plural(self) -> str:
        return "pulsarinstances"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "availability_mode": {"type": "string", "enum": ["zonal", "regional"]},
                "pool_name": NOT_BLANK,
                "pool_namespace": NOT_BLANK,
                "type": {
                    "type": "string",
                    "enum": ["", "serverless", "dedicated", "byoc", "byoc-pro"],
                },
                "engine": {"type": "string", "enum": ["", "classic", ENGINE_URSA]},
            },
            required=(
                "organization",
                "name",
                "availability_mode",
                "pool_name",
                "pool_namespace",
            ),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(3, interval=interval, jitter=jitter)

    async def prepare(self, client: Any, attributes: Dict[str, Any]) -> Dict[str, Any]:
        if attributes.get("type"):
            return attributes

        option_name = f"{attributes['pool_namespace']}-{attributes['pool_name']}"
        option = await client.get(attributes["organization"], "pooloptions", option_name)
        deployment_type = (option.get("spec") or {}).get("deploymentType", "")

        resolved = dict(attributes)
        resolved["type"] = DEPLOYMENT_TYPES.get(deployment_type, "")
        logger.debug(
            f"Pool {option_name} has deployment type {deployment_type!r}, "
            f"using instance type {resolved['type']!r}"
        )
        return resolved

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]
        spec["availabilityMode"] = attributes["availability_mode"]
        spec["poolRef"] = {
            "namespace": attributes["pool_namespace"],
            "name": attributes["pool_name"],
        }
        if attributes.get("type"):
            spec["type"] = attributes["type"]
        if attributes.get("engine") == ENGINE_URSA:
            set_annotation(obj, ENGINE_ANNOTATION, ENGINE_URSA)
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        pool_ref = spec.get("poolRef") or {}

        result["availability_mode"] = spec.get("availabilityMode", "")
        result["pool_name"] = pool_ref.get("name", "")
        result["pool_namespace"] = pool_ref.get("namespace", "")
        result["type"] = spec.get("type", attributes.get("type", ""))
        result["engine"] = get_annotation(observed.obj, ENGINE_ANNOTATION) or attributes.get(
            "engine", ""
        )
        result["ready"] = ready_status(observed)
        return result
