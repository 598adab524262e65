"""
Cloud environments provisioned through a cloud connection.

The control plane names an environment itself, so an environment is
addressed by organization alone until it has been created.
"""

import ipaddress
import logging
from typing import Any, Dict, List, Optional

from engine import ObservedState, ResourceTimeouts
from readiness import AnyType, ReadinessPolicy
from resources.base import (
    NOT_BLANK,
    ResourceAdapter,
    get_annotation,
    object_schema,
    ready_status,
)
from validation import ValidationError

logger = logging.getLogger(__name__)

ENVIRONMENT_TYPE_ANNOTATION = "cloud.streamnative.io/environment-type"
PRIVATE_ACCESS = "private"


def cidr_errors(cidr: str) -> List[str]:
    try:
        network = ipaddress.IPv4Network(cidr, strict=False)
    except ValueError:
        return [f"network.cidr: {cidr!r} is not valid CIDR notation, must be X.X.X.X/X"]
    if not 16 <= network.prefixlen <= 28:
        return [
            f"network.cidr: {cidr!r} is not a valid CIDR prefix length, "
            f"must be between /16 and /28"
        ]
    return []


def build_gateway(gateway: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not gateway:
        return None
    result: Dict[str, Any] = {}
    if gateway.get("access"):
        result["access"] = gateway["access"]
    if gateway.get("access") == PRIVATE_ACCESS:
        allowed = (gateway.get("private_service") or {}).get("allowed_ids") or []
        result["privateService"] = {"allowedIds": list(allowed)}
    return result


def flatten_gateway(gateway: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {"access": gateway.get("access", "")}
    private_service = gateway.get("privateService")
    if private_service:
        result["private_service"] = {
            "allowed_ids": list(private_service.get("allowedIds") or [])
        }
    return result


class CloudEnvironmentAdapter(ResourceAdapter):
    immutable_fields = (
        "organization",
        "cloud_connection_name",
        "region",
        "network.id",
        "network.cidr",
        "default_gateway.access",
    )
    identity_fields = ("organization",)

    @property
    def type_name(self) -> str:
        return "streamnative_cloud_environment"

    @property
    def kind(self) -> str:
        return "CloudEnvironment"

    @property
    def plural(self) -> str:
        return "cloudenvironments"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": {"type": "string"},
                "environment_type": {
                    "type": "string",
                    "enum": ["test", "staging", "production"],
                },
                "region": NOT_BLANK,
                "zone": {"type": "string"},
                "cloud_connection_name": NOT_BLANK,
                "network": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "cidr": {"type": "string"},
                    },
                },
                "dns": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                    },
                },
                "default_gateway": {
                    "type": "object",
                    "properties": {
                        "access": {"type": "string", "enum": ["public", PRIVATE_ACCESS]},
                        "private_service": {
                            "type": "object",
                            "properties": {
                                "allowed_ids": {
                                    "type": "array",
                                    "items": {"type": "string"},
                                }
                            },
                        },
                    },
                },
                "annotations": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                },
                "wait_for_completion": {"type": "boolean"},
            },
            required=(
                "organization",
                "environment_type",
                "region",
                "cloud_connection_name",
                "network",
            ),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(120, interval=interval, jitter=jitter)

    def readiness(self, attributes: Dict[str, Any]) -> Optional[ReadinessPolicy]:
        if attributes.get("wait_for_completion", True) is False:
            return None
        return AnyType("Ready")

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        errors = []
        network = attributes.get("network") or {}
        if not network.get("id") and not network.get("cidr"):
            errors.append("one of network.id or network.cidr must be set")
        if network.get("cidr"):
            errors.extend(cidr_errors(network["cidr"]))

        dns = attributes.get("dns") or {}
        if bool(dns.get("id")) != bool(dns.get("name")):
            errors.append("dns.id and dns.name must be specified together")
        return errors

    async def prepare(self, client: Any, attributes: Dict[str, Any]) -> Dict[str, Any]:
        if not (attributes.get("network") or {}).get("id"):
            return attributes

        connection = await client.get(
            attributes["organization"],
            "cloudconnections",
            attributes["cloud_connection_name"],
        )
        if (connection.get("spec") or {}).get("type") == "azure":
            raise ValidationError(
                self.type_name,
                ["azure does not support specifying network.id, use network.cidr"],
            )
        return attributes

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]

        gateway = build_gateway(attributes.get("default_gateway"))
        if gateway is not None:
            spec["defaultGateway"] = gateway
        else:
            spec.pop("defaultGateway", None)
        if existing is not None:
            return obj

        annotations = dict(attributes.get("annotations") or {})
        annotations[ENVIRONMENT_TYPE_ANNOTATION] = attributes["environment_type"]
        obj["metadata"]["annotations"] = annotations

        spec["cloudConnectionName"] = attributes["cloud_connection_name"]
        spec["region"] = attributes["region"]
        if attributes.get("zone"):
            spec["zone"] = attributes["zone"]

        network = attributes.get("network") or {}
        spec["network"] = {k: network[k] for k in ("id", "cidr") if network.get(k)}

        dns = attributes.get("dns") or {}
        if dns.get("id"):
            spec["dns"] = {"id": dns["id"], "name": dns["name"]}
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}

        environment_type = get_annotation(observed.obj, ENVIRONMENT_TYPE_ANNOTATION)
        if environment_type:
            result["environment_type"] = environment_type
        result["region"] = spec.get("region", "")
        result["cloud_connection_name"] = spec.get("cloudConnectionName", "")
        if spec.get("zone"):
            result["zone"] = spec["zone"]
        if spec.get("network") is not None:
            network = spec["network"]
            result["network"] = {
                k: network[k] for k in ("id", "cidr") if network.get(k)
            }
            if network.get("subnetCIDR"):
                result["network"]["subnet_cidr"] = network["subnetCIDR"]
        if spec.get("dns"):
            result["dns"] = {
                "id": spec["dns"].get("id", ""),
                "name": spec["dns"].get("name", ""),
            }
        if spec.get("defaultGateway"):
            result["default_gateway"] = flatten_gateway(spec["defaultGateway"])
        result["ready"] = ready_status(observed)
        return result
