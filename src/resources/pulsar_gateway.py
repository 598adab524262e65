"""
Pulsar gateways attached to a pool member.

Only the private-service allow list of a gateway can change after creation.
An update is complete once the gateway controller has observed the new
generation and the gateway reports Ready again.
"""

from typing import Any, Dict, List, Optional

from engine import ObservedState, PollPolicy, ResourceTimeouts
from readiness import AnyType, ReadinessPolicy
from resources.base import NOT_BLANK, ResourceAdapter, object_schema, ready_status
from resources.cloud_environment import PRIVATE_ACCESS


class PulsarGatewayAdapter(ResourceAdapter):
    immutable_fields = (
        "organization",
        "name",
        "access",
        "poolmember_name",
        "poolmember_namespace",
    )

    @property
    def type_name(self) -> str:
        return "streamnative_pulsar_gateway"

    @property
    def kind(self) -> str:
        return "PulsarGateway"

    @property
    def plural(self) -> str:
        return "pulsargateways"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "access": {"type": "string", "enum": ["public", PRIVATE_ACCESS]},
                "poolmember_name": NOT_BLANK,
                "poolmember_namespace": NOT_BLANK,
                "private_service": {
                    "type": "object",
                    "properties": {
                        "allowed_ids": {
                            "type": "array",
                            "items": {"type": "string"},
                            "uniqueItems": True,
                        }
                    },
                },
                "wait_for_completion": {"type": "boolean"},
            },
            required=(
                "organization",
                "name",
                "access",
                "poolmember_name",
                "poolmember_namespace",
            ),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts(
            create=PollPolicy(60 * 60, interval, jitter=jitter),
            update=PollPolicy(20 * 60, interval, jitter=jitter),
            delete=PollPolicy(60 * 60, interval, jitter=jitter),
        )

    def readiness(self, attributes: Dict[str, Any]) -> Optional[ReadinessPolicy]:
        if attributes.get("wait_for_completion", True) is False:
            return None
        return AnyType("Ready")

    def settled(self, attributes: Dict[str, Any], obj: Dict[str, Any]) -> bool:
        observed_generation = (obj.get("status") or {}).get("observedGeneration")
        generation = (obj.get("metadata") or {}).get("generation")
        if observed_generation is None or generation is None:
            return True
        return observed_generation == generation

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        if attributes.get("private_service") and attributes.get("access") != PRIVATE_ACCESS:
            return ["private_service can only be set on a gateway with private access"]
        return []

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]

        if existing is None:
            spec["access"] = attributes["access"]
            spec["poolMemberRef"] = {
                "namespace": attributes["poolmember_namespace"],
                "name": attributes["poolmember_name"],
            }

        if attributes.get("access") == PRIVATE_ACCESS:
            allowed = (attributes.get("private_service") or {}).get("allowed_ids") or []
            spec["privateService"] = {"allowedIds": list(allowed)}
        else:
            spec.pop("privateService", None)
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        status = observed.obj.get("status") or {}
        pool_member = spec.get("poolMemberRef") or {}

        result["access"] = spec.get("access", attributes.get("access", ""))
        result["poolmember_name"] = pool_member.get("name", "")
        result["poolmember_namespace"] = pool_member.get("namespace", "")
        if result["access"] == PRIVATE_ACCESS and spec.get("privateService"):
            result["private_service"] = {
                "allowed_ids": list(spec["privateService"].get("allowedIds") or [])
            }
            result["private_service_ids"] = [
                entry.get("id", "") for entry in status.get("privateServiceIds") or []
            ]
        result["ready"] = ready_status(observed)
        return result
