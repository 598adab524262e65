"""Service account bindings to a pool member."""

import logging
from typing import Any, Dict, List, Optional

from engine import ObservedState, ResourceTimeouts
from readiness import AllOf, AnyType, Every, LastMustBe, ReadinessPolicy
from resources.base import NOT_BLANK, ResourceAdapter, object_schema

logger = logging.getLogger(__name__)


def binding_name(service_account: str, pool_member_namespace: str, pool_member: str) -> str:
    return f"{service_account}.{pool_member_namespace}.{pool_member}"


class ServiceAccountBindingAdapter(ResourceAdapter):
    immutable_fields = (
        "organization",
        "name",
        "service_account_name",
        "pool_member_name",
        "pool_member_namespace",
    )
    # Derived server-side or resolved from cluster_name
    generated_fields = ("name", "pool_member_name", "pool_member_namespace")

    @property
    def type_name(self) -> str:
        return "streamnative_service_account_binding"

    @property
    def kind(self) -> str:
        return "ServiceAccountBinding"

    @property
    def plural(self) -> str:
        return "serviceaccountbindings"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": {"type": "string"},
                "service_account_name": NOT_BLANK,
                "cluster_name": {"type": "string"},
                "pool_member_name": {"type": "string"},
                "pool_member_namespace": {"type": "string"},
                "enable_iam_account_creation": {"type": "boolean"},
                "aws_assume_role_arns": {"type": "array", "items": {"type": "string"}},
            },
            required=("organization", "service_account_name"),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(5, interval=interval, jitter=jitter)

    def readiness(self, attributes: Dict[str, Any]) -> Optional[ReadinessPolicy]:
        if attributes.get("enable_iam_account_creation"):
            return Every(
                AllOf(["IAMAccountReady"]),
                LastMustBe("Ready", among=["IAMAccountReady", "Ready"]),
            )
        return AnyType("Ready")

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        has_cluster = bool(attributes.get("cluster_name"))
        has_member = bool(
            attributes.get("pool_member_name") and attributes.get("pool_member_namespace")
        )
        if not has_cluster and not has_member:
            return [
                "either (pool_member_name & pool_member_namespace) or "
                "cluster_name must be provided"
            ]
        return []

    async def prepare(self, client: Any, attributes: Dict[str, Any]) -> Dict[str, Any]:
        cluster_name = attributes.get("cluster_name")
        if not cluster_name:
            return attributes

        cluster = await client.get(
            attributes["organization"], "pulsarclusters", cluster_name
        )
        ref = (cluster.get("spec") or {}).get("poolMemberRef") or {}
        resolved = dict(attributes)
        resolved["pool_member_name"] = ref.get("name", "")
        resolved["pool_member_namespace"] = ref.get("namespace", "")
        logger.debug(
            f"Resolved cluster {cluster_name} to pool member "
            f"{resolved['pool_member_namespace']}/{resolved['pool_member_name']}"
        )
        return resolved

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        name = binding_name(
            attributes["service_account_name"],
            attributes.get("pool_member_namespace", ""),
            attributes.get("pool_member_name", ""),
        )
        obj = self.new_object(attributes, existing, name=name)
        obj["spec"].update(
            {
                "serviceAccountName": attributes["service_account_name"],
                "poolMemberRef": {
                    "name": attributes.get("pool_member_name", ""),
                    "namespace": attributes.get("pool_member_namespace", ""),
                },
                "enableIAMAccountCreation": bool(
                    attributes.get("enable_iam_account_creation")
                ),
                "awsAssumeRoleARNs": list(attributes.get("aws_assume_role_arns") or []),
            }
        )
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        ref = spec.get("poolMemberRef") or {}
        result["service_account_name"] = spec.get("serviceAccountName", "")
        result["pool_member_name"] = ref.get("name", "")
        result["pool_member_namespace"] = ref.get("namespace", "")
        result["enable_iam_account_creation"] = bool(
            spec.get("enableIAMAccountCreation")
        )
        result["aws_assume_role_arns"] = list(spec.get("awsAssumeRoleARNs") or [])
        return result
