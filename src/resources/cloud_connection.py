"""Cloud connections granting the control plane access to a cloud account."""

from typing import Any, Dict, List, Optional

from engine import ObservedState, ResourceTimeouts
from resources.base import NOT_BLANK, ResourceAdapter, object_schema, ready_status

CONNECTION_TYPES = ["aws", "gcp", "azure"]


class CloudConnectionAdapter(ResourceAdapter):
    immutable_fields = ("organization", "name", "type")

    @property
    def type_name(self) -> str:
        return "streamnative_cloud_connection"

    @property
    def kind(self) -> str:
        return "CloudConnection"

    @property
    def plural(self) -> str:
        return "cloudconnections"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "type": {"type": "string", "enum": CONNECTION_TYPES},
                "aws": {
                    "type": "object",
                    "required": ["account_id"],
                    "properties": {"account_id": NOT_BLANK},
                },
                "gcp": {
                    "type": "object",
                    "required": ["project"],
                    "properties": {"project": NOT_BLANK},
                },
            },
            required=("organization", "name", "type"),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(3, interval=interval, jitter=jitter)

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        if not attributes.get("aws") and not attributes.get("gcp"):
            return ["one of aws.account_id or gcp.project must be set"]
        return []

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]
        spec["type"] = attributes["type"]
        if attributes.get("aws"):
            spec["aws"] = {"accountId": attributes["aws"]["account_id"]}
        if attributes.get("gcp"):
            spec["gcloud"] = {"projectId": attributes["gcp"]["project"]}
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        result["type"] = spec.get("type", attributes.get("type"))
        if spec.get("aws"):
            result["aws"] = {"account_id": spec["aws"].get("accountId", "")}
        if spec.get("gcloud"):
            result["gcp"] = {"project": spec["gcloud"].get("projectId", "")}
        result["ready"] = ready_status(observed)
        return result
