"""Storage volumes backed by an AWS bucket."""

from typing import Any, Dict, Optional

from engine import ObservedState, ResourceTimeouts
from resources.base import NOT_BLANK, ResourceAdapter, object_schema, ready_status


class VolumeAdapter(ResourceAdapter):
    @property
    def type_name(self) -> str:
        return "streamnative_volume"

    @property
    def kind(self) -> str:
        return "Volume"

    @property
    def plural(self) -> str:
        return "volumes"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "bucket": NOT_BLANK,
                "path": NOT_BLANK,
                "region": NOT_BLANK,
                "role_arn": NOT_BLANK,
            },
            required=("organization", "name", "bucket", "path", "region", "role_arn"),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(10, interval=interval, jitter=jitter)

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        obj["spec"].update(
            {
                "bucket": attributes["bucket"],
                "path": attributes["path"],
                "type": "aws",
                "aws": {
                    "roleArn": attributes["role_arn"],
                    "region": attributes["region"],
                },
            }
        )
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        aws = spec.get("aws") or {}
        result["bucket"] = spec.get("bucket", "")
        result["path"] = spec.get("path", "")
        result["region"] = aws.get("region", "")
        result["role_arn"] = aws.get("roleArn", "")
        result["ready"] = ready_status(observed)
        return result
