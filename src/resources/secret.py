"""
Secrets scoped to an instance, a location or a pool member.

Secrets are accepted synchronously, so there is nothing to wait for. Their
fields sit at the top level of the object rather than under a spec, and
``string_data`` is write-only: the control plane folds it into ``data``,
so the value last applied is kept as is.
"""

from typing import Any, Dict, List, Optional

from engine import ObservedState
from readiness import ReadinessPolicy
from resources.base import NOT_BLANK, ResourceAdapter, object_schema

STRING_MAP = {"type": "object", "additionalProperties": {"type": "string"}}


class SecretAdapter(ResourceAdapter):
    @property
    def type_name(self) -> str:
        return "streamnative_secret"

    @property
    def kind(self) -> str:
        return "Secret"

    @property
    def plural(self) -> str:
        return "secrets"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "instance_name": {"type": "string"},
                "location": {"type": "string"},
                "pool_member_name": {"type": "string"},
                "type": {"type": "string"},
                "data": STRING_MAP,
                "string_data": STRING_MAP,
            }
        )

    def readiness(self, attributes: Dict[str, Any]) -> Optional[ReadinessPolicy]:
        return None

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        if not attributes.get("data") and not attributes.get("string_data"):
            return ["at least one of data or string_data must be set"]
        return []

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        obj.pop("spec", None)

        for attr, key in (("instance_name", "instanceName"), ("location", "location")):
            if attributes.get(attr):
                obj[key] = attributes[attr]
            else:
                obj.pop(key, None)

        if attributes.get("pool_member_name"):
            obj["poolMemberRef"] = {
                "name": attributes["pool_member_name"],
                "namespace": attributes["organization"],
            }
        else:
            obj.pop("poolMemberRef", None)

        for attr, key in (
            ("type", "type"),
            ("data", "data"),
            ("string_data", "stringData"),
        ):
            if attributes.get(attr):
                obj[key] = attributes[attr]
            else:
                obj.pop(key, None)
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        obj = observed.obj
        result["instance_name"] = obj.get("instanceName", "")
        result["location"] = obj.get("location", "")
        result["pool_member_name"] = (obj.get("poolMemberRef") or {}).get("name", "")
        result["type"] = obj.get("type", "")
        result["data"] = dict(obj.get("data") or {})
        if attributes.get("string_data"):
            result["string_data"] = attributes["string_data"]
        return result
