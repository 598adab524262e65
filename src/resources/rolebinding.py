"""Role bindings of service accounts to a predefined cluster role."""

from typing import Any, Dict, Optional

from engine import ObservedState
from resources.base import NOT_BLANK, ResourceAdapter, object_schema, ready_status


class RoleBindingAdapter(ResourceAdapter):
    immutable_fields = ("organization", "name", "predefined_role_name")

    @property
    def type_name(self) -> str:
        return "streamnative_rolebinding"

    @property
    def kind(self) -> str:
        return "RoleBinding"

    @property
    def plural(self) -> str:
        return "rolebindings"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "predefined_role_name": NOT_BLANK,
                "service_account_names": {
                    "type": "array",
                    "minItems": 1,
                    "items": NOT_BLANK,
                },
            },
            required=("organization", "name", "predefined_role_name"),
        )

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]
        if existing is None:
            spec["roleRef"] = {
                "kind": "ClusterRole",
                "name": attributes["predefined_role_name"],
            }
        # The subject list is replaced as a whole
        spec["subjects"] = [
            {"name": name, "kind": "ServiceAccount"}
            for name in attributes.get("service_account_names") or []
        ]
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        result["predefined_role_name"] = (spec.get("roleRef") or {}).get(
            "name", attributes.get("predefined_role_name")
        )
        result["service_account_names"] = [
            s.get("name", "")
            for s in spec.get("subjects") or []
            if s.get("kind") == "ServiceAccount"
        ]
        result["ready"] = ready_status(observed)
        return result
