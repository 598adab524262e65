"""Service accounts, optionally bound to the organization admin role."""

import logging
from typing import Any, Dict, Optional

from engine import ObservedState, ResourceTimeouts
from resources.base import (
    API_GROUP_VERSION,
    NOT_BLANK,
    ResourceAdapter,
    object_schema,
    set_annotation,
)

logger = logging.getLogger(__name__)

ADMIN_ANNOTATION = "annotations.cloud.streamnative.io/service-account-role"


class ServiceAccountAdapter(ResourceAdapter):
    immutable_fields = ("organization", "name", "admin")

    @property
    def type_name(self) -> str:
        return "streamnative_service_account"

    @property
    def kind(self) -> str:
        return "ServiceAccount"

    @property
    def plural(self) -> str:
        return "serviceaccounts"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "admin": {"type": "boolean"},
                "private_key_data": {"type": "string"},
            }
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        # Key material takes a while to be issued
        return ResourceTimeouts.uniform(
            30, interval=interval, initial_delay=20, jitter=jitter
        )

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        if attributes.get("admin"):
            set_annotation(obj, ADMIN_ANNOTATION, "admin")
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        private_key_data = ""
        conditions = observed.conditions
        if conditions and conditions[0].matches("Ready"):
            private_key_data = (observed.obj.get("status") or {}).get(
                "privateKeyData", ""
            )
        result["private_key_data"] = private_key_data
        return result

    async def after_create(
        self, client: Any, attributes: Dict[str, Any], observed: ObservedState
    ) -> None:
        if not attributes.get("admin"):
            return

        namespace, name = observed.identity
        metadata = observed.obj.get("metadata") or {}
        binding = {
            "apiVersion": API_GROUP_VERSION,
            "kind": "RoleBinding",
            "metadata": {
                "name": name,
                "namespace": namespace,
                "ownerReferences": [
                    {
                        "apiVersion": API_GROUP_VERSION,
                        "kind": self.kind,
                        "name": name,
                        "uid": metadata.get("uid", ""),
                    }
                ],
            },
            "spec": {
                "roleRef": {
                    "apiGroup": "cloud.streamnative.io",
                    "kind": "Role",
                    "name": "admin",
                },
                "subjects": [
                    {
                        "apiGroup": "cloud.streamnative.io",
                        "kind": "ServiceAccount",
                        "name": name,
                    }
                ],
            },
        }
        await client.create(namespace, "rolebindings", binding)
        logger.info(f"Bound service account {observed.identity} to the admin role")
