"""Pools and pool members. The control plane provisions these itself."""

from typing import Any, Dict

from engine import ObservedState
from resources.base import NOT_BLANK, ReadOnlyAdapter, object_schema

# Pool member cloud block -> field holding its location
LOCATION_FIELDS = (("aws", "region"), ("gcloud", "location"), ("azure", "location"))


class PoolAdapter(ReadOnlyAdapter):
    @property
    def type_name(self) -> str:
        return "streamnative_pool"

    @property
    def kind(self) -> str:
        return "Pool"

    @property
    def plural(self) -> str:
        return "pools"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema({"name": NOT_BLANK, "type": {"type": "string"}})

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        result["type"] = (observed.obj.get("spec") or {}).get("type", "")
        return result


class PoolMemberAdapter(ReadOnlyAdapter):
    @property
    def type_name(self) -> str:
        return "streamnative_pool_member"

    @property
    def kind(self) -> str:
        return "PoolMember"

    @property
    def plural(self) -> str:
        return "poolmembers"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "type": {"type": "string"},
                "pool_name": {"type": "string"},
                "location": {"type": "string"},
            }
        )

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        result["type"] = spec.get("type", "")
        result["pool_name"] = spec.get("poolName", "")
        result["location"] = ""
        for block, key in LOCATION_FIELDS:
            if spec.get(block):
                result["location"] = spec[block].get(key, "")
                break
        return result
