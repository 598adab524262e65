"""
Resource adapters for the StreamNative Cloud control plane.

Each adapter maps one object kind to the flat attribute map the
orchestrator works with.
"""

from resources.base import ReadOnlyAdapter, ResourceAdapter
from resources.apikey import ApiKeyAdapter
from resources.catalog import CatalogAdapter
from resources.cloud_connection import CloudConnectionAdapter
from resources.cloud_environment import CloudEnvironmentAdapter
from resources.pool import PoolAdapter, PoolMemberAdapter
from resources.pulsar_cluster import PulsarClusterAdapter
from resources.pulsar_gateway import PulsarGatewayAdapter
from resources.pulsar_instance import PulsarInstanceAdapter
from resources.rolebinding import RoleBindingAdapter
from resources.secret import SecretAdapter
from resources.service_account import ServiceAccountAdapter
from resources.service_account_binding import ServiceAccountBindingAdapter
from resources.volume import VolumeAdapter
from resources.registry import ResourceRegistry, get_registry

BUILTIN_ADAPTERS = [
    ServiceAccountAdapter,
    ServiceAccountBindingAdapter,
    ApiKeyAdapter,
    PulsarInstanceAdapter,
    PulsarClusterAdapter,
    PulsarGatewayAdapter,
    CloudConnectionAdapter,
    CloudEnvironmentAdapter,
    CatalogAdapter,
    VolumeAdapter,
    RoleBindingAdapter,
    SecretAdapter,
    PoolAdapter,
    PoolMemberAdapter,
]

__all__ = [
    "ResourceAdapter",
    "ReadOnlyAdapter",
    "ResourceRegistry",
    "get_registry",
    "BUILTIN_ADAPTERS",
]
