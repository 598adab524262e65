"""
Pulsar clusters of an instance.

Broker and bookie sizes are expressed in units: one unit is 2 cores and
8 GiB of memory. A cluster's shape depends on its instance, so create
reads the instance first: serverless and Ursa-engine clusters run without
BookKeeper and are pinned to the rapid release channel.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from engine import ObservedState, PollPolicy, ResourceTimeouts
from resources.base import (
    NOT_BLANK,
    ResourceAdapter,
    object_schema,
    ready_status,
    set_annotation,
)
from resources.pulsar_instance import ENGINE_ANNOTATION, ENGINE_URSA
from validation import ValidationError

logger = logging.getLogger(__name__)

TYPE_ANNOTATION = "cloud.streamnative.io/type"
SERVERLESS = "serverless"
RAPID = "rapid"

GIB = 1024 ** 3
DEFAULT_UNIT = 0.5

_QUANTITY = re.compile(r"^([0-9.]+)([a-zA-Z]*)$")
_SUFFIXES = {
    "": 1,
    "m": 0.001,
    "k": 10 ** 3,
    "M": 10 ** 6,
    "G": 10 ** 9,
    "T": 10 ** 12,
    "Ki": 1024,
    "Mi": 1024 ** 2,
    "Gi": 1024 ** 3,
    "Ti": 1024 ** 4,
}


def parse_quantity(value: Any) -> float:
    """Parse a resource quantity such as "1500m", "2" or "4Gi"."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _QUANTITY.match(str(value).strip())
    if not match or match.group(2) not in _SUFFIXES:
        raise ValueError(f"Invalid resource quantity: {value!r}")
    return float(match.group(1)) * _SUFFIXES[match.group(2)]


def unit_resources(units: float) -> Dict[str, str]:
    """Render the cpu and memory of ``units`` as resource quantities."""
    millicores = int(units * 2 * 1000)
    cpu = str(millicores // 1000) if millicores % 1000 == 0 else f"{millicores}m"
    return {"cpu": cpu, "memory": str(int(units * 8 * GIB))}


def resources_to_units(resources: Optional[Dict[str, Any]]) -> float:
    if not resources:
        return DEFAULT_UNIT
    cpu = parse_quantity(resources.get("cpu"))
    memory = parse_quantity(resources.get("memory"))
    return max(cpu / 2, memory / (8 * GIB))


def image_tag(image: Optional[str]) -> str:
    parts = (image or "").split(":")
    return parts[1] if len(parts) > 1 else ""


def build_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Expand the config attribute block into the cluster's spec.config."""
    result: Dict[str, Any] = {}
    for attr, key in (
        ("websocket_enabled", "websocketEnabled"),
        ("function_enabled", "functionEnabled"),
        ("transaction_enabled", "transactionEnabled"),
    ):
        if config.get(attr) is not None:
            result[key] = bool(config[attr])

    # Both protocols are on unless explicitly disabled
    protocols = config.get("protocols") or {}
    result["protocols"] = {}
    if protocols.get("kafka", True):
        result["protocols"]["kafka"] = {}
    if protocols.get("mqtt", True):
        result["protocols"]["mqtt"] = {}

    categories = config.get("audit_log") or []
    if categories:
        result["auditLog"] = {"categories": list(categories)}
    if config.get("custom"):
        result["custom"] = {k: str(v) for k, v in config["custom"].items()}
    return result


def flatten_config(config: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, attr in (
        ("websocketEnabled", "websocket_enabled"),
        ("functionEnabled", "function_enabled"),
        ("transactionEnabled", "transaction_enabled"),
    ):
        if key in config:
            result[attr] = config[key]
    protocols = config.get("protocols")
    if protocols is not None:
        result["protocols"] = {
            "kafka": "kafka" in protocols,
            "mqtt": "mqtt" in protocols,
        }
    if config.get("auditLog"):
        result["audit_log"] = list(config["auditLog"].get("categories") or [])
    if config.get("custom"):
        result["custom"] = dict(config["custom"])
    return result


class PulsarClusterAdapter(ResourceAdapter):
    immutable_fields = (
        "organization",
        "name",
        "instance_name",
        "location",
        "pool_member_name",
        "release_channel",
    )
    generated_fields = ("name",)

    @property
    def type_name(self) -> str:
        return "streamnative_pulsar_cluster"

    @property
    def kind(self) -> str:
        return "PulsarCluster"

    @property
    def plural(self) -> str:
        return "pulsarclusters"

    @property
    def schema(self) -> Dict[str, Any]:
        flag = {"type": "boolean"}
        return object_schema(
            {
                "name": {"type": "string"},
                "display_name": {"type": "string"},
                "instance_name": NOT_BLANK,
                "location": {"type": "string"},
                "pool_member_name": {"type": "string"},
                "release_channel": {"type": "string", "enum": ["", RAPID, "lts"]},
                "bookie_replicas": {"type": "integer", "minimum": 3, "maximum": 15},
                "broker_replicas": {"type": "integer", "minimum": 1, "maximum": 15},
                "compute_unit_per_broker": {
                    "type": "number",
                    "minimum": 0.2,
                    "maximum": 8,
                },
                "storage_unit_per_bookie": {
                    "type": "number",
                    "minimum": 0.2,
                    "maximum": 8,
                },
                "volume": {"type": "string"},
                "config": {
                    "type": "object",
                    "properties": {
                        "websocket_enabled": flag,
                        "function_enabled": flag,
                        "transaction_enabled": flag,
                        "protocols": {
                            "type": "object",
                            "properties": {"kafka": flag, "mqtt": flag},
                        },
                        "audit_log": {"type": "array", "items": {"type": "string"}},
                        "custom": {"type": "object"},
                    },
                },
            },
            required=("organization", "instance_name"),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        timeouts = ResourceTimeouts.uniform(120, interval=interval, jitter=jitter)
        # The control plane takes a moment to start reconciling an update
        timeouts.update = PollPolicy(120 * 60, interval, initial_delay=10, jitter=jitter)
        return timeouts

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        if not attributes.get("pool_member_name") and not attributes.get("location"):
            return ["either pool_member_name or location must be provided"]
        return []

    async def prepare(self, client: Any, attributes: Dict[str, Any]) -> Dict[str, Any]:
        namespace = attributes["organization"]
        instance = await client.get(
            namespace, "pulsarinstances", attributes["instance_name"]
        )
        annotations = (instance.get("metadata") or {}).get("annotations") or {}
        instance_spec = instance.get("spec") or {}

        resolved = dict(attributes)
        resolved["type"] = instance_spec.get("type", "")
        resolved["engine"] = (
            ENGINE_URSA if annotations.get(ENGINE_ANNOTATION) == ENGINE_URSA else ""
        )

        errors = []
        if attributes.get("pool_member_name"):
            member = await client.get(
                namespace, "poolmembers", attributes["pool_member_name"]
            )
            pool = (instance_spec.get("poolRef") or {}).get("name")
            if (member.get("spec") or {}).get("poolName") != pool:
                errors.append(
                    "the pool member does not belong to the pool the pulsar "
                    "instance is attached to"
                )

        if resolved["type"] == SERVERLESS:
            if attributes.get("compute_unit_per_broker", DEFAULT_UNIT) != DEFAULT_UNIT:
                errors.append("compute_unit_per_broker must be 0.5 for serverless instance")
            if attributes.get("broker_replicas", 2) != 2:
                errors.append("broker_replicas must be 2 for serverless instance")

        if resolved["type"] == SERVERLESS or resolved["engine"] == ENGINE_URSA:
            if attributes.get("release_channel", RAPID) not in ("", RAPID):
                errors.append(
                    "release_channel must be rapid for ursa engine or serverless instance"
                )

        if errors:
            raise ValidationError(self.type_name, errors)

        if resolved["engine"] == ENGINE_URSA and attributes.get("volume"):
            await client.get(namespace, "volumes", attributes["volume"])
        return resolved

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]
        compute_unit = attributes.get("compute_unit_per_broker", DEFAULT_UNIT)
        storage_unit = attributes.get("storage_unit_per_bookie", DEFAULT_UNIT)

        broker = spec.setdefault("broker", {})
        broker["replicas"] = attributes.get("broker_replicas", 2)
        broker["resources"] = unit_resources(compute_unit)

        if attributes.get("display_name"):
            spec["displayName"] = attributes["display_name"]
        else:
            spec.pop("displayName", None)

        if existing is not None:
            if spec.get("bookkeeper"):
                spec["bookkeeper"]["replicas"] = attributes.get("bookie_replicas", 3)
                spec["bookkeeper"]["resources"] = unit_resources(storage_unit)
            if attributes.get("config") is not None:
                spec["config"] = build_config(attributes["config"])
            return obj

        serverless = attributes.get("type") == SERVERLESS
        ursa = attributes.get("engine") == ENGINE_URSA

        spec["instanceName"] = attributes["instance_name"]
        spec["releaseChannel"] = attributes.get("release_channel") or RAPID
        if attributes.get("pool_member_name"):
            spec["poolMemberRef"] = {
                "name": attributes["pool_member_name"],
                "namespace": attributes["organization"],
            }
        else:
            spec["location"] = attributes["location"]

        if serverless:
            set_annotation(obj, TYPE_ANNOTATION, SERVERLESS)
        if ursa:
            set_annotation(obj, ENGINE_ANNOTATION, ENGINE_URSA)
            if attributes.get("volume"):
                spec["volume"] = {"name": attributes["volume"]}
        if not serverless and not ursa:
            spec["bookkeeper"] = {
                "replicas": attributes.get("bookie_replicas", 3),
                "resources": unit_resources(storage_unit),
            }
            spec["config"] = build_config(attributes.get("config") or {})
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        broker = spec.get("broker") or {}
        bookkeeper = spec.get("bookkeeper")
        config = spec.get("config") or {}

        result["ready"] = ready_status(observed)
        result["instance_name"] = spec.get("instanceName", attributes.get("instance_name"))
        if spec.get("displayName"):
            result["display_name"] = spec["displayName"]
        if spec.get("location"):
            result["location"] = spec["location"]
        if spec.get("poolMemberRef"):
            result["pool_member_name"] = spec["poolMemberRef"].get("name", "")
        if spec.get("releaseChannel"):
            result["release_channel"] = spec["releaseChannel"]

        result["broker_replicas"] = broker.get("replicas", attributes.get("broker_replicas"))
        result["compute_unit_per_broker"] = resources_to_units(broker.get("resources"))
        result["pulsar_version"] = image_tag(broker.get("image"))
        if bookkeeper:
            result["bookie_replicas"] = bookkeeper.get("replicas")
            result["storage_unit_per_bookie"] = resources_to_units(
                bookkeeper.get("resources")
            )
            result["bookkeeper_version"] = image_tag(bookkeeper.get("image"))
        if config:
            result["config"] = flatten_config(config)

        dns_names = [
            e.get("dnsName", "")
            for e in spec.get("serviceEndpoints") or []
            if e.get("type") == "service"
        ]
        urls = {
            "http_tls_service_urls": [f"https://{d}" for d in dns_names],
            "pulsar_tls_service_urls": [f"pulsar+ssl://{d}:6651" for d in dns_names],
            "websocket_service_urls": (
                [f"ws://{d}:9443" for d in dns_names]
                if config.get("websocketEnabled")
                else []
            ),
            "mqtt_service_urls": (
                [f"mqtts://{d}:8883" for d in dns_names]
                if "mqtt" in (config.get("protocols") or {})
                else []
            ),
        }
        for key, values in urls.items():
            result[key] = values
            # Singular form carries the first endpoint
            result[key[:-1]] = values[0] if values else ""
        return result
