"""Lakehouse catalogs: Unity, an Iceberg open catalog, or S3 tables."""

import re
from typing import Any, Dict, List, Optional

from engine import ObservedState, ResourceTimeouts
from resources.base import NOT_BLANK, ResourceAdapter, object_schema, ready_status

EXTERNAL_MODE = "EXTERNAL"

S3_TABLE_ARN = re.compile(r"^arn:aws:s3tables:([a-z0-9-]+):(\d{12}):bucket/(.+)$")

CATALOG_TYPES = {
    "unity": ("unity_catalog_name", "unity_uri", "unity_secret"),
    "open_catalog": ("open_catalog_warehouse", "open_catalog_uri", "open_catalog_secret"),
    "s3_table": ("s3_table_bucket",),
}


def s3_table_region(bucket_arn: str) -> str:
    """Extract the AWS region from an S3 table bucket ARN."""
    match = S3_TABLE_ARN.match(bucket_arn or "")
    if not match:
        raise ValueError(
            f"invalid S3 table bucket ARN {bucket_arn!r}, expected "
            f"arn:aws:s3tables:region:account:bucket/name"
        )
    return match.group(1)


def s3_table_uri(bucket_arn: str) -> str:
    return f"https://s3tables.{s3_table_region(bucket_arn)}.amazonaws.com/iceberg"


class CatalogAdapter(ResourceAdapter):
    @property
    def type_name(self) -> str:
        return "streamnative_catalog"

    @property
    def kind(self) -> str:
        return "Catalog"

    @property
    def plural(self) -> str:
        return "catalogs"

    @property
    def schema(self) -> Dict[str, Any]:
        text = {"type": "string"}
        return object_schema(
            {
                "name": NOT_BLANK,
                "mode": {"type": "string"},
                "unity_catalog_name": text,
                "unity_uri": text,
                "unity_secret": text,
                "open_catalog_warehouse": text,
                "open_catalog_uri": text,
                "open_catalog_secret": text,
                "s3_table_bucket": text,
            }
        )

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        errors = []
        mode = attributes.get("mode") or EXTERNAL_MODE
        if mode != EXTERNAL_MODE:
            errors.append(f"mode: only {EXTERNAL_MODE} is supported, got {mode!r}")

        configured = [
            name
            for name, fields in CATALOG_TYPES.items()
            if any(attributes.get(f) for f in fields)
        ]
        if not configured:
            errors.append("one of unity, open catalog or s3 table must be configured")
        elif len(configured) > 1:
            errors.append(
                f"only one catalog type can be configured, got {', '.join(configured)}"
            )

        if attributes.get("s3_table_bucket"):
            try:
                s3_table_region(attributes["s3_table_bucket"])
            except ValueError as e:
                errors.append(f"s3_table_bucket: {e}")
        return errors

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]
        spec["mode"] = attributes.get("mode") or EXTERNAL_MODE

        # Unset catalog types are cleared on update
        for key in ("unity", "openCatalog", "s3Table"):
            spec.pop(key, None)

        if attributes.get("unity_catalog_name") or attributes.get("unity_uri"):
            spec["unity"] = {
                "catalogName": attributes.get("unity_catalog_name", ""),
                "uri": attributes.get("unity_uri", ""),
                "secret": attributes.get("unity_secret", ""),
            }
        if attributes.get("open_catalog_warehouse") or attributes.get("open_catalog_uri"):
            spec["openCatalog"] = {
                "warehouse": attributes.get("open_catalog_warehouse", ""),
                "uri": attributes.get("open_catalog_uri", ""),
                "secret": attributes.get("open_catalog_secret", ""),
            }
        if attributes.get("s3_table_bucket"):
            spec["s3Table"] = {
                "warehouse": attributes["s3_table_bucket"],
                "uri": s3_table_uri(attributes["s3_table_bucket"]),
            }
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        result["mode"] = spec.get("mode", EXTERNAL_MODE)

        unity = spec.get("unity")
        if unity:
            result["unity_catalog_name"] = unity.get("catalogName", "")
            result["unity_uri"] = unity.get("uri", "")
            result["unity_secret"] = unity.get("secret", "")
        open_catalog = spec.get("openCatalog")
        if open_catalog:
            result["open_catalog_warehouse"] = open_catalog.get("warehouse", "")
            result["open_catalog_uri"] = open_catalog.get("uri", "")
            result["open_catalog_secret"] = open_catalog.get("secret", "")
        s3_table = spec.get("s3Table")
        if s3_table:
            result["s3_table_bucket"] = s3_table.get("warehouse", "")
            result["s3_table_region"] = s3_table_region(result["s3_table_bucket"])

        result["ready"] = ready_status(observed)
        return result

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(10, interval=interval, jitter=jitter)
