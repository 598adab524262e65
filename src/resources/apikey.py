"""
API keys for a service account on one Pulsar instance.

The token of an API key is only ever published encrypted. A keypair is
generated locally on create, the public half is submitted with the key and
the private half is kept in the ``private_key`` attribute so later reads
can decrypt the token.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from engine import ObservedState, ResourceTimeouts
from keys import (
    TokenDecryptionError,
    decode_private_key_attribute,
    decrypt_token,
    encode_private_key_attribute,
    export_public_key,
    generate_encryption_key,
)
from readiness import AllOf, AtLeast, ReadinessPolicy
from resources.base import NOT_BLANK, ResourceAdapter, object_schema

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME = timedelta(hours=720)
NO_EXPIRATION = "0"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_DURATION = re.compile(r"^(\d+)(s|m|h|d)$")
_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_expiration(value: Optional[str], now: datetime) -> Optional[datetime]:
    """
    Resolve an expiration setting to an absolute time.

    Args:
        value: Empty for the default lifetime, a duration such as "30d",
            a UTC timestamp, or "0" for a key that never expires.
        now: The creation time.

    Returns:
        The expiration time, or None when the key never expires.

    Raises:
        ValueError: If the value is none of the accepted forms.
    """
    if not value:
        return now + DEFAULT_LIFETIME
    if value == NO_EXPIRATION:
        return None

    match = _DURATION.match(value)
    if match:
        amount, unit = match.groups()
        return now + timedelta(**{_UNITS[unit]: int(amount)})

    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class ApiKeyAdapter(ResourceAdapter):
    computed_fields = ("private_key",)
    immutable_fields = (
        "organization",
        "name",
        "instance_name",
        "service_account_name",
        "expiration_time",
    )

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self.now = now or (lambda: datetime.now(timezone.utc))

    @property
    def type_name(self) -> str:
        return "streamnative_apikey"

    @property
    def kind(self) -> str:
        return "APIKey"

    @property
    def plural(self) -> str:
        return "apikeys"

    @property
    def schema(self) -> Dict[str, Any]:
        return object_schema(
            {
                "name": NOT_BLANK,
                "instance_name": NOT_BLANK,
                "service_account_name": NOT_BLANK,
                "expiration_time": {"type": "string"},
                "revoke": {"type": "boolean"},
                "description": {"type": "string"},
            },
            required=("organization", "name", "instance_name", "service_account_name"),
        )

    def default_timeouts(self, interval: float, jitter: float) -> ResourceTimeouts:
        return ResourceTimeouts.uniform(10, interval=interval, jitter=jitter)

    def readiness(self, attributes: Dict[str, Any]) -> Optional[ReadinessPolicy]:
        # Issued plus the two bookkeeping conditions of the key controller
        return AtLeast(3, AllOf(["Issued"]))

    def settled(self, attributes: Dict[str, Any], obj: Dict[str, Any]) -> bool:
        if not attributes.get("revoke"):
            return True
        return bool((obj.get("status") or {}).get("revokedAt"))

    def validate(self, attributes: Dict[str, Any]) -> List[str]:
        try:
            parse_expiration(attributes.get("expiration_time"), self.now())
        except ValueError:
            return [
                f"expiration_time: {attributes.get('expiration_time')!r} must be a "
                f"duration like 30d, a timestamp like 2025-01-31T00:00:00Z, or 0"
            ]
        return []

    async def prepare(self, client: Any, attributes: Dict[str, Any]) -> Dict[str, Any]:
        prepared = dict(attributes)
        prepared["private_key"] = encode_private_key_attribute(generate_encryption_key())
        return prepared

    def build(
        self, attributes: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        obj = self.new_object(attributes, existing)
        spec = obj["spec"]

        if existing is None:
            spec["instanceName"] = attributes["instance_name"]
            spec["serviceAccountName"] = attributes["service_account_name"]
            expires = parse_expiration(attributes.get("expiration_time"), self.now())
            if expires is not None:
                spec["expirationTime"] = format_time(expires)
            key = decode_private_key_attribute(attributes["private_key"])
            spec["encryptionKey"] = {"pem": export_public_key(key)}

        spec["revoke"] = bool(attributes.get("revoke"))
        if attributes.get("description"):
            spec["description"] = attributes["description"]
        else:
            spec.pop("description", None)
        return obj

    def flatten(
        self, observed: ObservedState, attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = self.base_attributes(observed, attributes)
        spec = observed.obj.get("spec") or {}
        status = observed.obj.get("status") or {}

        result["instance_name"] = spec.get("instanceName", attributes.get("instance_name"))
        result["service_account_name"] = spec.get(
            "serviceAccountName", attributes.get("service_account_name")
        )
        if spec.get("description"):
            result["description"] = spec["description"]

        issued = self.readiness(attributes).evaluate(observed.conditions)
        result["ready"] = "True" if issued else "False"
        if issued:
            result["issued_at"] = status.get("issuedAt", "")
            result["expires_at"] = status.get("expiresAt", "")
            result["key_id"] = status.get("keyId", "")
        if status.get("revokedAt"):
            result["revoked_at"] = status["revokedAt"]

        jwe = (status.get("encryptedToken") or {}).get("jwe")
        if jwe and attributes.get("private_key"):
            try:
                key = decode_private_key_attribute(attributes["private_key"])
                result["token"] = decrypt_token(key, jwe)
            except (TokenDecryptionError, ValueError) as e:
                logger.warning(f"Could not decrypt token of API key {observed.identity}: {e}")
        return result
