"""
Attribute Validation - JSON Schema checks for resource attributes.

Every resource kind declares a Draft 7 schema for its flat attribute map.
Validation happens before anything is submitted to the control plane.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when resource attributes fail validation."""

    def __init__(self, kind: str, errors: List[str]):
        self.kind = kind
        self.errors = errors
        super().__init__(f"Invalid {kind} attributes: {'; '.join(errors)}")


def validate_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a schema is itself a valid Draft 7 JSON Schema.

    Args:
        schema: The schema to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
        return True, None
    except SchemaError as e:
        return False, f"Invalid schema: {e.message}"


def schema_errors(attributes: Dict[str, Any], schema: Dict[str, Any]) -> List[str]:
    """
    Collect every schema violation in an attribute map.

    Args:
        attributes: The flat attribute map to validate
        schema: The JSON Schema to validate against

    Returns:
        A list of "path: message" strings, empty when valid
    """
    validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
    errors = list(validator.iter_errors(attributes))

    messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        messages.append(f"{path}: {error.message}")
    return messages


def validate_attributes(
    kind: str,
    attributes: Dict[str, Any],
    schema: Dict[str, Any],
    extra_errors: Optional[List[str]] = None,
) -> None:
    """
    Validate attributes against a schema plus any cross-field errors.

    Raises:
        ValidationError: If anything is wrong with the attributes.
    """
    errors = schema_errors(attributes, schema)
    if extra_errors:
        errors.extend(extra_errors)
    if errors:
        logger.debug(f"{kind} attributes rejected: {errors}")
        raise ValidationError(kind, errors)
