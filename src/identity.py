"""
Identity - Composite "<organization>/<name>" identifiers.

Every managed object is addressed by its organization (the control-plane
namespace) and its name within that organization. The serialized form is
what the orchestrator stores and hands back on later calls, and what users
pass when importing an existing object.
"""

from typing import NamedTuple


class MalformedIdentityError(ValueError):
    """Raised when an identifier cannot be split into namespace and name."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(
            f"invalid id {identifier!r}, expected <organization>/<name>"
        )


class Identity(NamedTuple):
    """The (namespace, name) key of a managed object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return format_id(self.namespace, self.name)


def format_id(namespace: str, name: str) -> str:
    """Build the composite identifier for an object."""
    return f"{namespace}/{name}"


def parse_id(identifier: str) -> Identity:
    """
    Split a composite identifier on its first '/'.

    Args:
        identifier: A string of the form "<organization>/<name>".

    Returns:
        The Identity it addresses.

    Raises:
        MalformedIdentityError: If the identifier has no '/' separator.
    """
    parts = identifier.split("/", 1)
    if len(parts) < 2:
        raise MalformedIdentityError(identifier)
    return Identity(namespace=parts[0], name=parts[1])
