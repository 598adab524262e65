"""
Immutability Guard - Reject changes to fields the control plane cannot update.

Runs strictly before anything is submitted: it compares the previously
applied attributes with the requested ones and never touches the network.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

_MISSING = object()


class ImmutableFieldError(Exception):
    """Raised when a change touches one or more immutable fields."""

    def __init__(self, kind: str, fields: Sequence[str]):
        self.kind = kind
        self.fields = list(fields)
        joined = ", ".join(self.fields)
        super().__init__(
            f"{kind}: field(s) {joined} cannot be changed after creation, "
            f"delete and recreate the resource instead"
        )


def _lookup(attributes: Optional[Dict[str, Any]], path: str) -> Any:
    """Resolve a dotted path into nested dicts, or _MISSING."""
    current: Any = attributes or {}
    for part in path.split("."):
        if isinstance(current, list):
            # Single nested blocks are carried as one-element lists
            current = current[0] if current else _MISSING
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _is_empty(value: Any) -> bool:
    return value is _MISSING or value is None or value in ("", [], {})


def _same(old: Any, new: Any) -> bool:
    if _is_empty(old) and _is_empty(new):
        return True
    return old == new


def changed_fields(
    old: Optional[Dict[str, Any]],
    new: Optional[Dict[str, Any]],
    fields: Iterable[str],
) -> List[str]:
    """Return the paths in ``fields`` whose values differ between old and new."""
    return [f for f in fields if not _same(_lookup(old, f), _lookup(new, f))]


def check_change(
    old: Optional[Dict[str, Any]],
    new: Optional[Dict[str, Any]],
    immutable_fields: Iterable[str],
    identity_fields: Sequence[str] = ("organization", "name"),
    generated_fields: Sequence[str] = (),
) -> Tuple[bool, List[str]]:
    """
    Check whether a planned change leaves every immutable field untouched.

    A change is always accepted when every identity field of ``old`` is
    empty, since that is the create case. A field listed in
    ``generated_fields`` may go from a value to empty, since the plan does
    not know a server-generated value yet.

    Args:
        old: Previously applied attributes (empty on create).
        new: Requested attributes.
        immutable_fields: Dotted attribute paths that cannot change.
        identity_fields: Paths whose emptiness in ``old`` marks a create.
        generated_fields: Paths that may be server-generated.

    Returns:
        Tuple of (ok, offending_fields).
    """
    if all(_is_empty(_lookup(old, f)) for f in identity_fields):
        return True, []

    offending = []
    for path in changed_fields(old, new, immutable_fields):
        if path in generated_fields and _is_empty(_lookup(new, path)):
            continue
        offending.append(path)

    return not offending, offending
