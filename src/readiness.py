"""
Readiness - Derive a single "converged" signal from status conditions.

Remote controllers report progress as a list of conditions, one per
lifecycle aspect they track. Object kinds disagree about which conditions
mean "done", so each kind is given an explicit readiness policy instead of
inlining the checks.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


class ConditionStatus(Enum):
    """Tri-state status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "ConditionStatus":
        """Parse a reported status, mapping anything unrecognized to UNKNOWN."""
        if isinstance(value, bool):
            return cls.TRUE if value else cls.FALSE
        text = str(value or "").strip().lower()
        if text == "true":
            return cls.TRUE
        if text == "false":
            return cls.FALSE
        return cls.UNKNOWN


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Ignoring unparseable condition timestamp: {value}")
        return None


@dataclass(frozen=True)
class Condition:
    """One status condition reported by a remote controller."""

    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    last_transition_time: Optional[datetime] = None
    reason: str = ""
    message: str = ""

    @property
    def is_true(self) -> bool:
        return self.status is ConditionStatus.TRUE

    def matches(self, condition_type: str) -> bool:
        # Controllers report both "Ready" and "ready"
        return self.type.casefold() == condition_type.casefold()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        return cls(
            type=str(data.get("type", "")),
            status=ConditionStatus.parse(data.get("status")),
            last_transition_time=_parse_timestamp(data.get("lastTransitionTime")),
            reason=data.get("reason") or "",
            message=data.get("message") or "",
        )

    def __str__(self) -> str:
        return f"{self.type}={self.status.value}"


def parse_conditions(obj: Optional[Dict[str, Any]]) -> List[Condition]:
    """
    Extract the condition list from a control-plane object.

    Args:
        obj: Object dict with an optional status.conditions list.

    Returns:
        Conditions in reported order; empty when none are present.
    """
    if not obj:
        return []
    raw = (obj.get("status") or {}).get("conditions") or []
    return [Condition.from_dict(item) for item in raw if isinstance(item, dict)]


class ReadinessPolicy(ABC):
    """A rule that decides whether a set of conditions means converged."""

    @abstractmethod
    def evaluate(self, conditions: Sequence[Condition]) -> bool:
        """Evaluate a non-empty condition list."""
        pass


class AnyType(ReadinessPolicy):
    """Ready iff a condition of the given type is True anywhere in the set."""

    def __init__(self, name: str = "Ready"):
        self.name = name

    def evaluate(self, conditions: Sequence[Condition]) -> bool:
        return any(c.matches(self.name) and c.is_true for c in conditions)

    def __repr__(self) -> str:
        return f"AnyType({self.name!r})"


class AllOf(ReadinessPolicy):
    """Ready iff every named condition independently holds."""

    def __init__(self, names: Iterable[str]):
        self.names = list(names)

    def evaluate(self, conditions: Sequence[Condition]) -> bool:
        return all(AnyType(name).evaluate(conditions) for name in self.names)

    def __repr__(self) -> str:
        return f"AllOf({self.names!r})"


class LastMustBe(ReadinessPolicy):
    """
    Ready iff the last condition is the named one and is True.

    When ``among`` is given, only conditions of those types take part in
    deciding which one is last, so a controller that starts reporting an
    extra condition type does not flip a converged object back.
    """

    def __init__(self, name: str = "Ready", among: Optional[Iterable[str]] = None):
        self.name = name
        self.among = [t.casefold() for t in among] if among is not None else None

    def evaluate(self, conditions: Sequence[Condition]) -> bool:
        if self.among is not None:
            conditions = [c for c in conditions if c.type.casefold() in self.among]
        if not conditions:
            return False
        last = conditions[-1]
        return last.matches(self.name) and last.is_true

    def __repr__(self) -> str:
        return f"LastMustBe({self.name!r}, among={self.among!r})"


class Every(ReadinessPolicy):
    """Ready iff all sub-policies hold."""

    def __init__(self, *policies: ReadinessPolicy):
        self.policies = policies

    def evaluate(self, conditions: Sequence[Condition]) -> bool:
        return all(p.evaluate(conditions) for p in self.policies)

    def __repr__(self) -> str:
        return f"Every{self.policies!r}"


class AtLeast(ReadinessPolicy):
    """Ready iff at least ``count`` conditions are reported and ``policy`` holds."""

    def __init__(self, count: int, policy: ReadinessPolicy):
        self.count = count
        self.policy = policy

    def evaluate(self, conditions: Sequence[Condition]) -> bool:
        return len(conditions) >= self.count and self.policy.evaluate(conditions)

    def __repr__(self) -> str:
        return f"AtLeast({self.count}, {self.policy!r})"


DEFAULT_POLICY = AnyType("Ready")


def is_ready(
    conditions: Optional[Sequence[Condition]],
    policy: ReadinessPolicy = DEFAULT_POLICY,
) -> bool:
    """
    Decide whether an object has converged.

    An empty or missing condition set is never ready.

    Args:
        conditions: Conditions from the latest observation.
        policy: The readiness policy of the object's kind.

    Returns:
        True if the policy accepts the conditions.
    """
    if not conditions:
        return False
    return policy.evaluate(conditions)
