"""
Failure policy table: what the controller does when an operation fails.
"""
import enum
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union


class OperationKind(str, enum.Enum):
    ADD = "add"
    REMOVE = "remove"


class FailureAction(str, enum.Enum):
    # Stop the process; the supervisor restarts it from scratch.
    ABORT = "abort"
    # Log the failure and carry on with the next operation.
    SKIP = "skip"


DEFAULT_POLICY: Dict[OperationKind, FailureAction] = {
    OperationKind.ADD: FailureAction.ABORT,
    OperationKind.REMOVE: FailureAction.SKIP,
}


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a single add or remove call against the admin interface."""

    kind: OperationKind
    upstream: str
    target: str
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_policy(
    overrides: Optional[Mapping[str, Union[str, FailureAction]]] = None,
) -> Dict[OperationKind, FailureAction]:
    """
    Merge ``{"add": "abort", "remove": "skip"}`` style overrides over the defaults.

    Raises:
        ValueError: On an unknown operation kind or action.
    """
    policy = dict(DEFAULT_POLICY)
    for kind, action in (overrides or {}).items():
        policy[OperationKind(str(kind).lower())] = FailureAction(str(getattr(action, "value", action)).lower())
    return policy
