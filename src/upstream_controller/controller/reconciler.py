"""
Applies a computed diff to one upstream group on the load balancer.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

from ..errors import AdminOperationError, FatalControllerError, ReconcileAborted
from ..models import Backend
from .admin import NginxAdminClient
from .differ import Diff
from .policy import DEFAULT_POLICY, FailureAction, OperationKind, OperationResult

log = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    upstream: str
    results: List[OperationResult] = field(default_factory=list)

    @property
    def added(self) -> int:
        return sum(1 for r in self.results if r.ok and r.kind is OperationKind.ADD)

    @property
    def removed(self) -> int:
        return sum(1 for r in self.results if r.ok and r.kind is OperationKind.REMOVE)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


class Reconciler:
    """
    Issues add and remove operations for one upstream group, adds first.

    What happens when an operation fails is decided by the policy table rather
    than by the call site: with the default table a failed add aborts the
    process while a failed remove is logged and skipped.
    """

    def __init__(
        self,
        admin: NginxAdminClient,
        policy: Optional[Mapping[OperationKind, FailureAction]] = None,
        dry_run: bool = False,
    ):
        self.admin = admin
        self.policy: Dict[OperationKind, FailureAction] = dict(policy or DEFAULT_POLICY)
        self.dry_run = dry_run

    def apply(self, upstream: str, diff: Diff) -> ReconcileReport:
        """
        Apply ``diff`` to ``upstream``.

        Raises:
            FatalControllerError: If an operation fails and its policy is ABORT.
        """
        report = ReconcileReport(upstream=upstream)
        for server in sorted(diff.to_add):
            report.results.append(self.add(upstream, server))
        for backend in diff.to_remove:
            report.results.append(self.remove(upstream, backend))

        if report.results:
            log.info(
                "Reconciled upstream %s: %d added, %d removed, %d failed.",
                upstream, report.added, report.removed, report.failed,
            )
        return report

    def add(self, upstream: str, server: str) -> OperationResult:
        log.info("registering backend %s with %s ...", server, upstream)
        return self._run(
            OperationKind.ADD, upstream, server,
            lambda: self.admin.add_backend(upstream, server),
        )

    def remove(self, upstream: str, backend: Backend) -> OperationResult:
        log.info("removing backend %s [#%d] from %s ...", backend.server, backend.id, upstream)
        return self._run(
            OperationKind.REMOVE, upstream, backend.server,
            lambda: self.admin.remove_backend(upstream, backend.id),
        )

    def _run(
        self, kind: OperationKind, upstream: str, target: str, call: Callable[[], None]
    ) -> OperationResult:
        if self.dry_run:
            log.info("[dry-run] skipping %s of %s on %s.", kind.value, target, upstream)
            return OperationResult(kind=kind, upstream=upstream, target=target)

        try:
            call()
        except AdminOperationError as e:
            result = OperationResult(kind=kind, upstream=upstream, target=target, error=e)
            self._handle_failure(result)
            return result
        return OperationResult(kind=kind, upstream=upstream, target=target)

    def _handle_failure(self, result: OperationResult) -> None:
        action = self.policy.get(result.kind, FailureAction.ABORT)
        if action is FailureAction.SKIP:
            log.error("%s of %s on %s failed, skipping: %s",
                      result.kind.value, result.target, result.upstream, result.error)
            return

        log.critical("%s of %s on %s failed, aborting: %s",
                     result.kind.value, result.target, result.upstream, result.error)
        if isinstance(result.error, FatalControllerError):
            raise result.error
        raise ReconcileAborted(
            f"{result.kind.value} of {result.target} on {result.upstream} failed: {result.error}"
        ) from result.error
