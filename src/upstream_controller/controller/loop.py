"""
The reconciliation loop: receive a snapshot, query the load balancer, diff,
apply, repeat.
"""
import enum
import logging
import time
from typing import Callable, Optional

from ..config import BackoffSettings
from ..errors import StatusQueryError, TransientWatchDecodeError
from .admin import NginxAdminClient
from .differ import compute_diff, desired_servers
from .reconciler import Reconciler
from .watch import WatchConsumer

log = logging.getLogger(__name__)


class CycleOutcome(str, enum.Enum):
    RECONCILED = "reconciled"
    IN_SYNC = "in_sync"
    DECODE_FAILED = "decode_failed"
    STATUS_FAILED = "status_failed"
    NO_MATCHING_UPSTREAM = "no_matching_upstream"


class LoopController:
    """
    Runs one reconciliation cycle at a time, forever.

    Fatal errors (a lost watch, a failed add under the default policy) are
    not caught here; they end the loop and are left to the process boundary.
    """

    def __init__(
        self,
        watch: WatchConsumer,
        admin: NginxAdminClient,
        reconciler: Reconciler,
        backoff: Optional[BackoffSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.watch = watch
        self.admin = admin
        self.reconciler = reconciler
        self.backoff = backoff or BackoffSettings()
        self._sleep = sleep

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Run cycles until a fatal error is raised, or ``max_cycles`` have run."""
        log.info("Upstream controller started.")
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            self.run_once()
            cycles += 1

    def run_once(self) -> CycleOutcome:
        try:
            snapshot = self.watch.receive()
        except TransientWatchDecodeError as e:
            log.warning("Could not decode endpoints event: %s", e)
            self._sleep(self.backoff.decode_seconds)
            return CycleOutcome.DECODE_FAILED

        try:
            groups = self.admin.status()
        except StatusQueryError as e:
            log.warning("Could not query upstream status, abandoning cycle: %s", e)
            self._sleep(self.backoff.status_seconds)
            return CycleOutcome.STATUS_FAILED

        upstream = snapshot.service_name
        if upstream not in groups:
            log.info("no matching upstream for service %s skipping...", upstream)
            return CycleOutcome.NO_MATCHING_UPSTREAM

        diff = compute_diff(desired_servers(snapshot), groups[upstream])
        if diff.empty:
            log.debug("Upstream %s is in sync.", upstream)
            return CycleOutcome.IN_SYNC

        self.reconciler.apply(upstream, diff)
        return CycleOutcome.RECONCILED
