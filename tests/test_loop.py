from unittest.mock import MagicMock

import pytest

from upstream_controller.config import BackoffSettings
from upstream_controller.controller.loop import CycleOutcome, LoopController
from upstream_controller.controller.reconciler import Reconciler
from upstream_controller.controller.watch import WatchConsumer
from upstream_controller.errors import (
    AddOperationError,
    TransientWatchDecodeError,
    WatchConnectionLost,
)
from upstream_controller.models import EndpointSnapshot, Subset
from tests.helpers import FakeNginx

BACKOFF = BackoffSettings(decode_seconds=2.0, status_seconds=3.0)


def _snapshot(name: str, *ips: str) -> EndpointSnapshot:
    return EndpointSnapshot(service_name=name, subsets=(Subset(addresses=ips),))


def _controller(fake: FakeNginx, *received, sleep=None):
    watch = MagicMock(spec=WatchConsumer)
    watch.receive.side_effect = list(received)
    admin = fake.client()
    controller = LoopController(
        watch, admin, Reconciler(admin), backoff=BACKOFF, sleep=sleep or MagicMock()
    )
    return controller


def test_cycle_adds_missing_backend():
    fake = FakeNginx({"web": ["10.0.0.1:80"]})
    controller = _controller(fake, _snapshot("web", "10.0.0.1", "10.0.0.2"))

    assert controller.run_once() is CycleOutcome.RECONCILED
    assert fake.servers("web") == {"10.0.0.1:80", "10.0.0.2:80"}


def test_cycle_converges_to_snapshot():
    fake = FakeNginx({"web": ["10.0.0.1:80", "10.0.0.2:80", "10.0.0.5:80"], "api": ["10.1.0.1:80"]})
    controller = _controller(fake, _snapshot("web", "10.0.0.2", "10.0.0.3", "10.0.0.4"))

    controller.run_once()

    assert fake.servers("web") == {"10.0.0.2:80", "10.0.0.3:80", "10.0.0.4:80"}
    assert fake.servers("api") == {"10.1.0.1:80"}


def test_in_sync_cycle_issues_no_mutations():
    fake = FakeNginx({"web": ["10.0.0.1:80"]})
    controller = _controller(fake, _snapshot("web", "10.0.0.1"))

    assert controller.run_once() is CycleOutcome.IN_SYNC
    assert fake.mutations == []


def test_missing_upstream_skips_without_backoff():
    fake = FakeNginx({"web": ["10.0.0.1:80"]})
    sleep = MagicMock()
    controller = _controller(fake, _snapshot("api", "10.0.0.9"), sleep=sleep)

    assert controller.run_once() is CycleOutcome.NO_MATCHING_UPSTREAM
    assert fake.mutations == []
    sleep.assert_not_called()


def test_decode_failure_skips_cycle_and_backs_off():
    fake = FakeNginx({"web": ["10.0.0.1:80"]})
    sleep = MagicMock()
    controller = _controller(fake, TransientWatchDecodeError("bad event"), sleep=sleep)

    assert controller.run_once() is CycleOutcome.DECODE_FAILED
    assert fake.requests == []
    sleep.assert_called_once_with(2.0)


def test_status_failure_abandons_cycle_and_backs_off():
    fake = FakeNginx({"web": ["10.0.0.1:80"]}, status_code=502)
    sleep = MagicMock()
    controller = _controller(fake, _snapshot("web", "10.0.0.2"), sleep=sleep)

    assert controller.run_once() is CycleOutcome.STATUS_FAILED
    assert fake.mutations == []
    sleep.assert_called_once_with(3.0)


def test_add_failure_is_fatal():
    fake = FakeNginx({"web": ["10.0.0.1:80"]}, add_status=500)
    controller = _controller(fake, _snapshot("web", "10.0.0.2"))

    with pytest.raises(AddOperationError):
        controller.run_once()
    assert fake.servers("web") == {"10.0.0.1:80"}


def test_remove_failure_is_not_fatal():
    fake = FakeNginx({"web": ["10.0.0.1:80"]}, remove_status=500)
    controller = _controller(fake, _snapshot("web"), _snapshot("web", "10.0.0.1"))

    assert controller.run_once() is CycleOutcome.RECONCILED
    assert controller.run_once() is CycleOutcome.IN_SYNC
    assert fake.servers("web") == {"10.0.0.1:80"}


def test_run_forever_keeps_going_across_cycles():
    fake = FakeNginx({"web": []})
    controller = _controller(
        fake,
        TransientWatchDecodeError("bad event"),
        _snapshot("other"),
        _snapshot("web", "10.0.0.1"),
        _snapshot("web", "10.0.0.2"),
    )

    controller.run_forever(max_cycles=4)

    assert fake.servers("web") == {"10.0.0.2:80"}


def test_lost_watch_ends_the_loop():
    fake = FakeNginx({"web": []})
    controller = _controller(fake, _snapshot("web", "10.0.0.1"), WatchConnectionLost("gone"))

    with pytest.raises(WatchConnectionLost):
        controller.run_forever()
    assert fake.servers("web") == {"10.0.0.1:80"}
