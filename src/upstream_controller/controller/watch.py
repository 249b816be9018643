"""
Consumes the Kubernetes Endpoints watch, one snapshot per call.
"""
import logging
import time
from typing import Any, Callable, Iterator, Mapping, Optional

import urllib3
from kubernetes import client, watch

from ..errors import TransientWatchDecodeError, WatchConnectionLost
from ..models import EndpointSnapshot, decode_endpoint_event

log = logging.getLogger(__name__)

# Statuses that no amount of reconnecting will fix.
FATAL_STATUSES = {401, 403}
GONE = 410


class WatchConsumer:
    """
    Owns the watch stream for the lifetime of the process.

    ``receive()`` returns events in arrival order without buffering. A payload
    that does not decode raises ``TransientWatchDecodeError`` and leaves the
    stream in place. A stream that ends or breaks is rebuilt from the last
    seen resourceVersion with bounded exponential backoff; once
    ``max_reconnect_attempts`` consecutive attempts have failed the consumer
    gives up with ``WatchConnectionLost``.
    """

    def __init__(
        self,
        core_v1: client.CoreV1Api,
        namespace: Optional[str] = None,
        reconnect_initial_s: float = 1.0,
        reconnect_max_s: float = 30.0,
        max_reconnect_attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
        watch_factory: Callable[[], watch.Watch] = watch.Watch,
    ):
        self.core_v1 = core_v1
        self.namespace = namespace
        self.reconnect_initial_s = reconnect_initial_s
        self.reconnect_max_s = reconnect_max_s
        self.max_reconnect_attempts = max(0, int(max_reconnect_attempts))
        self._sleep = sleep
        self._watch_factory = watch_factory

        self._watcher: Optional[watch.Watch] = None
        self._stream: Optional[Iterator[Any]] = None
        self._resource_version: Optional[str] = None
        self._reconnect_attempts = 0
        self._serializer: Optional[client.ApiClient] = None

    @property
    def resource_version(self) -> Optional[str]:
        return self._resource_version

    def receive(self) -> EndpointSnapshot:
        """
        Block until the next Endpoints event arrives and return it.

        Raises:
            TransientWatchDecodeError: The event could not be decoded.
            WatchConnectionLost: The stream could not be re-established.
        """
        while True:
            if self._stream is None:
                self._subscribe()

            try:
                event = next(self._stream)
            except StopIteration:
                log.warning("Endpoints watch stream ended.")
                self._reconnect()
                continue
            except client.ApiException as e:
                if e.status in FATAL_STATUSES:
                    self.close()
                    raise WatchConnectionLost(
                        f"Kubernetes API watch denied (status={e.status}). "
                        "Check RBAC and service account permissions."
                    ) from e
                if e.status == GONE:
                    log.warning("Watch resource version expired, resubscribing from now.")
                    self._resource_version = None
                else:
                    log.error("Kubernetes API watch error: %s", e)
                self._reconnect()
                continue
            except (urllib3.exceptions.HTTPError, OSError) as e:
                log.error("Endpoints watch connection failed: %s", e)
                self._reconnect()
                continue

            # Any event means the stream is healthy.
            self._reconnect_attempts = 0
            snapshot = self._handle_event(event)
            if snapshot is None:
                continue
            return snapshot

    def close(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
        self._watcher = None
        self._stream = None

    def _subscribe(self) -> None:
        kwargs = {"allow_watch_bookmarks": True}
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version
        if self.namespace:
            func = self.core_v1.list_namespaced_endpoints
            kwargs["namespace"] = self.namespace
        else:
            func = self.core_v1.list_endpoints_for_all_namespaces

        log.info(
            "Watching endpoints in %s from resourceVersion %s.",
            self.namespace or "all namespaces", self._resource_version,
        )
        self._watcher = self._watch_factory()
        self._stream = iter(self._watcher.stream(func, **kwargs))

    def _reconnect(self) -> None:
        self.close()
        self._reconnect_attempts += 1
        if self._reconnect_attempts > self.max_reconnect_attempts:
            raise WatchConnectionLost(
                f"Endpoints watch lost after {self.max_reconnect_attempts} reconnect attempt(s)."
            )
        delay = min(
            self.reconnect_initial_s * (2 ** (self._reconnect_attempts - 1)),
            self.reconnect_max_s,
        )
        log.warning(
            "Reconnecting endpoints watch in %.1fs (attempt %d/%d).",
            delay, self._reconnect_attempts, self.max_reconnect_attempts,
        )
        self._sleep(delay)

    def _handle_event(self, event: Any) -> Optional[EndpointSnapshot]:
        """Decode one watch event. Returns None for events that carry no snapshot."""
        if not isinstance(event, Mapping):
            raise TransientWatchDecodeError(f"watch event is not an object: {event!r:.200}")

        event_type = event.get("type")
        raw = event.get("raw_object")
        if raw is None:
            raw = event.get("object")
            if raw is not None and not isinstance(raw, Mapping):
                if self._serializer is None:
                    self._serializer = client.ApiClient()
                raw = self._serializer.sanitize_for_serialization(raw)

        if event_type == "BOOKMARK":
            version = _resource_version_of(raw)
            if version:
                self._resource_version = version
            return None

        if event_type == "ERROR":
            code = raw.get("code") if isinstance(raw, Mapping) else None
            if code == GONE:
                log.warning("Watch resource version expired, resubscribing from now.")
                self._resource_version = None
                self.close()
                return None
            raise TransientWatchDecodeError(f"watch returned an error event: {raw!r:.200}")

        snapshot = decode_endpoint_event({"object": raw})
        if snapshot.resource_version:
            self._resource_version = snapshot.resource_version
        if event_type == "DELETED":
            log.info("Endpoints for %s deleted.", snapshot.service_name)
            snapshot = EndpointSnapshot(
                service_name=snapshot.service_name,
                kind=snapshot.kind,
                api_version=snapshot.api_version,
                namespace=snapshot.namespace,
                resource_version=snapshot.resource_version,
            )
        return snapshot


def _resource_version_of(raw: Any) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    metadata = raw.get("metadata")
    if not isinstance(metadata, Mapping):
        return None
    return metadata.get("resourceVersion")
