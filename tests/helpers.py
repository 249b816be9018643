import itertools
from typing import Any, Dict, Iterable, List, Optional

import httpx

from upstream_controller.controller.admin import NginxAdminClient


def endpoints_object(
    name: str,
    *address_groups: Iterable[str],
    namespace: str = "default",
    resource_version: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a raw Endpoints object with one subset per address group."""
    metadata: Dict[str, Any] = {"name": name, "namespace": namespace}
    if resource_version:
        metadata["resourceVersion"] = resource_version
    return {
        "kind": "Endpoints",
        "apiVersion": "v1",
        "metadata": metadata,
        "subsets": [
            {
                "addresses": [{"ip": ip} for ip in addresses],
                "ports": [{"name": "http", "port": 8080}],
            }
            for addresses in address_groups
        ],
    }


def watch_event(raw_object: Any, event_type: str = "MODIFIED") -> Dict[str, Any]:
    """A watch event the way kubernetes.watch.Watch.stream yields it."""
    return {"type": event_type, "object": raw_object, "raw_object": raw_object}


def raising(exc: BaseException, events: Iterable[Any] = ()):
    """A watch stream that yields ``events`` and then breaks with ``exc``."""
    yield from events
    raise exc


class FakeWatch:
    """
    Stands in for kubernetes.watch.Watch. Each subscription consumes the next
    entry of ``streams``.
    """

    def __init__(self, *streams: Iterable[Any]):
        self.streams = list(streams)
        self.subscriptions: List[Dict[str, Any]] = []
        self.stopped = 0

    def __call__(self) -> "FakeWatch":
        return self

    def stream(self, func, **kwargs):
        self.subscriptions.append({"func": func, **kwargs})
        if not self.streams:
            raise AssertionError("no more watch streams scripted")
        return iter(self.streams.pop(0))

    def stop(self) -> None:
        self.stopped += 1


class FakeNginx:
    """In-memory nginx upstream_conf admin interface."""

    def __init__(
        self,
        upstreams: Optional[Dict[str, List[str]]] = None,
        status_code: int = 200,
        add_status: int = 200,
        remove_status: int = 200,
    ):
        self._ids = itertools.count(1)
        self.upstreams: Dict[str, List[Dict[str, Any]]] = {
            name: [{"id": next(self._ids), "server": server} for server in servers]
            for name, servers in (upstreams or {}).items()
        }
        self.status_code = status_code
        self.add_status = add_status
        self.remove_status = remove_status
        self.requests: List[httpx.Request] = []

    @property
    def mutations(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/upstream_conf"]

    def servers(self, upstream: str) -> set:
        return {backend["server"] for backend in self.upstreams[upstream]}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/status":
            if self.status_code != 200:
                return httpx.Response(self.status_code, text="unavailable")
            return httpx.Response(200, json={"upstreams": self.upstreams})

        if request.url.path == "/upstream_conf":
            params = request.url.params
            upstream = params["upstream"]
            if "add" in params:
                if self.add_status != 200:
                    return httpx.Response(self.add_status, text="add failed")
                self.upstreams[upstream].append({"id": next(self._ids), "server": params["server"]})
                return httpx.Response(200)
            if "remove" in params:
                if self.remove_status != 200:
                    return httpx.Response(self.remove_status, text="remove failed")
                backend_id = int(params["id"])
                self.upstreams[upstream] = [
                    b for b in self.upstreams[upstream] if b["id"] != backend_id
                ]
                return httpx.Response(200)

        return httpx.Response(404)

    def client(self) -> NginxAdminClient:
        transport = httpx.MockTransport(self.handler)
        return NginxAdminClient(httpx.Client(transport=transport, base_url="http://nginx.test"))
