"""
Data model for endpoint snapshots and load balancer backends, plus decoders
for the watch event and admin status payloads.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import StatusQueryError, TransientWatchDecodeError

BACKEND_PORT = "80"


@dataclass(frozen=True)
class Port:
    name: Optional[str]
    port: int


@dataclass(frozen=True)
class Subset:
    addresses: Tuple[str, ...] = ()
    ports: Tuple[Port, ...] = ()


@dataclass(frozen=True)
class EndpointSnapshot:
    """One decoded Endpoints event: the full endpoint set of a service."""

    service_name: str
    subsets: Tuple[Subset, ...] = ()
    kind: Optional[str] = None
    api_version: Optional[str] = None
    namespace: Optional[str] = None
    resource_version: Optional[str] = None


@dataclass(frozen=True)
class Backend:
    id: int
    server: str


UpstreamGroup = Dict[str, List[Backend]]


def join_host_port(host: str, port: str) -> str:
    """Combine host and port into "host:port", bracketing IPv6 literals."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def backend_server(ip: str) -> str:
    return join_host_port(ip, BACKEND_PORT)


def decode_endpoint_event(payload: Any) -> EndpointSnapshot:
    """
    Decode a watch event payload of the form ``{"object": {...Endpoints...}}``.

    Raises:
        TransientWatchDecodeError: If the payload does not describe an Endpoints object.
    """
    if not isinstance(payload, Mapping):
        raise TransientWatchDecodeError(f"event is not an object: {type(payload).__name__}")
    obj = payload.get("object")
    if not isinstance(obj, Mapping):
        raise TransientWatchDecodeError("event has no 'object' field")

    metadata = obj.get("metadata")
    if not isinstance(metadata, Mapping) or not metadata.get("name"):
        raise TransientWatchDecodeError("event object has no metadata.name")

    subsets = []
    for raw_subset in obj.get("subsets") or []:
        if not isinstance(raw_subset, Mapping):
            raise TransientWatchDecodeError("subset is not an object")
        subsets.append(_decode_subset(raw_subset))

    return EndpointSnapshot(
        service_name=str(metadata["name"]),
        subsets=tuple(subsets),
        kind=obj.get("kind"),
        api_version=obj.get("apiVersion"),
        namespace=metadata.get("namespace"),
        resource_version=metadata.get("resourceVersion"),
    )


def _decode_subset(raw_subset: Mapping) -> Subset:
    addresses = []
    for address in raw_subset.get("addresses") or []:
        ip = address.get("ip") if isinstance(address, Mapping) else None
        if not ip:
            raise TransientWatchDecodeError("subset address has no ip")
        addresses.append(str(ip))

    ports = []
    for port in raw_subset.get("ports") or []:
        try:
            ports.append(Port(name=port.get("name"), port=int(port["port"])))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TransientWatchDecodeError(f"invalid subset port {port!r}: {e}") from e

    return Subset(addresses=tuple(addresses), ports=tuple(ports))


def decode_status(payload: Any) -> UpstreamGroup:
    """
    Decode the admin status payload ``{"upstreams": {name: [{id, server}]}}``.

    Raises:
        StatusQueryError: If the payload is not shaped like a status response.
    """
    if not isinstance(payload, Mapping) or not isinstance(payload.get("upstreams"), Mapping):
        raise StatusQueryError("status response has no 'upstreams' object")

    groups: UpstreamGroup = {}
    for name, entries in payload["upstreams"].items():
        if not isinstance(entries, list):
            raise StatusQueryError(f"upstream '{name}' is not a list of backends")
        backends = []
        for entry in entries:
            try:
                backends.append(Backend(id=int(entry["id"]), server=str(entry["server"])))
            except (KeyError, TypeError, ValueError) as e:
                raise StatusQueryError(f"invalid backend in upstream '{name}': {entry!r}") from e
        groups[str(name)] = backends
    return groups
