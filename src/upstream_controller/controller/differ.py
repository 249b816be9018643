"""
Computes the backend changes needed to bring an upstream group in line with
the endpoints of its service.
"""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Sequence, Tuple

from ..models import Backend, EndpointSnapshot, backend_server


@dataclass(frozen=True)
class Diff:
    to_add: FrozenSet[str]
    to_remove: Tuple[Backend, ...]

    @property
    def empty(self) -> bool:
        return not self.to_add and not self.to_remove


def desired_servers(snapshot: EndpointSnapshot) -> FrozenSet[str]:
    """Every address of every subset as an "ip:80" server string."""
    return frozenset(
        backend_server(ip) for subset in snapshot.subsets for ip in subset.addresses
    )


def compute_diff(desired: Iterable[str], actual: Sequence[Backend]) -> Diff:
    """
    Compare desired server strings against the backends of one upstream group.

    Servers are matched by exact string equality. Backends to remove keep the
    order in which the load balancer reported them.
    """
    desired = frozenset(desired)
    to_add = frozenset(
        server for server in desired
        if not any(backend.server == server for backend in actual)
    )
    to_remove = tuple(backend for backend in actual if backend.server not in desired)
    return Diff(to_add=to_add, to_remove=to_remove)
