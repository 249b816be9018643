"""
HTTP client for the nginx upstream admin interface.

One configured address serves the status query and both mutations.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..errors import AddOperationError, RemoveOperationError, StatusQueryError
from ..models import UpstreamGroup, decode_status

log = logging.getLogger(__name__)

STATUS_PATH = "/status"
UPSTREAM_CONF_PATH = "/upstream_conf"


class NginxAdminClient:
    """
    Thin wrapper around an httpx.Client bound to the admin interface.

    Every call is a blocking request; no retries happen here, the caller's
    failure policy decides what a failed call means.
    """

    def __init__(self, client: httpx.Client):
        self._client = client

    @classmethod
    def from_address(cls, address: str, timeout_s: Optional[float] = None) -> "NginxAdminClient":
        """Build a client for an admin interface at ``host:port``."""
        client = httpx.Client(base_url=f"http://{address}", timeout=timeout_s)
        return cls(client)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "NginxAdminClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def status(self) -> UpstreamGroup:
        """Fetch the current upstream groups and their backends."""
        try:
            resp = self._client.get(STATUS_PATH)
        except httpx.HTTPError as e:
            raise StatusQueryError(f"status request failed: {e}") from e
        if not resp.is_success:
            raise StatusQueryError(f"status request returned {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise StatusQueryError(f"status response is not JSON: {e}") from e
        groups = decode_status(payload)
        log.debug("Fetched %d upstream group(s) from the admin interface.", len(groups))
        return groups

    def add_backend(self, upstream: str, server: str) -> None:
        """Register ``server`` in ``upstream``."""
        params = {"add": "", "upstream": upstream, "server": server}
        try:
            resp = self._client.get(UPSTREAM_CONF_PATH, params=params)
        except httpx.HTTPError as e:
            raise AddOperationError(f"add {server} to {upstream} failed: {e}") from e
        if not resp.is_success:
            raise AddOperationError(
                f"add {server} to {upstream} returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )

    def remove_backend(self, upstream: str, backend_id: int) -> None:
        """Remove backend ``backend_id`` from ``upstream``."""
        params = {"remove": "", "upstream": upstream, "id": str(backend_id)}
        try:
            resp = self._client.get(UPSTREAM_CONF_PATH, params=params)
        except httpx.HTTPError as e:
            raise RemoveOperationError(f"remove #{backend_id} from {upstream} failed: {e}") from e
        if not resp.is_success:
            raise RemoveOperationError(
                f"remove #{backend_id} from {upstream} returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
