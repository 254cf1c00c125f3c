"""Data source that forwards fetch and count requests to a JSON HTTP endpoint."""

import asyncio
import json
from typing import Any

import requests
from loguru import logger

from treepager.cancellation import CancellationToken
from treepager.core.filters.predicate import Predicate
from treepager.errors import DataSourceError
from treepager.models.node import FetchWindow, Record, SortSpec


class HttpDataSource:
    """Remote record source speaking a small JSON protocol.

    ``POST {base_url}/fetch`` takes ``{"predicate", "offset", "limit", "sort"}``
    and returns ``{"records": [...]}``; ``POST {base_url}/count`` takes
    ``{"predicate"}`` and returns ``{"count": n}``. Requests run on a worker
    thread so the event loop is never blocked.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str | None = None,
        timeout: float = 30.0,
        indexed_attributes: frozenset[str] = frozenset(),
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._indexed = indexed_attributes
        self.sess = requests.Session()
        self.sess.headers["Content-Type"] = "application/json"
        if api_token:
            self.sess.headers["Authorization"] = f"Bearer {api_token}"

    @property
    def indexed_attributes(self) -> frozenset[str]:
        return self._indexed

    def call(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST body to endpoint and return the decoded JSON response."""
        logger.debug("Request {} {}", endpoint, repr(body)[:64])
        try:
            r = self.sess.post(
                f"{self.base_url}/{endpoint}",
                data=json.dumps(body),
                timeout=self.timeout,
            )
            r.raise_for_status()
            rv: dict[str, Any] = r.json()
        except (requests.RequestException, ValueError) as e:
            msg = f"Request to {endpoint!r} failed: {e}"
            raise DataSourceError(msg) from e
        if rv.get("error"):
            msg = f"Request to {endpoint!r} failed: {rv['error']!r}"
            raise DataSourceError(msg)
        return rv

    async def fetch(
        self,
        predicate: Predicate,
        window: FetchWindow,
        sort: SortSpec,
        *,
        token: CancellationToken | None = None,
    ) -> list[Record]:
        if token is not None:
            token.raise_if_cancelled()
        body = {
            "predicate": predicate.to_dict(),
            "offset": window.offset,
            "limit": window.limit,
            "sort": {"attribute": sort.attribute, "descending": sort.descending},
        }
        rv = await asyncio.to_thread(self.call, "fetch", body)
        return [Record.from_dict(r) for r in rv.get("records", [])]

    async def count(self, predicate: Predicate) -> int:
        rv = await asyncio.to_thread(self.call, "count", {"predicate": predicate.to_dict()})
        return int(rv["count"])

    def close(self) -> None:
        self.sess.close()
