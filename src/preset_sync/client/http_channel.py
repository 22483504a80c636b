"""Request/response channel talking to the host's HTTP endpoint."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Mapping, Optional

import requests

from preset_sync.errors import ConnectivityError, RemoteRequestError

logger = logging.getLogger(__name__)


class HttpRequestChannel:
    """Issue blocking ``requests`` calls from the default executor.

    Paths are joined onto ``base_url``; JSON bodies are decoded and returned,
    empty bodies yield ``None``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    async def request(self, verb: str, url: str, body: Optional[Mapping[str, Any]] = None) -> Any:
        loop = asyncio.get_running_loop()
        call = functools.partial(self._request_blocking, verb, url, body)
        return await loop.run_in_executor(None, call)

    def _request_blocking(self, verb: str, url: str, body: Optional[Mapping[str, Any]]) -> Any:
        target = f"{self.base_url}{url}"
        try:
            response = self._session.request(
                verb,
                target,
                json=dict(body) if body is not None else None,
                timeout=self._timeout_s,
            )
        except requests.ConnectionError as exc:
            raise ConnectivityError(f"{verb} {target} unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteRequestError(verb, url, response.status_code, response.text)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.debug("non-JSON reply for %s %s", verb, target, exc_info=True)
            return response.text

    def close(self) -> None:
        self._session.close()


__all__ = ["HttpRequestChannel"]
