from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import aiohttp
from opentelemetry import trace
from yarl import URL

from storybridge.config.models import ConnectorConfig
from storybridge.errors import UpstreamError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("storybridge.connector")


class AsyncBaseConnector:
    """
    Shared HTTP plumbing for async REST connectors.

    Responsibilities:
    - Shared aiohttp.ClientSession (connection pooling), injectable for tests
    - Per-call credential header; no credential is held on the instance
    - Muted HTTP errors: status is inspected explicitly and any non-200
      becomes UpstreamError(status_code, body). Nothing is retried.
    - Verbatim pass-through of upstream-supplied next-page URLs
    - OpenTelemetry span per request
    """

    def __init__(
        self,
        config: ConnectorConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config
        self._session = session
        self._own_session = session is None
        self._logger = logging.getLogger(
            f"storybridge.connector.{config.connector_id}"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_s)
            )
            self._own_session = True
        return self._session

    async def close(self) -> None:
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()

    # ------------------------------------------------------------------
    # URL handling
    # ------------------------------------------------------------------

    def _endpoint(self, path: str) -> str:
        """Absolute URL for an API path such as '/groups'."""
        return self.config.base_url.rstrip("/") + path

    def _resolve(self, url: str) -> str:
        """
        Resolve an upstream-supplied URL or path against the service origin.
        Absolute URLs come back unchanged; the query string is never touched.
        """
        return urljoin(self.config.base_url, url)

    # ------------------------------------------------------------------
    # HTTP transport
    # ------------------------------------------------------------------

    def _headers(self, credential: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            self.config.auth_header: credential,
        }

    async def _get_json(self, url: str, credential: str) -> Any:
        """
        Authenticated GET of an already-encoded absolute URL.

        Returns the decoded JSON body on 200.

        Raises:
            UpstreamError: non-200 status, undecodable body, timeout or
                transport failure (status_code None for the latter two).
        """
        with tracer.start_as_current_span(
            f"connector.{self.config.connector_id}.get",
            attributes={"http.method": "GET", "http.url": url.split("?", 1)[0]},
        ) as span:
            session = await self._get_session()
            try:
                async with session.get(
                    URL(url, encoded=True), headers=self._headers(credential)
                ) as resp:
                    status = resp.status
                    span.set_attribute("http.status_code", status)
                    if status == 200:
                        try:
                            return await resp.json(content_type=None)
                        except ValueError as exc:
                            raise UpstreamError(
                                status, f"Response body is not valid JSON: {exc}", url
                            ) from exc
                    body = await resp.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                self._logger.warning("GET %s failed: %r", url.split("?", 1)[0], exc)
                raise UpstreamError(None, f"{type(exc).__name__}: {exc}", url) from exc

            self._logger.warning(
                "GET %s returned %d", url.split("?", 1)[0], status
            )
            raise UpstreamError(status, body, url)
