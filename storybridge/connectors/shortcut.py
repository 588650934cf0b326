from __future__ import annotations
import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

from opentelemetry import trace
from yarl import URL

from storybridge.connectors.base import AsyncBaseConnector
from storybridge.engine.models import Cursor, DateRange, Page, ReferenceTable
from storybridge.errors import InvalidCredentialError, UpstreamError

tracer = trace.get_tracer("storybridge.connector")

_MOCK_TOKENS = {"token_dev"}
_MOCK_GROUPS = [
    {"id": "g-mobile", "name": "Mobile"},
    {"id": "g-web", "name": "Web"},
    {"id": "g-platform", "name": "Platform"},
]
_PROJECTS = ["Mobile App", "Web App", "Platform"]
_STORY_TYPES = ["feature", "bug", "chore"]


def _mock_stories(n: int = 60) -> List[Dict[str, Any]]:
    rng = random.Random(7)
    start = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    rows = []
    for i in range(1, n + 1):
        created = start + timedelta(days=i % 30, hours=i % 8)
        done = i % 4 != 0
        rows.append({
            "id": i,
            "name": f"Story {i}",
            "project": _PROJECTS[i % len(_PROJECTS)],
            "story_type": _STORY_TYPES[i % len(_STORY_TYPES)],
            # every 7th story has no team, every 11th points at a deleted group
            "group_id": None if i % 7 == 0 else (
                "g-archived" if i % 11 == 0 else _MOCK_GROUPS[i % len(_MOCK_GROUPS)]["id"]
            ),
            "created_at": created.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "completed_at": (
                (created + timedelta(days=rng.randint(1, 10))).strftime("%Y-%m-%dT%H:%M:%SZ")
                if done else None
            ),
        })
    return rows


_MOCK_STORIES = _mock_stories()


class ShortcutConnector(AsyncBaseConnector):
    """
    Shortcut (REST API v3) connector.

    Demo mode  (config.base_url == "mock"): serves _MOCK_STORIES and
    _MOCK_GROUPS in-process, paginated through real cursors; only
    "token_dev" is accepted by the credential probe.
    Production:
      config.base_url    = "https://api.app.shortcut.com/api/v3"
      config.auth_header = "Shortcut-Token"
    """

    # ------------------------------------------------------------------
    # Credential probe
    # ------------------------------------------------------------------

    async def probe_credential(self, credential: str) -> None:
        """
        GET /categories with the credential; 200 means the key is valid.

        Raises:
            InvalidCredentialError: empty key, or the probe returned 401/403.
            UpstreamError: any other failure (the key's validity is unknown).
        """
        if not credential:
            raise InvalidCredentialError()
        try:
            await self._get(self._endpoint("/categories"), credential)
        except UpstreamError as exc:
            if exc.status_code in (401, 403):
                raise InvalidCredentialError(exc.status_code) from exc
            raise

    # ------------------------------------------------------------------
    # Reference resolver
    # ------------------------------------------------------------------

    async def fetch_groups(self, credential: str) -> ReferenceTable:
        """GET /groups → {group id: group name}."""
        with tracer.start_as_current_span(
            f"connector.{self.config.connector_id}.fetch_groups"
        ) as span:
            url = self._endpoint("/groups")
            body = await self._get(url, credential)
            if not isinstance(body, list):
                raise UpstreamError(
                    200, f"Expected a list of groups, got {type(body).__name__}", url
                )
            table = ReferenceTable.from_groups(body)
            span.set_attribute("connector.groups", len(table))
            self._logger.debug("Resolved %d group name(s)", len(table))
            return table

    # ------------------------------------------------------------------
    # Page fetcher
    # ------------------------------------------------------------------

    def search_url(self, project: str, date_range: DateRange) -> str:
        """First-page URL for stories in `project` completed within `date_range`."""
        query = f"project:{project} AND completed:{date_range.start}..{date_range.end}"
        params = urlencode(
            {"detail": "full", "page_size": self.config.page_size, "query": query},
            quote_via=quote,
        )
        return self._endpoint(f"/search/stories?{params}")

    async def fetch_page(self, url: str, credential: str) -> Page:
        """
        Fetch one search page. `url` is either from search_url() or a
        Cursor.url from the previous page, used verbatim.
        """
        resolved = self._resolve(url)
        body = await self._get(resolved, credential)
        if not isinstance(body, dict):
            raise UpstreamError(
                200, f"Expected a search result object, got {type(body).__name__}", resolved
            )
        records = body.get("data") or []
        return Page(records=list(records), next_cursor=Cursor.from_body(body.get("next")))

    # ------------------------------------------------------------------
    # Transport (real or demo)
    # ------------------------------------------------------------------

    async def _get(self, url: str, credential: str) -> Any:
        if self.config.base_url == "mock":
            status, body = self._mock_get(url, credential)
            if status != 200:
                raise UpstreamError(status, str(body), url)
            return body
        return await self._get_json(url, credential)

    def _mock_get(self, url: str, credential: str) -> Tuple[int, Any]:
        if credential not in _MOCK_TOKENS:
            return 401, '{"message": "Unauthorized"}'

        parsed = URL(url, encoded=True)
        path = parsed.path
        if path.endswith("/categories"):
            return 200, []
        if path.endswith("/groups"):
            return 200, list(_MOCK_GROUPS)
        if path.endswith("/search/stories"):
            try:
                return 200, self._mock_search(parsed)
            except ValueError as exc:
                return 400, f'{{"message": "Invalid search query: {exc}"}}'
        return 404, '{"message": "Not found"}'

    def _mock_search(self, url: URL) -> Dict[str, Any]:
        project, window = _parse_mock_query(url.query.get("query", ""))
        page_size = int(url.query.get("page_size", self.config.page_size))
        offset = int(url.query.get("offset", 0))

        matches = [
            s for s in _MOCK_STORIES
            if s["project"] == project
            and s["completed_at"]
            and (window is None or window[0] <= s["completed_at"][:10] <= window[1])
        ]
        page = matches[offset:offset + page_size]
        next_url: Optional[str] = None
        if offset + page_size < len(matches):
            next_url = "/search/stories?" + urlencode(
                {**dict(url.query), "offset": offset + page_size}, quote_via=quote
            )
        return {"data": page, "next": next_url, "total": len(matches)}


def _parse_mock_query(query: str) -> Tuple[str, Optional[Tuple[str, str]]]:
    """'project:Web App AND completed:2024-01-01..2024-01-31' → ('Web App', (start, end))"""
    project_part, _, completed_part = query.partition(" AND completed:")
    project = project_part.removeprefix("project:")
    if ".." not in completed_part:
        return project, None
    start, end = completed_part.split("..", 1)
    # validate as dates so a malformed range fails like the real API would
    date.fromisoformat(start)
    date.fromisoformat(end)
    return project, (start, end)
