from __future__ import annotations
import logging
import time
from enum import Enum
from typing import Iterable, List, Optional

from opentelemetry import trace

from storybridge.catalog.fields import FieldCatalog
from storybridge.connectors.shortcut import ShortcutConnector
from storybridge.engine.models import DateRange, OutputRow, QueryResult
from storybridge.engine.projector import project
from storybridge.errors import UpstreamError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("storybridge.engine")


class QueryState(str, Enum):
    INIT = "INIT"
    RESOLVING_FIELDS = "RESOLVING_FIELDS"
    RESOLVING_REFERENCE = "RESOLVING_REFERENCE"
    FETCHING_PAGE = "FETCHING_PAGE"
    DONE = "DONE"
    FAILED = "FAILED"


class QueryOrchestrator:
    """
    Runs one reporting query end to end:

      resolve fields → resolve group names (once) →
      fetch pages until the cursor runs out → project every story

    Pages are fetched strictly in sequence since each URL comes from the
    previous response. Any error aborts the run; there are no partial
    results and no retries.
    """

    def __init__(
        self,
        connector: ShortcutConnector,
        catalog: Optional[FieldCatalog] = None,
    ) -> None:
        self._connector = connector
        self._catalog = catalog or FieldCatalog()
        self.state = QueryState.INIT

    def _transition(self, state: QueryState) -> None:
        logger.debug("Query state %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(
        self,
        credential: str,
        project_name: str,
        date_range: DateRange,
        requested_field_ids: Iterable[str],
    ) -> QueryResult:
        """
        Raises:
            UnknownFieldError: a requested id is not in the catalog.
            UpstreamError: any non-200 from the group listing or a search page.
                The upstream body is scrubbed of the credential.
        """
        self.state = QueryState.INIT
        with tracer.start_as_current_span(
            "engine.run",
            attributes={
                "query.project": project_name,
                "query.start": date_range.start,
                "query.end": date_range.end,
            },
        ) as span:
            start = time.time()
            try:
                result = await self._run(credential, project_name, date_range, requested_field_ids)
            except UpstreamError as exc:
                self._transition(QueryState.FAILED)
                span.set_attribute("engine.failed", True)
                scrubbed = exc.redacted(credential)
                if scrubbed is exc:
                    raise
                raise scrubbed from None
            except Exception:
                self._transition(QueryState.FAILED)
                span.set_attribute("engine.failed", True)
                raise

            self._transition(QueryState.DONE)
            span.set_attribute("engine.pages", result.pages_fetched)
            span.set_attribute("engine.rows", len(result.rows))
            logger.info(
                "Query for project=%r done: %d row(s) from %d page(s) in %dms",
                project_name, len(result.rows), result.pages_fetched,
                int((time.time() - start) * 1000),
            )
            return result

    async def _run(
        self,
        credential: str,
        project_name: str,
        date_range: DateRange,
        requested_field_ids: Iterable[str],
    ) -> QueryResult:
        # 1. Fields
        self._transition(QueryState.RESOLVING_FIELDS)
        fields = self._catalog.resolve(requested_field_ids)

        # 2. Group names, before any search call
        self._transition(QueryState.RESOLVING_REFERENCE)
        reference_table = await self._connector.fetch_groups(credential)

        # 3. Pages
        rows: List[OutputRow] = []
        pages = 0
        url: Optional[str] = self._connector.search_url(project_name, date_range)
        while url is not None:
            self._transition(QueryState.FETCHING_PAGE)
            with tracer.start_as_current_span(
                "engine.fetch_page", attributes={"page.number": pages + 1}
            ):
                page = await self._connector.fetch_page(url, credential)
            pages += 1
            rows.extend(project(record, fields, reference_table) for record in page.records)
            logger.debug(
                "Page %d: %d record(s), next=%s",
                pages, len(page.records), "yes" if page.next_cursor else "no",
            )
            url = page.next_cursor.url if page.next_cursor is not None else None

        return QueryResult(schema=fields, rows=rows, pages_fetched=pages)
