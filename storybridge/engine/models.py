from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from storybridge.catalog.fields import RequestedFieldSet

RawRecord = Dict[str, Any]
OutputRow = List[Any]


@dataclass(frozen=True)
class Cursor:
    """
    Opaque pointer to the next page, exactly as the upstream returned it.

    Absence of a next page is modelled as Optional[Cursor] = None, never as
    an empty Cursor, so the pagination loop cannot spin on "".
    """

    url: str

    @classmethod
    def from_body(cls, value: Any) -> Optional["Cursor"]:
        if isinstance(value, str) and value:
            return cls(value)
        return None


@dataclass
class Page:
    records: List[RawRecord] = field(default_factory=list)
    next_cursor: Optional[Cursor] = None


@dataclass(frozen=True)
class DateRange:
    start: str   # YYYY-MM-DD
    end: str     # YYYY-MM-DD


class ReferenceTable:
    """
    Read-only group id → group name mapping built once per query.

    A lookup miss (or a missing id) returns "" rather than raising.
    """

    def __init__(self, entries: Optional[Mapping[str, str]] = None) -> None:
        self._entries: Mapping[str, str] = MappingProxyType(dict(entries or {}))

    @classmethod
    def from_groups(cls, groups: Iterable[Dict[str, Any]]) -> "ReferenceTable":
        return cls({str(g["id"]): g.get("name") or "" for g in groups if "id" in g})

    def lookup(self, group_id: Optional[str]) -> str:
        if not group_id:
            return ""
        return self._entries.get(str(group_id), "")

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class QueryResult:
    """Rows aligned positionally to `schema`."""

    schema: RequestedFieldSet
    rows: List[OutputRow] = field(default_factory=list)
    pages_fetched: int = 0

    def to_response(self) -> Dict[str, Any]:
        """Render for the host platform: {schema: [...], rows: [{values}]}"""
        return {
            "schema": [f.to_schema() for f in self.schema],
            "rows": [{"values": row} for row in self.rows],
        }
