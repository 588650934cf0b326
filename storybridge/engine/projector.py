from __future__ import annotations
from typing import Any, Callable, Dict, Optional

from storybridge.catalog.fields import RequestedFieldSet
from storybridge.engine.models import OutputRow, RawRecord, ReferenceTable

Extractor = Callable[[RawRecord, ReferenceTable], Any]


def compact_date(timestamp: Optional[str]) -> str:
    """'2024-01-10T08:00:00Z' → '20240110'. Missing or empty → ''."""
    if not timestamp:
        return ""
    date_part = str(timestamp).split("T", 1)[0]
    return "".join(ch for ch in date_part if ch.isdigit())


# One entry per catalog field. Unknown ids never reach here via the
# orchestrator because FieldCatalog.resolve() rejects them first.
EXTRACTORS: Dict[str, Extractor] = {
    "completed": lambda rec, ref: compact_date(rec.get("completed_at")),
    "created": lambda rec, ref: compact_date(rec.get("created_at")),
    "teams": lambda rec, ref: ref.lookup(rec.get("group_id")),
    "storyType": lambda rec, ref: rec.get("story_type") or "",
    "count": lambda rec, ref: 1,
}


def project(
    record: RawRecord,
    fields: RequestedFieldSet,
    reference_table: ReferenceTable,
) -> OutputRow:
    """
    Produce one output row for `record`, one value per requested field,
    in the order given. Pure: no I/O, no shared state.
    """
    row: OutputRow = []
    for f in fields:
        extractor = EXTRACTORS.get(f.id)
        row.append(extractor(record, reference_table) if extractor else "")
    return row
