from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from storybridge.errors import UnknownFieldError


class SemanticType(str, Enum):
    DATE = "DATE"
    TEXT = "TEXT"
    NUMBER = "NUMBER"


class FieldRole(str, Enum):
    DIMENSION = "DIMENSION"
    METRIC = "METRIC"


class Aggregation(str, Enum):
    SUM = "SUM"


# Host platform schema vocabulary for each semantic type: (dataType, semanticType)
_SCHEMA_TYPES: Dict[SemanticType, Tuple[str, str]] = {
    SemanticType.DATE: ("STRING", "YEAR_MONTH_DAY"),
    SemanticType.TEXT: ("STRING", "TEXT"),
    SemanticType.NUMBER: ("NUMBER", "NUMBER"),
}


class FieldDefinition(BaseModel):
    """One column the connector can emit. Immutable."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    semantic_type: SemanticType
    role: FieldRole = FieldRole.DIMENSION
    aggregation: Optional[Aggregation] = None

    def to_schema(self) -> Dict[str, Any]:
        """Render as a host platform schema entry."""
        data_type, semantic_type = _SCHEMA_TYPES[self.semantic_type]
        entry: Dict[str, Any] = {
            "name": self.id,
            "label": self.label,
            "dataType": data_type,
            "semantics": {
                "conceptType": self.role.value,
                "semanticType": semantic_type,
            },
        }
        if self.aggregation is not None:
            entry["semantics"]["isReaggregatable"] = True
            entry["defaultAggregationType"] = self.aggregation.value
        return entry


# Ordered. `count` is a literal 1 per story; the host platform does the summing.
FIELD_CATALOG: Tuple[FieldDefinition, ...] = (
    FieldDefinition(id="completed", label="Completed", semantic_type=SemanticType.DATE),
    FieldDefinition(id="created", label="Created", semantic_type=SemanticType.DATE),
    FieldDefinition(id="teams", label="Team", semantic_type=SemanticType.TEXT),
    FieldDefinition(id="storyType", label="Story Type", semantic_type=SemanticType.TEXT),
    FieldDefinition(
        id="count",
        label="Story Count",
        semantic_type=SemanticType.NUMBER,
        role=FieldRole.METRIC,
        aggregation=Aggregation.SUM,
    ),
)

RequestedFieldSet = Tuple[FieldDefinition, ...]


class FieldCatalog:
    """
    Lookup over a static, ordered set of FieldDefinitions.

    resolve() is strict: a request naming any id outside the catalog is
    rejected as a whole, before any upstream call is made.
    """

    def __init__(self, fields: Iterable[FieldDefinition] = FIELD_CATALOG) -> None:
        self._fields: Tuple[FieldDefinition, ...] = tuple(fields)
        self._by_id: Dict[str, FieldDefinition] = {}
        for f in self._fields:
            if f.id in self._by_id:
                raise ValueError(f"Duplicate field id in catalog: {f.id}")
            self._by_id[f.id] = f

    def list_all(self) -> RequestedFieldSet:
        return self._fields

    def resolve(self, ids: Iterable[str]) -> RequestedFieldSet:
        """
        Map caller-supplied ids to definitions, keeping caller order.

        Raises:
            UnknownFieldError: listing every id absent from the catalog.
        """
        ids = list(ids)
        unknown = [i for i in ids if i not in self._by_id]
        if unknown:
            raise UnknownFieldError(unknown)
        return tuple(self._by_id[i] for i in ids)

    def schema(self) -> List[Dict[str, Any]]:
        """Schema entries for the whole catalog."""
        return [f.to_schema() for f in self._fields]

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._by_id
