"""Record types shared by the DFDS sectionizer, the TME normalizer and the reconciler."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

Cell = Any  # str | int | float | None

# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------


def is_absent(cell: Cell) -> bool:
    if cell is None:
        return True
    if isinstance(cell, float) and math.isnan(cell):
        return True
    return isinstance(cell, str) and cell == ""


def as_text(cell: Cell) -> str:
    """Render a cell as text; integral floats lose their ``.0`` like a spreadsheet would show them."""
    if is_absent(cell):
        return ""
    if isinstance(cell, bool):
        return str(cell).lower()
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell)


def is_blank_row(row: Optional[Sequence[Cell]]) -> bool:
    return not row or all(is_absent(cell) for cell in row)


def row_to_record(headers: Sequence[str], row: Sequence[Cell]) -> Dict[str, Cell]:
    record: Dict[str, Cell] = {}
    for index, header in enumerate(headers):
        cell = row[index] if index < len(row) else None
        record[header] = None if is_absent(cell) else cell
    return record


def _frozen(values: Mapping[str, Cell]) -> Mapping[str, Cell]:
    return MappingProxyType(dict(values))


# ---------------------------------------------------------------------------
# DFDS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ManifestRecord:
    section: str
    fields: Mapping[str, Cell]
    status: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", _frozen(self.fields))

    def get(self, name: str) -> Cell:
        return self.fields.get(name)

    def text(self, name: str) -> str:
        return as_text(self.fields.get(name))

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"section": self.section, "fields": dict(self.fields)}
        if self.status is not None:
            payload["status"] = self.status
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], section: str) -> "ManifestRecord":
        values = data.get("fields")
        if not isinstance(values, Mapping):
            values = {k: v for k, v in data.items() if k not in ("section", "status")}
        return cls(section=str(data.get("section") or section), fields=values, status=data.get("status"))


@dataclass(frozen=True)
class ManifestData:
    summary: Tuple[ManifestRecord, ...] = ()
    passengers: Tuple[ManifestRecord, ...] = ()
    vehicles: Tuple[ManifestRecord, ...] = ()
    boarding_cards: Tuple[ManifestRecord, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _frozen(self.metadata))

    def boarded(self) -> Tuple[ManifestRecord, ...]:
        return self.passengers + self.vehicles

    def as_dict(self) -> Dict[str, Any]:
        return {
            "metadata": dict(self.metadata),
            "summary": [r.as_dict() for r in self.summary],
            "passengers": [r.as_dict() for r in self.passengers],
            "vehicles": [r.as_dict() for r in self.vehicles],
            "boardingCards": [r.as_dict() for r in self.boarding_cards],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ManifestData"]:
        if isinstance(data, ManifestData):
            return data
        if not isinstance(data, Mapping):
            return None
        sections: Dict[str, Tuple[ManifestRecord, ...]] = {}
        for key, section in (
            ("summary", "summary"),
            ("passengers", "passengers"),
            ("vehicles", "vehicles"),
            ("boardingCards", "boarding_cards"),
        ):
            items = data.get(key, data.get(section)) or []
            if not isinstance(items, list):
                return None
            if not all(isinstance(item, Mapping) for item in items):
                return None
            sections[section] = tuple(ManifestRecord.from_dict(item, section) for item in items)
        metadata = data.get("metadata") if isinstance(data.get("metadata"), Mapping) else {}
        return cls(metadata=metadata, **sections)


# ---------------------------------------------------------------------------
# TME
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TicketRecord:
    fields: Mapping[str, Cell]
    status: str = "unknown"
    duplicate_rank: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", _frozen(self.fields))

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_rank is not None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def get(self, name: str) -> Cell:
        return self.fields.get(name)

    def text(self, name: str) -> str:
        return as_text(self.fields.get(name))

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"fields": dict(self.fields), "status": self.status}
        if self.duplicate_rank is not None:
            payload["duplicate_rank"] = self.duplicate_rank
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["TicketRecord"]:
        """Rebuild a record from ``as_dict()`` output; ``None`` when the row is not in that shape."""
        values = data.get("fields")
        if not isinstance(values, Mapping):
            return None
        try:
            rank = _parse_rank(data.get("duplicate_rank"))
        except ValueError:
            return None
        status = data.get("status")
        if status is not None and not isinstance(status, str):
            return None
        return cls(fields=values, status=status or "unknown", duplicate_rank=rank)


def _parse_rank(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        rank = value
    elif isinstance(value, str) and value.strip().isdecimal():
        rank = int(value.strip())
    else:
        raise ValueError(f"duplicate_rank inválido: {value!r}")
    if rank < 1:
        raise ValueError(f"duplicate_rank inválido: {value!r}")
    return rank


@dataclass(frozen=True)
class TicketTable:
    headers: Tuple[str, ...]
    records: Tuple[TicketRecord, ...]
    coupon_field: Optional[str] = None
    status_field: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _frozen(self.metadata))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "metadata": dict(self.metadata),
            "headers": list(self.headers),
            "coupon_field": self.coupon_field,
            "status_field": self.status_field,
            "data": [r.as_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["TicketTable"]:
        if isinstance(data, TicketTable):
            return data
        if not isinstance(data, Mapping):
            return None
        headers = data.get("headers")
        rows = data.get("data")
        if not isinstance(headers, list) or not isinstance(rows, list):
            return None
        if not all(isinstance(row, Mapping) for row in rows):
            return None
        records = [TicketRecord.from_dict(row) for row in rows]
        if any(record is None for record in records):
            return None
        metadata = data.get("metadata") if isinstance(data.get("metadata"), Mapping) else {}
        return cls(
            headers=tuple(str(h) for h in headers),
            records=tuple(records),
            coupon_field=data.get("coupon_field"),
            status_field=data.get("status_field"),
            metadata=metadata,
        )


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

SOURCE_DFDS = "dfds"
SOURCE_TME = "tme"
SOURCE_BOTH = "both"


@dataclass(frozen=True)
class IncidenceRow:
    ticket_number: str
    full_name: str
    document_or_license: str
    access_type: str
    ticket_type: str
    dfds_status: str
    tme_status: str
    source: str
    # pass that produced the row: unmatched_tme, unmatched_dfds, cancelled, duplicate
    kind: str

    def as_dict(self) -> Dict[str, str]:
        return {
            "ticketNumber": self.ticket_number,
            "fullName": self.full_name,
            "documentOrLicense": self.document_or_license,
            "accessType": self.access_type,
            "ticketType": self.ticket_type,
            "dfdsStatus": self.dfds_status,
            "tmeStatus": self.tme_status,
            "source": self.source,
            "kind": self.kind,
        }


@dataclass(frozen=True)
class ComparisonStats:
    total_records: int = 0
    matched_records: int = 0
    only_in_dfds: int = 0
    only_in_tme: int = 0
    duplicates: int = 0
    incidences: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "totalRecords": self.total_records,
            "matchedRecords": self.matched_records,
            "onlyInDFDS": self.only_in_dfds,
            "onlyInTME": self.only_in_tme,
            "duplicates": self.duplicates,
            "incidences": self.incidences,
        }


@dataclass(frozen=True)
class ComparisonResult:
    incidences: Tuple[IncidenceRow, ...] = ()
    stats: ComparisonStats = field(default_factory=ComparisonStats)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "incidences": [row.as_dict() for row in self.incidences],
            "stats": self.stats.as_dict(),
        }

    def rows(self) -> List[Dict[str, str]]:
        return [row.as_dict() for row in self.incidences]
