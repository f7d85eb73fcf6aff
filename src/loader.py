from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from normalizer import normalise_tickets
from records import Cell, ManifestData, TicketTable
from sectionizer import process_manifest
from settings import CuadreConfig

SOURCES = ("dfds", "tme")
CSV_EXTENSIONS = {".csv"}
EXCEL_EXTENSIONS = {".xlsx", ".xls"}

RawRows = List[List[Cell]]


class UnsupportedFileError(ValueError):
    """Raised when a file is neither CSV nor Excel."""


# ---------------------------------------------------------------------------
# Raw readers
# ---------------------------------------------------------------------------


def _read_csv_rows(path: Path, delimiter: str) -> RawRows:
    for encoding in ("utf-8-sig", "latin1"):
        try:
            with path.open("r", encoding=encoding, newline="") as handle:
                reader = csv.reader(handle, delimiter=delimiter)
                return [[cell if cell != "" else None for cell in row] for row in reader]
        except UnicodeDecodeError:
            continue
    return []


def _cell_from_frame(value: object) -> Cell:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def _read_excel_rows(path: Path) -> RawRows:
    df = pd.read_excel(path, sheet_name=0, header=None, dtype=object)
    rows: RawRows = []
    for values in df.itertuples(index=False, name=None):
        cells = [_cell_from_frame(value) for value in values]
        while cells and cells[-1] is None:
            cells.pop()
        rows.append(cells)
    return rows


def read_raw_rows(path: Path, source: str, config: Optional[CuadreConfig] = None) -> RawRows:
    config = config or CuadreConfig.default()
    suffix = path.suffix.lower()
    if suffix in CSV_EXTENSIONS:
        delimiter = config.delimiters.get(source, ",")
        return _read_csv_rows(path, delimiter)
    if suffix in EXCEL_EXTENSIONS:
        return _read_excel_rows(path)
    raise UnsupportedFileError("Formato de archivo no soportado. Use CSV o Excel.")


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def process_rows(
    raw_rows: RawRows,
    source: str,
    config: Optional[CuadreConfig] = None,
    *,
    file_name: str = "",
) -> Union[ManifestData, TicketTable]:
    if source not in SOURCES:
        raise ValueError(f"Origen desconocido: {source!r} (use 'dfds' o 'tme')")
    if source == "dfds":
        return process_manifest(raw_rows, config, file_name=file_name)
    return normalise_tickets(raw_rows, config, file_name=file_name)


def process_file(
    path: Path,
    source: str,
    config: Optional[CuadreConfig] = None,
    *,
    file_name: Optional[str] = None,
) -> Union[ManifestData, TicketTable]:
    if source not in SOURCES:
        raise ValueError(f"Origen desconocido: {source!r} (use 'dfds' o 'tme')")
    raw_rows = read_raw_rows(path, source, config)
    result = process_rows(raw_rows, source, config, file_name=file_name or path.name)
    metadata = dict(result.metadata)
    metadata["processedAt"] = _now_iso()
    if isinstance(result, ManifestData):
        return ManifestData(
            summary=result.summary,
            passengers=result.passengers,
            vehicles=result.vehicles,
            boarding_cards=result.boarding_cards,
            metadata=metadata,
        )
    return TicketTable(
        headers=result.headers,
        records=result.records,
        coupon_field=result.coupon_field,
        status_field=result.status_field,
        metadata=metadata,
    )
