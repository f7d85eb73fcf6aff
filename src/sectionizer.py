# sectionizer.py
# Recorre el export DFDS fila a fila y separa las secciones del manifiesto
# (resumen, pasajeros, vehículos, tarjetas de embarque) a partir de las
# filas cabecera centinela.
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from records import Cell, ManifestData, ManifestRecord, as_text, is_absent, is_blank_row, row_to_record
from settings import CuadreConfig

BOARDED_SECTIONS = ("passengers", "vehicles")


def detect_section(row: Sequence[Cell], config: CuadreConfig) -> Optional[str]:
    first = as_text(row[0]).strip() if len(row) > 0 else ""
    if not first:
        return None
    second = as_text(row[1]).strip() if len(row) > 1 else ""
    for section, first_cell, second_cell in config.sentinels:
        if first != first_cell:
            continue
        if second_cell is None or second == second_cell:
            return section
    return None


def header_cells(row: Sequence[Cell]) -> List[str]:
    return [as_text(cell) for cell in row if not is_absent(cell) and as_text(cell).strip() != ""]


def process_manifest(
    raw_rows: Sequence[Sequence[Cell]],
    config: Optional[CuadreConfig] = None,
    *,
    file_name: str = "",
) -> ManifestData:
    config = config or CuadreConfig.default()
    sections: Dict[str, List[ManifestRecord]] = {
        "summary": [],
        "passengers": [],
        "vehicles": [],
        "boarding_cards": [],
    }
    current_section: Optional[str] = None
    current_headers: List[str] = []

    for row in raw_rows:
        if is_blank_row(row):
            continue

        section = detect_section(row, config)
        if section is not None:
            current_section = section
            current_headers = header_cells(row)
            continue

        if current_section is None or not current_headers:
            continue

        covered = row[: len(current_headers)]
        if all(is_absent(cell) for cell in covered):
            continue

        status = "boarded" if current_section in BOARDED_SECTIONS else None
        sections[current_section].append(
            ManifestRecord(
                section=current_section,
                fields=row_to_record(current_headers, row),
                status=status,
            )
        )

    metadata = {
        "type": "dfds",
        "fileName": file_name,
        "totalRows": len(raw_rows),
        "summaryRows": len(sections["summary"]),
        "passengerRows": len(sections["passengers"]),
        "vehicleRows": len(sections["vehicles"]),
        "boardingCardRows": len(sections["boarding_cards"]),
    }
    return ManifestData(
        summary=tuple(sections["summary"]),
        passengers=tuple(sections["passengers"]),
        vehicles=tuple(sections["vehicles"]),
        boarding_cards=tuple(sections["boarding_cards"]),
        metadata=metadata,
    )
