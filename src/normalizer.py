# normalizer.py
# Normaliza el export TME (venta de billetes):
# - cabecera = primera fila, búsqueda de columnas por palabras clave,
# - limpieza de cupones 1969/2969 (numeración de taquilla/quiosco),
# - estado derivado (embarcado / cancelado / sin estado),
# - rango de duplicado por cupón repetido.
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from records import Cell, TicketRecord, TicketTable, as_text, is_blank_row, row_to_record
from settings import ConfigurationError, CuadreConfig, KeywordFamilies

__all__ = [
    "find_field",
    "find_fields",
    "clean_coupon",
    "derive_status",
    "rank_duplicates",
    "normalise_tickets",
]

# ---------------- Field discovery ----------------


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def find_field(headers: Sequence[str], keywords: Iterable[str]) -> Optional[str]:
    keywords = tuple(keywords)
    for header in headers:
        if _contains_any(header, keywords):
            return header
    return None


def find_fields(headers: Sequence[str], keywords: Iterable[str]) -> List[str]:
    keywords = tuple(keywords)
    return [header for header in headers if _contains_any(header, keywords)]


# ---------------- Value rules ----------------


def clean_coupon(value: Cell, prefixes: Sequence[str] = ("1969", "2969")) -> Cell:
    if value is None:
        return value
    text = as_text(value).strip()
    if not text:
        return value
    for prefix in prefixes:
        if text.startswith(prefix):
            remaining = text[len(prefix):].lstrip("0")
            return remaining or text
    return text


def derive_status(value: Cell, keywords: Optional[KeywordFamilies] = None) -> str:
    keywords = keywords or KeywordFamilies()
    text = as_text(value).lower().strip()
    if not text:
        return "unknown"
    cancelled = _contains_any(text, keywords.cancellation)
    if _contains_any(text, keywords.boarding) and not cancelled:
        return "boarded"
    if cancelled:
        return "cancelled"
    return "unknown"


def rank_duplicates(coupons: Sequence[Cell]) -> Tuple[List[Optional[int]], int]:
    """Return a 1-based rank per position for repeated coupons, plus how many rows are repeated."""
    positions: Dict[str, List[int]] = {}
    for index, coupon in enumerate(coupons):
        key = as_text(coupon).strip()
        if not key:
            continue
        positions.setdefault(key, []).append(index)

    ranks: List[Optional[int]] = [None] * len(coupons)
    duplicates = 0
    for indices in positions.values():
        if len(indices) < 2:
            continue
        duplicates += len(indices)
        for rank, index in enumerate(indices, start=1):
            ranks[index] = rank
    return ranks, duplicates


# ---------------- Normalizer ----------------


def normalise_tickets(
    raw_rows: Sequence[Sequence[Cell]],
    config: Optional[CuadreConfig] = None,
    *,
    file_name: str = "",
    clean_coupons: bool = True,
) -> TicketTable:
    config = config or CuadreConfig.default()
    if not raw_rows:
        raise ConfigurationError("El archivo TME está vacío: falta la fila de cabecera.")

    headers = [as_text(cell) for cell in raw_rows[0]]
    coupon_field = find_field(headers, config.keywords.coupon)
    status_field = find_field(headers, config.keywords.status)

    valid_rows = [row for row in raw_rows[1:] if not is_blank_row(row)]

    prepared: List[Tuple[Dict[str, Cell], str]] = []
    for row in valid_rows:
        values = row_to_record(headers, row)
        if clean_coupons and coupon_field and values.get(coupon_field) is not None:
            values[coupon_field] = clean_coupon(values[coupon_field], config.coupon_prefixes)
        status = "unknown"
        if status_field and values.get(status_field) is not None:
            status = derive_status(values[status_field], config.keywords)
        prepared.append((values, status))

    if coupon_field:
        ranks, duplicates = rank_duplicates([values.get(coupon_field) for values, _ in prepared])
    else:
        ranks, duplicates = [None] * len(prepared), 0

    records = tuple(
        TicketRecord(fields=values, status=status, duplicate_rank=rank)
        for (values, status), rank in zip(prepared, ranks)
    )
    metadata = {
        "type": "tme",
        "fileName": file_name,
        "totalRows": len(raw_rows),
        "totalDataRows": len(records),
        "duplicatesFound": duplicates,
    }
    return TicketTable(
        headers=tuple(headers),
        records=records,
        coupon_field=coupon_field,
        status_field=status_field,
        metadata=metadata,
    )
