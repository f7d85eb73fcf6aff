# reconciler.py
# Cruce DFDS × TME en cuatro pasadas:
#   1. cupones TME sin ticket DFDS (sin cancelados ni duplicados),
#   2. tickets DFDS sin cupón TME,
#   3. cancelados en TME,
#   4. duplicados en TME (una fila por cada repetición).
# Devuelve la lista de incidencias y las estadísticas para la UI.
from __future__ import annotations

from typing import Any, List, Optional, Sequence

from matcher import find_first, normalize_key
from normalizer import find_field, find_fields
from records import (
    SOURCE_BOTH,
    SOURCE_DFDS,
    SOURCE_TME,
    ComparisonResult,
    ComparisonStats,
    IncidenceRow,
    ManifestData,
    ManifestRecord,
    TicketRecord,
    TicketTable,
    is_absent,
)
from settings import CuadreConfig


def empty_result() -> ComparisonResult:
    return ComparisonResult(incidences=(), stats=ComparisonStats())


class _TicketColumns:
    """Display columns looked up once per comparison from the TME headers."""

    def __init__(self, headers: Sequence[str], config: CuadreConfig) -> None:
        keywords = config.keywords
        self.placeholder = config.labels.placeholder
        self.name_fields = find_fields(headers, keywords.name)
        self.document_fields = find_fields(headers, keywords.document)
        self.access_field = find_field(headers, keywords.access_type)
        self.ticket_type_field = find_field(headers, keywords.ticket_type)

    def _joined(self, record: TicketRecord, names: List[str]) -> str:
        if not names:
            return self.placeholder
        text = " ".join(record.text(name) for name in names).strip()
        return text or self.placeholder

    def _single(self, record: TicketRecord, name: Optional[str]) -> str:
        if not name:
            return self.placeholder
        return record.text(name) or self.placeholder

    def full_name(self, record: TicketRecord) -> str:
        return self._joined(record, self.name_fields)

    def document(self, record: TicketRecord) -> str:
        return self._joined(record, self.document_fields)

    def access_type(self, record: TicketRecord) -> str:
        return self._single(record, self.access_field)

    def ticket_type(self, record: TicketRecord) -> str:
        return self._single(record, self.ticket_type_field)


class Reconciler:
    def __init__(self, manifest: ManifestData, tickets: TicketTable, coupon_field: str, config: CuadreConfig) -> None:
        self.config = config
        self.labels = config.labels
        self.fields = config.manifest_fields
        self.coupon_field = coupon_field
        self.tickets = tickets.records
        self.columns = _TicketColumns(tickets.headers, config)
        ticket_field = self.fields.ticket_number
        self.manifest = tuple(r for r in manifest.boarded() if normalize_key(r.get(ticket_field)))

    # ---- helpers ----
    def coupon(self, record: TicketRecord) -> str:
        return normalize_key(record.get(self.coupon_field))

    def manifest_ticket(self, record: ManifestRecord) -> str:
        return normalize_key(record.get(self.fields.ticket_number))

    def manifest_status(self, record: Optional[ManifestRecord]) -> str:
        if record is None:
            return self.labels.not_boarded
        return self.labels.status(record.status) or self.labels.boarded

    def ticket_status(self, record: TicketRecord) -> str:
        return self.labels.status(record.status) or self.labels.boarded

    def find_manifest(self, coupon: str) -> Optional[ManifestRecord]:
        return find_first(coupon, self.manifest, self.manifest_ticket)

    def find_ticket(self, ticket: str) -> Optional[TicketRecord]:
        return find_first(ticket, self.tickets, self.coupon)

    def ticket_row(self, record: TicketRecord, *, dfds_status: str, tme_status: str, source: str, kind: str) -> IncidenceRow:
        return IncidenceRow(
            ticket_number=self.coupon(record),
            full_name=self.columns.full_name(record),
            document_or_license=self.columns.document(record),
            access_type=self.columns.access_type(record),
            ticket_type=self.columns.ticket_type(record),
            dfds_status=dfds_status,
            tme_status=tme_status,
            source=source,
            kind=kind,
        )

    def is_vehicle(self, record: ManifestRecord) -> bool:
        return any(
            not is_absent(record.get(name))
            for name in (self.fields.make, self.fields.model, self.fields.license_plate)
        )

    def manifest_row(self, record: ManifestRecord) -> IncidenceRow:
        placeholder = self.labels.placeholder
        if self.is_vehicle(record):
            parts = [record.text(self.fields.make), record.text(self.fields.model)]
            full_name = " ".join(part for part in parts if part) or record.text(self.fields.driver) or placeholder
            document = record.text(self.fields.license_plate) or placeholder
            ticket_type = self.labels.vehicle
        else:
            full_name = f"{record.text(self.fields.first_name)} {record.text(self.fields.surname)}".strip() or placeholder
            document = record.text(self.fields.document_id) or placeholder
            ticket_type = self.labels.passenger
        return IncidenceRow(
            ticket_number=self.manifest_ticket(record),
            full_name=full_name,
            document_or_license=document,
            access_type=placeholder,
            ticket_type=ticket_type,
            dfds_status=self.manifest_status(record),
            tme_status=self.labels.not_boarded,
            source=SOURCE_DFDS,
            kind="unmatched_dfds",
        )

    # ---- passes ----
    def unmatched_tickets(self) -> List[IncidenceRow]:
        rows: List[IncidenceRow] = []
        for record in self.tickets:
            coupon = self.coupon(record)
            if not coupon or record.is_cancelled or record.is_duplicate:
                continue
            if self.find_manifest(coupon) is not None:
                continue
            rows.append(
                self.ticket_row(
                    record,
                    dfds_status=self.labels.not_boarded,
                    tme_status=self.ticket_status(record),
                    source=SOURCE_TME,
                    kind="unmatched_tme",
                )
            )
        return rows

    def unmatched_manifest(self) -> List[IncidenceRow]:
        rows: List[IncidenceRow] = []
        for record in self.manifest:
            counterpart = self.find_ticket(self.manifest_ticket(record))
            if counterpart is not None:
                # any TME counterpart, cancelled or not, rules out a manifest-only row
                continue
            rows.append(self.manifest_row(record))
        return rows

    def cancelled_tickets(self) -> List[IncidenceRow]:
        rows: List[IncidenceRow] = []
        for record in self.tickets:
            if not record.is_cancelled or record.is_duplicate:
                continue
            coupon = self.coupon(record)
            if not coupon:
                continue
            counterpart = self.find_manifest(coupon)
            rows.append(
                self.ticket_row(
                    record,
                    dfds_status=self.manifest_status(counterpart),
                    tme_status=self.labels.cancelled,
                    source=SOURCE_BOTH if counterpart is not None else SOURCE_TME,
                    kind="cancelled",
                )
            )
        return rows

    def duplicate_tickets(self) -> List[IncidenceRow]:
        rows: List[IncidenceRow] = []
        for record in self.tickets:
            if not record.is_duplicate:
                continue
            coupon = self.coupon(record)
            if not coupon:
                continue
            counterpart = self.find_manifest(coupon)
            original_status = self.labels.status(record.status) or self.labels.unknown
            rows.append(
                self.ticket_row(
                    record,
                    dfds_status=self.manifest_status(counterpart),
                    tme_status=self.labels.duplicate_of(original_status),
                    source=SOURCE_BOTH if counterpart is not None else SOURCE_TME,
                    kind="duplicate",
                )
            )
        return rows

    def run(self) -> ComparisonResult:
        incidences = (
            self.unmatched_tickets()
            + self.unmatched_manifest()
            + self.cancelled_tickets()
            + self.duplicate_tickets()
        )
        return ComparisonResult(incidences=tuple(incidences), stats=compute_stats(incidences))


def compute_stats(incidences: Sequence[IncidenceRow]) -> ComparisonStats:
    total = len(incidences)
    return ComparisonStats(
        total_records=total,
        matched_records=sum(
            1 for row in incidences if row.source == SOURCE_BOTH and row.kind not in ("duplicate", "cancelled")
        ),
        only_in_dfds=sum(1 for row in incidences if row.source == SOURCE_DFDS),
        only_in_tme=sum(1 for row in incidences if row.source == SOURCE_TME and row.kind != "duplicate"),
        duplicates=sum(1 for row in incidences if row.kind == "duplicate"),
        incidences=total,
    )


def compare(
    manifest: Any,
    tickets: Any,
    coupon_field: Optional[str],
    config: Optional[CuadreConfig] = None,
) -> ComparisonResult:
    """Cross-check the manifest against the ticket table.

    Missing or malformed inputs, or a ``coupon_field`` that is not a TME
    header, give an empty result instead of raising. Plain dictionaries in
    the ``as_dict()`` shape are accepted for both datasets.
    """
    if manifest is None or tickets is None or not coupon_field:
        return empty_result()
    manifest_data = ManifestData.from_dict(manifest)
    ticket_table = TicketTable.from_dict(tickets)
    if manifest_data is None or ticket_table is None:
        return empty_result()
    if coupon_field not in ticket_table.headers:
        return empty_result()
    return Reconciler(manifest_data, ticket_table, coupon_field, config or CuadreConfig.default()).run()


def summarize(result: ComparisonResult) -> str:
    stats = result.stats
    return (
        f"incidencias={stats.total_records} | ambos={stats.matched_records} | "
        f"solo_dfds={stats.only_in_dfds} | solo_tme={stats.only_in_tme} | duplicados={stats.duplicates}"
    )


__all__ = ["Reconciler", "compare", "compute_stats", "empty_result", "summarize"]
