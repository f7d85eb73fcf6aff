from __future__ import annotations

from typing import List, Sequence

from matcher import find_first, tickets_match
from normalizer import normalise_tickets
from reconciler import compare, compute_stats, summarize
from records import ComparisonStats, ManifestData
from sectionizer import process_manifest
from settings import CuadreConfig, Labels

TME_HEADER = ["Cupón", "Estado", "Nombre", "Apellido", "DNI", "Tipo acceso", "Tipo billete"]


def make_manifest(passengers: Sequence[Sequence[str]] = (), vehicles: Sequence[Sequence[str]] = ()) -> ManifestData:
    rows: List[List[object]] = [["RESOURCE", "DATE"], ["Ferry A", "2024-01-01"]]
    if passengers:
        rows.append(["SURNAME", "FIRST NAME", "DOCUMENT ID", "TICKET NUMBER"])
        rows.extend(list(row) for row in passengers)
    if vehicles:
        rows.append(["MAKE", "MODEL", "LICENSE PLATE", "DRIVER", "TICKET NUMBER"])
        rows.extend(list(row) for row in vehicles)
    return process_manifest(rows)


def make_tickets(*rows: Sequence[str]):
    return normalise_tickets([TME_HEADER, *[list(row) for row in rows]])


# ---------------------------------------------------------------------------
# matcher
# ---------------------------------------------------------------------------


def test_tickets_match_is_symmetric_substring():
    assert tickets_match("456", "0000456")
    assert tickets_match("0000456", "456")
    assert tickets_match(" 456 ", "456")
    assert not tickets_match("456", "789")
    assert not tickets_match("", "456")
    assert not tickets_match("456", None)
    assert not tickets_match("  ", "  ")


def test_find_first_returns_first_candidate_in_order():
    candidates = ["12", "123", "9"]
    assert find_first("123", candidates, key=lambda value: value) == "12"
    assert find_first("9", candidates, key=lambda value: value) == "9"
    assert find_first("777", candidates, key=lambda value: value) is None
    assert find_first("", candidates, key=lambda value: value) is None


# ---------------------------------------------------------------------------
# end to end
# ---------------------------------------------------------------------------


def test_kiosk_coupon_matches_manifest_ticket():
    manifest = make_manifest(passengers=[["Smith", "John", "X123", "456"]])
    tickets = make_tickets(["19690000456", "embarque", "John", "Smith", "X123", "General", "Adulto"])

    result = compare(manifest, tickets, "Cupón")

    assert result.incidences == ()
    assert result.stats == ComparisonStats()
    assert result.stats.as_dict() == {
        "totalRecords": 0,
        "matchedRecords": 0,
        "onlyInDFDS": 0,
        "onlyInTME": 0,
        "duplicates": 0,
        "incidences": 0,
    }


def test_cancelled_ticket_without_manifest_counterpart():
    manifest = make_manifest()
    tickets = make_tickets(["999", "desembarque", "", "", "", "", ""])

    result = compare(manifest, tickets, "Cupón")

    assert len(result.incidences) == 1
    row = result.incidences[0]
    assert row.kind == "cancelled"
    assert row.source == "tme"
    assert row.ticket_number == "999"
    assert row.tme_status == "Cancelado"
    assert row.dfds_status == "No embarcado"
    assert row.full_name == "-"
    assert result.stats.only_in_tme == 1
    assert result.stats.total_records == 1


def test_ticket_missing_from_manifest():
    manifest = make_manifest(passengers=[["Smith", "John", "X123", "456"]])
    tickets = make_tickets(
        ["456", "Embarque", "John", "Smith", "X123", "General", "Adulto"],
        ["555", "Embarque", "Ana", "García", "12345678Z", "Preferente", "Niño"],
    )

    result = compare(manifest, tickets, "Cupón")

    assert [row.kind for row in result.incidences] == ["unmatched_tme"]
    row = result.incidences[0]
    assert row.as_dict() == {
        "ticketNumber": "555",
        "fullName": "Ana García",
        "documentOrLicense": "12345678Z",
        "accessType": "Preferente",
        "ticketType": "Niño",
        "dfdsStatus": "No embarcado",
        "tmeStatus": "Embarcado",
        "source": "tme",
        "kind": "unmatched_tme",
    }


def test_ticket_without_status_is_reported_as_unknown():
    manifest = make_manifest()
    tickets = make_tickets(["321", "pendiente", "Luis", "Pérez", "", "", ""])

    result = compare(manifest, tickets, "Cupón")

    assert result.incidences[0].tme_status == "Sin Estado"
    assert result.incidences[0].document_or_license == "-"


def test_manifest_passenger_and_vehicle_without_ticket():
    manifest = make_manifest(
        passengers=[["Smith", "John", "X123", "456"]],
        vehicles=[["Seat", "Ibiza", "1234ABC", "Lopez", "888"]],
    )
    tickets = make_tickets(["777", "Embarque", "", "", "", "", ""])

    result = compare(manifest, tickets, "Cupón")

    dfds_rows = [row for row in result.incidences if row.kind == "unmatched_dfds"]
    assert len(dfds_rows) == 2
    passenger, vehicle = dfds_rows
    assert passenger.full_name == "John Smith"
    assert passenger.document_or_license == "X123"
    assert passenger.ticket_type == "Pasajero"
    assert passenger.access_type == "-"
    assert passenger.dfds_status == "Embarcado"
    assert passenger.tme_status == "No embarcado"

    assert vehicle.full_name == "Seat Ibiza"
    assert vehicle.document_or_license == "1234ABC"
    assert vehicle.ticket_type == "Coche"
    assert vehicle.source == "dfds"

    assert result.stats.only_in_dfds == 2
    assert result.stats.only_in_tme == 1


def test_cancelled_ticket_with_manifest_counterpart():
    manifest = make_manifest(passengers=[["Smith", "John", "X123", "456"]])
    tickets = make_tickets(["456", "Desembarcado", "John", "Smith", "X123", "", ""])

    result = compare(manifest, tickets, "Cupón")

    assert len(result.incidences) == 1
    row = result.incidences[0]
    assert row.kind == "cancelled"
    assert row.source == "both"
    assert row.dfds_status == "Embarcado"
    assert row.tme_status == "Cancelado"
    assert result.stats.matched_records == 0
    assert result.stats.only_in_tme == 0


def test_every_repeated_coupon_is_reported_once_per_row():
    manifest = make_manifest(passengers=[["Smith", "John", "X123", "7700123"]])
    tickets = make_tickets(
        ["7700123", "Embarque", "John", "Smith", "", "", ""],
        ["7700123", "Embarque", "John", "Smith", "", "", ""],
        ["7700123", "Desembarque", "John", "Smith", "", "", ""],
    )

    result = compare(manifest, tickets, "Cupón")

    assert [row.kind for row in result.incidences] == ["duplicate"] * 3
    assert [row.tme_status for row in result.incidences] == [
        "Duplicado (Embarcado)",
        "Duplicado (Embarcado)",
        "Duplicado (Cancelado)",
    ]
    assert all(row.source == "both" for row in result.incidences)
    assert all(row.dfds_status == "Embarcado" for row in result.incidences)
    assert result.stats.duplicates == 3
    assert result.stats.matched_records == 0
    assert result.stats.only_in_tme == 0


def test_duplicates_without_manifest_counterpart_are_not_counted_as_only_tme():
    tickets = make_tickets(
        ["42", "Embarque", "", "", "", "", ""],
        ["42", "Embarque", "", "", "", "", ""],
    )

    result = compare(make_manifest(), tickets, "Cupón")

    assert [row.source for row in result.incidences] == ["tme", "tme"]
    assert result.stats.duplicates == 2
    assert result.stats.only_in_tme == 0


def test_short_identifiers_match_longer_ones():
    manifest = make_manifest(passengers=[["Smith", "John", "", "1"]])
    tickets = make_tickets(["100099991", "Embarque", "", "", "", "", ""])

    result = compare(manifest, tickets, "Cupón")

    assert result.incidences == ()


def test_manifest_rows_without_ticket_number_are_ignored():
    manifest = make_manifest(passengers=[["Smith", "John", "X123", ""]])
    result = compare(manifest, make_tickets(["456", "Embarque", "", "", "", "", ""]), "Cupón")
    assert [row.kind for row in result.incidences] == ["unmatched_tme"]


# ---------------------------------------------------------------------------
# soft failures
# ---------------------------------------------------------------------------


def test_missing_inputs_give_empty_result():
    manifest = make_manifest(passengers=[["Smith", "John", "X123", "456"]])
    tickets = make_tickets(["456", "Embarque", "", "", "", "", ""])

    for args in (
        (None, tickets, "Cupón"),
        (manifest, None, "Cupón"),
        (manifest, tickets, None),
        (manifest, tickets, ""),
        (manifest, tickets, "Nope"),
        (manifest, {"headers": "Cupón", "data": []}, "Cupón"),
        ({"passengers": "oops"}, tickets, "Cupón"),
        ("not a manifest", tickets, "Cupón"),
        (manifest, {"headers": ["Cupón"], "data": [{"fields": {"Cupón": "456"}, "duplicate_rank": "x"}]}, "Cupón"),
        (manifest, {"headers": ["Cupón"], "data": [{"fields": {"Cupón": "456"}, "duplicate_rank": 0}]}, "Cupón"),
        (manifest, {"headers": ["Cupón"], "data": [{"fields": {"Cupón": "456"}, "status": 3}]}, "Cupón"),
    ):
        result = compare(*args)
        assert result.incidences == ()
        assert result.stats == ComparisonStats()


def test_plain_dicts_are_accepted():
    manifest = make_manifest(vehicles=[["Seat", "Ibiza", "1234ABC", "Lopez", "888"]])
    tickets = make_tickets(["999", "desembarque", "", "", "", "", ""])

    from_objects = compare(manifest, tickets, "Cupón")
    from_dicts = compare(manifest.as_dict(), tickets.as_dict(), "Cupón")

    assert from_dicts.as_dict() == from_objects.as_dict()


def test_compare_is_idempotent_and_stats_are_bounded():
    manifest = make_manifest(
        passengers=[["Smith", "John", "X123", "456"], ["Doe", "Jane", "Y1", "600"]],
        vehicles=[["Seat", "Ibiza", "1234ABC", "Lopez", "888"]],
    )
    tickets = make_tickets(
        ["456", "Desembarque", "", "", "", "", ""],
        ["777", "Embarque", "", "", "", "", ""],
        ["778", "", "", "", "", "", ""],
        ["888", "Embarque", "", "", "", "", ""],
        ["888", "Embarque", "", "", "", "", ""],
    )

    first = compare(manifest, tickets, "Cupón")
    second = compare(manifest, tickets, "Cupón")

    assert first == second
    stats = first.stats
    assert stats.total_records == len(first.incidences) == stats.incidences
    assert stats.matched_records + stats.only_in_dfds + stats.only_in_tme + stats.duplicates <= stats.total_records
    assert stats == compute_stats(first.incidences)
    assert "incidencias=" in summarize(first)


def test_custom_labels_flow_into_rows():
    config = CuadreConfig(labels=Labels(cancelled="Anulado", not_boarded="Ausente"))
    tickets = make_tickets(["999", "desembarque", "", "", "", "", ""])

    result = compare(make_manifest(), tickets, "Cupón", config)

    assert result.incidences[0].tme_status == "Anulado"
    assert result.incidences[0].dfds_status == "Ausente"


def test_rows_without_fields_mapping_give_empty_result():
    manifest = make_manifest()
    tickets = {
        "headers": ["Cupón", "Estado"],
        "data": [{"Cupón": "999", "Estado": "desembarque", "STATUS": "Cancelado"}],
    }

    result = compare(manifest, tickets, "Cupón")

    assert result.incidences == ()
    assert result.stats == ComparisonStats()


def test_posted_duplicate_ranks_are_kept():
    manifest = make_manifest()
    tickets = {
        "headers": ["Cupón", "Estado"],
        "data": [
            {"fields": {"Cupón": "42", "Estado": "Embarque"}, "status": "boarded", "duplicate_rank": 1},
            {"fields": {"Cupón": "42", "Estado": "Embarque"}, "status": "boarded", "duplicate_rank": " 2 "},
        ],
    }

    result = compare(manifest, tickets, "Cupón")

    assert [row.kind for row in result.incidences] == ["duplicate", "duplicate"]
    assert result.stats.duplicates == 2
