from pathlib import Path

import pandas as pd
import pytest

from loader import UnsupportedFileError, process_file, process_rows, read_raw_rows
from records import ManifestData, TicketTable

DFDS_CSV = (
    "RESOURCE;DATE\n"
    "Ferry A;2024-01-01\n"
    "\n"
    "SURNAME;FIRST NAME;DOCUMENT ID;TICKET NUMBER\n"
    "Smith;John;X123;456\n"
    ";;;\n"
    "MAKE;MODEL;LICENSE PLATE;DRIVER;TICKET NUMBER\n"
    "Seat;Ibiza;1234ABC;Lopez;888\n"
)

TME_CSV = "Cupón,Estado,Nombre\n19690000456,Embarque,John\n999,desembarque,\n"


def test_dfds_csv_uses_semicolon(tmp_path: Path) -> None:
    path = tmp_path / "dfds.csv"
    path.write_text(DFDS_CSV, encoding="utf-8")

    manifest = process_file(path, "dfds")

    assert isinstance(manifest, ManifestData)
    assert manifest.summary[0].text("RESOURCE") == "Ferry A"
    assert [p.text("TICKET NUMBER") for p in manifest.passengers] == ["456"]
    assert [v.text("LICENSE PLATE") for v in manifest.vehicles] == ["1234ABC"]
    assert manifest.metadata["fileName"] == "dfds.csv"
    assert manifest.metadata["type"] == "dfds"
    assert "processedAt" in manifest.metadata


def test_tme_csv_uses_comma_and_cleans_coupons(tmp_path: Path) -> None:
    path = tmp_path / "tme.csv"
    path.write_text(TME_CSV, encoding="utf-8")

    tickets = process_file(path, "tme", file_name="venta.csv")

    assert isinstance(tickets, TicketTable)
    assert tickets.coupon_field == "Cupón"
    assert [r.get("Cupón") for r in tickets.records] == ["456", "999"]
    assert [r.status for r in tickets.records] == ["boarded", "cancelled"]
    assert tickets.metadata["fileName"] == "venta.csv"
    assert tickets.metadata["totalDataRows"] == 2


def test_csv_falls_back_to_latin1(tmp_path: Path) -> None:
    path = tmp_path / "tme.csv"
    path.write_bytes("Cupón,Estado\n456,Embarque\n".encode("latin1"))

    rows = read_raw_rows(path, "tme")

    assert rows[0] == ["Cupón", "Estado"]


def test_csv_empty_cells_become_none(tmp_path: Path) -> None:
    path = tmp_path / "tme.csv"
    path.write_text("A,B,C\n1,,3\n", encoding="utf-8")
    assert read_raw_rows(path, "tme") == [["A", "B", "C"], ["1", None, "3"]]


def test_excel_files_are_read_with_pandas(tmp_path: Path) -> None:
    path = tmp_path / "tme.xlsx"
    pd.DataFrame(
        [
            ["Cupón", "Estado", "Nombre"],
            ["19690000456", "Embarque", "John"],
            ["555", None, None],
        ]
    ).to_excel(path, header=False, index=False)

    rows = read_raw_rows(path, "tme")
    assert rows[2] == ["555"]

    tickets = process_file(path, "tme")
    assert [r.get("Cupón") for r in tickets.records] == ["456", "555"]
    assert tickets.records[1].status == "unknown"


def test_unsupported_extension(tmp_path: Path) -> None:
    path = tmp_path / "tme.txt"
    path.write_text("Cupón\n1\n", encoding="utf-8")
    with pytest.raises(UnsupportedFileError) as excinfo:
        process_file(path, "tme")
    assert "CSV o Excel" in str(excinfo.value)


def test_unknown_source_is_rejected() -> None:
    with pytest.raises(ValueError):
        process_rows([["A"]], "ferry")
