from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from records import SOURCE_BOTH, SOURCE_DFDS, SOURCE_TME, ComparisonResult, as_text

COLUMN_TITLES = {
    "ticketNumber": "Ticket / Cupón",
    "fullName": "Nombre",
    "documentOrLicense": "Documento / Matrícula",
    "accessType": "Tipo acceso",
    "ticketType": "Tipo billete",
    "dfdsStatus": "Estado DFDS",
    "tmeStatus": "Estado TME",
    "source": "Origen",
}

SOURCE_SHEETS = {
    SOURCE_DFDS: "Solo DFDS",
    SOURCE_TME: "Solo TME",
    SOURCE_BOTH: "Ambos",
}

STATS_TITLES = {
    "totalRecords": "Total incidencias",
    "matchedRecords": "En ambos",
    "onlyInDFDS": "Solo en DFDS",
    "onlyInTME": "Solo en TME",
    "duplicates": "Duplicados",
}

MIN_WIDTH = 12
MAX_WIDTH = 60


def incidences_frame(rows: List[Mapping[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=list(COLUMN_TITLES))
    return df.rename(columns=COLUMN_TITLES)


def stats_frame(stats: Mapping[str, Any]) -> pd.DataFrame:
    return pd.DataFrame(
        [{"Indicador": title, "Valor": int(stats.get(key) or 0)} for key, title in STATS_TITLES.items()]
    )


def column_width(df: pd.DataFrame, column: str) -> int:
    """Widest of the title and the rendered cells, clamped to the report's bounds."""
    widths = [len(column), MIN_WIDTH]
    widths.extend(len(as_text(value)) for value in df[column].tolist())
    return min(max(widths) + 2, MAX_WIDTH)


def style_sheet(writer: pd.ExcelWriter, sheet_name: str, df: pd.DataFrame, freeze: bool = True) -> None:
    worksheet = writer.sheets[sheet_name]
    if freeze:
        worksheet.freeze_panes(1, 0)
    header_format = writer.book.add_format({"bold": True, "bg_color": "#111827", "font_color": "#f9fafb"})
    for col_idx, column in enumerate(df.columns):
        worksheet.write(0, col_idx, column, header_format)
        worksheet.set_column(col_idx, col_idx, column_width(df, column))


def build_sheets(rows: List[Mapping[str, Any]]) -> Dict[str, pd.DataFrame]:
    sheets: Dict[str, pd.DataFrame] = {"Incidencias": incidences_frame(rows)}
    for source, sheet_name in SOURCE_SHEETS.items():
        sheets[sheet_name] = incidences_frame([row for row in rows if row.get("source") == source])
    return sheets


def run(result: ComparisonResult | Mapping[str, Any], out_path: str | Path) -> Dict[str, object]:
    payload = result.as_dict() if isinstance(result, ComparisonResult) else dict(result)
    rows: List[Mapping[str, Any]] = list(payload.get("incidences") or [])
    stats: Mapping[str, Any] = payload.get("stats") or {}

    out_file = Path(out_path)
    out_file.parent.mkdir(parents=True, exist_ok=True)

    sheets = build_sheets(rows)
    with pd.ExcelWriter(out_file, engine="xlsxwriter") as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            style_sheet(writer, sheet_name, df)

        summary_df = stats_frame(stats)
        summary_df.to_excel(writer, sheet_name="Resumen", index=False)
        style_sheet(writer, "Resumen", summary_df, freeze=False)

    return {
        "out": str(out_file),
        "incidencias": int(len(sheets["Incidencias"])),
        "solo_dfds": int(len(sheets[SOURCE_SHEETS[SOURCE_DFDS]])),
        "solo_tme": int(len(sheets[SOURCE_SHEETS[SOURCE_TME]])),
        "ambos": int(len(sheets[SOURCE_SHEETS[SOURCE_BOTH]])),
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Exporta las incidencias del cuadre a Excel")
    parser.add_argument("--result", required=True, help="JSON con incidencias y estadísticas (export_json)")
    parser.add_argument("--out", required=True, help="Ruta del .xlsx de salida")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    payload = json.loads(Path(args.result).read_text(encoding="utf-8"))
    result = run(payload, args.out)
    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    import sys

    sys.exit(main())
