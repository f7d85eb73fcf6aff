from __future__ import annotations

import argparse
import json
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from export_json import build_payload, run as run_export_json
from export_xlsx import run as run_export_xlsx
from loader import UnsupportedFileError, process_file
from reconciler import compare, summarize
from records import ComparisonResult, ManifestData, TicketTable
from settings import ConfigurationError, CuadreConfig

DEFAULT_CFG = Path("cfg") / "cuadre.yml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cuadre de sobordos: cruza el manifiesto DFDS con la venta TME y lista las incidencias."
    )
    parser.add_argument("--dfds", type=Path, required=True, help="Export DFDS (CSV ';' o Excel).")
    parser.add_argument("--tme", type=Path, required=True, help="Export TME (CSV ',' o Excel).")
    parser.add_argument(
        "--coupon-field",
        default=None,
        help="Cabecera TME con el cupón/ticket (por defecto la detectada automáticamente).",
    )
    parser.add_argument(
        "--cfg",
        type=Path,
        default=None,
        help=f"Configuración YAML (por defecto {DEFAULT_CFG} si existe, si no la integrada).",
    )
    parser.add_argument("--out-dir", type=Path, default=Path("out"), help="Directorio de salida.")
    parser.add_argument("--log-dir", type=Path, default=None, help="Directorio de logs (por defecto <out-dir>).")
    parser.add_argument("--skip-xlsx", action="store_true", help="No generar el informe Excel.")
    return parser


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def append_jsonl(path: Path, record: Dict[str, Any]) -> None:
    ensure_dir(path.parent)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, ensure_ascii=False) + "\n")


def validate_configuration(path: Optional[Path]) -> CuadreConfig:
    if path is None:
        if DEFAULT_CFG.exists():
            return CuadreConfig.load(DEFAULT_CFG)
        return CuadreConfig.default()
    if not path.exists():
        raise ConfigurationError(f"No se encuentra el archivo de configuración: {path}")
    return CuadreConfig.load(path)


@dataclass
class StepMetrics:
    rows_processed: Optional[int] = None
    inconsistencies: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def as_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        if self.rows_processed is not None:
            record["rows_processed"] = self.rows_processed
        record["inconsistencies"] = self.inconsistencies
        if self.details:
            record["details"] = self.details
        return record


def run_step(name: str, pipeline_log: Path, func: Callable[[], StepMetrics]) -> StepMetrics:
    sys.stdout.write(f"[pipeline] Running {name}...\n")
    start_time = datetime.now(timezone.utc)
    start_perf = time.perf_counter()
    append_jsonl(pipeline_log, {"step": name, "event": "start", "timestamp": start_time.isoformat()})

    try:
        metrics = func()
    except Exception as exc:
        append_jsonl(
            pipeline_log,
            {
                "step": name,
                "event": "end",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "duration_seconds": time.perf_counter() - start_perf,
                "status": "failed",
                "error": str(exc),
            },
        )
        raise

    duration = time.perf_counter() - start_perf
    append_jsonl(
        pipeline_log,
        {
            "step": name,
            "event": "end",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_seconds": duration,
            "status": "ok",
            **metrics.as_record(),
        },
    )

    rows_text = "?" if metrics.rows_processed is None else str(metrics.rows_processed)
    sys.stdout.write(
        f"[pipeline] Step '{name}' completed in {duration:.2f}s | filas={rows_text} | avisos={len(metrics.inconsistencies)}.\n"
    )
    for item in metrics.inconsistencies:
        sys.stdout.write(f"[pipeline]   - {item}\n")
    return metrics


def manifest_metrics(manifest: ManifestData) -> StepMetrics:
    metrics = StepMetrics(
        rows_processed=len(manifest.passengers) + len(manifest.vehicles),
        details={key: manifest.metadata.get(key) for key in ("totalRows", "passengerRows", "vehicleRows", "summaryRows", "boardingCardRows")},
    )
    if not manifest.passengers and not manifest.vehicles:
        metrics.inconsistencies.append("El manifiesto DFDS no contiene pasajeros ni vehículos.")
    return metrics


def tickets_metrics(tickets: TicketTable) -> StepMetrics:
    metrics = StepMetrics(
        rows_processed=len(tickets.records),
        details={
            "coupon_field": tickets.coupon_field,
            "status_field": tickets.status_field,
            "duplicatesFound": tickets.metadata.get("duplicatesFound", 0),
        },
    )
    if tickets.coupon_field is None:
        metrics.inconsistencies.append("No se detectó la columna de cupón en el TME.")
    if tickets.status_field is None:
        metrics.inconsistencies.append("No se detectó la columna de estado en el TME; todo queda 'sin estado'.")
    return metrics


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    out_dir = args.out_dir.resolve()
    log_dir = (args.log_dir or out_dir).resolve()
    ensure_dir(out_dir)
    ensure_dir(log_dir)

    missing = [str(path) for path in (args.dfds, args.tme) if not path.exists()]
    if missing:
        sys.stderr.write(f"[pipeline] Missing input files: {json.dumps(missing, ensure_ascii=False)}\n")
        return 2

    try:
        config = validate_configuration(args.cfg)
    except ConfigurationError as exc:
        sys.stderr.write(f"[pipeline] {exc}\n")
        return 2

    pipeline_log = log_dir / "pipeline.jsonl"
    if pipeline_log.exists():
        pipeline_log.unlink()

    state: Dict[str, Any] = {}

    def load_dfds() -> StepMetrics:
        state["dfds"] = process_file(args.dfds, "dfds", config)
        return manifest_metrics(state["dfds"])

    def load_tme() -> StepMetrics:
        state["tme"] = process_file(args.tme, "tme", config)
        return tickets_metrics(state["tme"])

    def reconcile() -> StepMetrics:
        tickets: TicketTable = state["tme"]
        coupon_field = args.coupon_field or tickets.coupon_field
        state["coupon_field"] = coupon_field
        result: ComparisonResult = compare(state["dfds"], tickets, coupon_field, config)
        state["result"] = result
        metrics = StepMetrics(rows_processed=result.stats.total_records, details=result.stats.as_dict())
        if coupon_field not in tickets.headers:
            metrics.inconsistencies.append(
                f"La columna de cupón {coupon_field!r} no está en el TME; no hay nada que cruzar."
            )
        return metrics

    def export() -> StepMetrics:
        payload = build_payload(
            state["result"], manifest=state["dfds"], tickets=state["tme"], coupon_field=state["coupon_field"]
        )
        json_info = run_export_json(payload, out_dir / "incidencias.json")
        details: Dict[str, Any] = {"json": json_info["out"]}
        if not args.skip_xlsx:
            xlsx_info = run_export_xlsx(payload, out_dir / "incidencias.xlsx")
            details["xlsx"] = xlsx_info["out"]
        return StepMetrics(rows_processed=int(json_info["rows"]), details=details)

    try:
        run_step("load_dfds", pipeline_log, load_dfds)
        run_step("load_tme", pipeline_log, load_tme)
        run_step("reconcile", pipeline_log, reconcile)
        run_step("export", pipeline_log, export)
    except UnsupportedFileError as exc:
        sys.stderr.write(f"[pipeline] {exc}\n")
        return 3
    except ConfigurationError as exc:
        sys.stderr.write(f"[pipeline] {exc}\n")
        return 2

    append_jsonl(
        pipeline_log,
        {"event": "pipeline", "status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()},
    )
    sys.stdout.write(f"[pipeline] {summarize(state['result'])}\n")
    sys.stdout.write("[pipeline] All steps completed successfully.\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
