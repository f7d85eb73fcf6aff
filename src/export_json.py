from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from records import ComparisonResult, ManifestData, TicketTable


def build_payload(
    result: ComparisonResult,
    *,
    manifest: Optional[ManifestData] = None,
    tickets: Optional[TicketTable] = None,
    coupon_field: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = result.as_dict()
    sources: Dict[str, Any] = {}
    if manifest is not None:
        sources["dfds"] = dict(manifest.metadata)
    if tickets is not None:
        sources["tme"] = dict(tickets.metadata)
    if sources:
        payload["sources"] = sources
    if coupon_field is not None:
        payload["couponField"] = coupon_field
    return payload


def run(
    payload: ComparisonResult | Mapping[str, Any],
    out_path: str | Path,
    *,
    indent: int = 2,
    ensure_ascii: bool = False,
) -> Dict[str, object]:
    data = build_payload(payload) if isinstance(payload, ComparisonResult) else dict(payload)

    out_file = Path(out_path)
    out_file.parent.mkdir(parents=True, exist_ok=True)

    with out_file.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, ensure_ascii=ensure_ascii, indent=indent)

    return {
        "out": str(out_file.resolve()),
        "rows": len(data.get("incidences") or []),
    }
