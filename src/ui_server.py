from __future__ import annotations

import os
import platform
import tempfile
from datetime import datetime, timezone
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from loader import SOURCES, UnsupportedFileError, process_file
from reconciler import compare
from settings import ConfigurationError, CuadreConfig

APP_TITLE = "Cuadre de sobordos"
CFG_PATH = Path(os.environ.get("CUADRE_CFG", "cfg/cuadre.yml")).expanduser().resolve()
DEPENDENCIES = ("fastapi", "pydantic", "pandas", "PyYAML", "openpyxl", "XlsxWriter", "python-multipart")


def _dependency_versions(names: Iterable[str]) -> Dict[str, Optional[str]]:
    versions: Dict[str, Optional[str]] = {}
    for name in sorted(set(names), key=lambda value: value.lower()):
        try:
            versions[name] = importlib_metadata.version(name)
        except importlib_metadata.PackageNotFoundError:
            versions[name] = None
    return versions


def get_config() -> CuadreConfig:
    if CFG_PATH.exists():
        return CuadreConfig.load(CFG_PATH)
    return CuadreConfig.default()


class ComparePayload(BaseModel):
    dfds: Optional[Dict[str, Any]] = None
    tme: Optional[Dict[str, Any]] = None
    coupon_field: Optional[str] = Field(default=None, alias="couponField")

    model_config = {"populate_by_name": True}


app = FastAPI(title=APP_TITLE)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _process_upload(upload: UploadFile, source: str, config: CuadreConfig):
    filename = upload.filename or ""
    if not filename:
        raise HTTPException(400, detail="Missing filename")
    suffix = Path(filename).suffix.lower()
    with tempfile.TemporaryDirectory() as tmp_dir:
        target = Path(tmp_dir) / f"upload{suffix}"
        target.write_bytes(upload.file.read())
        try:
            return process_file(target, source, config, file_name=filename)
        except UnsupportedFileError as exc:
            raise HTTPException(400, detail=f"{exc} ({filename})") from exc
        except ConfigurationError as exc:
            raise HTTPException(400, detail=str(exc)) from exc


@app.get("/api/version")
def api_version() -> Dict[str, Any]:
    return {
        "app": {"title": APP_TITLE},
        "dependencies": _dependency_versions(DEPENDENCIES),
        "status": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "python_version": platform.python_version(),
            "config": {"path": str(CFG_PATH), "exists": CFG_PATH.exists()},
        },
    }


@app.post("/api/process/{source}")
def api_process(
    source: str,
    file: UploadFile = File(...),
    config: CuadreConfig = Depends(get_config),
) -> Dict[str, Any]:
    if source not in SOURCES:
        raise HTTPException(404, detail=f"Unknown source '{source}'")
    return _process_upload(file, source, config).as_dict()


@app.post("/api/compare")
def api_compare(payload: ComparePayload, config: CuadreConfig = Depends(get_config)) -> Dict[str, Any]:
    return compare(payload.dfds, payload.tme, payload.coupon_field, config).as_dict()


@app.post("/api/reconcile")
def api_reconcile(
    dfds: UploadFile = File(...),
    tme: UploadFile = File(...),
    coupon_field: Optional[str] = Form(default=None),
    config: CuadreConfig = Depends(get_config),
) -> Dict[str, Any]:
    manifest = _process_upload(dfds, "dfds", config)
    tickets = _process_upload(tme, "tme", config)
    field_name = coupon_field or tickets.coupon_field
    result = compare(manifest, tickets, field_name, config)
    payload = result.as_dict()
    payload["couponField"] = field_name
    payload["sources"] = {"dfds": dict(manifest.metadata), "tme": dict(tickets.metadata)}
    return payload
