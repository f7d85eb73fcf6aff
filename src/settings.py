from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ConfigurationError(ValueError):
    """Raised when the inputs or the YAML configuration cannot be used at all."""


# ---------------------------------------------------------------------------
# Configuration models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeywordFamilies:
    coupon: Tuple[str, ...] = ("cupon", "cupón", "coupon", "ticket", "numero", "número", "number")
    status: Tuple[str, ...] = ("estado", "status", "state")
    name: Tuple[str, ...] = ("nombre", "apellido", "name")
    document: Tuple[str, ...] = ("documento", "dni", "pasaporte", "document")
    access_type: Tuple[str, ...] = ("tipo acceso", "acceso", "access", "categoria")
    ticket_type: Tuple[str, ...] = ("tipo billete", "billete", "ticket", "tarifa")
    boarding: Tuple[str, ...] = ("embarque", "embarcado", "boarding")
    cancellation: Tuple[str, ...] = ("desembarque", "desembarc", "deboarding", "cancel")


@dataclass(frozen=True)
class ManifestFields:
    ticket_number: str = "TICKET NUMBER"
    surname: str = "SURNAME"
    first_name: str = "FIRST NAME"
    document_id: str = "DOCUMENT ID"
    make: str = "MAKE"
    model: str = "MODEL"
    license_plate: str = "LICENSE PLATE"
    driver: str = "DRIVER"


@dataclass(frozen=True)
class Labels:
    boarded: str = "Embarcado"
    not_boarded: str = "No embarcado"
    cancelled: str = "Cancelado"
    unknown: str = "Sin Estado"
    duplicate: str = "Duplicado ({status})"
    vehicle: str = "Coche"
    passenger: str = "Pasajero"
    placeholder: str = "-"

    def status(self, code: Optional[str]) -> Optional[str]:
        if code == "boarded":
            return self.boarded
        if code == "cancelled":
            return self.cancelled
        if code == "unknown":
            return self.unknown
        return None

    def duplicate_of(self, status_label: str) -> str:
        return self.duplicate.format(status=status_label)


# Section sentinels: (section, first cell, second cell or None).
DEFAULT_SENTINELS: Tuple[Tuple[str, str, Optional[str]], ...] = (
    ("summary", "RESOURCE", None),
    ("passengers", "SURNAME", "FIRST NAME"),
    ("vehicles", "MAKE", "MODEL"),
    ("boarding_cards", "TYPE", None),
)

SECTIONS = ("summary", "passengers", "vehicles", "boarding_cards")


@dataclass(frozen=True)
class CuadreConfig:
    keywords: KeywordFamilies = field(default_factory=KeywordFamilies)
    manifest_fields: ManifestFields = field(default_factory=ManifestFields)
    labels: Labels = field(default_factory=Labels)
    sentinels: Tuple[Tuple[str, str, Optional[str]], ...] = DEFAULT_SENTINELS
    coupon_prefixes: Tuple[str, ...] = ("1969", "2969")
    delimiters: Dict[str, str] = field(default_factory=lambda: {"dfds": ";", "tme": ","})

    @classmethod
    def default(cls) -> "CuadreConfig":
        return cls()

    @classmethod
    def load(cls, path: Path) -> "CuadreConfig":
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuración inválida ({path}): YAML mal formado: {exc}") from exc
        return cls.from_dict(data, source=path)

    @classmethod
    def from_dict(cls, data: Any, *, source: Optional[Path | str] = None) -> "CuadreConfig":
        label = f" ({source})" if source else ""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuración inválida{label}: el documento debe ser un mapeo.")

        problems: List[str] = []
        base = cls.default()

        keywords = _override(base.keywords, data.get("keywords"), "keywords", problems, as_tuple=True)
        manifest_fields = _override(base.manifest_fields, data.get("manifest_fields"), "manifest_fields", problems)
        labels = _override(base.labels, data.get("labels"), "labels", problems)

        sentinels = base.sentinels
        raw_sentinels = data.get("sentinels")
        if raw_sentinels is not None:
            sentinels = _parse_sentinels(raw_sentinels, problems)

        prefixes = base.coupon_prefixes
        raw_prefixes = data.get("coupon_prefixes")
        if raw_prefixes is not None:
            if not isinstance(raw_prefixes, list) or not all(isinstance(p, (str, int)) for p in raw_prefixes):
                problems.append("coupon_prefixes debe ser una lista de cadenas.")
            else:
                prefixes = tuple(str(p) for p in raw_prefixes)

        delimiters = dict(base.delimiters)
        raw_delimiters = data.get("delimiters")
        if raw_delimiters is not None:
            if not isinstance(raw_delimiters, dict):
                problems.append("delimiters debe ser un mapeo (dfds/tme).")
            else:
                for key, value in raw_delimiters.items():
                    if not isinstance(value, str) or len(value) != 1:
                        problems.append(f"delimiters.{key} debe ser un único carácter (recibido {value!r}).")
                    else:
                        delimiters[str(key)] = value

        cfg = cls(
            keywords=keywords,
            manifest_fields=manifest_fields,
            labels=labels,
            sentinels=sentinels,
            coupon_prefixes=prefixes,
            delimiters=delimiters,
        )
        problems.extend(cfg.problems())
        if problems:
            raise ConfigurationError(f"Configuración inválida{label}: " + "; ".join(problems))
        return cfg

    def problems(self) -> List[str]:
        found: List[str] = []
        for item in fields(self.keywords):
            if not getattr(self.keywords, item.name):
                found.append(f"keywords.{item.name} no puede estar vacío.")
        if "{status}" not in self.labels.duplicate:
            found.append("labels.duplicate debe contener '{status}'.")
        if not self.sentinels:
            found.append("sentinels debe definir al menos una sección.")
        for prefix in self.coupon_prefixes:
            if not prefix:
                found.append("coupon_prefixes no admite prefijos vacíos.")
        return found


def _override(base: Any, raw: Any, name: str, problems: List[str], *, as_tuple: bool = False) -> Any:
    if raw is None:
        return base
    if not isinstance(raw, dict):
        problems.append(f"{name} debe ser un objeto mapeable (dict).")
        return base
    known = {item.name for item in fields(base)}
    changes: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            problems.append(f"{name}.{key} no es una clave conocida.")
            continue
        if as_tuple:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                problems.append(f"{name}.{key} debe ser una lista de cadenas.")
                continue
            changes[key] = tuple(v.lower() for v in value)
        else:
            if not isinstance(value, str):
                problems.append(f"{name}.{key} debe ser una cadena (recibido {value!r}).")
                continue
            changes[key] = value
    return replace(base, **changes)


def _parse_sentinels(raw: Any, problems: List[str]) -> Tuple[Tuple[str, str, Optional[str]], ...]:
    if not isinstance(raw, list):
        problems.append("sentinels debe ser una lista.")
        return DEFAULT_SENTINELS
    parsed: List[Tuple[str, str, Optional[str]]] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            problems.append(f"sentinels[{idx}] debe ser un objeto con 'section' y 'first'.")
            continue
        section = item.get("section")
        first = item.get("first")
        second = item.get("second")
        if section not in SECTIONS:
            problems.append(f"sentinels[{idx}].section='{section}' no es una sección válida.")
            continue
        if not first or not isinstance(first, str):
            problems.append(f"sentinels[{idx}].first debe ser una cadena no vacía.")
            continue
        if second is not None and not isinstance(second, str):
            problems.append(f"sentinels[{idx}].second debe ser cadena si se indica.")
            continue
        parsed.append((section, first, second))
    return tuple(parsed)
