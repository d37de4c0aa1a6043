"""
Schema upgrades for the stored document.

Each step takes a document at version N and returns a new document at
version N+1. Steps only add structure: no entity and no existing key is
ever removed. Documents written before the version tag existed count as
version 1. Ids a step has to invent are derived from the record's
position, so upgrading the same document twice gives the same result.
"""
from __future__ import annotations

import copy
import logging
from typing import Callable

from homecare.core.errors import UnsupportedSchemaVersion
from homecare.domain.models import SYSTEM_AUTHOR
from homecare.repositories.schema import COLLECTIONS, CURRENT_VERSION, VERSION_KEY

logger = logging.getLogger(__name__)

LEGACY_VERSION = 1
LEGACY_TIMESTAMP = "1970-01-01T00:00:00.000Z"

_ID_PREFIXES = {
    "patients": "p",
    "notes": "n",
    "assessments": "a",
    "contacts": "c",
    "tasks": "t",
    "files": "f",
}

# Values given to required keys that records written by older builds lack.
_RECORD_DEFAULTS: dict[str, dict] = {
    "patients": {"name": "Unknown"},
    "notes": {
        "patientId": "",
        "createdAt": LEGACY_TIMESTAMP,
        "authorRole": "Admin",
        "authorName": SYSTEM_AUTHOR,
        "type": "general",
        "text": "",
    },
    "assessments": {"patientId": "", "createdAt": LEGACY_TIMESTAMP, "role": "Admin", "templateId": ""},
    "contacts": {"patientId": "", "when": LEGACY_TIMESTAMP, "via": "Phone", "summary": ""},
    "tasks": {"patientId": "", "title": ""},
    "files": {
        "patientId": "",
        "filename": "",
        "uploadedAt": LEGACY_TIMESTAMP,
        "size": 0,
        "type": "application/octet-stream",
    },
    "rolesDirectory": {"name": "", "role": "Admin"},
}

Step = Callable[[dict], dict]
_STEPS: dict[int, Step] = {}


def step(from_version: int):
    """Register ``fn`` as the upgrade from ``from_version`` to the next version."""
    def register(fn: Step) -> Step:
        _STEPS[from_version] = fn
        return fn
    return register


def registered_steps() -> list[int]:
    return sorted(_STEPS)


def _as_list(value) -> list:
    if isinstance(value, list):
        return value
    if value in (None, ""):
        return []
    return [value]


def _legacy_id(prefix: str, index: int, taken: set) -> str:
    candidate = f"{prefix}_legacy_{index}"
    n = 1
    while candidate in taken:
        candidate = f"{prefix}_legacy_{index}_{n}"
        n += 1
    return candidate


@step(1)
def _legacy_patients(doc: dict) -> dict:
    raws = doc.get("patients") or []
    taken = {p["id"] for p in raws if isinstance(p, dict) and p.get("id")}
    patients = []
    for index, raw in enumerate(raws):
        if not isinstance(raw, dict):
            patients.append(raw)
            continue
        p = dict(raw)
        national_id = p.get("nationalId")
        if not p.get("id"):
            if national_id and national_id not in taken:
                p["id"] = national_id
            else:
                p["id"] = _legacy_id("p", index, taken)
            taken.add(p["id"])
        p["name"] = p.get("nameAr") or p.get("name") or "Unknown"
        if national_id and not p.get("mrn"):
            p["mrn"] = national_id
        if "phones" not in p:
            p["phones"] = [p["phone"]] if p.get("phone") else []
        for key in ("diagnoses", "redFlags", "tags"):
            p[key] = _as_list(p.get(key))
        patients.append(p)
    doc["patients"] = patients
    doc[VERSION_KEY] = 2
    return doc


@step(2)
def _collections(doc: dict) -> dict:
    for name in COLLECTIONS:
        if not isinstance(doc.get(name), list):
            doc[name] = _as_list(doc.get(name))
        prefix = _ID_PREFIXES.get(name)
        taken = {r.get("id") for r in doc[name] if isinstance(r, dict)}
        for index, rec in enumerate(doc[name]):
            if not isinstance(rec, dict):
                continue
            if prefix and not rec.get("id"):
                rec["id"] = _legacy_id(prefix, index, taken)
                taken.add(rec["id"])
            for key, value in _RECORD_DEFAULTS[name].items():
                rec.setdefault(key, value)
    doc[VERSION_KEY] = 3
    return doc


def document_version(doc: dict) -> int:
    if VERSION_KEY not in doc:
        return LEGACY_VERSION
    version = doc[VERSION_KEY]
    if isinstance(version, bool) or not isinstance(version, int) or version < 0:
        raise UnsupportedSchemaVersion(
            version, CURRENT_VERSION, f"Stored document has an invalid schema version: {version!r}"
        )
    return version


def upgrade(doc: dict) -> dict:
    """Bring ``doc`` up to CURRENT_VERSION; a current document comes back as-is."""
    version = document_version(doc)
    if version > CURRENT_VERSION:
        raise UnsupportedSchemaVersion(version, CURRENT_VERSION)
    if version == CURRENT_VERSION:
        return doc
    out = copy.deepcopy(doc)
    out.setdefault(VERSION_KEY, version)
    while version < CURRENT_VERSION:
        fn = _STEPS.get(version)
        if fn is None:
            raise UnsupportedSchemaVersion(
                version, CURRENT_VERSION, f"No migration registered from schema version {version}"
            )
        out = fn(out)
        logger.info("Migrated document from schema version %s to %s", version, out[VERSION_KEY])
        version = out[VERSION_KEY]
    return out
