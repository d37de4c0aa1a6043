"""
The only code allowed to change the stored document.

Every operation reads the document from the injected store, upgrades it to
the current schema, validates its input, applies one change and writes the
whole document back. Mutations hold a single-writer lock across that
read-modify-write so concurrent callers cannot overwrite each other.
Queries never write.
"""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from homecare.core.errors import RoleConflict, StorageUnavailable, ValidationError
from homecare.domain.assessments import assessment_problems
from homecare.domain.models import (
    CONTACT_CHANNELS,
    NOTE_TYPES,
    ROLES,
    SYSTEM_AUTHOR,
    Assessment,
    ContactAttempt,
    FileRef,
    Note,
    Patient,
    RoleBinding,
    Task,
    new_id,
)
from homecare.repositories.migrations import upgrade
from homecare.repositories.schema import COLLECTIONS, DocumentStore, db_defaults

logger = logging.getLogger(__name__)

_NO_WRITE = object()

_RECORD_TYPES = {
    "patients": Patient,
    "notes": Note,
    "assessments": Assessment,
    "contacts": ContactAttempt,
    "tasks": Task,
    "files": FileRef,
    "rolesDirectory": RoleBinding,
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# -------------------------- input helpers --------------------------
def _text(payload: Mapping[str, Any], key: str, *, required: bool = True) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{key} is required")
    return value or None


def _string_list(payload: Mapping[str, Any], key: str) -> list[str]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{key} must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def _role(value: Any, key: str = "role") -> str:
    if value not in ROLES:
        raise ValidationError(f"{key} must be one of {', '.join(ROLES)}")
    return value


def _choice(value: Any, allowed: tuple[str, ...], key: str) -> str:
    if value not in allowed:
        raise ValidationError(f"{key} must be one of {', '.join(allowed)}")
    return value


def _require_patient(doc: dict, payload: Mapping[str, Any]) -> str:
    patient_id = _text(payload, "patientId")
    if not any(p.get("id") == patient_id for p in doc["patients"] if isinstance(p, dict)):
        raise ValidationError(f"Unknown patient id {patient_id!r}")
    return patient_id


def _put_optional(rec: dict, payload: Mapping[str, Any], *keys: str) -> None:
    for key in keys:
        value = _text(payload, key, required=False)
        if value:
            rec[key] = value


def _for_patient(items: list, patient_id: Optional[str]) -> list:
    records = [item for item in items if isinstance(item, dict)]
    if patient_id is None:
        return records
    return [item for item in records if item.get("patientId") == patient_id]


def _typed(cls, items: list) -> list:
    required = cls.required_keys()
    out = []
    for item in items:
        if not isinstance(item, dict) or any(key not in item for key in required):
            logger.warning("Skipping malformed %s record: %r", cls.__name__, item)
            continue
        out.append(cls.from_record(item))
    return out


class DocumentRepository:
    """Entity operations over the single stored document."""

    def __init__(self, store: DocumentStore, *, clock: Callable[[], str] | None = None):
        self.store = store
        self._clock = clock or utc_now_iso
        self._write_lock = threading.Lock()

    # -------------------------- plumbing --------------------------
    def _load(self) -> dict:
        doc = self.store.read()
        if not isinstance(doc, dict):
            raise StorageUnavailable("Store returned something other than a document")
        return db_defaults(upgrade(doc))

    def _mutate_sync(self, change: Callable[[dict], Any]) -> Any:
        with self._write_lock:
            doc = self._load()
            result = change(doc)
            if result is _NO_WRITE:
                return None
            self.store.write(doc)
            return result

    async def _mutate(self, change: Callable[[dict], Any]) -> Any:
        return await asyncio.to_thread(self._mutate_sync, change)

    async def _query(self, view: Callable[[dict], Any]) -> Any:
        return await asyncio.to_thread(lambda: view(self._load()))

    def _unique_id(self, prefix: str, items: list) -> str:
        taken = {item.get("id") for item in items if isinstance(item, dict)}
        candidate = new_id(prefix)
        while candidate in taken:
            candidate = new_id(prefix)
        return candidate

    # -------------------------- patients --------------------------
    async def list_patients(self) -> list[Patient]:
        return await self._query(lambda doc: _typed(Patient, doc["patients"]))

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        def view(doc: dict) -> Optional[Patient]:
            found = _typed(Patient, [p for p in _for_patient(doc["patients"], None) if p.get("id") == patient_id])
            return found[0] if found else None
        return await self._query(view)

    async def add_patient(self, payload: Mapping[str, Any]) -> Patient:
        def change(doc: dict) -> Patient:
            rec = {
                "id": self._unique_id("p", doc["patients"]),
                "name": _text(payload, "name"),
                "mrn": _text(payload, "mrn"),
                "phones": _string_list(payload, "phones"),
            }
            _put_optional(rec, payload, "dob", "lastVisit", "address")
            for key in ("diagnoses", "redFlags", "tags"):
                rec[key] = _string_list(payload, key)
            doc["patients"].append(rec)
            logger.info("Added patient %s", rec["id"])
            return Patient.from_record(rec)
        return await self._mutate(change)

    # -------------------------- notes --------------------------
    async def list_notes(self, patient_id: Optional[str] = None) -> list[Note]:
        return await self._query(
            lambda doc: _typed(Note, _for_patient(doc["notes"], patient_id))
        )

    async def add_note(self, payload: Mapping[str, Any]) -> Note:
        def change(doc: dict) -> Note:
            patient_id = _require_patient(doc, payload)
            author_name = _text(payload, "authorName", required=False)
            author_role = _role(payload.get("authorRole") or "Admin", "authorRole")
            bound = None
            if author_name:
                bound = next(
                    (r for r in _for_patient(doc["rolesDirectory"], None) if r.get("name") == author_name), None
                )
            if bound and bound.get("role") != author_role:
                logger.warning("Note author %r is bound to %s, not %s", author_name, bound.get("role"), author_role)
                raise RoleConflict(author_name, bound.get("role"), author_role)
            rec = {
                "id": self._unique_id("n", doc["notes"]),
                "patientId": patient_id,
                "createdAt": self._clock(),
                "authorRole": author_role,
                "authorName": author_name or SYSTEM_AUTHOR,
                "type": _choice(payload.get("type", "general"), NOTE_TYPES, "type"),
                "text": _text(payload, "text"),
            }
            tags = _string_list(payload, "tags")
            if tags:
                rec["tags"] = tags
            _put_optional(rec, payload, "linkedAssessmentId", "linkedTaskId")
            doc["notes"].append(rec)
            return Note.from_record(rec)
        return await self._mutate(change)

    # -------------------------- assessments --------------------------
    async def list_assessments(self, patient_id: Optional[str] = None) -> list[Assessment]:
        return await self._query(
            lambda doc: _typed(Assessment, _for_patient(doc["assessments"], patient_id))
        )

    async def add_assessment(self, payload: Mapping[str, Any]) -> Assessment:
        def change(doc: dict) -> Assessment:
            patient_id = _require_patient(doc, payload)
            role = _role(payload.get("role"))
            template_id = _text(payload, "templateId")
            form = payload.get("fields")
            problems = assessment_problems(role, template_id, form)
            if problems:
                raise ValidationError("; ".join(problems))
            now = self._clock()
            rec = {
                "id": self._unique_id("a", doc["assessments"]),
                "patientId": patient_id,
                "createdAt": now,
                "role": role,
                "templateId": template_id,
                "fields": dict(form),
            }
            doc["assessments"].append(rec)
            doc["notes"].append({
                "id": self._unique_id("n", doc["notes"]),
                "patientId": patient_id,
                "createdAt": now,
                "authorRole": role,
                "authorName": SYSTEM_AUTHOR,
                "type": "assessment",
                "text": f"Assessment saved (template: {template_id}).",
                "linkedAssessmentId": rec["id"],
            })
            return Assessment.from_record(rec)
        return await self._mutate(change)

    # -------------------------- contacts --------------------------
    async def list_contacts(self, patient_id: Optional[str] = None) -> list[ContactAttempt]:
        return await self._query(
            lambda doc: _typed(ContactAttempt, _for_patient(doc["contacts"], patient_id))
        )

    async def add_contact(self, payload: Mapping[str, Any]) -> ContactAttempt:
        def change(doc: dict) -> ContactAttempt:
            patient_id = _require_patient(doc, payload)
            via = _choice(payload.get("via"), CONTACT_CHANNELS, "via")
            summary = _text(payload, "summary")
            rec = {
                "id": self._unique_id("c", doc["contacts"]),
                "patientId": patient_id,
                "when": _text(payload, "when", required=False) or self._clock(),
                "via": via,
                "summary": summary,
            }
            _put_optional(rec, payload, "outcome", "authorName")
            if payload.get("authorRole") is not None:
                rec["authorRole"] = _role(payload.get("authorRole"), "authorRole")
            doc["contacts"].append(rec)
            doc["notes"].append({
                "id": self._unique_id("n", doc["notes"]),
                "patientId": patient_id,
                "createdAt": self._clock(),
                "authorRole": rec.get("authorRole", "Admin"),
                "authorName": rec.get("authorName", SYSTEM_AUTHOR),
                "type": "contact",
                "text": f"{via}: {summary} ({rec.get('outcome', '—')})",
            })
            return ContactAttempt.from_record(rec)
        return await self._mutate(change)

    # -------------------------- tasks --------------------------
    async def list_tasks(self, patient_id: Optional[str] = None) -> list[Task]:
        return await self._query(
            lambda doc: _typed(Task, _for_patient(doc["tasks"], patient_id))
        )

    async def add_task(self, payload: Mapping[str, Any]) -> Task:
        def change(doc: dict) -> Task:
            rec = {
                "id": self._unique_id("t", doc["tasks"]),
                "patientId": _require_patient(doc, payload),
                "title": _text(payload, "title"),
                "status": "Open",
            }
            _put_optional(rec, payload, "assignee", "due", "linkedNoteId")
            doc["tasks"].append(rec)
            return Task.from_record(rec)
        return await self._mutate(change)

    async def complete_task(self, task_id: str) -> Task:
        def change(doc: dict) -> Task:
            for rec in _for_patient(doc["tasks"], None):
                if rec.get("id") == task_id:
                    rec["status"] = "Done"
                    return Task.from_record(rec)
            raise ValidationError(f"Unknown task id {task_id!r}")
        return await self._mutate(change)

    # -------------------------- files --------------------------
    async def list_files(self, patient_id: Optional[str] = None) -> list[FileRef]:
        return await self._query(
            lambda doc: _typed(FileRef, _for_patient(doc["files"], patient_id))
        )

    async def add_file(self, payload: Mapping[str, Any]) -> FileRef:
        def change(doc: dict) -> FileRef:
            size = payload.get("size", 0)
            if isinstance(size, bool) or not isinstance(size, int) or size < 0:
                raise ValidationError("size must be a non-negative integer")
            rec = {
                "id": self._unique_id("f", doc["files"]),
                "patientId": _require_patient(doc, payload),
                "filename": _text(payload, "filename"),
                "uploadedAt": self._clock(),
                "size": size,
                "type": _text(payload, "type", required=False) or "application/octet-stream",
            }
            _put_optional(rec, payload, "linkedNoteId", "linkedAssessmentId")
            doc["files"].append(rec)
            return FileRef.from_record(rec)
        return await self._mutate(change)

    # -------------------------- roles directory --------------------------
    async def list_roles(self) -> list[RoleBinding]:
        return await self._query(lambda doc: _typed(RoleBinding, doc["rolesDirectory"]))

    async def upsert_role(self, name: str, role: str) -> None:
        clean = _text({"name": name}, "name")
        _role(role)

        def change(doc: dict):
            existing = next((r for r in _for_patient(doc["rolesDirectory"], None) if r.get("name") == clean), None)
            if existing is None:
                doc["rolesDirectory"].append({"name": clean, "role": role})
                logger.info("Bound %r to role %s", clean, role)
                return None
            if existing.get("role") == role:
                return _NO_WRITE
            logger.warning("Refusing to rebind %r from %s to %s", clean, existing.get("role"), role)
            raise RoleConflict(clean, existing.get("role"), role)
        await self._mutate(change)

    # -------------------------- export/import --------------------------
    async def export_all(self) -> str:
        return await self._query(lambda doc: json.dumps(doc, ensure_ascii=False, indent=2))

    async def import_all(self, payload: str) -> None:
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Backup is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValidationError("Backup must be a JSON object")
        doc = db_defaults(upgrade(data))
        _check_document(doc)

        def change(current: dict) -> None:
            current.clear()
            current.update(doc)
            logger.info("Imported document with %d patients", len(doc["patients"]))
        await self._mutate(change)


def _check_document(doc: dict) -> None:
    for name in COLLECTIONS:
        items = doc[name]
        if not isinstance(items, list):
            raise ValidationError(f"{name} must be a list")
        required = _RECORD_TYPES[name].required_keys()
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValidationError(f"{name}[{index}] must be an object")
            missing = [key for key in required if key not in item]
            if missing:
                raise ValidationError(f"{name}[{index}] is missing {', '.join(missing)}")
    patient_ids = [p["id"] for p in doc["patients"]]
    if len(set(patient_ids)) != len(patient_ids):
        raise ValidationError("patients contain duplicate ids")
    bound: dict[str, str] = {}
    for entry in doc["rolesDirectory"]:
        previous = bound.setdefault(entry["name"], entry["role"])
        if previous != entry["role"]:
            raise RoleConflict(entry["name"], previous, entry["role"])
