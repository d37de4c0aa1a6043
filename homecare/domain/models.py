"""Entity records stored in the home-care document.

Records live in the document as plain dicts with camelCase keys; these
dataclasses are the typed view handed back to callers.
"""
from __future__ import annotations

import random
import string
import time
from dataclasses import MISSING, asdict, dataclass, field, fields
from typing import Any, Mapping, Optional

ROLES = ("Physician", "Nurse", "PT", "SW", "Driver", "Admin")
NOTE_TYPES = ("general", "assessment", "contact", "plan", "risk", "system")
CONTACT_CHANNELS = ("Phone", "WhatsApp", "In-Person")
SYSTEM_AUTHOR = "System"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_id(prefix: str) -> str:
    """Return an id shaped like ``p_1718000000000_k3j9x0a1b``."""
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class _Record:
    """Mixin converting between snake_case attributes and camelCase keys."""

    def to_record(self) -> dict:
        out = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            out[_camel(key)] = value
        return out

    @classmethod
    def required_keys(cls) -> list[str]:
        return [
            _camel(f.name)
            for f in fields(cls)  # type: ignore[arg-type]
            if f.default is MISSING and f.default_factory is MISSING
        ]

    @classmethod
    def from_record(cls, data: Mapping[str, Any]):
        kwargs = {}
        for name in cls.__dataclass_fields__:  # type: ignore[attr-defined]
            key = _camel(name)
            if key in data:
                kwargs[name] = data[key]
        return cls(**kwargs)


@dataclass
class Patient(_Record):
    id: str
    name: str
    mrn: Optional[str] = None
    phones: list[str] = field(default_factory=list)
    dob: Optional[str] = None
    diagnoses: list[str] = field(default_factory=list)
    red_flags: list[str] = field(default_factory=list)
    last_visit: Optional[str] = None
    address: Optional[str] = None
    tags: list[str] = field(default_factory=list)


@dataclass
class Note(_Record):
    id: str
    patient_id: str
    created_at: str
    author_role: str
    author_name: str
    type: str
    text: str
    tags: Optional[list[str]] = None
    linked_assessment_id: Optional[str] = None
    linked_task_id: Optional[str] = None


@dataclass
class Assessment(_Record):
    id: str
    patient_id: str
    created_at: str
    role: str
    template_id: str
    fields: dict = field(default_factory=dict)


@dataclass
class ContactAttempt(_Record):
    id: str
    patient_id: str
    when: str
    via: str
    summary: str
    outcome: Optional[str] = None
    author_name: Optional[str] = None
    author_role: Optional[str] = None


@dataclass
class Task(_Record):
    id: str
    patient_id: str
    title: str
    status: str = "Open"
    assignee: Optional[str] = None
    due: Optional[str] = None
    linked_note_id: Optional[str] = None


@dataclass
class FileRef(_Record):
    id: str
    patient_id: str
    filename: str
    uploaded_at: str
    size: int
    type: str
    linked_note_id: Optional[str] = None
    linked_assessment_id: Optional[str] = None


@dataclass
class RoleBinding(_Record):
    name: str
    role: str
