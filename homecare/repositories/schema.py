"""
Shape of the persisted document and the contract every store fulfils.

A store reads and writes one whole document per slot. It never applies
business rules; those belong to DocumentRepository.
"""

from __future__ import annotations

from typing import Protocol

CURRENT_VERSION = 3
VERSION_KEY = "__version"
COLLECTIONS = (
    "patients",
    "notes",
    "assessments",
    "contacts",
    "tasks",
    "files",
    "rolesDirectory",
)


class DocumentStore(Protocol):
    def read(self) -> dict:
        """Return the stored document, or a seeded empty one when the slot is empty."""

    def write(self, doc: dict) -> None:
        """Replace the stored document."""


def empty_document() -> dict:
    doc: dict = {VERSION_KEY: CURRENT_VERSION}
    for name in COLLECTIONS:
        doc[name] = []
    return doc


def db_defaults(db: dict) -> dict:
    for name in COLLECTIONS:
        db.setdefault(name, [])
    return db
