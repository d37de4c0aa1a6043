"""SQL persistence adapter: the document is one JSON row per slot."""
from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from homecare.core.errors import StorageUnavailable
from homecare.db.models import Document
from homecare.db.session import create_all, get_session
from homecare.repositories.schema import VERSION_KEY, empty_document

logger = logging.getLogger(__name__)


class SqlDocumentStore:
    """Reads/writes the document row through SQLAlchemy sessions."""

    def __init__(self, slot: str = "main"):
        self.slot = slot
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        create_all()
        self._schema_ready = True

    def ensure_initialized(self) -> dict:
        return empty_document()

    def read(self) -> dict:
        try:
            self._ensure_schema()
            with get_session() as session:
                row = session.get(Document, self.slot)
                body = copy.deepcopy(row.body) if row else None
        except (SQLAlchemyError, RuntimeError) as exc:
            logger.error("Cannot read document slot %r: %s", self.slot, exc)
            raise StorageUnavailable(f"Cannot read document slot {self.slot!r}: {exc}") from exc
        if body is None:
            return self.ensure_initialized()
        if not isinstance(body, dict):
            raise StorageUnavailable(f"Document slot {self.slot!r} does not hold a JSON object")
        return body

    def write(self, doc: dict) -> None:
        now = datetime.now(timezone.utc)
        version = doc.get(VERSION_KEY)
        try:
            self._ensure_schema()
            with get_session() as session:
                row = session.get(Document, self.slot)
                if not row:
                    row = Document(slot=self.slot, version=version, body=copy.deepcopy(doc), updated_at=now)
                    session.add(row)
                else:
                    row.version = version
                    row.body = copy.deepcopy(doc)
                    row.updated_at = now
                session.commit()
        except (SQLAlchemyError, RuntimeError) as exc:
            logger.error("Cannot write document slot %r: %s", self.slot, exc)
            raise StorageUnavailable(f"Cannot write document slot {self.slot!r}: {exc}") from exc
