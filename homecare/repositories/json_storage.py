"""
JSON file persistence adapter.

The whole document lives in one UTF-8 file. Writes land in a sibling
``.tmp`` file first and are swapped in with ``os.replace`` so a reader
never sees a half-written document.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from homecare.core.errors import StorageUnavailable
from homecare.repositories.schema import empty_document

logger = logging.getLogger(__name__)


class JsonFileStore:
    def __init__(self, path: Path | str):
        self.path = Path(path)

    def ensure_initialized(self) -> dict:
        return empty_document()

    def read(self) -> dict:
        if not self.path.exists():
            return self.ensure_initialized()
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Document file %s is corrupt: %s", self.path, exc)
            raise StorageUnavailable(f"Stored document at {self.path} is not valid UTF-8 JSON") from exc
        except OSError as exc:
            logger.error("Cannot read document file %s: %s", self.path, exc)
            raise StorageUnavailable(f"Cannot read {self.path}: {exc.strerror or exc}") from exc
        if not isinstance(data, dict):
            raise StorageUnavailable(f"Stored document at {self.path} is not a JSON object")
        return data

    def write(self, doc: dict) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            payload = json.dumps(doc, ensure_ascii=False, indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Cannot write document file %s: %s", self.path, exc)
            try:
                tmp.unlink()
            except OSError:
                pass
            raise StorageUnavailable(f"Cannot write {self.path}: {exc}") from exc
