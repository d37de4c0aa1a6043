"""In-process document slot, used by tests and throwaway sessions."""

from __future__ import annotations

import copy

from homecare.repositories.schema import empty_document


class MemoryStore:
    def __init__(self, initial: dict | None = None):
        self._doc = copy.deepcopy(initial) if initial is not None else None
        self.reads = 0
        self.writes = 0

    def ensure_initialized(self) -> dict:
        return empty_document()

    def read(self) -> dict:
        self.reads += 1
        if self._doc is None:
            return self.ensure_initialized()
        return copy.deepcopy(self._doc)

    def write(self, doc: dict) -> None:
        self.writes += 1
        self._doc = copy.deepcopy(doc)
