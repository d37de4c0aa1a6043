"""
Persistence adapters and the document repository.

Stores encapsulate where the document lives (a JSON file, a SQL row or
memory). Everything else goes through DocumentRepository.
"""

from __future__ import annotations

from homecare.core.config import Settings
from homecare.repositories.schema import DocumentStore


def build_store(settings: Settings) -> DocumentStore:
    """Pick the store adapter named by STORAGE_BACKEND."""
    if settings.storage_backend == "sql":
        from homecare.repositories.sql_storage import SqlDocumentStore

        return SqlDocumentStore(slot=settings.document_slot)
    if settings.storage_backend == "memory":
        from homecare.repositories.memory_storage import MemoryStore

        return MemoryStore()
    from homecare.repositories.json_storage import JsonFileStore

    return JsonFileStore(settings.data_file)
