"""
FastAPI routers grouped by entity (patients, records, roles, backup).

Each module exposes an APIRouter included by app.create_app. Routers only
translate HTTP to DocumentRepository calls; validation lives in the
repository.
"""

from fastapi import Request

from homecare.repositories.document_repository import DocumentRepository


def get_repository(request: Request) -> DocumentRepository:
    repo = getattr(getattr(request.app, "state", None), "repository", None)
    if not repo:
        raise RuntimeError("DocumentRepository not configured")
    return repo
