"""SQL backend: engine/session helpers and the document table."""

from .session import Base, create_all, get_engine, get_session, reset_caches

__all__ = ["Base", "create_all", "get_engine", "get_session", "reset_caches"]
