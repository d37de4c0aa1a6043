"""SQLAlchemy model holding the JSON document, one row per slot."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, JSON, func

from .session import Base


class Document(Base):
    __tablename__ = "documents"

    slot = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False)
    body = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
