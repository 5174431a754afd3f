# app/models/stored_file.py
import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, LargeBinary, String
from sqlalchemy.sql import func

from app.db.base import Base


class StoredFile(Base):
    """Blob salvato in una cartella logica (pending/approved/...)."""

    __tablename__ = "stored_files"

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(String(255), nullable=False)
    parent_id = Column(String(128), nullable=False)
    mime_type = Column(String(128), nullable=False, default="application/octet-stream")
    content = Column(LargeBinary, nullable=False)
    # Il cestino non cancella: nome e cartella restano (servono all'allocatore ticket)
    trashed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_stored_files_parent_trashed_created", "parent_id", "trashed", "created_at"),
    )
