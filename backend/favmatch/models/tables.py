"""SQLAlchemy ORM models: the tables behind the document store."""

from datetime import datetime
from sqlalchemy import Integer, String, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from favmatch.database import Base


# ── Documents ────────────────────────────────────────────────────

class Document(Base):
    """One JSON document per (collection, id), e.g. users/u1 or quotas/u1.

    `version` is bumped on every write; an UPDATE that finds a different
    version fails, which is how concurrent writers are detected.
    """
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(50), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}


# ── Set members ──────────────────────────────────────────────────

class SetMember(Base):
    """One row per member of a set-valued field (e.g. title_index/anime:21 users).

    Adding or removing a member touches only its own row, so concurrent
    writers on the same set never overwrite each other.
    """
    __tablename__ = "set_members"
    __table_args__ = (
        Index("idx_set_members_doc", "collection", "doc_id", "field"),
    )

    collection: Mapped[str] = mapped_column(String(50), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    field: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(String(200), primary_key=True)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
