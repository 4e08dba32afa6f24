"""
Import pipeline models: ImportSession and ImportMapping.

Each pipeline step (upload, analyze, map, detect, resolve, execute) is a
separate request, so the state that threads them together lives here,
keyed by the session's public token.

Status lifecycle:
  pending → analyzed → mapped → conflicts_resolved → importing → completed | failed
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from assethub.core.database import Base


class ImportSession(Base):
    """
    One upload attempt.

    ``token`` is the opaque identifier clients see as ``file_id``; the
    integer ``id`` never leaves the service. ``meta`` accumulates the
    storage path, parsed headers, conflict resolutions and progress
    counters as the pipeline advances.

    ``version`` is an optimistic lock: two requests racing to mutate the
    same session cannot both win.
    """

    __tablename__ = "import_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        comment="Public session token (UUID string), exposed as file_id.",
    )
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="pending",
    )
    original_name: Mapped[str] = mapped_column(String(500), nullable=False)
    stored_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[str] = mapped_column(String(10), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    meta: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default="{}",
        comment="Storage path, headers, resolutions, progress counters.",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_import_sessions_company", "company_id"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ImportSession {self.token} {self.status}>"


class ImportMapping(Base):
    """
    Column mapping confirmed for a session. At most one per session.

    ``mappings``: source column → canonical field (or null).
    ``user_overrides``: same shape, wins over ``mappings`` per column.
    """

    __tablename__ = "import_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("import_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    mappings: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default="{}",
    )
    user_overrides: Mapped[dict | None] = mapped_column(
        JSONB,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ImportMapping session={self.session_id}>"
