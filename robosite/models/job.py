# /robosite/models/job.py
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, BigInteger, DateTime, JSON

from robosite.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(Base):
    """One site generation job. Owned by the CRUD layer, mutated by the worker."""
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    # owner reference lives in the accounts schema (not managed here)
    user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    site_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)

    client_id: Mapped[str] = mapped_column(String(200))
    prompt: Mapped[str] = mapped_column(Text)

    # queued | active | completed | failed
    status: Mapped[str] = mapped_column(String(20), default="queued")
    # {"step": prepare | generate | install | build | upload-src | upload-build | completed | failed}
    progress: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tokens_prompt: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tokens_completion: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tokens_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
