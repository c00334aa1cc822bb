# =========================================================
# FILE: /robosite/services/job_state_service.py
# =========================================================

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from robosite.models.job import Job
from robosite.models.job_log import JobLog

logger = logging.getLogger("robosite.jobs")

DEFAULT_LOG_PAGE = 100
MAX_LOG_PAGE = 200

# recordable field -> column
_TRANSITION_FIELDS = {
    "status": "status",
    "step": "progress",
    "result": "result",
    "error": "error",
    "tokens_prompt": "tokens_prompt",
    "tokens_completion": "tokens_completion",
    "tokens_total": "tokens_total",
    "model": "model",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobStateRecorder:
    """
    Persists job transitions and log lines.

    Every call opens its own session and commits, so a crash mid-pipeline
    leaves the last written stage visible to pollers. The recorder does not
    enforce the state machine; the pipeline runner's call order does.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def ensure_job(self, job_id: str, client_id: str, prompt: str) -> Job:
        async with self._session_factory() as db:
            r = await db.execute(select(Job).where(Job.job_id == str(job_id)))
            job = r.scalar_one_or_none()
            if job is not None:
                return job
            job = Job(
                job_id=str(job_id),
                client_id=client_id,
                prompt=prompt,
                status="queued",
                created_at=_now(),
                updated_at=_now(),
            )
            db.add(job)
            await db.commit()
            return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with self._session_factory() as db:
            r = await db.execute(select(Job).where(Job.job_id == str(job_id)))
            return r.scalar_one_or_none()

    async def record_transition(self, job_id: str, **fields: Any) -> None:
        values: Dict[str, Any] = {}
        for key, value in fields.items():
            column = _TRANSITION_FIELDS.get(key)
            if column is None:
                raise ValueError(f"Unknown job field: {key}")
            values[column] = {"step": value} if key == "step" else value

        if not values:
            return

        values["updated_at"] = _now()
        async with self._session_factory() as db:
            await db.execute(update(Job).where(Job.job_id == str(job_id)).values(**values))
            await db.commit()

    async def append_log(self, job_id: str, message: Optional[str]) -> None:
        if not message:
            return
        async with self._session_factory() as db:
            db.add(JobLog(job_id=str(job_id), message=str(message), created_at=_now()))
            await db.commit()

    async def list_logs(self, job_id: str, limit: int = DEFAULT_LOG_PAGE) -> List[JobLog]:
        limit = max(1, min(int(limit or DEFAULT_LOG_PAGE), MAX_LOG_PAGE))
        async with self._session_factory() as db:
            r = await db.execute(
                select(JobLog)
                .where(JobLog.job_id == str(job_id))
                .order_by(JobLog.created_at.asc(), JobLog.id.asc())
                .limit(limit)
            )
            return list(r.scalars().all())

    def sink(self) -> "JobLogSink":
        return JobLogSink(self)


class JobLogSink:
    """LogSink that stores process output as job log lines."""

    def __init__(self, recorder: JobStateRecorder):
        self._recorder = recorder

    async def emit(self, line: str, stream: str, job_id: str) -> None:
        logger.info("[%s] %s: %s", job_id, stream, line)
        await self._recorder.append_log(job_id, f"{stream}: {line}")
