# FILE: robosite/core/context.py
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from robosite.core.config import WorkerConfig
from robosite.core.database import create_engine_for_url, create_session_factory
from robosite.services.job_state_service import JobStateRecorder
from robosite.services.storage_service import create_s3_client


@dataclass
class AppContext:
    """
    Process-wide collaborators, built once at worker startup and shared
    read-only by every job.
    """
    config: WorkerConfig
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    recorder: JobStateRecorder
    http_client: httpx.AsyncClient
    s3: Any

    async def close(self) -> None:
        await self.http_client.aclose()
        await self.engine.dispose()


def create_context(
    config: Optional[WorkerConfig] = None,
    s3: Any = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AppContext:
    config = config or WorkerConfig.from_env()
    engine = create_engine_for_url(config.database_url)
    session_factory = create_session_factory(engine)
    return AppContext(
        config=config,
        engine=engine,
        session_factory=session_factory,
        recorder=JobStateRecorder(session_factory),
        # OPENAI_TIMEOUT_MS is enforced around the call, not by httpx
        http_client=http_client or httpx.AsyncClient(timeout=httpx.Timeout(None)),
        s3=s3 if s3 is not None else create_s3_client(config),
    )
