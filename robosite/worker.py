"""ARQ worker for RoboSite site generation.

Run worker with: arq robosite.worker.WorkerSettings
"""

import logging
import os
from typing import Any, Dict, Optional

from arq import create_pool
from arq.connections import RedisSettings

from robosite.core.config import WorkerConfig
from robosite.core.context import AppContext, create_context
from robosite.core.database import init_models
from robosite.schemas.generate import WorkItem
from robosite.services.pipeline_service import run_site_job

logger = logging.getLogger("robosite.worker")

TASK_NAME = "generate_site"

config = WorkerConfig.from_env()


def configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # one line per request from httpx is noise next to build output
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def generate_site(ctx: Dict[str, Any], client_id: str, prompt: str) -> Optional[Dict[str, Any]]:
    """Queue entrypoint: one work item {clientId, prompt}."""
    app: AppContext = ctx["app"]
    result = await run_site_job(app, ctx.get("job_id") or "unknown", client_id, prompt)
    return result.to_record() if result else None


async def enqueue_site_job(
    client_id: str,
    prompt: str,
    job_id: Optional[str] = None,
    redis_url: Optional[str] = None,
    queue_name: Optional[str] = None,
) -> Optional[str]:
    """Push a work item. Returns the job id, or None if that id is already queued."""
    item = WorkItem(client_id=client_id, prompt=prompt)
    queue = queue_name or config.queue_name
    pool = await create_pool(RedisSettings.from_dsn(redis_url or config.redis_url), default_queue_name=queue)
    try:
        job = await pool.enqueue_job(TASK_NAME, item.client_id, item.prompt, _job_id=job_id, _queue_name=queue)
        return job.job_id if job else None
    finally:
        await pool.close()


class WorkerSettings:
    """ARQ Worker Settings.

    Run with: arq robosite.worker.WorkerSettings
    """

    functions = [generate_site]

    redis_settings = RedisSettings.from_dsn(config.redis_url)
    queue_name = config.queue_name

    # worker slots; each slot runs one job's stages sequentially
    max_jobs = config.worker_concurrency
    job_timeout = config.job_timeout_seconds
    keep_result = 86400

    # failed jobs are not re-run unless QUEUE_MAX_TRIES says so
    max_tries = config.queue_max_tries

    @staticmethod
    async def on_startup(ctx: Dict[str, Any]) -> None:
        configure_logging()
        app = create_context(config)
        await init_models(app.engine)
        ctx["app"] = app
        logger.info(
            "RoboSite worker listening to queue: %s (concurrency=%d)",
            config.queue_name,
            config.worker_concurrency,
        )

    @staticmethod
    async def on_shutdown(ctx: Dict[str, Any]) -> None:
        app: Optional[AppContext] = ctx.get("app")
        if app is not None:
            await app.close()
        logger.info("RoboSite worker shutting down")

    @staticmethod
    async def on_job_start(ctx: Dict[str, Any]) -> None:
        logger.info("[%s] dequeued (try %s)", ctx.get("job_id"), ctx.get("job_try"))

    @staticmethod
    async def on_job_end(ctx: Dict[str, Any]) -> None:
        logger.info("[%s] finished", ctx.get("job_id"))
