#!/usr/bin/env python3
import argparse
import asyncio
import json
import os
import sys
import time
from typing import Optional

from robosite.core.config import WorkerConfig
from robosite.core.database import create_engine_for_url, create_session_factory
from robosite.schemas.jobs import TERMINAL_STATUSES, JobLogEntry
from robosite.services.job_state_service import JobStateRecorder
from robosite.worker import enqueue_site_job

POLL_SECONDS = float(os.getenv("ROBOSITE_POLL_SECONDS", "2.0"))
STATUS_TIMEOUT_SECONDS = int(os.getenv("ROBOSITE_STATUS_TIMEOUT_SECONDS", "1200"))

DEFAULT_PROMPT = (
    "Build a one-page site for a neighborhood coffee shop with a hero section, "
    "menu highlights, opening hours and a contact block."
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Queue a RoboSite generation job.")
    parser.add_argument("client_id", help="Client identifier; used as the storage prefix.")
    parser.add_argument("--prompt", default=DEFAULT_PROMPT, help="Site brief.")
    parser.add_argument("--prompt-file", help="Read the brief from a file instead.")
    parser.add_argument("--job-id", help="Explicit job id (deduplicated by the queue).")
    parser.add_argument("--redis-url", help="Overrides REDIS_URL.")
    parser.add_argument("--queue", help="Overrides QUEUE_NAME.")
    parser.add_argument("--wait", action="store_true", help="Poll the job record until it finishes.")
    return parser.parse_args()


async def wait_for_job(config: WorkerConfig, job_id: str) -> Optional[dict]:
    engine = create_engine_for_url(config.database_url)
    recorder = JobStateRecorder(create_session_factory(engine))
    seen = 0
    started = time.monotonic()
    try:
        while time.monotonic() - started < STATUS_TIMEOUT_SECONDS:
            logs = await recorder.list_logs(job_id, limit=200)
            for log in logs[seen:]:
                entry = JobLogEntry.model_validate(log)
                print(f"  {entry.created_at.isoformat()} {entry.message}")
            seen = max(seen, len(logs))

            job = await recorder.get_job(job_id)
            if job is not None and job.status in TERMINAL_STATUSES:
                return {
                    "jobId": job.job_id,
                    "status": job.status,
                    "error": job.error,
                    "result": job.result,
                    "tokens": job.tokens_total,
                    "model": job.model,
                }
            await asyncio.sleep(POLL_SECONDS)
        return None
    finally:
        await engine.dispose()


async def main() -> int:
    args = parse_args()
    config = WorkerConfig.from_env()

    prompt = args.prompt
    if args.prompt_file:
        with open(args.prompt_file, "r", encoding="utf-8") as f:
            prompt = f.read()

    job_id = await enqueue_site_job(
        args.client_id,
        prompt,
        job_id=args.job_id,
        redis_url=args.redis_url,
        queue_name=args.queue,
    )
    if job_id is None:
        print(f"Job {args.job_id} is already queued.", file=sys.stderr)
        return 1
    print(f"Queued job {job_id}")

    if not args.wait:
        return 0

    summary = await wait_for_job(config, job_id)
    if summary is None:
        print(f"Timed out after {STATUS_TIMEOUT_SECONDS}s waiting for {job_id}", file=sys.stderr)
        return 2
    print(json.dumps(summary, indent=2, default=str))
    return 0 if summary["status"] == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
