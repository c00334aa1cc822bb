# FILE: robosite/services/pipeline_service.py
"""
Pipeline runner for one site job:

  queued -> active(prepare) -> active(generate) -> active(install) -> active(build)
         -> active(upload-src) -> active(upload-build) -> completed

Any stage error moves the job to failed with the error text, tears the
workspace down and re-raises so the queue sees the failure. Cancellation (queue
job timeout, worker shutdown) is recorded the same way. Nothing already
uploaded or installed is rolled back. Once completed is written the record is
not touched again.
"""

import asyncio
import logging
import re
from typing import Any, Optional

from robosite.core.context import AppContext
from robosite.core.exceptions import PipelineError, ValidationError
from robosite.repair.ai_repair import generate_site_files
from robosite.schemas.jobs import TERMINAL_STATUSES, JobResult
from robosite.services.build_service import BUILD_COMMAND, INSTALL_COMMAND, INSTALL_ENV, run_command
from robosite.services.materialize_service import materialize
from robosite.services.storage_service import SOURCE_IGNORE_DIRS, build_public_url, publish_directory
from robosite.services.workspace_service import Workspace, allocate_workspace, copy_scaffold, destroy_workspace

logger = logging.getLogger("robosite.pipeline")

CANCELLED_MESSAGE = "Job cancelled or timed out"

_NOT_ALNUM = re.compile(r"[^a-zA-Z0-9]+")


def sanitize_client_id(value: Any) -> str:
    trimmed = ("" if value is None else str(value)).strip()
    return _NOT_ALNUM.sub("-", trimmed).strip("-")


async def _enter_stage(ctx: AppContext, job_id: str, step: str, message: str) -> None:
    await ctx.recorder.record_transition(job_id, step=step)
    await ctx.recorder.append_log(job_id, message)
    logger.info("[%s] %s", job_id, message)


async def _fail(ctx: AppContext, job_id: str, error: Exception) -> None:
    message = str(error) or error.__class__.__name__
    await ctx.recorder.record_transition(job_id, status="failed", step="failed", error=message)
    await ctx.recorder.append_log(job_id, f"Failed: {message}")


def _validate(ctx: AppContext, client_id: Any, prompt: Any) -> str:
    if not client_id or not str(client_id).strip() or not prompt or not str(prompt).strip():
        raise ValidationError("clientId and prompt are required.")
    safe_client_id = sanitize_client_id(client_id)
    if not safe_client_id:
        raise ValidationError("Invalid clientId.")
    if not ctx.config.s3_bucket:
        raise ValidationError("Missing S3_BUCKET or AWS_BUCKET_PASSPORTS")
    return safe_client_id


async def run_site_job(ctx: AppContext, job_id: str, client_id: Any, prompt: Any) -> Optional[JobResult]:
    job_id = str(job_id or "unknown")
    config = ctx.config
    recorder = ctx.recorder

    job = await recorder.ensure_job(job_id, str(client_id or ""), str(prompt or ""))
    if job.status in TERMINAL_STATUSES:
        # redelivered work item: the record is final, leave it alone
        logger.warning("[%s] already %s; skipping redelivery", job_id, job.status)
        return JobResult.model_validate(job.result) if job.status == "completed" and job.result else None

    try:
        safe_client_id = _validate(ctx, client_id, prompt)
    except ValidationError as e:
        await _fail(ctx, job_id, e)
        raise

    logger.info("[%s] generate start clientId=%s promptLength=%d", job_id, safe_client_id, len(str(prompt)))
    await recorder.append_log(job_id, "Job started")

    bucket = config.s3_bucket
    workspace: Optional[Workspace] = None

    try:
        await recorder.record_transition(job_id, status="active", step="prepare", error=None)
        await recorder.append_log(job_id, "Preparing workspace")
        workspace = allocate_workspace()
        project_dir = copy_scaffold(workspace, config.template_dir)

        await _enter_stage(ctx, job_id, "generate", "Generating project files with OpenAI")
        generated = await generate_site_files(ctx.http_client, config, str(prompt), job_id)
        written = materialize(project_dir, generated.files, generated.site_title, fallback_title=safe_client_id)
        await recorder.append_log(job_id, f"Generated {len(written)} files")

        await _enter_stage(ctx, job_id, "install", "Installing dependencies")
        command, args = INSTALL_COMMAND
        await run_command(command, args, cwd=project_dir, job_id=job_id, sink=recorder.sink(), env=INSTALL_ENV)

        await _enter_stage(ctx, job_id, "build", "Building project with Vite")
        command, args = BUILD_COMMAND
        await run_command(command, args, cwd=project_dir, job_id=job_id, sink=recorder.sink())

        src_prefix = f"{safe_client_id}/src"
        build_prefix = f"{safe_client_id}/build"

        await _enter_stage(ctx, job_id, "upload-src", "Uploading src to S3")
        await publish_directory(
            ctx.s3, bucket, project_dir, src_prefix,
            ignore_dirs=SOURCE_IGNORE_DIRS,
            acl=config.s3_object_acl,
        )

        await _enter_stage(ctx, job_id, "upload-build", "Uploading build to S3")
        await publish_directory(ctx.s3, bucket, workspace.build_dir, build_prefix, acl=config.s3_object_acl)

        result = JobResult(
            client_id=safe_client_id,
            src_prefix=src_prefix,
            build_prefix=build_prefix,
            build_url=build_public_url(config, build_prefix),
            s3_src=f"s3://{bucket}/{src_prefix}",
            s3_build=f"s3://{bucket}/{build_prefix}",
        )
        logger.info("[%s] upload ok src=%s build=%s", job_id, src_prefix, build_prefix)

    except asyncio.CancelledError:
        # queue job timeout or worker shutdown
        logger.warning("[%s] cancelled", job_id)
        await _fail(ctx, job_id, PipelineError(CANCELLED_MESSAGE))
        raise

    except Exception as e:
        logger.exception("[%s] failed", job_id)
        await _fail(ctx, job_id, e)
        raise

    finally:
        destroy_workspace(workspace, keep=config.keep_workdir, job_id=job_id)

    # outside the guarded region: a completed record is never rewritten as failed
    await recorder.record_transition(
        job_id,
        status="completed",
        step="completed",
        result=result.to_record(),
        tokens_prompt=generated.tokens.prompt,
        tokens_completion=generated.tokens.completion,
        tokens_total=generated.tokens.total,
        model=generated.model,
        error=None,
    )
    await recorder.append_log(job_id, f"Completed. Tokens: {generated.tokens.total}")
    return result
