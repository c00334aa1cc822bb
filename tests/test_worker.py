"""
Tests for the queue entrypoint and worker settings.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from robosite import worker
from robosite.core.exceptions import ValidationError
from robosite.services import pipeline_service

from conftest import chat_payload, site_json


class TestWorkerSettings:
    def test_registers_task(self):
        assert worker.generate_site in worker.WorkerSettings.functions
        assert worker.TASK_NAME == worker.generate_site.__name__

    def test_bounded_concurrency_and_tries(self):
        assert worker.WorkerSettings.max_jobs == worker.config.worker_concurrency >= 1
        assert worker.WorkerSettings.max_tries == worker.config.queue_max_tries >= 1
        assert worker.WorkerSettings.queue_name == worker.config.queue_name


class TestGenerateSiteTask:
    async def test_runs_pipeline_with_queue_job_id(self, app_context, openai, monkeypatch, tmp_path):
        async def fake_run_command(command, args, cwd, job_id, sink, env=None):
            if args == ["run", "build"]:
                (cwd / "build").mkdir()
                (cwd / "build" / "index.html").write_text("<html></html>", encoding="utf-8")

        monkeypatch.setattr(pipeline_service, "run_command", fake_run_command)
        openai.replies.append(chat_payload(site_json()))

        record = await worker.generate_site({"app": app_context, "job_id": "arq-123", "job_try": 1}, "acme", "brief")

        assert record["clientId"] == "acme"
        assert record["buildPrefix"] == "acme/build"
        job = await app_context.recorder.get_job("arq-123")
        assert job.status == "completed"

    async def test_validation_error_propagates(self, app_context):
        with pytest.raises(ValidationError):
            await worker.generate_site({"app": app_context, "job_id": "arq-bad"}, "", "brief")
        job = await app_context.recorder.get_job("arq-bad")
        assert job.status == "failed"


class TestLifecycleHooks:
    async def test_shutdown_closes_context(self):
        app = AsyncMock()
        await worker.WorkerSettings.on_shutdown({"app": app})
        app.close.assert_awaited_once()

    async def test_shutdown_without_context(self):
        await worker.WorkerSettings.on_shutdown({})


class TestEnqueue:
    async def test_enqueue_pushes_validated_item(self, monkeypatch):
        pool = AsyncMock()
        pool.enqueue_job.return_value = MagicMock(job_id="job-42")
        create_pool = AsyncMock(return_value=pool)
        monkeypatch.setattr(worker, "create_pool", create_pool)

        job_id = await worker.enqueue_site_job("acme", "brief", job_id="job-42", queue_name="sites-test")

        assert job_id == "job-42"
        pool.enqueue_job.assert_awaited_once_with(
            "generate_site", "acme", "brief", _job_id="job-42", _queue_name="sites-test"
        )
        assert create_pool.await_args.kwargs["default_queue_name"] == "sites-test"
        pool.close.assert_awaited_once()

    async def test_duplicate_job_id(self, monkeypatch):
        pool = AsyncMock()
        pool.enqueue_job.return_value = None
        monkeypatch.setattr(worker, "create_pool", AsyncMock(return_value=pool))

        assert await worker.enqueue_site_job("acme", "brief", job_id="dup") is None

    async def test_blank_item_never_reaches_redis(self, monkeypatch):
        create_pool = AsyncMock()
        monkeypatch.setattr(worker, "create_pool", create_pool)

        with pytest.raises(PydanticValidationError):
            await worker.enqueue_site_job("acme", "   ")
        create_pool.assert_not_awaited()
