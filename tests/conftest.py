"""
Shared test fixtures for the site generation worker.

Provides: worker config, in-memory SQLite app context, scripted OpenAI
transport, fake S3 client
"""

import json
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest
from botocore.exceptions import ClientError

from robosite.core.config import DEFAULT_TEMPLATE_DIR, WorkerConfig
from robosite.core.context import create_context
from robosite.core.database import init_models


def chat_payload(content: Any, usage: Optional[Dict[str, int]] = None, model: str = "gpt-4o-mini") -> Dict[str, Any]:
    """Chat-completions style response body."""
    return {
        "id": "chatcmpl-test",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": usage or {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def site_json(files: Optional[List[Dict[str, Any]]] = None, title: str = "Acme Bakery") -> str:
    files = files if files is not None else [
        {"path": "src/App.jsx", "content": "export default function App() { return <h1>Acme</h1>; }"},
        {"path": "src/index.css", "content": "@tailwind base;"},
    ]
    return json.dumps({"siteTitle": title, "files": files})


ScriptedReply = Union[httpx.Response, Dict[str, Any], Exception, Callable[[httpx.Request], Any]]


class ScriptedOpenAI:
    """Replays queued replies for each POST and records the request bodies."""

    def __init__(self, *replies: ScriptedReply):
        self.replies: List[ScriptedReply] = list(replies)
        self.requests: List[httpx.Request] = []

    @property
    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError("unexpected OpenAI call")
        reply = self.replies.pop(0)
        if callable(reply) and not isinstance(reply, httpx.Response):
            reply = await reply(request)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return httpx.Response(200, json=reply)
        return reply

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeS3:
    """Records put_object calls; fails any key containing fail_on."""

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.calls: List[Dict[str, Any]] = []

    def put_object(self, **params: Any) -> Dict[str, Any]:
        self.calls.append(params)
        if self.fail_on and self.fail_on in params["Key"]:
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
                "PutObject",
            )
        return {"ETag": '"etag"'}

    @property
    def keys(self) -> List[str]:
        return [c["Key"] for c in self.calls]


@pytest.fixture
def worker_config() -> WorkerConfig:
    return WorkerConfig(
        openai_api_key="sk-test",
        openai_model="gpt-4o-mini",
        s3_bucket="sites",
        aws_region="eu-west-1",
        template_dir=DEFAULT_TEMPLATE_DIR,
        database_url="sqlite+aiosqlite:///:memory:",
    )


@pytest.fixture
def openai() -> ScriptedOpenAI:
    return ScriptedOpenAI()


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
async def make_context(worker_config: WorkerConfig, openai: ScriptedOpenAI, fake_s3: FakeS3):
    """Factory for an AppContext on in-memory SQLite; config fields can be overridden."""
    created = []

    async def _make(**overrides: Any):
        config = replace(worker_config, **overrides) if overrides else worker_config
        ctx = create_context(config, s3=fake_s3, http_client=openai.client())
        await init_models(ctx.engine)
        created.append(ctx)
        return ctx

    yield _make

    for ctx in created:
        await ctx.close()


@pytest.fixture
async def app_context(make_context):
    return await make_context()
