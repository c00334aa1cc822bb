# FILE: robosite/core/config.py
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# ================== ENV ==================

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / ".env")

# shipped as package data so non-editable installs find it
DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates" / "vite-react-tailwind"


def env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for n in names:
        v = os.environ.get(n)
        if v is not None and str(v).strip() != "":
            return v
    return default


def env_flag(name: str, default: bool = False) -> bool:
    v = env(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes")


def env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    v = env(name)
    if v is None:
        return default
    try:
        return int(v.strip())
    except ValueError:
        return default


def env_float(name: str) -> Optional[float]:
    v = env(name)
    if v is None:
        return None
    try:
        f = float(v.strip())
    except ValueError:
        return None
    return f if math.isfinite(f) else None


# ================== DATABASE ==================

def get_database_url() -> str:
    """DATABASE_URL (postgresql+asyncpg://...) or a local SQLite file."""
    url = env("DATABASE_URL")
    if url:
        if url.startswith("postgres://"):
            url = "postgresql+asyncpg://" + url[len("postgres://"):]
        elif url.startswith("postgresql://"):
            url = "postgresql+asyncpg://" + url[len("postgresql://"):]
        return url
    db_path = ROOT_DIR / "robosite.db"
    return f"sqlite+aiosqlite:///{db_path}"


# ================== WORKER CONFIG ==================

@dataclass(frozen=True)
class WorkerConfig:
    # model endpoint
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_fallback_model: Optional[str] = None
    openai_allow_fallback: bool = True
    openai_timeout_ms: int = 0
    openai_max_tokens: Optional[int] = None
    openai_use_max_completion_tokens: bool = False
    openai_temperature: Optional[float] = None
    openai_reasoning_effort: Optional[str] = None
    openai_response_format: Optional[str] = None
    openai_log_response: bool = False

    # json repair
    json_repair_enabled: bool = True
    json_repair_max_chars: int = 12000
    json_repair_model: Optional[str] = None
    json_repair_response_format: Optional[str] = None

    # object storage
    s3_bucket: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_endpoint: Optional[str] = None
    public_base_url: Optional[str] = None
    s3_object_acl: Optional[str] = None

    # queue / worker
    redis_url: str = "redis://localhost:6379"
    queue_name: str = "sitegen"
    worker_concurrency: int = 2
    queue_max_tries: int = 1
    job_timeout_seconds: int = 3600
    keep_workdir: bool = False
    template_dir: Path = DEFAULT_TEMPLATE_DIR

    database_url: str = "sqlite+aiosqlite:///:memory:"

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        return cls(
            openai_api_url=env("OPENAI_API_URL", default=cls.openai_api_url),
            openai_api_key=env("OPENAI_API_KEY"),
            openai_model=env("OPENAI_MODEL", default=cls.openai_model),
            openai_fallback_model=env("OPENAI_FALLBACK_MODEL"),
            # anything but an explicit "false" keeps the fallback on
            openai_allow_fallback=(env("OPENAI_ALLOW_FALLBACK") or "").strip().lower() != "false",
            openai_timeout_ms=env_int("OPENAI_TIMEOUT_MS", 0) or 0,
            openai_max_tokens=env_int("OPENAI_MAX_TOKENS"),
            openai_use_max_completion_tokens=env_flag("OPENAI_USE_MAX_COMPLETION_TOKENS"),
            openai_temperature=env_float("OPENAI_TEMPERATURE"),
            openai_reasoning_effort=env("OPENAI_REASONING_EFFORT"),
            openai_response_format=env("OPENAI_RESPONSE_FORMAT"),
            openai_log_response=env_flag("OPENAI_LOG_RESPONSE"),
            json_repair_enabled=(env("OPENAI_ENABLE_JSON_REPAIR") or "").strip().lower() != "false",
            json_repair_max_chars=env_int("OPENAI_JSON_REPAIR_MAX_CHARS", 12000),
            json_repair_model=env("OPENAI_JSON_REPAIR_MODEL"),
            json_repair_response_format=env("OPENAI_JSON_REPAIR_RESPONSE_FORMAT"),
            s3_bucket=env("S3_BUCKET", "AWS_BUCKET_PASSPORTS"),
            aws_region=env("AWS_REGION", "AWS_DEFAULT_REGION", default="us-east-1"),
            s3_endpoint=env("S3_ENDPOINT", "AWS_ENDPOINT"),
            public_base_url=env("S3_PUBLIC_BASE_URL", "AWS_URL_PASSPORTS", "AWS_ENDPOINT_CDN"),
            s3_object_acl=env("S3_OBJECT_ACL"),
            redis_url=env("REDIS_URL", default=cls.redis_url),
            queue_name=env("QUEUE_NAME", default=cls.queue_name),
            worker_concurrency=max(1, env_int("WORKER_CONCURRENCY", 2) or 2),
            queue_max_tries=max(1, env_int("QUEUE_MAX_TRIES", 1) or 1),
            job_timeout_seconds=max(60, env_int("JOB_TIMEOUT_SECONDS", 3600) or 3600),
            keep_workdir=env_flag("ROBOSITE_KEEP_WORKDIR"),
            template_dir=Path(env("ROBOSITE_TEMPLATE_DIR", default=str(DEFAULT_TEMPLATE_DIR))),
            database_url=get_database_url(),
        )
