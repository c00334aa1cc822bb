# FILE: robosite/services/storage_service.py
"""
Artifact publishing to S3-compatible object storage.

- Walks a local tree with an explicit stack (no recursion), skipping ignore dirs
- Uploads every file under <prefix>/<relative path> with a per-extension content type
- Uploads are sequential; a failed put aborts the walk, earlier objects stay in place
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Iterable, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from robosite.core.config import WorkerConfig
from robosite.core.exceptions import PublishError

logger = logging.getLogger("robosite.storage")

DEFAULT_CACHE_CONTROL = "public, max-age=300"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

SOURCE_IGNORE_DIRS = ("node_modules", "build", ".git")

CONTENT_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".htm": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "text/javascript; charset=utf-8",
    ".mjs": "text/javascript; charset=utf-8",
    ".jsx": "text/javascript; charset=utf-8",
    ".ts": "text/javascript; charset=utf-8",
    ".tsx": "text/javascript; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".map": "application/json; charset=utf-8",
    ".txt": "text/plain; charset=utf-8",
    ".xml": "application/xml; charset=utf-8",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
    ".woff2": "font/woff2",
    ".woff": "font/woff",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
}


def content_type_for(path: Any) -> str:
    ext = os.path.splitext(str(path))[1].lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def create_s3_client(config: WorkerConfig):
    kwargs = {"region_name": config.aws_region}
    if config.s3_endpoint:
        kwargs["endpoint_url"] = config.s3_endpoint
        # MinIO / R2 style endpoints need path addressing
        kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})
    return boto3.client("s3", **kwargs)


def list_files(root: Path, ignore_dirs: Iterable[str] = ()) -> List[Path]:
    ignore = set(ignore_dirs)
    found: List[Path] = []
    stack: List[Path] = [root]
    while stack:
        current = stack.pop()
        with os.scandir(current) as it:
            entries = sorted(it, key=lambda e: e.name)
        subdirs: List[Path] = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                if entry.name not in ignore:
                    subdirs.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False):
                found.append(Path(entry.path))
        # reversed so the pop order stays alphabetical
        stack.extend(reversed(subdirs))
    return found


def object_key(prefix: str, root: Path, file_path: Path) -> str:
    rel = file_path.relative_to(root).as_posix()
    return f"{prefix.rstrip('/')}/{rel}"


async def publish_directory(
    s3: Any,
    bucket: str,
    local_dir: Path,
    key_prefix: str,
    ignore_dirs: Iterable[str] = (),
    acl: Optional[str] = None,
    cache_control: str = DEFAULT_CACHE_CONTROL,
) -> List[str]:
    if not local_dir.is_dir():
        raise PublishError(f"Nothing to upload: {local_dir.name} directory not found")

    try:
        files = list_files(local_dir, ignore_dirs)
    except OSError as e:
        raise PublishError(f"Could not list {local_dir.name}: {e}") from e

    keys: List[str] = []
    for file_path in files:
        key = object_key(key_prefix, local_dir, file_path)
        try:
            body = file_path.read_bytes()
            params = {
                "Bucket": bucket,
                "Key": key,
                "Body": body,
                "ContentType": content_type_for(file_path),
                "CacheControl": cache_control,
            }
            if acl:
                params["ACL"] = acl
            await asyncio.to_thread(s3.put_object, **params)
        except (BotoCoreError, ClientError, OSError) as e:
            raise PublishError(f"Upload failed for s3://{bucket}/{key}: {e}") from e
        keys.append(key)

    logger.info("uploaded %d files to s3://%s/%s", len(keys), bucket, key_prefix)
    return keys


def build_public_url(config: WorkerConfig, build_prefix: str) -> str:
    base = (config.public_base_url or "").strip().rstrip("/")
    if base:
        return f"{base}/{build_prefix}/index.html"
    return f"https://{config.s3_bucket}.s3.{config.aws_region}.amazonaws.com/{build_prefix}/index.html"
