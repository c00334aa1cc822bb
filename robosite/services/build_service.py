# FILE: robosite/services/build_service.py
import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from robosite.core.exceptions import BuildError

logger = logging.getLogger("robosite.build")

# per-line buffer limit for child output (minified bundles print long lines)
STREAM_LIMIT_BYTES = 1024 * 1024

INSTALL_COMMAND = ("npm", ["install", "--include=dev"])
INSTALL_ENV = {"NODE_ENV": "development", "npm_config_production": "false"}
BUILD_COMMAND = ("npm", ["run", "build"])


class LogSink(Protocol):
    async def emit(self, line: str, stream: str, job_id: str) -> None:
        ...


async def _pump(reader: Optional[asyncio.StreamReader], stream: str, job_id: str, sink: LogSink) -> None:
    if reader is None:
        return
    while True:
        raw = await reader.readline()
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if line.strip():
            await sink.emit(line, stream, job_id)


async def run_command(
    command: str,
    args: List[str],
    cwd: Path,
    job_id: str,
    sink: LogSink,
    env: Optional[Dict[str, str]] = None,
) -> None:
    cmd_text = " ".join([command, *args])
    merged_env = os.environ.copy()
    merged_env.update(env or {})

    logger.info("[%s] $ (cwd=%s) %s", job_id, cwd, cmd_text)
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(cwd),
            env=merged_env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT_BYTES,
        )
    except OSError as e:
        raise BuildError(f"{cmd_text} failed to start: {e}") from e

    try:
        await asyncio.gather(
            _pump(proc.stdout, "stdout", job_id, sink),
            _pump(proc.stderr, "stderr", job_id, sink),
        )
    except BaseException as e:
        if proc.returncode is None:
            proc.kill()
        await proc.wait()
        if isinstance(e, ValueError):
            # StreamReader line limit overrun
            raise BuildError(f"{cmd_text} output could not be read: {e}") from e
        raise

    code = await proc.wait()
    if code != 0:
        raise BuildError(f"{cmd_text} failed with code {code}")
