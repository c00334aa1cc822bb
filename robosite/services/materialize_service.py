# FILE: robosite/services/materialize_service.py
"""
Writes model-authored files into the copied scaffold.

Only paths under the allowed namespaces (src/, public/) that stay inside the
project root are written. Anything else is skipped, not fatal: a partial site
still builds, an escaped path never lands on disk.
"""

import html
import logging
import posixpath
import re
from pathlib import Path
from typing import Any, List, Optional

from robosite.core.exceptions import GenerationError
from robosite.services.prompt_service import SITE_NAMESPACES

logger = logging.getLogger("robosite.materialize")

SITE_TITLE_PLACEHOLDER = "__SITE_TITLE__"
DEFAULT_SITE_TITLE = "RoboSite"
ENTRY_HTML = "index.html"

_DRIVE = re.compile(r"^[a-zA-Z]:")


def normalize_generated_path(raw: Any) -> Optional[str]:
    if raw is None or not isinstance(raw, str):
        return None
    p = raw.strip().replace("\\", "/")
    if not p or _DRIVE.match(p):
        return None
    cleaned = posixpath.normpath(p)
    if cleaned.startswith("/") or cleaned == ".." or cleaned.startswith("../") or cleaned == ".":
        return None
    return cleaned


def _is_allowed(rel_path: str) -> bool:
    return any(rel_path.startswith(prefix) for prefix in SITE_NAMESPACES)


def _inside(root: Path, target: Path) -> bool:
    r = root.resolve()
    t = target.resolve()
    return t != r and r in t.parents


def write_generated_files(project_dir: Path, files: Any) -> List[str]:
    if not isinstance(files, list):
        raise GenerationError("OpenAI response is missing the files array.")

    written: List[str] = []
    for i, f in enumerate(files):
        if not isinstance(f, dict):
            logger.debug("skip files[%d]: not an object", i)
            continue

        rel_path = normalize_generated_path(f.get("path"))
        if not rel_path or not _is_allowed(rel_path):
            logger.debug("skip files[%d]: disallowed path %r", i, f.get("path"))
            continue

        content = f.get("content")
        content = "" if content is None else str(content)
        if not content.strip():
            logger.debug("skip files[%d]: empty content for %s", i, rel_path)
            continue

        target = project_dir / rel_path
        if not _inside(project_dir, target):
            logger.debug("skip files[%d]: %s escapes project root", i, rel_path)
            continue

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except (IsADirectoryError, NotADirectoryError, FileExistsError):
            # a file and a directory claimed the same path
            logger.debug("skip files[%d]: %s collides with an earlier entry", i, rel_path)
            continue
        written.append(rel_path)

    return written


def update_site_title(project_dir: Path, title: Optional[str]) -> None:
    if not title:
        return
    index_path = project_dir / ENTRY_HTML
    page = index_path.read_text(encoding="utf-8")
    safe_title = html.escape(str(title).strip() or DEFAULT_SITE_TITLE, quote=False)
    page = page.replace(SITE_TITLE_PLACEHOLDER, safe_title, 1)
    index_path.write_text(page, encoding="utf-8")


def materialize(project_dir: Path, files: Any, site_title: Optional[str], fallback_title: Optional[str] = None) -> List[str]:
    written = write_generated_files(project_dir, files)
    update_site_title(project_dir, site_title or fallback_title or DEFAULT_SITE_TITLE)
    return written
