# FILE: robosite/services/prompt_service.py

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, Sequence

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROMPTS_DIR = PACKAGE_ROOT / "prompts"

# Top-level directories generated files may target (see materialize_service).
SITE_NAMESPACES: Sequence[str] = ("src/", "public/")


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


@lru_cache(maxsize=None)
def _load_prompt_template(filename: str) -> str:
    path = PROMPTS_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {path}")
    return _read_text(path).strip()


def _render_template(template: str, values: Dict[str, str]) -> str:
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace(f"{{{{{key}}}}}", value)
    return rendered


def build_site_system_prompt() -> str:
    return _load_prompt_template("site_system_prompt.txt")


def build_site_user_prompt(brief: str) -> str:
    template = _load_prompt_template("site_user_prompt.txt")
    return _render_template(
        template,
        {
            "ALLOWED_DIRS": " or ".join(SITE_NAMESPACES),
            "SITE_BRIEF": brief or "",
        },
    )


def build_json_repair_system_prompt() -> str:
    return _load_prompt_template("json_repair_system_prompt.txt")


def build_json_repair_user_prompt(clipped_output: str) -> str:
    return _render_template(
        _load_prompt_template("json_repair_user_prompt.txt"),
        {"RAW_OUTPUT": clipped_output or ""},
    )
