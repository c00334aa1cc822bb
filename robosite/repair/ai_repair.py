# FILE: /robosite/repair/ai_repair.py
import json
import logging
import re
from typing import Any, Optional

import httpx

from robosite.core.config import WorkerConfig
from robosite.core.exceptions import GenerationError
from robosite.schemas.generate import GenerationResult, TokenUsage
from robosite.services.ai_service import GenerationOptions, ModelResponse, generate_content
from robosite.services.prompt_service import (
    build_json_repair_system_prompt,
    build_json_repair_user_prompt,
    build_site_system_prompt,
    build_site_user_prompt,
)

logger = logging.getLogger("robosite.repair")

_FENCE = re.compile(r"^```[a-zA-Z]*[ \t]*\n?(.*?)\n?[ \t]*```$", re.S)


class AIJSONError(GenerationError):
    pass


def _strip_code_fences(text: str) -> str:
    t = (text or "").strip()
    m = _FENCE.match(t)
    if m:
        return m.group(1).strip()
    return t


def _outer_braces(text: str) -> Optional[str]:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last <= first:
        return None
    return text[first : last + 1]


def _escape_control_chars_inside_json_strings(s: str) -> str:
    out: list[str] = []
    in_string = False
    escape = False

    for ch in s:
        if in_string:
            if escape:
                out.append(ch)
                escape = False
                continue

            if ch == "\\":
                out.append(ch)
                escape = True
                continue

            if ch == '"':
                out.append(ch)
                in_string = False
                continue

            code = ord(ch)
            if ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                out.append("\\r")
            elif ch == "\t":
                out.append("\\t")
            elif code < 0x20:
                out.append(f"\\u{code:04x}")
            else:
                out.append(ch)
            continue

        if ch == '"':
            in_string = True
        out.append(ch)

    return "".join(out)


def parse_site_json(raw: str) -> Any:
    """
    Fence strip -> strict parse -> outermost {...} -> same with raw newlines escaped.
    Raises AIJSONError when nothing parses.
    """
    if not raw or not raw.strip():
        raise AIJSONError("OpenAI returned invalid response: empty content.")

    cleaned = _strip_code_fences(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        first_error = e

    obj_text = _outer_braces(cleaned)
    if obj_text is not None:
        try:
            return json.loads(obj_text)
        except json.JSONDecodeError:
            pass
        try:
            return json.loads(_escape_control_chars_inside_json_strings(obj_text))
        except json.JSONDecodeError:
            pass

    raise AIJSONError(f"OpenAI returned invalid response: {first_error}")


def _validate_site_payload(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("files"), list):
        raise GenerationError("OpenAI response is missing the files array.")
    return data


async def repair_json_with_ai(
    http_client: httpx.AsyncClient,
    config: WorkerConfig,
    raw_content: str,
    job_id: str,
) -> ModelResponse:
    if not config.json_repair_enabled:
        raise AIJSONError("OpenAI returned invalid response and JSON repair is disabled.")

    max_chars = config.json_repair_max_chars
    clipped = raw_content[:max_chars] if max_chars and max_chars > 0 else raw_content

    logger.warning("[%s] attempting JSON repair (chars=%d)", job_id, len(clipped))

    return await generate_content(
        http_client,
        config,
        build_json_repair_system_prompt(),
        build_json_repair_user_prompt(clipped),
        GenerationOptions(
            model_override=config.json_repair_model or None,
            response_format_override=config.json_repair_response_format or None,
        ),
    )


async def generate_site_files(
    http_client: httpx.AsyncClient,
    config: WorkerConfig,
    brief: str,
    job_id: str,
) -> GenerationResult:
    """One generation call, plus at most one repair call when the output does not parse."""
    first = await generate_content(
        http_client,
        config,
        build_site_system_prompt(),
        build_site_user_prompt(brief),
    )
    usage: TokenUsage = first.usage

    try:
        parsed = parse_site_json(first.content)
    except AIJSONError as e:
        logger.warning("[%s] OpenAI JSON parse error: %s", job_id, e)
        logger.warning("[%s] OpenAI JSON content preview: %s", job_id, (first.content or "")[:800])
        repaired = await repair_json_with_ai(http_client, config, first.content or "", job_id)
        usage = usage.add(repaired.usage)
        parsed = parse_site_json(repaired.content)

    data = _validate_site_payload(parsed)
    title = data.get("siteTitle")

    return GenerationResult(
        site_title=title.strip() if isinstance(title, str) and title.strip() else None,
        files=data["files"],
        tokens=usage,
        model=first.model,
    )
