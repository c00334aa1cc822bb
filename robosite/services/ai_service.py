# FILE: robosite/services/ai_service.py

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from robosite.core.config import WorkerConfig
from robosite.core.exceptions import GenerationError, GenerationTimeoutError
from robosite.schemas.generate import TokenUsage

logger = logging.getLogger("robosite.ai")

_RESPONSES_URL = re.compile(r"/v1/responses/?$")
_MAX_COMPLETION_MODELS = re.compile(r"^gpt-5", re.I)


@dataclass
class GenerationOptions:
    model_override: Optional[str] = None
    response_format_override: Optional[str] = None
    # set on the single retry against OPENAI_FALLBACK_MODEL
    is_fallback: bool = False


@dataclass
class ModelResponse:
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None


# =========================
# REQUEST SHAPE
# =========================
def is_responses_endpoint(api_url: str) -> bool:
    return bool(_RESPONSES_URL.search(api_url or ""))


def normalize_responses_text_format(raw_format: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw_format:
        return None
    trimmed = str(raw_format).strip()
    if not trimmed:
        return None
    if trimmed.startswith("{"):
        try:
            parsed = json.loads(trimmed)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass
    return {"type": trimmed}


def build_request_body(
    api_url: str,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: Optional[float] = None,
    reasoning_effort: Optional[str] = None,
    response_format: Optional[str] = None,
    max_tokens: Optional[int] = None,
    use_max_completion_tokens: bool = False,
) -> Dict[str, Any]:
    use_responses = is_responses_endpoint(api_url)
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
    payload: Dict[str, Any] = {"model": model}
    if use_responses:
        payload["input"] = messages
    else:
        payload["messages"] = messages

    if temperature is not None:
        payload["temperature"] = temperature

    if reasoning_effort:
        payload["reasoning"] = {"effort": reasoning_effort}

    if response_format:
        if use_responses:
            fmt = normalize_responses_text_format(response_format)
            if fmt:
                payload["text"] = {"format": fmt}
        else:
            payload["response_format"] = {"type": response_format}

    if max_tokens and max_tokens > 0:
        if use_responses:
            payload["max_output_tokens"] = max_tokens
        elif use_max_completion_tokens or _MAX_COMPLETION_MODELS.match(model or ""):
            payload["max_completion_tokens"] = max_tokens
        else:
            payload["max_tokens"] = max_tokens

    return payload


# =========================
# RESPONSE SHAPE
# =========================
def _join_text_parts(parts: List[Any]) -> str:
    texts: List[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        if part.get("type") == "text" or isinstance(part.get("text"), str):
            texts.append(part.get("text") or "")
    return "\n".join(texts).strip()


def _extract_from_responses(data: Dict[str, Any]) -> Optional[str]:
    output_text = data.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    parts: List[Any] = []
    for item in data.get("output") or []:
        if isinstance(item, dict) and isinstance(item.get("content"), list):
            parts.extend(p for p in item["content"] if isinstance(p, dict) and isinstance(p.get("text"), str))
    joined = "\n".join(p["text"] for p in parts).strip()
    return joined or None


def _first_choice(data: Dict[str, Any]) -> Dict[str, Any]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def extract_content(data: Any, responses_style: bool) -> Optional[str]:
    """
    Normalize both endpoint conventions to one text value.
    Returns None when there is no usable text.
    """
    if not isinstance(data, dict):
        return None

    if responses_style:
        text = _extract_from_responses(data)
        if text:
            return text

    message = _first_choice(data).get("message") or {}
    raw = message.get("content") if isinstance(message, dict) else None

    if isinstance(raw, list):
        raw = _join_text_parts(raw)
    elif isinstance(raw, dict):
        raw = raw.get("text")

    if not isinstance(raw, str) or not raw.strip():
        return None
    return raw.strip()


def extract_finish_reason(data: Any) -> str:
    if not isinstance(data, dict):
        return "unknown"
    reason = _first_choice(data).get("finish_reason")
    if reason:
        return str(reason)
    details = data.get("incomplete_details")
    if isinstance(details, dict) and details.get("reason"):
        return str(details["reason"])
    return str(data.get("status") or "unknown")


def normalize_usage(usage: Any) -> TokenUsage:
    if not isinstance(usage, dict):
        return TokenUsage()

    def _int(*keys: str) -> int:
        for k in keys:
            v = usage.get(k)
            if isinstance(v, (int, float)):
                return int(v)
        return 0

    prompt = _int("prompt_tokens", "input_tokens")
    completion = _int("completion_tokens", "output_tokens")
    total = _int("total_tokens") or (prompt + completion)
    return TokenUsage(prompt=prompt, completion=completion, total=total)


# =========================
# CALL
# =========================
async def _post(http_client: httpx.AsyncClient, config: WorkerConfig, payload: Dict[str, Any]) -> httpx.Response:
    return await http_client.post(
        config.openai_api_url,
        json=payload,
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.openai_api_key}",
        },
    )


async def generate_content(
    http_client: httpx.AsyncClient,
    config: WorkerConfig,
    system_prompt: str,
    user_prompt: str,
    options: Optional[GenerationOptions] = None,
) -> ModelResponse:
    options = options or GenerationOptions()
    if not config.openai_api_key:
        raise GenerationError("OPENAI_API_KEY not configured.")

    model = options.model_override or config.openai_model
    response_format = (
        options.response_format_override
        if options.response_format_override is not None
        else config.openai_response_format
    )
    use_responses = is_responses_endpoint(config.openai_api_url)

    payload = build_request_body(
        config.openai_api_url,
        model,
        system_prompt,
        user_prompt,
        temperature=config.openai_temperature,
        reasoning_effort=config.openai_reasoning_effort,
        response_format=response_format,
        max_tokens=config.openai_max_tokens,
        use_max_completion_tokens=config.openai_use_max_completion_tokens,
    )

    timeout_s = config.openai_timeout_ms / 1000 if config.openai_timeout_ms > 0 else None
    try:
        response = await asyncio.wait_for(_post(http_client, config, payload), timeout=timeout_s)
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        if timeout_s is None:
            # no deadline of ours; the transport gave up
            raise GenerationTimeoutError(f"OpenAI request timed out in transport (model={model})") from e
        raise GenerationTimeoutError(
            f"OpenAI request timed out after {config.openai_timeout_ms}ms (model={model})"
        ) from e
    except httpx.HTTPError as e:
        raise GenerationError(f"OpenAI request failed: {e}") from e

    response_text = response.text
    if response.status_code < 200 or response.status_code >= 300:
        raise GenerationError(f"OpenAI error: {response.status_code} {response_text[:2000]}")

    try:
        data = json.loads(response_text)
    except json.JSONDecodeError as e:
        raise GenerationError(f"OpenAI invalid JSON: {e}. Preview: {response_text[:500]}") from e

    content = extract_content(data, use_responses)

    if not content:
        logger.warning(
            "OpenAI empty content. finish_reason=%s model=%s", extract_finish_reason(data), model
        )
        if config.openai_log_response:
            logger.warning("OpenAI full response: %s", response_text)

        fallback = config.openai_fallback_model
        if (
            not options.is_fallback
            and not options.model_override
            and config.openai_allow_fallback
            and fallback
            and fallback != model
        ):
            logger.warning("Retry with fallback model=%s", fallback)
            return await generate_content(
                http_client,
                config,
                system_prompt,
                user_prompt,
                GenerationOptions(
                    model_override=fallback,
                    response_format_override=options.response_format_override,
                    is_fallback=True,
                ),
            )
        raise GenerationError("OpenAI returned empty content.")

    return ModelResponse(
        content=content,
        usage=normalize_usage(data.get("usage")),
        model=data.get("model") or model,
    )
