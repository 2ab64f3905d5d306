"""Claude API client — Structured Outputs, prompt caching, model routing.

Two model tiers:
  - FAST: claude-haiku-4-5 for cheap, high-volume calls
  - SMART: claude-sonnet-4-5 for subscription classification

Usage:
    from app.utils.claude_client import claude_structured
    result = await claude_structured(
        prompt="Classify this email...",
        schema=CLASSIFICATION_SCHEMA,
        system="You classify subscription emails.",
        model_tier="smart",
    )
"""

import json
import logging
from typing import Any

import httpx

from app.config import settings

log = logging.getLogger("subscout.claude")

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"

MODELS = {
    "fast": "claude-haiku-4-5-20251001",
    "smart": "claude-sonnet-4-5-20250929",
}


class ClaudeError(Exception):
    """Claude call failed or returned no usable structured output."""


def _headers(*, cache: bool = False) -> dict:
    """Build API headers. Enable prompt caching when static prompts are reused."""
    h = {
        "x-api-key": settings.anthropic_api_key,
        "anthropic-version": API_VERSION,
        "content-type": "application/json",
    }
    if cache:
        h["anthropic-beta"] = "prompt-caching-2024-07-31"
    return h


async def claude_structured(
    prompt: str,
    schema: dict,
    *,
    system: str = "",
    model_tier: str = "fast",
    max_tokens: int = 1024,
    cache_system: bool = True,
    timeout: int = 30,
    raise_errors: bool = False,
) -> dict | None:
    """Call Claude with guaranteed-valid JSON output (Structured Outputs).

    Args:
        prompt: User message content
        schema: JSON Schema that the model MUST conform to
        system: System prompt (cached if cache_system=True)
        model_tier: "fast" (Haiku) or "smart" (Sonnet)
        max_tokens: Max output tokens
        cache_system: Whether to mark the system prompt as cacheable
        timeout: Request timeout seconds
        raise_errors: Raise ClaudeError instead of returning None

    Returns:
        Parsed dict conforming to schema, or None on failure
    """
    try:
        return await _structured_call(
            prompt, schema, system=system, model_tier=model_tier,
            max_tokens=max_tokens, cache_system=cache_system, timeout=timeout,
        )
    except ClaudeError as e:
        log.warning(f"Claude structured call failed: {e}")
        if raise_errors:
            raise
        return None


async def _structured_call(
    prompt: str,
    schema: dict,
    *,
    system: str,
    model_tier: str,
    max_tokens: int,
    cache_system: bool,
    timeout: int,
) -> dict:
    if not settings.anthropic_api_key:
        raise ClaudeError("ANTHROPIC_API_KEY is not configured")

    model = MODELS.get(model_tier, MODELS["fast"])

    system_blocks = []
    if system:
        block = {"type": "text", "text": system}
        if cache_system:
            block["cache_control"] = {"type": "ephemeral"}
        system_blocks.append(block)

    body: dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    if system_blocks:
        body["system"] = system_blocks

    # Tool-based schema enforcement
    body["tools"] = [
        {
            "name": "structured_output",
            "description": "Return structured data matching the required schema.",
            "input_schema": schema,
        }
    ]
    body["tool_choice"] = {"type": "tool", "name": "structured_output"}

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(
                API_URL,
                headers=_headers(cache=cache_system),
                json=body,
            )
    except httpx.HTTPError as e:
        raise ClaudeError(f"request error: {e}") from e

    if resp.status_code != 200:
        raise ClaudeError(f"Claude API {resp.status_code}: {resp.text[:200]}")

    try:
        data = resp.json()
    except ValueError as e:
        raise ClaudeError(f"invalid JSON envelope: {e}") from e

    for block in data.get("content", []):
        if block.get("type") == "tool_use" and block.get("name") == "structured_output":
            return block.get("input") or {}
        # Some responses come back as plain text JSON despite tool_choice
        if block.get("type") == "text":
            parsed = safe_json_parse(block.get("text", ""))
            if isinstance(parsed, dict):
                return parsed

    raise ClaudeError("no tool_use block in response")


def safe_json_parse(text: str) -> dict | list | None:
    """Parse JSON from text that may contain markdown fences or preamble."""
    if not text:
        return None

    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines if not line.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for start_char, end_char in [("{", "}"), ("[", "]")]:
        start = cleaned.find(start_char)
        end = cleaned.rfind(end_char)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                continue

    log.debug(f"JSON parse failed: {text[:100]}...")
    return None
