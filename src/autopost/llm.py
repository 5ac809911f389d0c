"""Shared LLM calling utilities.

Centralizes all Claude invocations through the Anthropic API. Every call
takes the API key explicitly so the credential rotator decides which key
serves which item.
"""

from __future__ import annotations

import logging
import re

import anthropic
from pydantic import BaseModel

from autopost.errors import ProviderError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Model name mapping
# ---------------------------------------------------------------------------

_MODEL_MAP: dict[str, str] = {
    "sonnet": "claude-sonnet-4-6",
    "haiku": "claude-haiku-4-5-20251001",
    "opus": "claude-opus-4-6",
}

_DEFAULT_MODEL = "claude-haiku-4-5-20251001"


def resolve_model(model: str | None) -> str:
    """Resolve a short model name to an API model ID."""
    if model is None:
        return _DEFAULT_MODEL
    return _MODEL_MAP.get(model, model)


class Completion(BaseModel):
    """Text returned by one call plus the tokens it cost."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def usage_cost(self) -> int:
        return self.input_tokens + self.output_tokens


def call_claude(
    system_prompt: str,
    user_prompt: str,
    *,
    api_key: str,
    model: str | None = None,
    timeout: int = 60,
    max_tokens: int = 2200,
    label: str = "rewrite",
) -> Completion:
    """Call Claude via the Anthropic API and return the response text.

    Args:
        system_prompt: System prompt for the LLM.
        user_prompt: User/content prompt.
        api_key: The provider key chosen for this call.
        model: Optional model override (e.g. "sonnet", "haiku").
        timeout: Request timeout in seconds.
        max_tokens: Output token ceiling.
        label: Label for logging.

    Raises:
        ProviderError: On rate limits, timeouts, API errors, and empty
            responses alike. No retry is attempted.
    """
    if not api_key:
        raise ProviderError(f"No API key provided (label={label})")

    client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
    resolved_model = resolve_model(model)

    logger.debug("Calling Anthropic API model=%s (%s)", resolved_model, label)

    kwargs: dict[str, object] = {
        "model": resolved_model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": user_prompt}],
    }
    if system_prompt.strip():
        kwargs["system"] = system_prompt

    try:
        response = client.messages.create(**kwargs)  # type: ignore[arg-type]
    except anthropic.APIError as exc:
        raise ProviderError(f"Anthropic API failed (label={label}): {exc}") from exc

    text = "".join(block.text for block in response.content if block.type == "text").strip()
    if not text:
        raise ProviderError(f"Anthropic API returned empty response (label={label})")

    usage = getattr(response, "usage", None)
    return Completion(
        text=text,
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
    )


# ---------------------------------------------------------------------------
# Output cleanup helpers
# ---------------------------------------------------------------------------

_HTML_FENCE_RE = re.compile(r"```(?:html)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)
_ANCHOR_RE = re.compile(r"<a\b[^>]*>(.*?)</a>", re.DOTALL | re.IGNORECASE)
_STRAY_HTML_MARKER_RE = re.compile(r"\.\.\.\s*html", re.IGNORECASE)


def strip_html_fences(text: str) -> str:
    """Strip markdown code fences wrapped around generated HTML."""
    text = text.strip()
    match = _HTML_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def clean_generated_html(text: str) -> str:
    """Normalize rewritten article HTML.

    Removes code fences and stray ``...html`` markers, and unwraps links so
    the published post never points readers back at the source site.
    """
    text = strip_html_fences(text)
    text = _STRAY_HTML_MARKER_RE.sub("", text)
    text = _ANCHOR_RE.sub(r"\1", text)
    return text.strip()
