"""Text transformation — LLM rewrite plus image alt text, title, and tags."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from autopost.config import LLMConfig
from autopost.errors import ProviderError
from autopost.llm import call_claude, clean_generated_html
from autopost.models import Credential, TransformResult
from autopost.prompts import (
    get_alt_text_prompt,
    get_image_title_prompt,
    get_rewrite_prompts,
    get_tags_prompt,
)

logger = logging.getLogger(__name__)


class Transformer(ABC):
    """Turns a source article into publishable text with one credential."""

    @abstractmethod
    def transform(
        self, title: str, snippet: str, content: str, credential: Credential
    ) -> TransformResult:
        """Rewrite the article and generate its image metadata.

        Raises:
            ProviderError: If the rewrite itself fails.
        """


class ClaudeTransformer(Transformer):
    """Transformer backed by the Anthropic API."""

    def __init__(self, config: LLMConfig) -> None:
        self._config = config
        self._cost = 0

    def transform(
        self, title: str, snippet: str, content: str, credential: Credential
    ) -> TransformResult:
        self._cost = 0
        api_key = credential.secret.get_secret_value()

        html = self.rewrite(title, snippet, content, api_key=api_key)
        alt_text = self.generate_alt(title, snippet, api_key=api_key)
        image_title = self.generate_title(title, snippet, api_key=api_key)
        tags = self.generate_tags(title, snippet, api_key=api_key)

        return TransformResult(
            html=html,
            alt_text=alt_text,
            image_title=image_title,
            tags=tags,
            usage_cost=self._cost,
        )

    def rewrite(self, title: str, snippet: str, content: str, *, api_key: str) -> str:
        """Rewrite the article body as HTML. Failure is fatal for the item."""
        system, user = get_rewrite_prompts(
            title,
            snippet,
            content,
            language=self._config.language,
            word_count=self._config.target_word_count,
        )
        html = clean_generated_html(self._complete(system, user, api_key=api_key, label="rewrite"))
        if not html:
            raise ProviderError("Rewrite produced no content")
        return html

    def generate_alt(self, title: str, snippet: str, *, api_key: str) -> str:
        """Image alt text; falls back to the article title."""
        prompt = get_alt_text_prompt(title, snippet, language=self._config.language)
        return self._metadata(prompt, api_key=api_key, label="alt", max_tokens=40) or title

    def generate_title(self, title: str, snippet: str, *, api_key: str) -> str:
        """Image title text; falls back to the article title."""
        prompt = get_image_title_prompt(title, snippet, language=self._config.language)
        return self._metadata(prompt, api_key=api_key, label="image-title", max_tokens=20) or title

    def generate_tags(self, title: str, snippet: str, *, api_key: str) -> list[str]:
        """Post labels; falls back to no labels."""
        prompt = get_tags_prompt(title, snippet, language=self._config.language)
        raw = self._metadata(prompt, api_key=api_key, label="tags", max_tokens=60)
        tags: list[str] = []
        for tag in raw.split(","):
            tag = tag.strip().strip("#").strip()
            if tag and tag not in tags:
                tags.append(tag)
        return tags[:6]

    # ── Private helpers ──────────────────────────────────────────

    def _complete(
        self,
        system: str,
        user: str,
        *,
        api_key: str,
        label: str,
        max_tokens: int | None = None,
    ) -> str:
        completion = call_claude(
            system,
            user,
            api_key=api_key,
            model=self._config.model,
            timeout=self._config.timeout,
            max_tokens=max_tokens or self._config.max_tokens,
            label=label,
        )
        self._cost += completion.usage_cost
        return completion.text

    def _metadata(self, prompt: str, *, api_key: str, label: str, max_tokens: int) -> str:
        try:
            text = self._complete("", prompt, api_key=api_key, label=label, max_tokens=max_tokens)
        except ProviderError as exc:
            logger.warning("%s generation failed, using fallback: %s", label, exc)
            return ""
        return text.strip().strip('"').strip()
