"""Tests for the Claude-backed transformer."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from autopost.config import LLMConfig
from autopost.errors import ProviderError
from autopost.llm import Completion
from autopost.models import Credential
from autopost.transform import ClaudeTransformer

CRED = Credential(secret="sk-ant-test", label="key-1")


def _by_label(responses: dict):
    """Fake call_claude that answers (or fails) per call label."""

    def fake(system, user, *, api_key, label, **kwargs):
        assert api_key == "sk-ant-test"
        value = responses[label]
        if isinstance(value, Exception):
            raise value
        return Completion(text=value, input_tokens=10, output_tokens=5)

    return fake


class TestClaudeTransformer:
    def test_full_transform(self):
        fake = _by_label(
            {
                "rewrite": "```html\n<h2>New</h2><p>Body <a href='x'>link</a></p>\n```",
                "alt": '"A phone on a desk"',
                "image-title": "Phone X hero",
                "tags": "phones, #android, phones, launch",
            }
        )
        with patch("autopost.transform.call_claude", side_effect=fake):
            result = ClaudeTransformer(LLMConfig()).transform("Phone X", "snippet", "<p>c</p>", CRED)

        assert result.html == "<h2>New</h2><p>Body link</p>"
        assert result.alt_text == "A phone on a desk"
        assert result.image_title == "Phone X hero"
        assert result.tags == ["phones", "android", "launch"]
        assert result.usage_cost == 60

    def test_metadata_failures_fall_back(self):
        fake = _by_label(
            {
                "rewrite": "<p>Body</p>",
                "alt": ProviderError("rate limited"),
                "image-title": ProviderError("rate limited"),
                "tags": ProviderError("rate limited"),
            }
        )
        with patch("autopost.transform.call_claude", side_effect=fake):
            result = ClaudeTransformer(LLMConfig()).transform("Phone X", "s", "c", CRED)

        assert result.alt_text == "Phone X"
        assert result.image_title == "Phone X"
        assert result.tags == []
        assert result.usage_cost == 15

    def test_rewrite_failure_is_fatal(self):
        fake = _by_label({"rewrite": ProviderError("timeout")})
        with patch("autopost.transform.call_claude", side_effect=fake):
            with pytest.raises(ProviderError):
                ClaudeTransformer(LLMConfig()).transform("Phone X", "s", "c", CRED)

    def test_rewrite_cleaned_to_nothing_is_fatal(self):
        fake = _by_label({"rewrite": "```html\n```"})
        with patch("autopost.transform.call_claude", side_effect=fake):
            with pytest.raises(ProviderError):
                ClaudeTransformer(LLMConfig()).transform("Phone X", "s", "c", CRED)

    def test_tags_capped(self):
        fake = _by_label({"tags": "a,b,c,d,e,f,g,h"})
        with patch("autopost.transform.call_claude", side_effect=fake):
            tags = ClaudeTransformer(LLMConfig()).generate_tags("T", "s", api_key="sk-ant-test")
        assert tags == ["a", "b", "c", "d", "e", "f"]

    def test_language_reaches_prompt(self):
        seen = {}

        def fake(system, user, *, api_key, label, **kwargs):
            seen[label] = system
            return Completion(text="<p>x</p>")

        with patch("autopost.transform.call_claude", side_effect=fake):
            ClaudeTransformer(LLMConfig(language="Indonesian")).rewrite(
                "T", "s", "c", api_key="sk-ant-test"
            )
        assert "Indonesian" in seen["rewrite"]
