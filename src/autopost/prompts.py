"""Prompt templates for article rewriting and image metadata."""

from __future__ import annotations

REWRITE_SYSTEM_PROMPT = """\
You are a skilled technology news writer. Rewrite the article you are given \
into an original, well-structured blog post written in {language}.

Rules:
- Target roughly {word_count} words.
- Output clean HTML only: <h2>, <h3>, <p>, <ul>, <li>, <strong>. No <html>, \
<head> or <body> wrapper and no code fences.
- Do not include links to the source site.
- Do not invent specifications, prices or dates that are not in the source.
- Finish with a short conclusion paragraph."""

ALT_TEXT_PROMPT = """\
Write one descriptive image alt text (max 12 words, in {language}) for the \
lead image of this article. Reply with the alt text only.

Title: {title}
Snippet: {snippet}"""

IMAGE_TITLE_PROMPT = """\
Write a short SEO-friendly image title (max 8 words, in {language}) for the \
lead image of this article. Reply with the title only.

Title: {title}
Snippet: {snippet}"""

TAGS_PROMPT = """\
Generate 3-6 SEO-friendly tags for this article, in {language}. Reply with a \
single comma-separated line and nothing else.

Title: {title}
Snippet: {snippet}"""


def get_rewrite_prompts(
    title: str,
    snippet: str,
    content: str,
    *,
    language: str = "English",
    word_count: int = 800,
) -> tuple[str, str]:
    """Return (system, user) prompts for the article rewrite."""
    system = REWRITE_SYSTEM_PROMPT.format(language=language, word_count=word_count)
    user = f"Title: {title}\n\nSnippet: {snippet or ''}\n\nContent:\n{content or ''}"
    return system, user


def get_alt_text_prompt(title: str, snippet: str, *, language: str = "English") -> str:
    return ALT_TEXT_PROMPT.format(title=title, snippet=snippet[:500], language=language)


def get_image_title_prompt(title: str, snippet: str, *, language: str = "English") -> str:
    return IMAGE_TITLE_PROMPT.format(title=title, snippet=snippet[:500], language=language)


def get_tags_prompt(title: str, snippet: str, *, language: str = "English") -> str:
    return TAGS_PROMPT.format(title=title, snippet=snippet[:500], language=language)
