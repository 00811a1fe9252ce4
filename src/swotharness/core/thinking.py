"""Separate model reasoning from the visible reply."""

from __future__ import annotations

import re

_THINKING_TAG = re.compile(r"^\s*<thinking>(.*?)</thinking>\s*", re.DOTALL)


def extract_thinking(
    content: str, structured: str | None = None,
) -> tuple[str | None, str]:
    """Return ``(thinking, clean_content)``.

    Structured thinking reported by the transport wins and leaves the text
    untouched. Otherwise a ``<thinking>...</thinking>`` wrapper at the very
    start of the text is lifted out; tags anywhere else are left alone.
    """
    if structured:
        return structured, content

    match = _THINKING_TAG.match(content)
    if match is None:
        return None, content
    return match.group(1).strip(), content[match.end():]
