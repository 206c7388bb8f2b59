"""Frontmatter extraction for Kiln.

A text asset may open with a YAML mapping closed by a line holding only
``***``::

    title: About
    pattern: _layouts/page.html
    ***
    # About us

Text starting directly with ``***`` has empty frontmatter. When the text
before the delimiter isn't a YAML mapping, nothing is extracted and the
delimiter is left as ordinary content.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

FRONTMATTER_DELIMITER = "***"

FRONTMATTER_RE = re.compile(r"^(.*?)(?:^|\n)\*\*\*[ \t]*(?:\r?\n|$)", re.DOTALL)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split YAML frontmatter from the rest of ``text``.

    Args:
        text: Raw asset text.

    Returns:
        Tuple of (frontmatter dict, remaining content). The dict is empty and
        the content unchanged when there is no frontmatter.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    header = match.group(1)
    if not header.strip():
        return {}, text[match.end() :]
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]
