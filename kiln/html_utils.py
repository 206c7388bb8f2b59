"""HTML utility functions for Kiln.

This module provides the URL rewriting used to canonicalize links in HTML
and CSS, turning relative and root-relative URLs into absolute URLs under a
site root.

Functions:
    canonicalize_url: Resolve one URL against a root and an asset path.
    canonicalize_css: Canonicalize every ``url(...)`` in CSS text.
    canonicalize_html: Canonicalize URL attributes and inline styles in HTML.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin

URL_ATTRIBUTES = ("href", "src", "action", "poster", "data", "cite", "formaction")

# URL attribute regex pattern for quoted attribute values
_URL_ATTR_RE = re.compile(
    r"(?P<prefix>(?<![\w-])(?:" + "|".join(URL_ATTRIBUTES) + r")\s*=\s*"
    r"(?P<quote>[\"']))(?P<url>.*?)(?P=quote)",
    re.IGNORECASE | re.DOTALL,
)

_STYLE_ATTR_RE = re.compile(
    r"(?P<prefix>(?<![\w-])style\s*=\s*(?P<quote>[\"']))(?P<css>.*?)(?P=quote)",
    re.IGNORECASE | re.DOTALL,
)

_CSS_URL_RE = re.compile(
    r"(?P<prefix>url\(\s*(?P<quote>[\"']?))(?P<url>.*?)(?P<suffix>(?P=quote)\s*\))",
    re.DOTALL,
)

# Script bodies are left alone; only the opening tag's src is rewritten.
_SCRIPT_RE = re.compile(
    r"(?P<open><script\b[^>]*>)(?P<body>.*?)(?P<close></script\s*>)",
    re.IGNORECASE | re.DOTALL,
)

# URL prefixes that should not be modified
_URL_SKIP_PREFIXES = (
    "http://",
    "https://",
    "//",
    "data:",
    "javascript:",
    "mailto:",
    "tel:",
    "#",
)


def normalize_root(root: str) -> str:
    """Return ``root`` with exactly one trailing slash."""
    return root.rstrip("/") + "/"


def canonicalize_url(url: str, asset_path: str, root: str) -> str:
    """Resolve ``url`` found in the asset at ``asset_path`` to an absolute URL.

    Args:
        url: URL as written in the asset.
        asset_path: Logical path of the asset containing the URL.
        root: Site root URL, e.g. ``https://example.com/``.

    Returns:
        The absolute URL, or ``url`` unchanged if it is empty, already
        qualified, or a special URL.

    Examples:
        >>> canonicalize_url('../styles.css', '/path/to/file.html', 'https://example.com')
        'https://example.com/path/styles.css'

        >>> canonicalize_url('/about', 'blog/post.html', 'https://example.com/')
        'https://example.com/about'

        >>> canonicalize_url('mailto:me@example.com', 'index.html', 'https://example.com/')
        'mailto:me@example.com'
    """
    stripped = url.strip()
    if not stripped or stripped.startswith(_URL_SKIP_PREFIXES):
        return url

    base = normalize_root(root)
    if stripped.startswith("/"):
        return urljoin(base, stripped.lstrip("/"))

    directory = asset_path.rsplit("/", 1)[0] if "/" in asset_path else ""
    directory = directory.strip("/")
    if directory:
        base = urljoin(base, f"{directory}/")
    return urljoin(base, stripped)


def canonicalize_css(css: str, asset_path: str, root: str) -> str:
    """Canonicalize the URLs of every ``url(...)`` in ``css``."""

    def repl(match: re.Match) -> str:
        absolute = canonicalize_url(match.group("url"), asset_path, root)
        return f"{match.group('prefix')}{absolute}{match.group('suffix')}"

    return _CSS_URL_RE.sub(repl, css)


def _canonicalize_markup(html: str, asset_path: str, root: str) -> str:
    def url_repl(match: re.Match) -> str:
        absolute = canonicalize_url(match.group("url"), asset_path, root)
        return f"{match.group('prefix')}{absolute}{match.group('quote')}"

    def style_repl(match: re.Match) -> str:
        css = canonicalize_css(match.group("css"), asset_path, root)
        return f"{match.group('prefix')}{css}{match.group('quote')}"

    html = _URL_ATTR_RE.sub(url_repl, html)
    return _STYLE_ATTR_RE.sub(style_repl, html)


def canonicalize_html(html: str, asset_path: str, root: str) -> str:
    """Rewrite URL attributes and inline ``style`` URLs in HTML.

    Processes href, src, action, poster, data, cite and formaction
    attributes plus ``url(...)`` values inside ``style`` attributes.
    The contents of ``<script>`` elements are not touched.

    Args:
        html: HTML content to process.
        asset_path: Logical path of the HTML asset.
        root: Site root URL.

    Returns:
        HTML with URLs converted to absolute URLs.

    Examples:
        >>> canonicalize_html('<a href="/about">About</a>', 'index.html', 'https://example.com')
        '<a href="https://example.com/about">About</a>'
    """
    parts: list[str] = []
    position = 0
    for match in _SCRIPT_RE.finditer(html):
        parts.append(_canonicalize_markup(html[position : match.start()], asset_path, root))
        parts.append(_canonicalize_markup(match.group("open"), asset_path, root))
        parts.append(match.group("body"))
        parts.append(match.group("close"))
        position = match.end()
    parts.append(_canonicalize_markup(html[position:], asset_path, root))
    return "".join(parts)
