"""Path utilities for Kiln.

Logical asset paths are POSIX-style and relative to the source root. These
helpers decide which paths are parts, where a finished asset is written,
and what canonical URL it is published under.

Key functions:
    is_part: Check if a logical path is a part.
    parent_directory: Directory of a logical path ("" for the root).
    output_path: Output path for an asset given its final media type.
    canonical_suffix: URL path an asset is published under.
    canonical_url: Absolute canonical URL for an asset.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath

from .media_types import HTML, MediaType

PART_PATH_PREFIX = "_"
INDEX_FILE = "index.html"
MARKDOWN_SUFFIX = ".md"


def is_part(path: str) -> bool:
    """Check if a logical path is a part (any component starts with ``_``).

    Examples:
        >>> is_part("templates/_layout.html")
        True

        >>> is_part("my_file.html")
        False
    """
    return any(
        component.startswith(PART_PATH_PREFIX)
        for component in path.replace("\\", "/").split("/")
    )


def parent_directory(path: str) -> str:
    """Return the directory of a logical path, "" for files at the root."""
    parent = PurePosixPath(path).parent.as_posix()
    return "" if parent == "." else parent


def _split_name(path: str) -> tuple[str, str]:
    directory = parent_directory(path)
    name = PurePosixPath(path).name
    return (f"{directory}/" if directory else ""), name


def _clean_url_path(path: str) -> str:
    prefix, name = _split_name(path)
    if name == INDEX_FILE:
        return path
    return f"{prefix}{name[: -len(HTML.extension) - 1]}/{INDEX_FILE}"


def output_path(path: str, media_type: MediaType, clean_urls: bool = False) -> str:
    """Return the output path for an asset.

    The final media type's preferred extension replaces the original one
    (or is appended when there is none). With clean URLs, HTML files not
    named ``index.html`` are moved to ``<stem>/index.html``.

    Args:
        path: Logical path of the asset.
        media_type: Final media type of the asset.
        clean_urls: Whether clean URLs are enabled.

    Returns:
        Output path relative to the target directory.

    Examples:
        >>> output_path("about.md", HTML, clean_urls=True)
        'about/index.html'

        >>> output_path("index.md", HTML, clean_urls=True)
        'index.html'
    """
    extension = media_type.extension
    prefix, name = _split_name(path)
    if not extension:
        result = path
    elif "." in name:
        result = f"{prefix}{name.rsplit('.', 1)[0]}.{extension}"
    else:
        result = f"{path}.{extension}"

    if clean_urls and result.endswith(f".{HTML.extension}"):
        return _clean_url_path(result)
    return result


def canonical_suffix(path: str, clean_urls: bool = False) -> str:
    """Return the URL path (without leading slash) an asset is published under.

    A ``.md`` source is treated as the ``.html`` page it becomes. With clean
    URLs, ``page.html`` maps to ``page/`` and ``dir/index.html`` maps to
    ``dir`` (the root index maps to "").

    Examples:
        >>> canonical_suffix("about.md", clean_urls=True)
        'about/'

        >>> canonical_suffix("blog/index.html", clean_urls=True)
        'blog'
    """
    candidate = path
    if candidate.endswith(MARKDOWN_SUFFIX):
        candidate = candidate[: -len(MARKDOWN_SUFFIX)] + f".{HTML.extension}"

    if not clean_urls or not candidate.endswith(f".{HTML.extension}"):
        return candidate

    prefix, name = _split_name(candidate)
    if name == INDEX_FILE:
        return prefix.rstrip("/")
    return f"{prefix}{name[: -len(HTML.extension) - 1]}/"


def canonical_url(root: str, path: str, clean_urls: bool = False) -> str:
    """Return the absolute canonical URL for the asset at ``path``.

    Examples:
        >>> canonical_url("https://example.com/", "about.md", clean_urls=True)
        'https://example.com/about/'
    """
    return f"{root.rstrip('/')}/{canonical_suffix(path, clean_urls)}"


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)
