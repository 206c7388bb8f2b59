"""Build context for Kiln.

The Context is the key/value state shared by every asset in a build. Values
form a small closed set:

- text (``str``)
- a list of text
- a table (a nested ``Context``)
- a list of tables (used for directory listings of completed assets)

Keys are partitioned by convention:

- ``"_" + relpath``: raw sources of parts and patterns.
- ``"_assets:" + dir``: metadata tables of completed assets in ``dir``. An
  empty list means the directory is known but nothing in it has completed
  yet, which is different from the key being absent.
- ``"path"``, ``"content"``, ``"pattern"``: transient values used while a
  single asset is processed.
- anything else: user values from configuration and frontmatter.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any, Union

from .errors import AssetDeferred, CompilationError, MalformedError

PART_CONTEXT_PREFIX = "_"
ASSETS_CONTEXT_PREFIX = "_assets:"
SOURCE_ROOT_KEY = "_asset_source_root"

PATH_KEY = "path"
CONTENT_KEY = "content"
PATTERN_KEY = "pattern"

TRANSIENT_KEYS = frozenset({CONTENT_KEY, PATTERN_KEY})

ContextValue = Union[str, list[str], "Context", list["Context"]]


def normalize_directory(directory: str) -> str:
    """Normalize a directory name used in ``_assets:`` keys.

    The source root is the empty string; other directories have no leading
    or trailing slashes.
    """
    cleaned = directory.replace("\\", "/").strip("/")
    return "" if cleaned == "." else cleaned


def assets_key(directory: str) -> str:
    return f"{ASSETS_CONTEXT_PREFIX}{normalize_directory(directory)}"


def part_key(relative_path: str) -> str:
    return f"{PART_CONTEXT_PREFIX}{relative_path}"


def to_context_value(value: Any) -> ContextValue:
    """Convert a plain Python value (as loaded from YAML) to a context value.

    Raises:
        MalformedError: If the value can't be represented in a Context.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Context):
        return value.snapshot()
    if isinstance(value, Mapping):
        return Context.from_mapping(value)
    if isinstance(value, (list, tuple)):
        items = [to_context_value(item) for item in value if item is not None]
        if all(isinstance(item, str) for item in items):
            return items
        if all(isinstance(item, Context) for item in items):
            return items
        raise MalformedError(
            "lists may only contain text values or only tables, not a mix"
        )
    raise MalformedError(f"unsupported context value: {value!r}")


def _copy_value(value: ContextValue) -> ContextValue:
    if isinstance(value, Context):
        return value.snapshot()
    if isinstance(value, list):
        return [_copy_value(item) for item in value]
    return value


class Context(dict):
    """Ordered mapping of build values shared across assets."""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Context:
        """Build a Context from a plain mapping, coercing every value.

        ``None`` values are dropped.

        Raises:
            MalformedError: If a value can't be represented.
        """
        context = cls()
        for key, value in data.items():
            if value is None:
                continue
            context[str(key)] = to_context_value(value)
        return context

    def snapshot(self) -> Context:
        """Return a deep, shared-nothing copy of this context."""
        return Context((key, _copy_value(value)) for key, value in self.items())

    def text(self, key: str) -> str | None:
        """Return the value under ``key`` if it is text."""
        value = self.get(key)
        return value if isinstance(value, str) else None

    def resolve(self, name: str) -> ContextValue | None:
        """Look up ``name``, walking nested tables for dotted names like ``user.name``."""
        if "." not in name:
            return self.get(name)
        current: ContextValue | None = self
        for segment in name.split("."):
            if not isinstance(current, Context):
                return None
            current = current.get(segment)
            if current is None:
                return None
        return current

    def register_directory(self, directory: str) -> None:
        """Mark ``directory`` as known, with no completed assets yet."""
        self.setdefault(assets_key(directory), [])

    def assets_in(self, directory: str) -> list[Context]:
        """Return metadata tables of completed assets in ``directory``.

        Raises:
            AssetDeferred: If the directory is known but nothing in it has
                completed yet.
            CompilationError: If the directory was never observed.
        """
        value = self.get(assets_key(directory))
        if not isinstance(value, list):
            raise CompilationError(f"no assets found at path: {directory}")
        if not value:
            raise AssetDeferred(f"waiting for assets in {directory or '/'}")
        return value

    def merge_assets(self, directory: str, tables: Iterable[Context]) -> None:
        """Append completed-asset tables to a directory listing."""
        key = assets_key(directory)
        listing = self.get(key)
        if not isinstance(listing, list):
            listing = []
        listing.extend(tables)
        self[key] = listing

    def changes_since(self, base: Mapping[str, ContextValue]) -> Context:
        """Return user-visible keys added or changed relative to ``base``.

        Keys starting with ``_`` and transient per-asset keys are left out.
        """
        fragment = Context()
        for key, value in self.items():
            if key.startswith(PART_CONTEXT_PREFIX) or key in TRANSIENT_KEYS:
                continue
            if key in base and base[key] == value:
                continue
            fragment[key] = _copy_value(value)
        return fragment
