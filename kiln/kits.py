"""Kit ingestion for Kiln.

A kit is a directory of reusable assets (stylesheets, layouts, images)
mounted into the build under a destination prefix. Kits are declared in the
``kits`` section of kiln.yaml and must contain a ``kit/`` subdirectory; only
its contents are treated as assets.

Before a kit's assets join the build, relative URLs in its HTML, CSS and
SCSS are rewritten to absolute paths under the mount prefix, so links
between kit files keep working wherever the kit is mounted.

Key classes:
- KitConfig: A kit as declared in configuration.
- ResolvedKit: A kit located on disk.
- LocalKitProvider: Resolves kits from local directories.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .html_utils import canonicalize_css, canonicalize_html
from .media_types import CSS, HTML, SCSS, media_type_for_path

logger = logging.getLogger(__name__)

KIT_ASSETS_DIR = "kit"
DEFAULT_KIT_DEST = "/vendor/kits/{name}"

# Placeholder root used while rewriting kit URLs; replaced with "/" afterwards.
PRECANON_ROOT = "http://KITPRECANON/"


@dataclass(frozen=True)
class KitConfig:
    """A kit declared in configuration.

    Attributes:
        name: Kit name (the key under ``kits``).
        path: Kit directory, relative to the configuration file.
        dest: Mount prefix for the kit's assets.
    """

    name: str
    path: str
    dest: str

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any] | None) -> KitConfig:
        """Create a KitConfig from its configuration entry.

        Raises:
            ConfigError: If the entry has no ``path``.
        """
        if not isinstance(data, Mapping) or not data.get("path"):
            raise ConfigError(f"Kit `{name}` must set a local `path`")
        dest = str(data.get("dest") or DEFAULT_KIT_DEST.format(name=name))
        return cls(name=name, path=str(data["path"]), dest=dest)


@dataclass(frozen=True)
class ResolvedKit:
    """A kit located on disk.

    Attributes:
        name: Kit name.
        root: Directory holding the kit's assets.
        dest: Mount prefix for the kit's assets.
    """

    name: str
    root: Path
    dest: str

    @property
    def mount_prefix(self) -> str:
        """Destination without leading or trailing slashes ("" for the site root)."""
        return self.dest.strip("/")

    def mounted_path(self, relative_path: str) -> str:
        prefix = self.mount_prefix
        return f"{prefix}/{relative_path}" if prefix else relative_path


class LocalKitProvider:
    """Resolves kits declared with local directories.

    Attributes:
        kits: Kit declarations.
        config_dir: Directory the kit paths are relative to.
    """

    def __init__(self, kits: Iterable[KitConfig], config_dir: Path):
        self.kits = list(kits)
        self.config_dir = config_dir

    def resolve(self) -> list[ResolvedKit]:
        """Locate every kit on disk.

        Raises:
            ConfigError: If a kit directory or its ``kit/`` subdirectory is
                missing.
        """
        resolved = []
        for kit in self.kits:
            local = (self.config_dir / kit.path).resolve()
            if not local.is_dir():
                raise ConfigError(f"Kit `{kit.name}`: directory not found: {local}")
            assets_dir = local / KIT_ASSETS_DIR
            if not assets_dir.is_dir():
                raise ConfigError(f"Kit `{kit.name}` has no `{KIT_ASSETS_DIR}/` directory")
            logger.info("Kit `%s`: using local path %s", kit.name, local)
            resolved.append(ResolvedKit(name=kit.name, root=assets_dir, dest=kit.dest))
        return resolved


def pre_canonicalize(mounted_path: str, data: bytes) -> bytes:
    """Rewrite relative URLs in one kit asset to absolute paths.

    Only HTML, CSS and SCSS that decode as UTF-8 are rewritten; everything
    else is returned unchanged.

    Args:
        mounted_path: The asset's logical path after mounting.
        data: Raw asset contents.

    Returns:
        The rewritten contents.
    """
    media_type = media_type_for_path(mounted_path)
    if media_type not in (HTML, CSS, SCSS):
        return data
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return data

    if media_type == HTML:
        rewritten = canonicalize_html(text, mounted_path, PRECANON_ROOT)
    else:
        rewritten = canonicalize_css(text, mounted_path, PRECANON_ROOT)
    return rewritten.replace(PRECANON_ROOT, "/").encode("utf-8")


def collect_kit_assets(kit: ResolvedKit) -> list[tuple[str, bytes]]:
    """Read and pre-canonicalize every file in a kit.

    Returns:
        Sorted ``(mounted_path, data)`` pairs.
    """
    assets = []
    for path in sorted(p for p in kit.root.rglob("*") if p.is_file()):
        relative = path.relative_to(kit.root).as_posix()
        mounted = kit.mounted_path(relative)
        assets.append((mounted, pre_canonicalize(mounted, path.read_bytes())))
    logger.debug("Kit `%s`: %d assets mounted at /%s", kit.name, len(assets), kit.mount_prefix)
    return assets
