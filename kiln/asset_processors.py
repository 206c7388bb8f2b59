"""Asset processors for Kiln.

This module contains implementations of the AssetProcessor protocol. Each
processor handles one transformation and skips assets it doesn't apply to.

Processors are selected by ProcessorKind, in two fixed orders:

- transformation: template, markdown, scss, js_bundle, image, favicon
- finalization: canonicalize, minify_html, minify_js

Key classes:
- TemplateProcessor: Extracts frontmatter and compiles template expressions.
- MarkdownProcessor: Renders Markdown to HTML.
- ScssProcessor: Compiles SCSS with the ``sass`` executable.
- JsBundleProcessor: Bundles JavaScript with the ``esbuild`` executable.
- ImageResizeProcessor: Downscales oversized images with Pillow.
- FaviconProcessor: Converts ``favicon.png`` to an ICO file.
- CanonicalizeProcessor: Rewrites URLs in HTML to absolute URLs.
- MinifyHtmlProcessor: Minifies HTML with minify-html.
- MinifyJsProcessor: Minifies JavaScript with rjsmin.
"""

from __future__ import annotations

import io
import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

import minify_html
from PIL import Image, UnidentifiedImageError
from rjsmin import jsmin

from .asset import Asset
from .context import SOURCE_ROOT_KEY, Context
from .errors import CompilationError, MalformedError
from .executable_utils import find_executable
from .frontmatter import extract_frontmatter
from .html_utils import canonicalize_html
from .media_types import (
    CSS,
    HTML,
    ICO,
    JAVASCRIPT,
    MARKDOWN,
    PNG,
    SCSS,
    MediaCategory,
)
from .renderers import MarkdownRenderer
from .templates import compile_template

logger = logging.getLogger(__name__)

DEFAULT_CANONICAL_ROOT = "http://localhost/"
DEFAULT_MAX_DIMENSION = 1920
FAVICON_NAME = "favicon.png"
FAVICON_SIZE = (32, 32)


class ProcessorKind(Enum):
    """Every processor that can be named in configuration."""

    TEMPLATE = "template"
    MARKDOWN = "markdown"
    SCSS = "scss"
    JS_BUNDLE = "js_bundle"
    IMAGE = "image"
    FAVICON = "favicon"
    PATTERN = "pattern"
    CANONICALIZE = "canonicalize"
    MINIFY_HTML = "minify_html"
    MINIFY_JS = "minify_js"

    @classmethod
    def from_name(cls, name: str) -> ProcessorKind | None:
        try:
            return cls(name)
        except ValueError:
            return None


TRANSFORMATION_ORDER = (
    ProcessorKind.TEMPLATE,
    ProcessorKind.MARKDOWN,
    ProcessorKind.SCSS,
    ProcessorKind.JS_BUNDLE,
    ProcessorKind.IMAGE,
    ProcessorKind.FAVICON,
)

FINALIZATION_ORDER = (
    ProcessorKind.CANONICALIZE,
    ProcessorKind.MINIFY_HTML,
    ProcessorKind.MINIFY_JS,
)


@dataclass(frozen=True)
class ProcessorConfig:
    """Options for one configured processor.

    Attributes:
        root: Root URL for canonicalize.
        minify: Whether js_bundle minifies its output.
        max_width: Largest image width kept by image.
        max_height: Largest image height kept by image.
    """

    root: str | None = None
    minify: bool = False
    max_width: int = DEFAULT_MAX_DIMENSION
    max_height: int = DEFAULT_MAX_DIMENSION

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ProcessorConfig:
        data = data or {}
        return cls(
            root=data.get("root"),
            minify=bool(data.get("minify", False)),
            max_width=int(data.get("max_width", DEFAULT_MAX_DIMENSION)),
            max_height=int(data.get("max_height", DEFAULT_MAX_DIMENSION)),
        )

    @property
    def canonical_root(self) -> str:
        return self.root or DEFAULT_CANONICAL_ROOT


class BaseAssetProcessor(ABC):
    """Base class for asset processors.

    Subclasses implement ``process``; ``skip`` logs why an asset was left
    alone.
    """

    name = "processor"

    @abstractmethod
    def process(self, context: Context, asset: Asset) -> None:
        """Process an asset in place.

        Args:
            context: Build context for this asset's run.
            asset: Asset to transform.
        """
        ...

    def skip(self, asset: Asset, reason: str) -> None:
        logger.debug("%s: skipping %s: %s", self.name, asset.path, reason)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class TemplateProcessor(BaseAssetProcessor):
    """Compiles template expressions in text assets.

    Frontmatter is stripped first and its values merged into the context,
    so they are visible to the expressions that follow.
    """

    name = "template"

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type.category is not MediaCategory.TEXT:
            self.skip(asset, f"not text: {asset.media_type.name}")
            return
        if asset.is_empty:
            self.skip(asset, "empty")
            return

        frontmatter, body = extract_frontmatter(asset.as_text())
        if frontmatter:
            context.update(Context.from_mapping(frontmatter))
        asset.replace_with_text(compile_template(body, context), asset.media_type)


class MarkdownProcessor(BaseAssetProcessor):
    """Renders Markdown assets to HTML."""

    name = "markdown"

    def __init__(self, renderer: MarkdownRenderer | None = None):
        self.renderer = renderer or MarkdownRenderer()

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type != MARKDOWN:
            self.skip(asset, f"not Markdown: {asset.media_type.name}")
            return
        source = "" if asset.is_empty else asset.as_text()
        asset.replace_with_text(self.renderer.render(source), HTML)


def _source_dir(context: Context, asset: Asset) -> Path | None:
    """Return the on-disk directory an asset was read from, if known."""
    source_root = context.text(SOURCE_ROOT_KEY)
    if not source_root:
        return None
    root = Path(source_root)
    directory = root / PurePosixPath(asset.path).parent
    return directory if directory.is_dir() else root


def _run_tool(cmd: list[str], text: str, cwd: Path | None, tool: str) -> str:
    try:
        result = subprocess.run(
            cmd,
            input=text,
            capture_output=True,
            text=True,
            encoding="utf-8",
            cwd=cwd,
        )
    except OSError as exc:
        raise CompilationError(f"{tool} could not be started: {exc}") from exc
    if result.returncode != 0:
        raise CompilationError(f"{tool} failed: {result.stderr.strip()}")
    return result.stdout


class ScssProcessor(BaseAssetProcessor):
    """Compiles SCSS to CSS using the ``sass`` CLI.

    The asset's own source directory is on the load path, so relative
    ``@use`` and ``@import`` rules resolve the same way they would on disk.
    """

    name = "scss"

    def __init__(self, project_root: Path | None = None):
        self.project_root = project_root

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type != SCSS:
            self.skip(asset, f"not SCSS: {asset.media_type.name}")
            return

        sass_bin = find_executable("sass", self.project_root)
        if not sass_bin:
            raise CompilationError(
                "sass executable not found; install with `npm install -D sass`"
            )

        cmd = [sass_bin, "--stdin", "--no-source-map"]
        directory = _source_dir(context, asset)
        if directory is not None:
            cmd.append(f"--load-path={directory}")
        css = _run_tool(cmd, asset.as_text(), directory, "sass")
        asset.replace_with_text(css, CSS)


class JsBundleProcessor(BaseAssetProcessor):
    """Bundles a JavaScript entry point and its imports using ``esbuild``.

    Each asset is its own entry point; imports resolve relative to the
    asset's source directory.
    """

    name = "js_bundle"

    def __init__(self, minify: bool = False, project_root: Path | None = None):
        self.minify = minify
        self.project_root = project_root

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type != JAVASCRIPT:
            self.skip(asset, f"not JavaScript: {asset.media_type.name}")
            return

        esbuild_bin = find_executable("esbuild", self.project_root)
        if not esbuild_bin:
            raise CompilationError(
                "esbuild executable not found; install with `npm install -D esbuild`"
            )

        cmd = [
            esbuild_bin,
            "--bundle",
            f"--sourcefile={PurePosixPath(asset.path).name}",
            "--log-level=error",
        ]
        if self.minify:
            cmd.append("--minify")
        bundled = _run_tool(cmd, asset.as_text(), _source_dir(context, asset), "esbuild")
        asset.replace_with_text(bundled, JAVASCRIPT)
        logger.debug("js_bundle: bundled %s", asset.path)


class ImageResizeProcessor(BaseAssetProcessor):
    """Downscales images that exceed a maximum size.

    Aspect ratio and image format are preserved; images that already fit
    are left byte-for-byte unchanged.
    """

    name = "image"

    def __init__(self, max_width: int = DEFAULT_MAX_DIMENSION, max_height: int = DEFAULT_MAX_DIMENSION):
        self.max_width = max_width
        self.max_height = max_height

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type.category is not MediaCategory.IMAGE:
            self.skip(asset, f"not an image: {asset.media_type.name}")
            return

        try:
            with Image.open(io.BytesIO(asset.as_bytes())) as img:
                if img.width <= self.max_width and img.height <= self.max_height:
                    self.skip(
                        asset, f"already fits within {self.max_width}x{self.max_height}px"
                    )
                    return
                image_format = img.format
                img.load()
                resized = img.copy()
            resized.thumbnail((self.max_width, self.max_height), Image.Resampling.LANCZOS)
            output = io.BytesIO()
            resized.save(output, format=image_format)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise MalformedError(f"{asset.path}: {exc}") from exc

        asset.replace_with_bytes(output.getvalue(), asset.media_type)


class FaviconProcessor(BaseAssetProcessor):
    """Converts a PNG named ``favicon.png`` into a 32x32 ICO."""

    name = "favicon"

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type != PNG:
            self.skip(asset, f"not a PNG image: {asset.media_type.name}")
            return
        if PurePosixPath(asset.path).name != FAVICON_NAME:
            self.skip(asset, "not a favicon.png")
            return

        try:
            with Image.open(io.BytesIO(asset.as_bytes())) as img:
                icon = img.convert("RGBA")
            output = io.BytesIO()
            icon.save(output, format="ICO", sizes=[FAVICON_SIZE])
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise MalformedError(f"{asset.path}: {exc}") from exc

        asset.replace_with_bytes(output.getvalue(), ICO)
        logger.debug("favicon: converted %s to ICO", asset.path)


class CanonicalizeProcessor(BaseAssetProcessor):
    """Rewrites URLs in HTML assets to absolute URLs under a root."""

    name = "canonicalize"

    def __init__(self, root: str = DEFAULT_CANONICAL_ROOT):
        self.root = root

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type != HTML:
            self.skip(asset, f"not HTML: {asset.media_type.name}")
            return
        if asset.is_empty:
            self.skip(asset, "empty")
            return
        asset.replace_with_text(canonicalize_html(asset.as_text(), asset.path, self.root), HTML)


class MinifyHtmlProcessor(BaseAssetProcessor):
    """Minifies HTML, including inline CSS. Inline scripts are left as written."""

    name = "minify_html"

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type != HTML:
            self.skip(asset, f"not HTML: {asset.media_type.name}")
            return
        if asset.is_empty:
            self.skip(asset, "empty")
            return
        minified = minify_html.minify(asset.as_text(), minify_css=True, minify_js=False)
        asset.replace_with_text(minified, HTML)


class MinifyJsProcessor(BaseAssetProcessor):
    """Minifies JavaScript with rjsmin. ``*.min.js`` files are left alone."""

    name = "minify_js"

    def process(self, context: Context, asset: Asset) -> None:
        if asset.media_type != JAVASCRIPT:
            self.skip(asset, f"not JavaScript: {asset.media_type.name}")
            return
        if asset.path.endswith(".min.js"):
            self.skip(asset, "already minified")
            return
        if asset.is_empty:
            self.skip(asset, "empty")
            return
        asset.replace_with_text(jsmin(asset.as_text()), JAVASCRIPT)


def create_processor(
    kind: ProcessorKind,
    config: ProcessorConfig,
    project_root: Path | None = None,
) -> BaseAssetProcessor | None:
    """Create the processor for ``kind`` configured by ``config``.

    Args:
        kind: Processor kind.
        config: Options for the processor.
        project_root: Directory searched for ``node_modules/.bin`` tools.

    Returns:
        The processor, or None for kinds that are flags rather than
        processors (``pattern``).
    """
    if kind is ProcessorKind.TEMPLATE:
        return TemplateProcessor()
    if kind is ProcessorKind.MARKDOWN:
        return MarkdownProcessor()
    if kind is ProcessorKind.SCSS:
        return ScssProcessor(project_root)
    if kind is ProcessorKind.JS_BUNDLE:
        return JsBundleProcessor(config.minify, project_root)
    if kind is ProcessorKind.IMAGE:
        return ImageResizeProcessor(config.max_width, config.max_height)
    if kind is ProcessorKind.FAVICON:
        return FaviconProcessor()
    if kind is ProcessorKind.CANONICALIZE:
        return CanonicalizeProcessor(config.canonical_root)
    if kind is ProcessorKind.MINIFY_HTML:
        return MinifyHtmlProcessor()
    if kind is ProcessorKind.MINIFY_JS:
        return MinifyJsProcessor()
    return None
