"""Pipeline orchestrator for Kiln.

Runs the configured processors over one asset, in two phases:

Phase A (transform and wrap):
    Transformation processors run in their fixed order, repeatedly, until
    the asset's media type stops changing or returns to a type already seen.
    If pattern wrapping is enabled and the context names a ``pattern``, the
    current text is stored under ``content``, the asset's contents are
    replaced with the pattern's source, and Phase A starts over.

Phase B (finalize):
    Finalization processors run once over the final contents.

Key classes:
- AssetPipeline: Processes single assets against a context snapshot.
- AssetOutcome: Result of one asset's run.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .asset import Asset
from .asset_processors import (
    FINALIZATION_ORDER,
    TRANSFORMATION_ORDER,
    ProcessorConfig,
    ProcessorKind,
    create_processor,
)
from .context import CONTENT_KEY, PATH_KEY, PATTERN_KEY, Context, part_key
from .errors import (
    AssetDeferred,
    BuildError,
    CompilationError,
    ConfigError,
    NonTextualError,
    ProcessingError,
    TemplateError,
)
from .media_types import media_type_for_path
from .protocols import AssetProcessor
from .utils import canonical_url, output_path

logger = logging.getLogger(__name__)

SOURCE_KEY = "source"
MAX_PATTERN_DEPTH = 32


class OutcomeStatus(Enum):
    COMPLETED = "completed"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass
class AssetOutcome:
    """Result of running the pipeline over one asset.

    Attributes:
        source_path: Logical path of the asset.
        status: Whether the asset completed, deferred, or failed.
        output_path: Output path relative to the target, for completed assets.
        data: Final bytes, for completed assets.
        fragment: Metadata table contributed to the context, for completed
            assets.
        error: What went wrong, for failed assets.
    """

    source_path: str
    status: OutcomeStatus
    output_path: str | None = None
    data: bytes = b""
    fragment: Context = field(default_factory=Context)
    error: BuildError | None = None

    @property
    def completed(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED


def _format_error_message(exc: Exception) -> str:
    """Format an unexpected exception into a readable message."""
    return f"{type(exc).__name__}: {exc}"


class AssetPipeline:
    """Processes assets through the configured processors.

    Attributes:
        processors: Configured processors by kind.
        pattern: Whether pattern wrapping is enabled.
        canonical_root: Root URL published as ``path``; None unless
            canonicalize is configured.
        clean_urls: Whether HTML output uses ``<stem>/index.html`` paths.
    """

    def __init__(
        self,
        processors: Mapping[ProcessorKind, AssetProcessor],
        pattern: bool = False,
        canonical_root: str | None = None,
        clean_urls: bool = False,
    ):
        self.processors = dict(processors)
        self.pattern = pattern
        self.canonical_root = canonical_root
        self.clean_urls = clean_urls
        self._transformations = [
            (kind, self.processors[kind]) for kind in TRANSFORMATION_ORDER if kind in self.processors
        ]
        self._finalizations = [
            (kind, self.processors[kind]) for kind in FINALIZATION_ORDER if kind in self.processors
        ]

    @classmethod
    def from_config(
        cls,
        procs: Mapping[str, Mapping[str, Any] | None],
        clean_urls: bool = False,
        project_root: Path | None = None,
    ) -> AssetPipeline:
        """Create a pipeline from the ``procs`` section of a profile.

        Args:
            procs: Processor names mapped to their options.
            clean_urls: Whether clean URLs are enabled.
            project_root: Directory searched for external tools.

        Returns:
            Configured AssetPipeline. Unknown processor names are logged
            and ignored.

        Raises:
            ConfigError: If a processor's options aren't a mapping or hold
                a value of the wrong type.
        """
        processors: dict[ProcessorKind, AssetProcessor] = {}
        pattern = False
        canonical_root = None
        for name, options in procs.items():
            kind = ProcessorKind.from_name(name)
            if kind is None:
                logger.warning("Unknown processor: %s", name)
                continue
            if kind is ProcessorKind.PATTERN:
                pattern = True
                continue
            if options is not None and not isinstance(options, Mapping):
                raise ConfigError(f"procs.{name}: options must be a mapping")
            try:
                config = ProcessorConfig.from_dict(dict(options or {}))
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"procs.{name}: {exc}") from exc
            processor = create_processor(kind, config, project_root)
            if processor is not None:
                processors[kind] = processor
            if kind is ProcessorKind.CANONICALIZE:
                canonical_root = config.canonical_root
        return cls(processors, pattern=pattern, canonical_root=canonical_root, clean_urls=clean_urls)

    def run(self, snapshot: Context, source_path: str, data: bytes) -> AssetOutcome:
        """Run one asset through both phases.

        ``snapshot`` is never modified; the run works on a private copy.

        Args:
            snapshot: Context shared by every asset in the current pass.
            source_path: Logical path of the asset.
            data: Raw contents of the asset.

        Returns:
            AssetOutcome describing the result.
        """
        context = snapshot.snapshot()
        try:
            asset = self.process(context, Asset(source_path, data))
        except AssetDeferred as exc:
            logger.debug("Deferred %s: %s", source_path, exc.reason or "waiting")
            return AssetOutcome(source_path, OutcomeStatus.DEFERRED)
        except TemplateError as exc:
            return self._failed(source_path, f"Template error: {exc}", exc)
        except ProcessingError as exc:
            return self._failed(source_path, str(exc), exc)
        except Exception as exc:
            return self._failed(source_path, _format_error_message(exc), exc)

        destination = output_path(source_path, asset.media_type, self.clean_urls)
        fragment = context.changes_since(snapshot)
        published = context.text(PATH_KEY) if self.canonical_root is not None else None
        fragment[PATH_KEY] = published or f"/{destination}"
        fragment[SOURCE_KEY] = source_path
        logger.debug("%s -> %s", source_path, destination)
        return AssetOutcome(
            source_path,
            OutcomeStatus.COMPLETED,
            output_path=destination,
            data=asset.as_bytes(),
            fragment=fragment,
        )

    def process(self, context: Context, asset: Asset) -> Asset:
        """Run both phases over ``asset``, updating ``context`` in place.

        Returns:
            The finished asset. This is a different object from ``asset``
            when a pattern was applied.

        Raises:
            AssetDeferred: If any processor asked to retry later.
            TemplateError: If a template failed to compile.
            NonTextualError: If a pattern was applied to non-text contents.
        """
        if self.canonical_root is not None:
            context[PATH_KEY] = canonical_url(self.canonical_root, asset.path, self.clean_urls)

        depth = 0
        while True:
            self._transform(context, asset)
            if not self.pattern or PATTERN_KEY not in context:
                break
            depth += 1
            if depth > MAX_PATTERN_DEPTH:
                raise CompilationError(
                    f"patterns nested more than {MAX_PATTERN_DEPTH} levels deep"
                )
            wrapped = self._apply_pattern(context, asset)
            if wrapped is None:
                break
            asset = wrapped

        self._run_phase(self._finalizations, context, asset)
        return asset

    def _transform(self, context: Context, asset: Asset) -> None:
        seen = []
        while True:
            current = asset.media_type
            seen.append(current)
            self._run_phase(self._transformations, context, asset)
            if asset.media_type == current or asset.media_type in seen:
                return

    def _apply_pattern(self, context: Context, asset: Asset) -> Asset | None:
        pattern = context.pop(PATTERN_KEY)
        if not asset.is_text:
            raise NonTextualError(asset.path)
        context[CONTENT_KEY] = asset.as_text()

        pattern_source = context.text(part_key(pattern)) if isinstance(pattern, str) else None
        if pattern_source is None:
            logger.warning("Pattern not found: %s (used by %s)", pattern, asset.path)
            return None

        logger.debug("Applying pattern %s to %s", pattern, asset.path)
        wrapped = Asset(asset.path, pattern_source.encode("utf-8"))
        wrapped.replace_with_text(pattern_source, media_type_for_path(pattern))
        return wrapped

    def _run_phase(
        self,
        processors: list[tuple[ProcessorKind, AssetProcessor]],
        context: Context,
        asset: Asset,
    ) -> None:
        for kind, processor in processors:
            try:
                processor.process(context, asset)
            except (AssetDeferred, TemplateError):
                raise
            except ProcessingError as exc:
                logger.warning("Processor `%s` failed on %s: %s", kind.value, asset.path, exc)

    def _failed(self, source_path: str, message: str, exc: Exception) -> AssetOutcome:
        error = BuildError(Path(source_path), message, exc)
        return AssetOutcome(source_path, OutcomeStatus.FAILED, error=error)
