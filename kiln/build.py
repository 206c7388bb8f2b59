"""Site building functionality for Kiln.

This module collects a site's assets, seeds the build context, and drives
the pipeline over every asset in passes until all of them have completed,
failed, or been found stuck in a dependency cycle.

Each pass runs the pending assets concurrently against one frozen snapshot
of the context. Only the scheduler writes files and updates the context,
and only between passes, so assets in the same pass never see each other's
changes.

Key classes:
- BuildScheduler: Runs passes over pending assets.
- BuildResult: Outcome of a build.

Key functions:
- build_site: Build a site from a resolved configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .config import SiteConfig
from .context import SOURCE_ROOT_KEY, Context, part_key
from .errors import BuildError, ConfigError, MalformedError
from .kits import LocalKitProvider, collect_kit_assets
from .pipeline import AssetOutcome, AssetPipeline, OutcomeStatus
from .protocols import KitProvider
from .utils import ensure_clean_dir, is_part, parent_directory

logger = logging.getLogger(__name__)

# Passes without progress allowed per pending asset before the remaining
# assets are declared a dependency cycle.
CYCLE_STALL_FACTOR = 1


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        output_dir: Directory the site was written to.
        written: Output paths written, relative to ``output_dir``.
        errors: Per-asset errors, including dependency cycles.
        cycles: Logical paths of assets stuck in a dependency cycle.
        passes: Number of passes run.
        context: Final build context.
    """

    output_dir: Path
    written: list[str] = field(default_factory=list)
    errors: list[BuildError] = field(default_factory=list)
    cycles: list[str] = field(default_factory=list)
    passes: int = 0
    context: Context = field(default_factory=Context)

    @property
    def succeeded(self) -> int:
        return len(self.written)

    @property
    def failed(self) -> int:
        return len(self.errors)


def collect_source_assets(source_dir: Path, exclude: Path | None = None) -> list[tuple[str, bytes]]:
    """Read every file under ``source_dir``.

    Args:
        source_dir: Directory to walk.
        exclude: Directory to skip, e.g. a target nested in the source.

    Returns:
        ``(logical_path, data)`` pairs sorted by path.
    """
    assets = []
    for path in sorted(source_dir.rglob("*")):
        if not path.is_file():
            continue
        if exclude is not None and path.is_relative_to(exclude):
            continue
        assets.append((path.relative_to(source_dir).as_posix(), path.read_bytes()))
    return assets


def seed_context(
    values: Context,
    source_dir: Path,
    assets: Iterable[tuple[str, bytes]],
) -> tuple[Context, list[tuple[str, bytes]]]:
    """Build the initial context and split parts from regular assets.

    Parts are stored raw under ``"_" + path``. Every directory holding a
    regular asset is registered with an empty listing.

    Returns:
        Tuple of (context, regular assets).
    """
    context = values.snapshot()
    context[SOURCE_ROOT_KEY] = str(source_dir)
    regular = []
    parts = 0
    for path, data in assets:
        if is_part(path):
            context[part_key(path)] = data.decode("utf-8", errors="replace")
            parts += 1
            logger.debug("Cached part: %s", path)
        else:
            regular.append((path, data))
            context.register_directory(parent_directory(path))
    logger.info("Cached %d parts; %d assets to build", parts, len(regular))
    return context, regular


class BuildScheduler:
    """Runs the pipeline over a set of assets in passes.

    Attributes:
        pipeline: Pipeline applied to every asset.
        output_dir: Directory outputs are written to.
        jobs: Worker threads per pass (None for the executor default).
    """

    def __init__(self, pipeline: AssetPipeline, output_dir: Path, jobs: int | None = None):
        self.pipeline = pipeline
        self.output_dir = output_dir
        self.jobs = jobs

    def run(self, context: Context, assets: Iterable[tuple[str, bytes]]) -> BuildResult:
        """Build ``assets`` until none are pending.

        Args:
            context: Initial context; updated with completed assets' listings.
            assets: ``(logical_path, data)`` pairs.

        Returns:
            BuildResult for the run.
        """
        result = BuildResult(output_dir=self.output_dir, context=context)
        pending = dict(sorted(assets))
        written: set[str] = set()
        previous = len(pending)
        stalled = 0

        while pending:
            result.passes += 1
            outcomes = self._run_pass(context.snapshot(), pending)
            counts = dict.fromkeys(OutcomeStatus, 0)
            for outcome in outcomes:
                counts[outcome.status] += 1
                if outcome.status is OutcomeStatus.COMPLETED:
                    self._complete(outcome, context, result, written)
                    del pending[outcome.source_path]
                elif outcome.status is OutcomeStatus.FAILED:
                    logger.error("%s", outcome.error)
                    result.errors.append(outcome.error)
                    del pending[outcome.source_path]

            logger.info(
                "Pass %d: %d completed, %d deferred, %d failed",
                result.passes,
                counts[OutcomeStatus.COMPLETED],
                counts[OutcomeStatus.DEFERRED],
                counts[OutcomeStatus.FAILED],
            )

            if len(pending) < previous:
                stalled = 0
            else:
                stalled += 1
            previous = len(pending)

            if pending and stalled > len(pending) * CYCLE_STALL_FACTOR:
                self._report_cycle(pending, result)
                break

        return result

    def _run_pass(self, snapshot: Context, pending: dict[str, bytes]) -> list[AssetOutcome]:
        with ThreadPoolExecutor(max_workers=self.jobs) as executor:
            return list(
                executor.map(
                    lambda item: self.pipeline.run(snapshot, item[0], item[1]),
                    pending.items(),
                )
            )

    def _complete(
        self,
        outcome: AssetOutcome,
        context: Context,
        result: BuildResult,
        written: set[str],
    ) -> None:
        destination = self.output_dir / outcome.output_path
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(outcome.data)
        except OSError as exc:
            error = BuildError(
                Path(outcome.source_path),
                f"could not write {outcome.output_path}: {exc}",
                exc,
            )
            logger.error("%s", error)
            result.errors.append(error)
            return

        if outcome.output_path in written:
            logger.warning(
                "%s overwrites %s written by another asset",
                outcome.source_path,
                outcome.output_path,
            )
        else:
            written.add(outcome.output_path)
            result.written.append(outcome.output_path)
        context.merge_assets(parent_directory(outcome.source_path), [outcome.fragment])

    def _report_cycle(self, pending: dict[str, bytes], result: BuildResult) -> None:
        for path in pending:
            logger.error("Dependency cycle: %s never completed", path)
            result.cycles.append(path)
            result.errors.append(
                BuildError(Path(path), "dependency cycle: asset was deferred without progress")
            )


def build_site(
    site: SiteConfig,
    jobs: int | None = None,
    clean_output: bool = True,
    kit_provider: KitProvider | None = None,
) -> BuildResult:
    """Build a site.

    Args:
        site: Resolved configuration.
        jobs: Worker threads per pass.
        clean_output: Whether to wipe the output directory before building.
        kit_provider: Source of kits; defaults to the kits in ``site``.

    Returns:
        BuildResult describing the build.

    Raises:
        ConfigError: If the source directory is missing, a kit can't be
            resolved, a processor option is invalid, or the context values
            can't be represented.
    """
    if not site.source_dir.is_dir():
        raise ConfigError(f"Expected source directory at {site.source_dir}")

    try:
        values = Context.from_mapping(site.context)
    except MalformedError as exc:
        raise ConfigError(f"invalid context: {exc.message}") from exc
    pipeline = AssetPipeline.from_config(site.procs, site.clean_urls, site.project_root)

    provider = kit_provider or LocalKitProvider(site.kits, site.project_root)
    assets: dict[str, bytes] = {}
    for kit in provider.resolve():
        assets.update(collect_kit_assets(kit))
    assets.update(collect_source_assets(site.source_dir, exclude=site.target_dir))
    logger.info("Found %d assets in %s", len(assets), site.source_dir)

    if clean_output:
        ensure_clean_dir(site.target_dir)
    else:
        site.target_dir.mkdir(parents=True, exist_ok=True)

    context, regular = seed_context(values, site.source_dir, sorted(assets.items()))
    result = BuildScheduler(pipeline, site.target_dir, jobs).run(context, regular)
    logger.info("Built %d assets (%d errors)", result.succeeded, result.failed)
    return result
