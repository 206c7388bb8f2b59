"""Error types for Kiln.

Processors report problems by raising one of the ``ProcessingError``
subclasses below. The orchestrator decides what each one means for the
asset being built:

- NonTextualError / NonBinaryError: the caller asked for the wrong
  representation of an asset's contents.
- MalformedError: the asset's bytes don't parse as their declared type.
- CompilationError: a downstream tool or compiler failed.
- TemplateError: the template compiler rejected the asset. Unlike other
  processing errors, this aborts the asset's run.
- AssetDeferred: not a failure. The asset can't finish during this pass and
  should be retried once other assets have contributed to the build context.
"""

from __future__ import annotations

from pathlib import Path


class ProcessingError(Exception):
    """Base class for errors raised while processing a single asset."""


class NonTextualError(ProcessingError):
    """Asset contents were requested as text but aren't textual."""

    def __init__(self, path: str | None = None):
        self.path = path
        super().__init__(f"{path}: contents are not text" if path else "contents are not text")


class NonBinaryError(ProcessingError):
    """Asset contents were requested as bytes but aren't binary."""

    def __init__(self, path: str | None = None):
        self.path = path
        super().__init__(
            f"{path}: contents are not binary" if path else "contents are not binary"
        )


class MalformedError(ProcessingError):
    """Asset contents don't parse according to their media type.

    Attributes:
        message: Human-readable description of the problem.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class CompilationError(ProcessingError):
    """A compiler or external tool failed while transforming an asset.

    Attributes:
        message: Human-readable description of the failure.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TemplateError(CompilationError):
    """The template compiler rejected an asset's template expressions."""


class AssetDeferred(ProcessingError):
    """Signals that an asset should be retried in a later build pass."""

    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__(reason or "deferred")


class BuildError(Exception):
    """Error during a build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class ConfigError(Exception):
    """Raised when kiln.yaml is missing, invalid, or incomplete."""
