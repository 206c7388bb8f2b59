"""Kiln static site asset pipeline.

This package builds a static site from a tree of source assets. Each asset is
run through a configurable set of processors (templates, Markdown, SCSS,
JavaScript bundling, image resizing, URL canonicalization, minification)
and written to an output directory.

The main entry point is the CLI module, which provides commands for creating
a configuration file and building a site.

Architecture:
- Assets and their media types are plain in-memory values.
- A shared Context carries values between assets across build passes.
- The pipeline orchestrator runs processors over one asset at a time.
- The build scheduler runs the orchestrator over every asset in parallel
  passes, retrying assets that wait on others.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
