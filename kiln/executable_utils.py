"""Executable discovery utilities for Kiln.

External compilers (``sass``, ``esbuild``) are usually installed either
globally or as project dev dependencies, so both places are searched.

Functions:
    find_executable: Locate an executable in PATH or node_modules.
"""

from __future__ import annotations

import shutil
from pathlib import Path


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Args:
        name: Name of the executable to find (e.g., 'sass', 'esbuild').
        project_root: Optional project root whose ``node_modules/.bin`` is
            searched when the executable isn't on PATH.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('esbuild', Path('/my/site'))
        '/my/site/node_modules/.bin/esbuild'
    """
    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        local_bin = project_root / "node_modules" / ".bin"
        local = shutil.which(name, path=str(local_bin))
        if local:
            return local

    return None
