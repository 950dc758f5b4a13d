"""Filesystem writer for generated project files.

Materializes completed ``<file>`` blocks under a project root. Every path
is normalized under a conventional prefix (``src/`` by default) and
re-validated so a generated path can never escape the project root.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath
from typing import Protocol

from codestream.exceptions import FileWriteError

logger = logging.getLogger(__name__)


class FileWriter(Protocol):
    """Anything that can persist a generated file."""

    async def write(self, path: str, content: str) -> str:
        """Persist ``content`` and return the normalized path written."""
        ...


class ProjectFileWriter:
    """Write generated files below ``root_dir``.

    Args:
        root_dir: Project directory files are written under.
        path_prefix: Conventional root prepended to paths not already under it.
    """

    def __init__(self, root_dir: Path | str = ".", path_prefix: str = "src") -> None:
        self.root_dir = Path(root_dir)
        self.path_prefix = path_prefix.strip("/")

    def normalize_path(self, path: str) -> str:
        """Return ``path`` relative to the project root, under the prefix.

        Raises:
            FileWriteError: If the path is empty, absolute, or climbs out of
                the project with ``..``.
        """
        cleaned = path.strip().replace("\\", "/")
        while cleaned.startswith("./"):
            cleaned = cleaned[2:]
        if not cleaned:
            raise FileWriteError("Empty file path", path=path)
        if cleaned.startswith("/") or PurePosixPath(cleaned).is_absolute():
            raise FileWriteError(f"Absolute file path not allowed: {path}", path=path)
        if ".." in PurePosixPath(cleaned).parts:
            raise FileWriteError(f"Path traversal not allowed: {path}", path=path)

        if self.path_prefix and not cleaned.startswith(f"{self.path_prefix}/"):
            cleaned = f"{self.path_prefix}/{cleaned}"
        return cleaned

    async def write(self, path: str, content: str) -> str:
        """Write ``content`` to the normalized ``path``.

        Parent directories are created as needed.

        Returns:
            The normalized relative path that was written.

        Raises:
            FileWriteError: If the path is rejected or the write fails.
        """
        relative = self.normalize_path(path)
        target = self.root_dir / relative
        logger.info("Writing file: %s", relative)

        try:
            await asyncio.to_thread(_write_text, target, content)
        except OSError as e:
            raise FileWriteError(f"{e.strerror or e}", path=relative) from e
        return relative


def _write_text(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
