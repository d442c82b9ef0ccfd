"""Crash-safe JSON files for persisted executions.

State files and the CLI execution index are rewritten after every event.
Each rewrite goes to a hidden sibling file that replaces the target only
once it is fully written, so an interrupted process leaves the last saved
state readable.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from ingestloop.utils.logging import get_logger

logger = get_logger("utils.atomic")


class AtomicWriteError(Exception):
    """A state or index file could not be replaced."""

    pass


def atomic_write_json(
    path: Path,
    data: Any,
    indent: int = 2,
    encoding: str = "utf-8",
) -> None:
    """
    Replace ``path`` with ``data`` serialized as JSON.

    The parent directory is created on first use. On any failure the
    previous file is left as it was and the partial file is removed.

    Raises:
        AtomicWriteError: If serialization or the replace fails
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".partial")
    partial = Path(name)

    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            json.dump(data, f, indent=indent)
        partial.replace(path)
    except (OSError, TypeError, ValueError) as e:
        partial.unlink(missing_ok=True)
        logger.error("state_write_failed", path=str(path), error=str(e))
        raise AtomicWriteError(f"Failed to write {path}: {e}") from e

    logger.debug("state_written", path=str(path))
