"""Stores for plain-data iteration state keyed by execution id."""

from __future__ import annotations

import copy
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ingestloop.processor.states import IterationState
from ingestloop.utils.atomic import atomic_write_json
from ingestloop.utils.logging import get_logger

logger = get_logger("processor.store")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class MemoryStateStore:
    """State store that lives for the lifetime of the process."""

    def __init__(self) -> None:
        self._states: dict[str, dict] = {}

    def load(self, execution_id: str) -> Optional[IterationState]:
        data = self._states.get(execution_id)
        return IterationState.from_dict(copy.deepcopy(data)) if data is not None else None

    def save(self, execution_id: str, state: IterationState) -> None:
        # Stored as plain data so no caller can alias a live state
        self._states[execution_id] = copy.deepcopy(state.to_dict())

    def delete(self, execution_id: str) -> bool:
        return self._states.pop(execution_id, None) is not None

    def list_ids(self) -> list[str]:
        return sorted(self._states)

    def clear(self) -> None:
        self._states.clear()


class FileStateStore:
    """
    State store with one JSON file per execution.

    Files are rewritten atomically, so an interrupted save leaves the
    previous state readable.
    """

    SUFFIX = ".state.json"

    def __init__(self, state_dir: Path) -> None:
        """
        Initialize the store.

        Args:
            state_dir: Directory holding state files
        """
        self.state_dir = Path(state_dir)

    def _path(self, execution_id: str) -> Path:
        return self.state_dir / f"{_UNSAFE_CHARS.sub('_', execution_id)}{self.SUFFIX}"

    def load(self, execution_id: str) -> Optional[IterationState]:
        """
        Load the state of an execution.

        Returns:
            The stored state, or None if absent or unreadable
        """
        path = self._path(execution_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return IterationState.from_dict(data["state"])
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            logger.warning("state_load_failed", execution_id=execution_id, error=str(e))
            return None

    def save(self, execution_id: str, state: IterationState) -> None:
        """Persist the state of an execution."""
        data = {
            "executionId": execution_id,
            "savedAt": datetime.now(timezone.utc).isoformat(),
            "state": state.to_dict(),
        }
        atomic_write_json(self._path(execution_id), data)
        logger.debug("state_saved", execution_id=execution_id, phase=state.phase.name)

    def delete(self, execution_id: str) -> bool:
        """
        Delete the state of an execution.

        Returns:
            True if a state file was removed
        """
        path = self._path(execution_id)
        if not path.exists():
            return False
        path.unlink()
        logger.debug("state_deleted", execution_id=execution_id)
        return True

    def list_ids(self) -> list[str]:
        """List stored execution ids."""
        if not self.state_dir.exists():
            return []

        ids = []
        for path in sorted(self.state_dir.glob(f"*{self.SUFFIX}")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                ids.append(data.get("executionId") or path.name[: -len(self.SUFFIX)])
            except (json.JSONDecodeError, OSError):
                ids.append(path.name[: -len(self.SUFFIX)])
        return ids

    def clear(self) -> None:
        """Delete every stored state."""
        if not self.state_dir.exists():
            return
        for path in self.state_dir.glob(f"*{self.SUFFIX}"):
            path.unlink()
        logger.info("state_cleared", path=str(self.state_dir))


class ExecutionIndex:
    """
    Index of executions started from the command line.

    Records which source and source key each execution was started with,
    so a later invocation can rebuild the right provider.
    """

    FILENAME = "executions.json"

    def __init__(self, state_dir: Path) -> None:
        self.path = Path(state_dir) / self.FILENAME

    def _read(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("execution_index_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def register(
        self,
        execution_id: str,
        source: str,
        source_key: str,
        options: Optional[dict] = None,
        profile: Optional[str] = None,
    ) -> dict:
        """Record an execution, keeping the first registration."""
        entries = self._read()
        entry = entries.get(execution_id)
        if entry is None:
            entry = {
                "source": source,
                "sourceKey": source_key,
                "options": options or {},
                "profile": profile,
                "createdAt": datetime.now(timezone.utc).isoformat(),
            }
            entries[execution_id] = entry
            atomic_write_json(self.path, entries)
        return entry

    def get(self, execution_id: str) -> Optional[dict]:
        return self._read().get(execution_id)

    def remove(self, execution_id: str) -> bool:
        entries = self._read()
        if entries.pop(execution_id, None) is None:
            return False
        atomic_write_json(self.path, entries)
        return True

    def all(self) -> dict[str, dict]:
        return self._read()

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
