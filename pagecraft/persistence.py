# persistence.py
# ============================================================
# Project snapshot storage (overwrite, one document per project):
#   - <root>/<project_id>.json holds the latest full snapshot
#   - atomic overwrite so a crash never leaves half a document
#   - last write wins; no versioning, no partial updates
# ============================================================

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import PersistenceReadError, PersistenceWriteError
from .models import Project

logger = logging.getLogger(__name__)

_PROJECT_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def read_json(path: str | Path) -> Optional[Dict[str, Any]]:
    """Read a JSON object; None if the file doesn't exist or is empty."""
    p = Path(path)
    if not p.exists():
        return None
    text = p.read_text(encoding="utf-8").strip()
    if not text:
        return None
    obj = json.loads(text)
    if not isinstance(obj, dict):
        raise ValueError("Project snapshot must be a JSON object.")
    return obj


def atomic_write_json(path: str | Path, obj: Dict[str, Any]) -> None:
    """Write to <name>.tmp, then replace the target."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(p)


class ProjectSnapshotStore:
    """
    Durable key-value home for project snapshots.

    Blocking file I/O runs in a worker thread. Writes and deletes go through
    one asyncio.Lock, so they land on disk in the order they were issued.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _write_lock(self) -> asyncio.Lock:
        # one lock per event loop; asyncio locks cannot be shared across loops
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def path_for(self, project_id: str) -> Path:
        if not _PROJECT_ID.match(project_id or ""):
            raise ValueError(f"Invalid project id '{project_id}'.")
        return self.root / f"{project_id}.json"

    # -------------------------
    # Sync primitives
    # -------------------------

    def save_sync(self, project: Project) -> None:
        path = self.path_for(project.id)
        try:
            atomic_write_json(path, project.model_dump(mode="json"))
        except OSError as exc:
            raise PersistenceWriteError(f"Could not write project {project.id}: {exc}") from exc

    def load_sync(self, project_id: str) -> Project:
        path = self.path_for(project_id)
        try:
            data = read_json(path)
        except (OSError, ValueError) as exc:
            raise PersistenceReadError(f"Could not read project {project_id}: {exc}") from exc
        if data is None:
            raise PersistenceReadError(f"Project {project_id} not found.")
        try:
            return Project.model_validate(data)
        except ValidationError as exc:
            raise PersistenceReadError(f"Project {project_id} is malformed: {exc}") from exc

    def list_sync(self) -> List[Project]:
        if not self.root.exists():
            return []
        projects: List[Project] = []
        for path in sorted(self.root.glob("*.json")):
            try:
                data = read_json(path)
                if data is not None:
                    projects.append(Project.model_validate(data))
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Skipping unreadable snapshot %s: %s", path.name, exc)
        projects.sort(key=lambda p: p.timestamp, reverse=True)
        return projects

    def delete_sync(self, project_id: str) -> bool:
        path = self.path_for(project_id)
        try:
            if not path.exists():
                return False
            path.unlink()
            return True
        except OSError as exc:
            raise PersistenceWriteError(f"Could not delete project {project_id}: {exc}") from exc

    # -------------------------
    # Async API
    # -------------------------

    async def save(self, project: Project) -> None:
        async with self._write_lock():
            await asyncio.to_thread(self.save_sync, project)
        logger.debug("Saved project %s (%s pages, %s assets)", project.id, len(project.pages), len(project.assets))

    async def load(self, project_id: str) -> Project:
        return await asyncio.to_thread(self.load_sync, project_id)

    async def list_all(self) -> List[Project]:
        return await asyncio.to_thread(self.list_sync)

    async def delete(self, project_id: str) -> bool:
        async with self._write_lock():
            return await asyncio.to_thread(self.delete_sync, project_id)


__all__ = ["ProjectSnapshotStore", "read_json", "atomic_write_json"]
