"""
Per-entity download folders.

Each entity owns exactly one folder under the data directory, named
``{entity_id}_{name}_{section_name}``. The folder is the destination for
every attachment of that entity across retries.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def folder_name(entity_id: str, name: str, section_name: str) -> str:
    """Deterministic folder name for an entity."""
    raw = f"{entity_id}_{name}_{section_name}"
    return _UNSAFE_CHARS.sub("_", raw)


class EntityStore:
    """Locates and creates entity folders under a data directory."""

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir)

    def folder_for(self, entity_id: str, name: str, section_name: str) -> Path:
        return self.data_dir / folder_name(entity_id, name, section_name)

    def ensure_folder(self, entity_id: str, name: str, section_name: str) -> Path:
        """Create the entity folder if needed and return it."""
        path = self.folder_for(entity_id, name, section_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def iter_folders(self) -> Iterator[Path]:
        if not self.data_dir.is_dir():
            return
        for path in sorted(self.data_dir.iterdir()):
            if path.is_dir():
                yield path

    def find_folder(self, entity_id: str) -> Path | None:
        """Find an entity's folder by its id prefix.

        Matches ``{entity_id}_...`` first, then any folder starting with the
        id, so folders created with a different name or section still count.
        """
        loose: Path | None = None
        for path in self.iter_folders():
            if path.name == entity_id or path.name.startswith(f"{entity_id}_"):
                return path
            if loose is None and path.name.startswith(entity_id):
                loose = path
        return loose

    @staticmethod
    def owner_of(folder: Path, entity_ids: list[str]) -> str | None:
        """Entity id owning a folder, preferring the longest matching prefix."""
        matches = [
            eid for eid in entity_ids
            if folder.name == eid or folder.name.startswith(f"{eid}_")
        ]
        return max(matches, key=len) if matches else None
