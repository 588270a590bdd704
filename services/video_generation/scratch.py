"""Scratch arena for downloaded clips."""

import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# <label>_<12 hex>.<ext>, plus the .part file of an unfinished write
_ARENA_NAME = re.compile(r"^[\w-]+_[0-9a-f]{12}\.[A-Za-z0-9]+(\.part)?$")


class ScratchArena:
    """
    Owns every temporary video file written during generation.

    Files get random names under a single directory so concurrent worker
    processes can share it. Nothing is deleted implicitly; callers evict
    old files or clean up the arena when the job is done.
    """

    def __init__(self, root: str, prefix: str = "clip"):
        self.root = Path(root)
        self.prefix = prefix
        self._owned: list[Path] = []

    def new_path(self, suffix: str = ".mp4", label: Optional[str] = None) -> Path:
        """Reserve a fresh path inside the arena (the file is not created)."""
        self.root.mkdir(parents=True, exist_ok=True)
        stem = f"{label or self.prefix}_{uuid.uuid4().hex[:12]}"
        path = self.root / f"{stem}{suffix}"
        self._owned.append(path)
        return path

    def write_bytes(self, data: bytes, suffix: str = ".mp4", label: Optional[str] = None) -> Path:
        path = self.new_path(suffix=suffix, label=label)
        tmp_path = path.with_suffix(path.suffix + ".part")
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
        logger.debug(f"Scratch file written: {path} ({len(data) / 1024 / 1024:.1f} MB)")
        return path

    def evict(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """
        Delete arena files older than max_age_seconds.

        Covers files left behind by other processes too, as long as they
        carry arena naming; anything else in the directory is left alone.
        """
        if not self.root.exists():
            return 0

        now = now if now is not None else time.time()
        removed = 0
        for path in self.root.iterdir():
            if not _ARENA_NAME.match(path.name) or not path.is_file():
                continue
            try:
                age = now - path.stat().st_mtime
            except FileNotFoundError:
                continue
            if age > max_age_seconds:
                path.unlink(missing_ok=True)
                removed += 1

        if removed:
            logger.info(f"Evicted {removed} scratch file(s) older than {max_age_seconds:.0f}s from {self.root}")
        return removed

    def cleanup(self) -> int:
        """Delete the files this arena instance created."""
        removed = 0
        for path in self._owned:
            if path.exists():
                path.unlink()
                removed += 1
        self._owned.clear()
        return removed
