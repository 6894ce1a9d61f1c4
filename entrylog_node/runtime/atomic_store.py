"""
Atomic JSON persistence for small side files (the entry log counter).

- Atomic write: temp file in the same directory, fsync, os.replace, fsync dir
- Rolling backups: .bak1 mirrors the latest save, .bak2.. hold older ones
- Load fallback: primary -> bak1 -> bak2 -> ...

The counter file keeps the plain indented `{"next": N}` layout, so existing
index files load unchanged.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

log = logging.getLogger(__name__)

JsonDict = Dict[str, Any]
PathLike = Union[str, Path]


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _fsync_dir(dir_path: Path) -> None:
    # Not every platform lets us open a directory
    try:
        fd = os.open(str(dir_path), os.O_DIRECTORY)
    except (AttributeError, OSError):
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    _ensure_dir(path.parent)

    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(str(tmp_path), str(path))
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_json(path: Path) -> Optional[JsonDict]:
    """Return the parsed object, or None when the file is missing or unreadable."""
    if not path.exists():
        return None
    try:
        obj = json.loads(path.read_bytes().decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        log.warning("Unreadable JSON file %s", path, exc_info=True)
        return None
    return obj if isinstance(obj, dict) else None


def _rotate_backups(path: Path, keep: int) -> None:
    # move .bak(N-1) -> .bakN; .bak1 is rewritten by save()
    for i in range(keep, 1, -1):
        src = path.with_suffix(path.suffix + f".bak{i-1}")
        dst = path.with_suffix(path.suffix + f".bak{i}")
        if src.exists():
            os.replace(str(src), str(dst))


@dataclass
class AtomicJsonStore:
    path: Path
    keep_backups: int = 2

    def __init__(self, path: PathLike, *, keep_backups: int = 2):
        self.path = Path(path)
        self.keep_backups = int(keep_backups)

    def backup_paths(self) -> List[Path]:
        return [
            self.path.with_suffix(self.path.suffix + f".bak{i}")
            for i in range(1, max(0, self.keep_backups) + 1)
        ]

    def exists(self) -> bool:
        return self.path.exists()

    def load_all(self) -> List[Tuple[Path, JsonDict]]:
        """Every readable copy, primary first, as (path, state) pairs."""
        out = []
        for p in [self.path, *self.backup_paths()]:
            obj = read_json(p)
            if obj is not None:
                out.append((p, obj))
        return out

    def load(self) -> Optional[JsonDict]:
        for p, obj in self.load_all():
            if p != self.path:
                log.warning("Recovered %s from backup %s", self.path, p)
            return obj
        return None

    def save(self, state: JsonDict) -> None:
        data = json.dumps(state, ensure_ascii=False, indent=2).encode("utf-8")
        _rotate_backups(self.path, keep=self.keep_backups)
        atomic_write_bytes(self.path, data)
        # .bak1 mirrors the state just written, never an older one
        if self.keep_backups > 0:
            atomic_write_bytes(self.backup_paths()[0], data)
