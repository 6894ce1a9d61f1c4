"""
Sequential entry log identifiers (EntryLog0, EntryLog1, ...).

The counter lives in a side file holding `{"next": N}`. `reserve()` holds an
in-process lock plus an exclusive fcntl lock on `<file>.lock` for the whole
reservation, so two writers can never be handed the same identifier, and
only advances the counter when the caller's block finishes without raising.
A failed submit therefore leaves no gap.

    with allocator.reserve() as entry_log_id:
        contract.submit_transaction("setEntryLog", transient=...)
"""

from __future__ import annotations

import fcntl
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from ..errors import AllocatorError
from .atomic_store import AtomicJsonStore

log = logging.getLogger(__name__)

ID_PREFIX = "EntryLog"


def format_id(n: int) -> str:
    return f"{ID_PREFIX}{int(n)}"


def parse_id(entry_log_id: str) -> int:
    if not entry_log_id.startswith(ID_PREFIX):
        raise ValueError(f"not an entry log id: {entry_log_id!r}")
    return int(entry_log_id[len(ID_PREFIX):])


class SequentialIdAllocator:
    def __init__(
        self,
        path: Union[str, Path],
        *,
        start: int = 0,
        keep_backups: int = 2,
    ) -> None:
        self.path = Path(path)
        self.start = int(start)
        self._store = AtomicJsonStore(self.path, keep_backups=keep_backups)
        self._lock = threading.Lock()

    @property
    def lock_path(self) -> Path:
        return self.path.with_suffix(self.path.suffix + ".lock")

    def _value(self, state: dict) -> int:
        try:
            value = int(state["next"])
        except (KeyError, TypeError, ValueError):
            raise AllocatorError(f"counter file {self.path} has no integer 'next'")
        if value < 0:
            raise AllocatorError(f"counter file {self.path} holds a negative 'next'")
        return value

    def _read_next(self) -> int:
        copies = self._store.load_all()
        if not copies:
            if self._store.exists():
                raise AllocatorError(f"counter file {self.path} is unreadable")
            return self.start
        path, state = copies[0]
        if path == self.path:
            return self._value(state)
        # Primary lost: take the highest backup so no issued id comes back
        value = max(self._value(s) for _, s in copies)
        log.warning("Counter %s recovered from backups: next=%d", self.path, value)
        return value

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.lock_path), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise AllocatorError(f"cannot open lock file {self.lock_path}: {e}")
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def peek(self) -> int:
        """Value the next reservation will use.

        Takes no lock: saves land through os.replace, so a reader sees either
        the old or the new file, and never waits on an open reservation.
        """
        return self._read_next()

    @contextmanager
    def reserve(self) -> Iterator[str]:
        with self._lock, self._file_lock():
            current = self._read_next()
            entry_log_id = format_id(current)
            yield entry_log_id
            # Only reached when the caller's block did not raise
            try:
                self._store.save({"next": current + 1})
            except OSError as e:
                # The ledger write already went through at this point
                log.error("Counter not advanced past %s: %s", entry_log_id, e)
                raise AllocatorError(
                    f"{entry_log_id} was submitted but the counter could not be saved: {e}",
                    detail={"entryLogID": entry_log_id},
                )
            log.info("Allocated %s (next=%d)", entry_log_id, current + 1)
