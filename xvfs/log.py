"""Redo log that makes multi-block file system updates atomic.

The on-disk log is a header block holding a count and a list of home
block numbers, followed by one block of data for each listed block.
Updates are staged in memory during an operation and committed when the
last outstanding operation ends.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from .disk import DiskError, MemDisk
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, Superblock

_HEADER = struct.Struct(f"<i{LOGSIZE}i")


class LogError(Exception):
    """Raised when the log is used in a way it cannot support."""


class Log:
    """Write-ahead log over a disk, shared by concurrent operations."""

    def __init__(self, disk: MemDisk, sb: Superblock) -> None:
        if _HEADER.size >= BSIZE:
            raise LogError("initlog: too big logheader")
        self.disk = disk
        self.dev = disk.dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self.blocks: List[int] = []
        self._cache: Dict[int, bytes] = {}
        self._cond = threading.Condition(threading.Lock())
        self.recover()

    # On-disk header.

    def _read_head(self) -> None:
        n, *block = _HEADER.unpack_from(self.disk.read_block(self.start))
        self.blocks = block[: max(n, 0)]

    def _write_head(self) -> None:
        padded = self.blocks + [0] * (LOGSIZE - len(self.blocks))
        raw = _HEADER.pack(len(self.blocks), *padded)
        self.disk.write_block(self.start, raw.ljust(BSIZE, b"\0"))

    def _install_trans(self) -> None:
        for tail, home in enumerate(self.blocks):
            self.disk.write_block(home, self.disk.read_block(self.start + tail + 1))

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans()
        self.blocks = []
        self._write_head()

    # Operations.

    def begin_op(self) -> None:
        """Start a file system operation, waiting while the log is busy or full."""
        with self._cond:
            while self.committing or (
                len(self.blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """End an operation; the last one to end commits the transaction."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise LogError("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()

        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the enclosed block as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def _write_log(self) -> None:
        for tail, home in enumerate(self.blocks):
            self.disk.write_block(self.start + tail + 1, self.read(home))

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()
            self._install_trans()
            self.blocks = []
            self._write_head()
        self._cache.clear()

    # Block access.

    def read(self, blockno: int) -> bytes:
        """Return a block as seen by the current transaction."""
        cached = self._cache.get(blockno)
        return cached if cached is not None else self.disk.read_block(blockno)

    def write(self, blockno: int, data: bytes) -> None:
        """Record a modified block in the current transaction."""
        if len(self.blocks) >= LOGSIZE or len(self.blocks) >= self.size - 1:
            raise LogError("too big a transaction")
        if self.outstanding < 1:
            raise LogError("log_write outside of trans")
        if len(data) != BSIZE:
            raise ValueError(f"block data must be {BSIZE} bytes")
        if not 0 <= blockno < self.disk.nblocks:
            raise DiskError(f"block {blockno} out of range")
        with self._cond:
            if blockno not in self.blocks:
                self.blocks.append(blockno)
            self._cache[blockno] = bytes(data)