"""A disk held in memory, addressed in whole blocks."""

from __future__ import annotations

import os
from typing import Union

from .layout import BSIZE, ROOTDEV


class DiskError(Exception):
    """Raised for a request the disk cannot serve."""


class MemDisk:
    """Disk image kept in memory; only device ROOTDEV is served."""

    def __init__(self, image: bytes, dev: int = ROOTDEV) -> None:
        if dev != ROOTDEV:
            raise DiskError(f"request not for disk {ROOTDEV}")
        self.dev = dev
        self._image = bytearray(image)
        self.nblocks = len(self._image) // BSIZE

    @classmethod
    def from_file(cls, path: Union[str, os.PathLike], dev: int = ROOTDEV) -> "MemDisk":
        with open(path, "rb") as f:
            return cls(f.read(), dev)

    def _offset(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        off = self._offset(blockno)
        return bytes(self._image[off : off + BSIZE])

    def write_block(self, blockno: int, data: bytes) -> None:
        off = self._offset(blockno)
        if len(data) != BSIZE:
            raise ValueError(f"block data must be {BSIZE} bytes")
        self._image[off : off + BSIZE] = data

    def to_bytes(self) -> bytes:
        return bytes(self._image)