"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import os
import struct
import sys
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from .layout import (
    BPB,
    BSIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dinode,
    Dirent,
    FileType,
    Superblock,
    iblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image and appends files to its root directory."""

    def __init__(self, size: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE) -> None:
        self.size = size
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = Superblock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._image = bytearray(size * BSIZE)
        self._finished = False

        self._wsect(1, self.sb.pack().ljust(BSIZE, b"\0"))

        self.rootino = self.ialloc(FileType.DIR)
        if self.rootino != ROOTINO:
            raise ValueError("root inode has the wrong number")
        self.iappend(self.rootino, Dirent(self.rootino, ".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, "..").pack())

    # Raw sectors and inodes.

    def _rsect(self, sec: int) -> bytes:
        if not 0 <= sec < self.size:
            raise ValueError(f"sector {sec} out of range")
        return bytes(self._image[sec * BSIZE : (sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        if not 0 <= sec < self.size:
            raise ValueError(f"sector {sec} out of range")
        self._image[sec * BSIZE : (sec + 1) * BSIZE] = data

    def _inode_slot(self, inum: int) -> Tuple[int, int]:
        return iblock(inum, self.sb), (inum % IPB) * Dinode.SIZE

    def _rinode(self, inum: int) -> Dinode:
        bn, off = self._inode_slot(inum)
        return Dinode.unpack(self._rsect(bn)[off:])

    def _winode(self, inum: int, din: Dinode) -> None:
        bn, off = self._inode_slot(inum)
        buf = bytearray(self._rsect(bn))
        buf[off : off + Dinode.SIZE] = din.pack()
        self._wsect(bn, bytes(buf))

    def _alloc_block(self) -> int:
        if self.freeblock >= self.size:
            raise ValueError("out of data blocks")
        b = self.freeblock
        self.freeblock += 1
        return b

    def _check_open(self) -> None:
        if self._finished:
            raise ValueError("image already finished")

    # Public building steps.

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with the given type and one link."""
        self._check_open()
        inum = self.freeinode
        if inum >= self.sb.ninodes:
            raise ValueError("out of inodes")
        self.freeinode += 1
        self._winode(inum, Dinode(type=int(type), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the contents of inode ``inum``."""
        self._check_open()
        din = self._rinode(inum)
        off = din.size
        view = memoryview(bytes(data))
        while view:
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                slot = fbn - NDIRECT
                if indirect[slot] == 0:
                    indirect[slot] = self._alloc_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[slot]
            n1 = min(len(view), (fbn + 1) * BSIZE - off)
            start = off - fbn * BSIZE
            buf = bytearray(self._rsect(x))
            buf[start : start + n1] = view[:n1]
            self._wsect(x, bytes(buf))
            view = view[n1:]
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a regular file to the root directory; a leading '_' is dropped."""
        self._check_open()
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(FileType.FILE)
        self.iappend(self.rootino, Dirent(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round up the root directory, write the free bitmap, return the image."""
        self._check_open()
        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks for one bitmap block")
        bitmap = bytearray(BSIZE)
        full, rest = divmod(used, 8)
        bitmap[:full] = b"\xff" * full
        if rest:
            bitmap[full] = (1 << rest) - 1
        self._wsect(self.sb.bmapstart, bytes(bitmap))
        self._finished = True
        return bytes(self._image)


def build_image(
    files: Union[Mapping[str, bytes], Iterable[Tuple[str, bytes]]],
) -> bytes:
    """Build a default-sized image holding ``files`` in its root directory."""
    builder = ImageBuilder()
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("Usage: mkfs fs.img files...\n")
        return 1
    image_path, *paths = args

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.size}"
    )
    for path in paths:
        if "/" in path:
            sys.stderr.write(f"mkfs: file name may not contain '/': {path}\n")
            return 1
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            sys.stderr.write(f"{path}: {exc.strerror}\n")
            return 1
        builder.add_file(os.path.basename(path), data)

    used = builder.freeblock
    image = builder.finish()
    print(f"balloc: first {used} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        with open(image_path, "wb") as f:
            f.write(image)
    except OSError as exc:
        sys.stderr.write(f"{image_path}: {exc.strerror}\n")
        return 1
    return 0