"""Inodes, directories and path names on top of the block log.

A file system is reached through a :class:`FileSystem`, which keeps a
small cache of in-memory inodes.  Blocks are read and written through
the :class:`~xvfs.log.Log`, so every call that changes the disk must run
inside ``fs.log.transaction()``.

The usual sequence for an inode is ``iget`` (or ``namei``), then
``ilock`` to load and lock it, work on it, then ``iunlock`` and ``iput``.
"""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from .disk import MemDisk
from .layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    Dinode,
    Dirent,
    FileType,
    Stat,
    Superblock,
    bblock,
    iblock,
)
from .log import Log

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class FsError(Exception):
    """Raised when a file system operation cannot be carried out."""


class _Device(Protocol):
    def read(self, ip: "Inode", n: int) -> bytes: ...

    def write(self, ip: "Inode", data: bytes) -> int: ...


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode together with its cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: List[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: Optional[int] = field(default=None, init=False, repr=False)

    @property
    def locked(self) -> bool:
        return self._owner is not None


def namecmp(s: str, t: str) -> int:
    """Compare two names as directory entries do, looking at DIRSIZ bytes at most."""
    a = s.encode("utf-8")[:DIRSIZ].split(b"\0", 1)[0]
    b = t.encode("utf-8")[:DIRSIZ].split(b"\0", 1)[0]
    for x, y in zip(a, b):
        if x != y:
            return x - y
    n = min(len(a), len(b))
    if len(a) == len(b):
        return 0
    return (a[n] if len(a) > n else 0) - (b[n] if len(b) > n else 0)


def skipelem(path: str) -> Optional[Tuple[str, str]]:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes and
    ``name`` is cut to DIRSIZ characters, or None if there is no element.
    """
    path = path.lstrip("/")
    if not path:
        return None
    elem, _, rest = path.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


class FileSystem:
    """Inode layer of one device."""

    def __init__(self, disk: MemDisk, dev: int = ROOTDEV) -> None:
        self.disk = disk
        self.dev = dev
        self.sb = Superblock.unpack(disk.read_block(1))
        self.log = Log(disk, self.sb)
        self.devsw: Dict[int, _Device] = {}
        self._icache = [Inode() for _ in range(NINODE)]
        self._icache_lock = threading.Lock()

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        self.log.write(blockno, bytes(BSIZE))

    def _balloc(self) -> int:
        for b in range(0, self.sb.size, BPB):
            bmap_no = bblock(b, self.sb)
            bp = bytearray(self.log.read(bmap_no))
            for bi in range(min(BPB, self.sb.size - b)):
                m = 1 << (bi % 8)
                if not bp[bi // 8] & m:
                    bp[bi // 8] |= m
                    self.log.write(bmap_no, bytes(bp))
                    self._bzero(b + bi)
                    return b + bi
        raise FsError("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        bmap_no = bblock(b, self.sb)
        bp = bytearray(self.log.read(bmap_no))
        bi = b % BPB
        m = 1 << (bi % 8)
        if not bp[bi // 8] & m:
            raise FsError("freeing free block")
        bp[bi // 8] &= ~m & 0xFF
        self.log.write(bmap_no, bytes(bp))

    # Inode locking.

    def _acquire(self, ip: Inode) -> None:
        me = threading.get_ident()
        if ip._owner == me:
            raise FsError("inode already locked by this thread")
        ip._lock.acquire()
        ip._owner = me

    def _release(self, ip: Inode) -> None:
        ip._owner = None
        ip._lock.release()

    # Inodes.

    def _dinode_slot(self, inum: int) -> Tuple[int, int]:
        return iblock(inum, self.sb), (inum % IPB) * Dinode.SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate a free inode on disk; return it referenced but unlocked."""
        for inum in range(1, self.sb.ninodes):
            bn, off = self._dinode_slot(inum)
            block = self.log.read(bn)
            din = Dinode.unpack(block[off:])
            if din.type == FileType.FREE:
                buf = bytearray(block)
                buf[off : off + Dinode.SIZE] = Dinode(type=int(type)).pack()
                self.log.write(bn, bytes(buf))
                return self.iget(inum)
        raise FsError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy the in-memory inode to disk."""
        bn, off = self._dinode_slot(ip.inum)
        buf = bytearray(self.log.read(bn))
        din = Dinode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        buf[off : off + Dinode.SIZE] = din.pack()
        self.log.write(bn, bytes(buf))

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum``, neither locked nor read from disk."""
        with self._icache_lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FsError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take one more reference to ``ip``."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FsError("ilock")
        self._acquire(ip)
        if not ip.valid:
            bn, off = self._dinode_slot(ip.inum)
            din = Dinode.unpack(self.log.read(bn)[off:])
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == FileType.FREE:
                ip.valid = False
                self._release(ip)
                raise FsError("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        """Unlock ``ip``, which the caller must hold."""
        if ip is None or ip._owner != threading.get_ident() or ip.ref < 1:
            raise FsError("iunlock")
        self._release(ip)

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        self._acquire(ip)
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = FileType.FREE
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            self._release(ip)
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock ``ip`` and drop a reference to it."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode contents.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            ind_no = ip.addrs[NDIRECT]
            table = list(_INDIRECT.unpack(self.log.read(ind_no)))
            if table[bn] == 0:
                table[bn] = self._balloc()
                self.log.write(ind_no, _INDIRECT.pack(*table))
            return table[bn]
        raise FsError("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            for addr in _INDIRECT.unpack(self.log.read(ip.addrs[NDIRECT])):
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Status of a locked inode."""
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _device(self, ip: Inode, op: str) -> _Device:
        dev = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        if dev is None or not callable(getattr(dev, op, None)):
            raise FsError(f"no device {ip.major} to {op}")
        return dev

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == FileType.DEV:
            return self._device(ip, "read").read(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise FsError("read out of range")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            block = self.log.read(self._bmap(ip, off // BSIZE))
            start = off % BSIZE
            m = min(n - len(out), BSIZE - start)
            out += block[start : start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, off: int, data: bytes) -> int:
        """Write ``data`` at ``off`` into a locked inode; return the count written."""
        if ip.type == FileType.DEV:
            return self._device(ip, "write").write(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise FsError("write out of range")
        if off + n > MAXFILE * BSIZE:
            raise FsError("write past the largest file size")
        view = memoryview(bytes(data))
        while view:
            bno = self._bmap(ip, off // BSIZE)
            start = off % BSIZE
            m = min(len(view), BSIZE - start)
            buf = bytearray(self.log.read(bno))
            buf[start : start + m] = view[:m]
            self.log.write(bno, bytes(buf))
            view = view[m:]
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> Optional[Tuple[Inode, int]]:
        """Find ``name`` in a locked directory; return ``(inode, offset)`` or None."""
        if dp.type != FileType.DIR:
            raise FsError("dirlookup not DIR")
        for off in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FsError("dirlookup read")
            de = Dirent.unpack(raw)
            if de.inum == 0:
                continue
            if namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry ``(name, inum)`` to a locked directory."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FsError(f"{name}: entry exists")
        off = dp.size
        for candidate in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, candidate, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FsError("dirlink read")
            if Dirent.unpack(raw).inum == 0:
                off = candidate
                break
        if self.writei(dp, off, Dirent(inum, name).pack()) != Dirent.SIZE:
            raise FsError("dirlink")

    # Paths.

    def _namex(
        self, path: str, parent: bool, cwd: Optional[Inode]
    ) -> Optional[Tuple[Inode, str]]:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while True:
            step = skipelem(path)
            if step is None:
                break
            name, path = step
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Optional[Inode] = None) -> Optional[Inode]:
        """Return the inode for ``path`` (relative paths start at ``cwd``), or None."""
        found = self._namex(path, False, cwd)
        return None if found is None else found[0]

    def nameiparent(
        self, path: str, cwd: Optional[Inode] = None
    ) -> Optional[Tuple[Inode, str]]:
        """Return the parent directory of ``path`` and its final element, or None."""
        return self._namex(path, True, cwd)