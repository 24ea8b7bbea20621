"""File system calls: opening, creating, linking and removing files by path.

A :class:`Volume` plays the part of one process working on a file system.
It has a current directory and a table of at most NOFILE open files.
Every call that fails raises :class:`~xvfs.fs.FsError`.
"""

from __future__ import annotations

import enum
from typing import Optional, Set

from .fs import FileSystem, FsError, Inode, namecmp
from .layout import BSIZE, MAXOPBLOCKS, NOFILE, ROOTINO, Dirent, FileType, Stat

# Largest write done in one transaction: an inode block, an indirect block,
# allocation blocks and two blocks of slop for writes that are not aligned.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class OpenMode(enum.IntFlag):
    """Flags accepted by :meth:`Volume.open`."""

    RDONLY = 0x000
    WRONLY = 0x001
    RDWR = 0x002
    CREATE = 0x200


class OpenFile:
    """An open file with its own offset."""

    def __init__(self, volume: "Volume", ip: Inode, readable: bool, writable: bool) -> None:
        self.volume = volume
        self.ip = ip
        self.readable = readable
        self.writable = writable
        self.off = 0
        self.closed = False

    @property
    def _fs(self) -> FileSystem:
        return self.volume.fs

    def _check_open(self) -> None:
        if self.closed:
            raise FsError("file is closed")

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes from the current offset."""
        self._check_open()
        if not self.readable:
            raise FsError("file not open for reading")
        self._fs.ilock(self.ip)
        try:
            data = self._fs.readi(self.ip, self.off, n)
        finally:
            self._fs.iunlock(self.ip)
        self.off += len(data)
        return data

    def write(self, data: bytes) -> int:
        """Write ``data`` at the current offset, a few blocks per transaction."""
        self._check_open()
        if not self.writable:
            raise FsError("file not open for writing")
        data = bytes(data)
        written = 0
        while written < len(data):
            chunk = data[written : written + _MAX_WRITE]
            with self._fs.log.transaction():
                self._fs.ilock(self.ip)
                try:
                    r = self._fs.writei(self.ip, self.off, chunk)
                finally:
                    self._fs.iunlock(self.ip)
            self.off += r
            if r != len(chunk):
                raise FsError("short filewrite")
            written += r
        return written

    def fstat(self) -> Stat:
        """Status of the open file."""
        self._check_open()
        self._fs.ilock(self.ip)
        try:
            return self._fs.stati(self.ip)
        finally:
            self._fs.iunlock(self.ip)

    def close(self) -> None:
        """Close the file and drop its reference to the inode."""
        self._check_open()
        self.closed = True
        self.volume._files.discard(self)
        with self._fs.log.transaction():
            self._fs.iput(self.ip)

    def __enter__(self) -> "OpenFile":
        return self

    def __exit__(self, *exc_info) -> None:
        if not self.closed:
            self.close()


class Volume:
    """Path-level access to a file system, with a current directory."""

    def __init__(self, fs: FileSystem) -> None:
        self.fs = fs
        self.cwd: Inode = fs.iget(ROOTINO)
        self._files: Set[OpenFile] = set()

    # Helpers.

    def _lock_or_put(self, ip: Inode) -> None:
        try:
            self.fs.ilock(ip)
        except FsError:
            self.fs.iput(ip)
            raise

    def _namei(self, path: str) -> Inode:
        ip = self.fs.namei(path, self.cwd)
        if ip is None:
            raise FsError(f"{path}: no such file or directory")
        return ip

    def _create(self, path: str, type: FileType, major: int, minor: int) -> Inode:
        fs = self.fs
        found = fs.nameiparent(path, self.cwd)
        if found is None:
            raise FsError(f"{path}: no parent directory")
        dp, name = found
        self._lock_or_put(dp)

        hit = fs.dirlookup(dp, name)
        if hit is not None:
            ip = hit[0]
            fs.iunlockput(dp)
            self._lock_or_put(ip)
            if type == FileType.FILE and ip.type == FileType.FILE:
                return ip
            fs.iunlockput(ip)
            raise FsError(f"{path}: already exists")

        try:
            ip = fs.ialloc(type)
        except FsError:
            fs.iunlockput(dp)
            raise
        fs.ilock(ip)
        ip.major = major
        ip.minor = minor
        ip.nlink = 1
        fs.iupdate(ip)

        if type == FileType.DIR:
            dp.nlink += 1  # for ".."
            fs.iupdate(dp)
            # No ip.nlink increment for ".": avoid a cyclic count.
            fs.dirlink(ip, ".", ip.inum)
            fs.dirlink(ip, "..", dp.inum)

        fs.dirlink(dp, name, ip.inum)
        fs.iunlockput(dp)
        return ip

    def _isdirempty(self, dp: Inode) -> bool:
        for off in range(2 * Dirent.SIZE, dp.size, Dirent.SIZE):
            raw = self.fs.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FsError("isdirempty: readi")
            if Dirent.unpack(raw).inum != 0:
                return False
        return True

    # Calls.

    def open(self, path: str, mode: int = OpenMode.RDONLY) -> OpenFile:
        """Open ``path``; with CREATE, make a regular file if it is missing."""
        mode = OpenMode(mode)
        fs = self.fs
        with fs.log.transaction():
            if mode & OpenMode.CREATE:
                ip = self._create(path, FileType.FILE, 0, 0)
            else:
                ip = self._namei(path)
                self._lock_or_put(ip)
                if ip.type == FileType.DIR and mode != OpenMode.RDONLY:
                    fs.iunlockput(ip)
                    raise FsError(f"{path}: is a directory")
            if len(self._files) >= NOFILE:
                fs.iunlockput(ip)
                raise FsError("too many open files")
            fs.iunlock(ip)

        f = OpenFile(
            self,
            ip,
            readable=not (mode & OpenMode.WRONLY),
            writable=bool(mode & (OpenMode.WRONLY | OpenMode.RDWR)),
        )
        self._files.add(f)
        return f

    def mkdir(self, path: str) -> None:
        """Create a directory holding "." and ".."."""
        with self.fs.log.transaction():
            self.fs.iunlockput(self._create(path, FileType.DIR, 0, 0))

    def mknod(self, path: str, major: int, minor: int) -> None:
        """Create a device file."""
        with self.fs.log.transaction():
            self.fs.iunlockput(self._create(path, FileType.DEV, major, minor))

    def link(self, old: str, new: str) -> None:
        """Make ``new`` another name for the file ``old``."""
        fs = self.fs
        with fs.log.transaction():
            ip = self._namei(old)
            self._lock_or_put(ip)
            if ip.type == FileType.DIR:
                fs.iunlockput(ip)
                raise FsError(f"{old}: is a directory")
            ip.nlink += 1
            fs.iupdate(ip)
            fs.iunlock(ip)

            try:
                found = fs.nameiparent(new, self.cwd)
                if found is None:
                    raise FsError(f"{new}: no parent directory")
                dp, name = found
                self._lock_or_put(dp)
                try:
                    if dp.dev != ip.dev:
                        raise FsError("cross-device link")
                    fs.dirlink(dp, name, ip.inum)
                finally:
                    fs.iunlockput(dp)
            except FsError:
                fs.ilock(ip)
                ip.nlink -= 1
                fs.iupdate(ip)
                fs.iunlockput(ip)
                raise
            fs.iput(ip)

    def unlink(self, path: str) -> None:
        """Remove the directory entry ``path``; directories must be empty."""
        fs = self.fs
        with fs.log.transaction():
            found = fs.nameiparent(path, self.cwd)
            if found is None:
                raise FsError(f"{path}: no parent directory")
            dp, name = found
            self._lock_or_put(dp)
            try:
                if namecmp(name, ".") == 0 or namecmp(name, "..") == 0:
                    raise FsError("cannot unlink . or ..")
                hit = fs.dirlookup(dp, name)
                if hit is None:
                    raise FsError(f"{path}: no such file or directory")
                ip, off = hit
                self._lock_or_put(ip)
                if ip.nlink < 1:
                    fs.iunlockput(ip)
                    raise FsError("unlink: nlink < 1")
                if ip.type == FileType.DIR and not self._isdirempty(ip):
                    fs.iunlockput(ip)
                    raise FsError(f"{path}: directory not empty")
                if fs.writei(dp, off, bytes(Dirent.SIZE)) != Dirent.SIZE:
                    raise FsError("unlink: writei")
                if ip.type == FileType.DIR:
                    dp.nlink -= 1
                    fs.iupdate(dp)
            except FsError:
                fs.iunlockput(dp)
                raise
            fs.iunlockput(dp)

            ip.nlink -= 1
            fs.iupdate(ip)
            fs.iunlockput(ip)

    def chdir(self, path: str) -> None:
        """Make ``path`` the current directory."""
        fs = self.fs
        with fs.log.transaction():
            ip = self._namei(path)
            self._lock_or_put(ip)
            if ip.type != FileType.DIR:
                fs.iunlockput(ip)
                raise FsError(f"{path}: not a directory")
            fs.iunlock(ip)
            fs.iput(self.cwd)
            self.cwd = ip

    def stat(self, path: str) -> Stat:
        """Status of the file named by ``path``."""
        fs = self.fs
        with fs.log.transaction():
            ip = self._namei(path)
            self._lock_or_put(ip)
            try:
                return fs.stati(ip)
            finally:
                fs.iunlockput(ip)


__all__ = ["OpenMode", "OpenFile", "Volume", "FsError"]


def _unused(_: Optional[object] = None) -> None:  # pragma: no cover
    return None