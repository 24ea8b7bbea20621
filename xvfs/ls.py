"""List files and directories of a file system image."""

from __future__ import annotations

import sys
from typing import List, Optional

from .disk import DiskError, MemDisk
from .fs import FileSystem, FsError
from .layout import DIRSIZ, Dirent, FileType, Stat
from .sysfile import OpenMode, Volume

_PATHBUF = 512


def fmtname(path: str) -> str:
    """Last element of ``path``, padded with blanks to DIRSIZ characters."""
    name = path[path.rfind("/") + 1 :]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {int(st.type)} {st.ino} {st.size}"


def list_path(volume: Volume, path: str) -> List[str]:
    """Lines describing ``path``: the file itself, or each entry of a directory."""
    try:
        f = volume.open(path, OpenMode.RDONLY)
    except FsError as exc:
        raise FsError(f"ls: cannot open {path}") from exc
    with f:
        st = f.fstat()
        if st.type == FileType.FILE:
            return [_line(path, st)]
        if st.type != FileType.DIR:
            return []
        if len(path) + 1 + DIRSIZ + 1 > _PATHBUF:
            return ["ls: path too long"]
        lines = []
        while True:
            raw = f.read(Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                break
            de = Dirent.unpack(raw)
            if de.inum == 0:
                continue
            full = f"{path}/{de.name}"
            try:
                entry = volume.stat(full)
            except FsError:
                lines.append(f"ls: cannot stat {full}")
                continue
            lines.append(_line(full, entry))
        return lines


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("usage: ls image [path ...]\n")
        return 1
    image, *paths = args
    try:
        disk = MemDisk.from_file(image)
        volume = Volume(FileSystem(disk))
    except OSError as exc:
        sys.stderr.write(f"ls: cannot read {image}: {exc.strerror}\n")
        return 1
    except (DiskError, FsError, ValueError) as exc:
        sys.stderr.write(f"ls: {image}: {exc}\n")
        return 1
    for path in paths or ["."]:
        try:
            lines = list_path(volume, path)
        except FsError:
            sys.stderr.write(f"ls: cannot open {path}\n")
            continue
        for line in lines:
            sys.stdout.write(line + "\n")
    return 0