import struct

import pytest

from xvfs.layout import (
    BSIZE,
    FSSIZE,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dinode,
    Dirent,
    FileType,
    IPB,
    Superblock,
    iblock,
)
from xvfs.mkfs import NINODES, ImageBuilder, build_image, main


def _block(image, b):
    return image[b * BSIZE : (b + 1) * BSIZE]


def _sb(image):
    return Superblock.unpack(_block(image, 1))


def _inode(image, inum):
    sb = _sb(image)
    off = (inum % IPB) * Dinode.SIZE
    return Dinode.unpack(_block(image, iblock(inum, sb))[off:])


def _content(image, inum):
    din = _inode(image, inum)
    nblocks = -(-din.size // BSIZE)
    addrs = din.addrs[:NDIRECT]
    if din.addrs[NDIRECT]:
        addrs += list(struct.unpack(f"<{NINDIRECT}I", _block(image, din.addrs[NDIRECT])))
    return b"".join(_block(image, a) for a in addrs[:nblocks])[: din.size]


def _root_entries(image):
    raw = _content(image, ROOTINO)
    entries = [Dirent.unpack(raw[i : i + Dirent.SIZE]) for i in range(0, len(raw), Dirent.SIZE)]
    return [e for e in entries if e.inum]


def test_superblock_layout():
    image = build_image([])
    sb = _sb(image)
    assert len(image) == FSSIZE * BSIZE
    assert sb.size == FSSIZE
    assert sb.ninodes == NINODES
    assert sb.nlog == LOGSIZE
    assert sb.logstart == 2
    assert sb.inodestart == 2 + LOGSIZE
    assert sb.bmapstart > sb.inodestart


def test_root_directory_has_dots():
    image = build_image([])
    root = _inode(image, ROOTINO)
    assert root.type == FileType.DIR
    entries = _root_entries(image)
    assert [(e.inum, e.name) for e in entries] == [(ROOTINO, "."), (ROOTINO, "..")]
    assert root.size % BSIZE == 0


def test_files_round_trip_and_underscore_stripped():
    files = [("_cat", b"meow" * 10), ("README", b"hello\n")]
    image = build_image(files)
    entries = {e.name: e.inum for e in _root_entries(image)}
    assert set(entries) == {".", "..", "cat", "README"}
    assert _content(image, entries["cat"]) == b"meow" * 10
    assert _content(image, entries["README"]) == b"hello\n"
    assert _inode(image, entries["cat"]).type == FileType.FILE
    assert _inode(image, entries["cat"]).nlink == 1


def test_large_file_uses_indirect_block():
    data = bytes(range(256)) * ((NDIRECT + 3) * BSIZE // 256) + b"tail"
    image = build_image({"big": data})
    inum = {e.name: e.inum for e in _root_entries(image)}["big"]
    assert _inode(image, inum).addrs[NDIRECT] != 0
    assert _content(image, inum) == data


def test_bitmap_marks_allocated_blocks():
    builder = ImageBuilder()
    builder.add_file("f", b"x" * (3 * BSIZE))
    used = builder.freeblock
    image = builder.finish()
    bitmap = _block(image, _sb(image).bmapstart)
    bits = [(bitmap[i // 8] >> (i % 8)) & 1 for i in range(used + 8)]
    assert bits[:used] == [1] * used
    assert bits[used:] == [0] * 8


def test_iappend_in_pieces_matches_whole():
    builder = ImageBuilder()
    inum = builder.ialloc(FileType.FILE)
    builder.iappend(inum, b"a" * 700)
    builder.iappend(inum, b"b" * 400)
    image = builder.finish()
    assert _content(image, inum) == b"a" * 700 + b"b" * 400


def test_name_with_slash_rejected():
    with pytest.raises(ValueError):
        build_image({"a/b": b""})


def test_file_too_large_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("huge", b"\0" * (MAXFILE * BSIZE + 1))


def test_out_of_blocks():
    probe = ImageBuilder()
    builder = ImageBuilder(size=probe.nmeta + 3)
    with pytest.raises(ValueError):
        builder.add_file("f", b"x" * (3 * BSIZE))


def test_finish_twice_rejected():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(ValueError):
        builder.finish()


def test_main_writes_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_echo").write_bytes(b"echo body")
    assert main(["fs.img", "_echo"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    entries = {e.name: e.inum for e in _root_entries(image)}
    assert _content(image, entries["echo"]) == b"echo body"
    out = capsys.readouterr().out
    assert out.startswith("nmeta ")
    assert "balloc: write bitmap block at sector" in out


def test_main_without_arguments_fails(capsys):
    assert main([]) == 1
    assert "Usage: mkfs fs.img files..." in capsys.readouterr().err


def test_main_missing_file_fails(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "absent"]) == 1
    assert not (tmp_path / "fs.img").exists()