import pytest

from xvfs.disk import MemDisk
from xvfs.fs import FileSystem, FsError
from xvfs.layout import NOFILE, Dirent, FileType
from xvfs.mkfs import build_image
from xvfs.sysfile import OpenMode, Volume

README = b"hello\n"


@pytest.fixture
def volume():
    disk = MemDisk(build_image({"README": README}))
    return Volume(FileSystem(disk))


def _write(volume, path, data):
    with volume.open(path, OpenMode.CREATE | OpenMode.RDWR) as f:
        return f.write(data)


def _read(volume, path, n=100000):
    with volume.open(path) as f:
        return f.read(n)


def test_read_existing_file(volume):
    assert _read(volume, "/README") == README


def test_read_advances_offset(volume):
    with volume.open("/README") as f:
        assert f.read(2) == README[:2]
        assert f.read(100) == README[2:]
        assert f.read(100) == b""


def test_create_write_read_round_trip(volume):
    assert _write(volume, "/a", b"data") == 4
    assert _read(volume, "/a") == b"data"
    assert volume.stat("/a").type == FileType.FILE


def test_large_write_uses_indirect_block(volume):
    data = bytes(range(256)) * 30
    assert _write(volume, "/big", data) == len(data)
    assert _read(volume, "/big") == data
    with volume.open("/big") as f:
        assert f.fstat().size == len(data)


def test_create_existing_file_keeps_contents(volume):
    with volume.open("/README", OpenMode.CREATE | OpenMode.RDWR) as f:
        assert f.read(100) == README


def test_create_over_directory_fails(volume):
    volume.mkdir("/d")
    with pytest.raises(FsError):
        volume.open("/d", OpenMode.CREATE | OpenMode.RDWR)


def test_open_missing_fails(volume):
    with pytest.raises(FsError):
        volume.open("/nope")


def test_open_directory_for_writing_fails(volume):
    with pytest.raises(FsError):
        volume.open("/", OpenMode.WRONLY)


def test_read_directory_entries(volume):
    with volume.open("/") as f:
        raw = f.read(Dirent.SIZE * 3)
    assert len(raw) % Dirent.SIZE == 0
    names = [Dirent.unpack(raw[i : i + Dirent.SIZE]).name for i in range(0, len(raw), Dirent.SIZE)]
    assert names == [".", "..", "README"]


def test_mode_checks(volume):
    with volume.open("/README", OpenMode.RDONLY) as f:
        with pytest.raises(FsError):
            f.write(b"x")
    with volume.open("/README", OpenMode.WRONLY) as f:
        with pytest.raises(FsError):
            f.read(1)


def test_close_twice_fails(volume):
    f = volume.open("/README")
    f.close()
    with pytest.raises(FsError):
        f.close()
    with pytest.raises(FsError):
        f.read(1)


def test_open_file_limit(volume):
    files = [volume.open("/README") for _ in range(NOFILE)]
    with pytest.raises(FsError):
        volume.open("/README")
    files.pop().close()
    extra = volume.open("/README")
    assert extra.read(100) == README
    for f in files + [extra]:
        f.close()


def test_mkdir_links(volume):
    before = volume.stat("/").nlink
    volume.mkdir("/d")
    assert volume.stat("/").nlink == before + 1
    st = volume.stat("/d")
    assert st.type == FileType.DIR
    assert st.nlink == 1
    assert volume.stat("/d/..").ino == volume.stat("/").ino
    assert volume.stat("/d/.").ino == st.ino


def test_mkdir_existing_or_without_parent_fails(volume):
    volume.mkdir("/d")
    with pytest.raises(FsError):
        volume.mkdir("/d")
    with pytest.raises(FsError):
        volume.mkdir("/no/x")


def test_link_adds_name(volume):
    _write(volume, "/a", b"data")
    volume.link("/a", "/b")
    assert volume.stat("/a").nlink == 2
    assert volume.stat("/a").ino == volume.stat("/b").ino
    assert _read(volume, "/b") == b"data"


def test_link_failure_restores_count(volume):
    with pytest.raises(FsError):
        volume.link("/README", "/README")
    assert volume.stat("/README").nlink == 1
    with pytest.raises(FsError):
        volume.link("/README", "/missing/x")
    assert volume.stat("/README").nlink == 1


def test_link_directory_fails(volume):
    volume.mkdir("/d")
    with pytest.raises(FsError):
        volume.link("/d", "/e")


def test_unlink_file_and_reuse_inode(volume):
    _write(volume, "/a", b"data")
    ino = volume.stat("/a").ino
    volume.unlink("/a")
    with pytest.raises(FsError):
        volume.open("/a")
    _write(volume, "/b", b"more")
    assert volume.stat("/b").ino == ino
    assert _read(volume, "/b") == b"more"


def test_unlink_one_of_two_names(volume):
    _write(volume, "/a", b"data")
    volume.link("/a", "/b")
    volume.unlink("/a")
    assert volume.stat("/b").nlink == 1
    assert _read(volume, "/b") == b"data"


def test_unlink_dots_and_missing_fail(volume):
    volume.mkdir("/d")
    with pytest.raises(FsError):
        volume.unlink("/d/.")
    with pytest.raises(FsError):
        volume.unlink("/d/..")
    with pytest.raises(FsError):
        volume.unlink("/nope")
    with pytest.raises(FsError):
        volume.unlink("/")


def test_unlink_directories(volume):
    volume.mkdir("/d")
    _write(volume, "/d/f", b"x")
    with pytest.raises(FsError):
        volume.unlink("/d")
    assert volume.stat("/d").type == FileType.DIR
    volume.unlink("/d/f")
    links = volume.stat("/").nlink
    volume.unlink("/d")
    assert volume.stat("/").nlink == links - 1
    with pytest.raises(FsError):
        volume.stat("/d")


def test_chdir_and_relative_paths(volume):
    volume.mkdir("/d")
    volume.chdir("/d")
    _write(volume, "f", b"x")
    assert volume.stat("/d/f").size == len(b"x")
    assert volume.stat("../README").ino == volume.stat("/README").ino
    with pytest.raises(FsError):
        volume.chdir("/README")
    with pytest.raises(FsError):
        volume.chdir("/nope")
    assert volume.stat("f").ino == volume.stat("/d/f").ino


def test_mknod_and_device_io(volume):
    volume.mknod("/console", 1, 1)
    assert volume.stat("/console").type == FileType.DEV
    with volume.open("/console", OpenMode.RDWR) as f:
        with pytest.raises(FsError):
            f.read(1)

    class Echo:
        def read(self, ip, n):
            return b"z" * n

        def write(self, ip, data):
            return len(data)

    volume.fs.devsw[1] = Echo()
    with volume.open("/console", OpenMode.RDWR) as f:
        assert f.read(3) == b"zzz"
        assert f.write(b"abc") == 3


def test_changes_persist_on_disk(volume):
    volume.mkdir("/d")
    _write(volume, "/d/f", b"kept")
    again = Volume(FileSystem(MemDisk(volume.fs.disk.to_bytes())))
    assert _read(again, "/d/f") == b"kept"
    assert again.stat("/d").type == FileType.DIR