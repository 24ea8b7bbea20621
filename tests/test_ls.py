import pytest

from xvfs.disk import MemDisk
from xvfs.fs import FileSystem, FsError
from xvfs.layout import DIRSIZ, FileType
from xvfs.ls import fmtname, list_path, main
from xvfs.mkfs import build_image
from xvfs.sysfile import OpenMode, Volume

README = b"hello\n"


@pytest.fixture
def image():
    return build_image({"README": README})


@pytest.fixture
def volume(image):
    return Volume(FileSystem(MemDisk(image)))


def test_fmtname_pads_last_element():
    assert fmtname("a/b/README") == "README        "
    assert len(fmtname("x")) == DIRSIZ
    assert fmtname("x").rstrip() == "x"


def test_fmtname_long_name_unchanged():
    assert fmtname("/dir/abcdefghijklmnop") == "abcdefghijklmnop"


def test_list_file(volume):
    st = volume.stat("/README")
    assert list_path(volume, "/README") == [
        f"{fmtname('/README')} {int(FileType.FILE)} {st.ino} {len(README)}"
    ]


def test_list_root_directory(volume):
    lines = list_path(volume, "/")
    assert [line.split()[0] for line in lines] == [".", "..", "README"]
    root_ino = volume.stat("/").ino
    for line in lines[:2]:
        fields = line.split()
        assert fields[1] == str(int(FileType.DIR))
        assert fields[2] == str(root_ino)


def test_list_current_directory_by_default(volume):
    assert list_path(volume, ".") == [
        line for line in list_path(volume, "/")
    ]


def test_list_shows_new_entries(volume):
    volume.mkdir("/d")
    volume.mknod("/d/console", 1, 1)
    with volume.open("/d/f", OpenMode.CREATE | OpenMode.RDWR) as f:
        f.write(b"abc")
    lines = list_path(volume, "/d")
    by_name = {line.split()[0]: line.split() for line in lines}
    assert set(by_name) == {".", "..", "console", "f"}
    assert by_name["console"][1] == str(int(FileType.DEV))
    assert by_name["f"][3] == str(len(b"abc"))


def test_list_device_alone_prints_nothing(volume):
    volume.mknod("/console", 1, 1)
    assert list_path(volume, "/console") == []


def test_list_missing_raises(volume):
    with pytest.raises(FsError):
        list_path(volume, "/nope")


def test_list_path_too_long(volume):
    assert list_path(volume, "/" * 500) == ["ls: path too long"]


def test_main_prints_listing(tmp_path, image, volume, capsys):
    img = tmp_path / "fs.img"
    img.write_bytes(image)
    assert main([str(img), "/README"]) == 0
    out = capsys.readouterr().out
    assert out == "\n".join(list_path(volume, "/README")) + "\n"


def test_main_reports_missing(tmp_path, image, capsys):
    img = tmp_path / "fs.img"
    img.write_bytes(image)
    assert main([str(img), "/nope"]) == 0
    captured = capsys.readouterr()
    assert captured.err == "ls: cannot open /nope\n"
    assert captured.out == ""


def test_main_without_arguments(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().err