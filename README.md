# xvfs

A compact Unix-style file system in pure Python. It works on a disk
image of 512-byte blocks held in memory. An image has a boot block, a
superblock, a redo log, inode blocks, a free-block bitmap and data
blocks.

## Modules

- `xvfs.layout`: the on-disk format. `Superblock`, `Dinode` and
  `Dirent` each have `pack()` and `unpack(data)`. `FileType` lists the
  inode types (`FREE`, `DIR`, `FILE`, `DEV`) and `Stat` is a file
  status. `iblock(inum, sb)` and `bblock(b, sb)` give the block that
  holds an inode or a bitmap bit. Constants such as `BSIZE`,
  `NDIRECT`, `MAXFILE`, `DIRSIZ`, `NOFILE` and `FSSIZE` live here.
- `xvfs.disk`: `MemDisk`, a block device over an in-memory image
  (`read_block`, `write_block`, `to_bytes`, `MemDisk.from_file`). It
  serves only device 1 and raises `DiskError` for blocks out of range.
- `xvfs.log`: `Log`, a redo log that makes multi-block updates atomic.
  Changes are staged between `begin_op()` and `end_op()`, or inside
  `with log.transaction():`, and committed when the last outstanding
  operation ends. `recover()` installs a committed transaction found on
  disk. Misuse raises `LogError`.
- `xvfs.fs`: `FileSystem`, with the block allocator, a cache of `Inode`
  objects, file contents (`readi`, `writei`), directories (`dirlookup`,
  `dirlink`) and path lookup (`namei`, `nameiparent`). Also the helpers
  `namecmp` and `skipelem`. Calls that change the disk must run inside
  `fs.log.transaction()`. Device files are served by objects with
  `read(ip, n)` and `write(ip, data)` placed in `fs.devsw` under their
  major number.
- `xvfs.sysfile`: `Volume`, the path-level calls `open`, `mkdir`,
  `mknod`, `link`, `unlink`, `chdir` and `stat`. `open` takes
  `OpenMode` flags (`RDONLY`, `WRONLY`, `RDWR`, `CREATE`) and returns an
  `OpenFile` that can `read(n)`, `write(data)`, `fstat()` and `close()`,
  and works as a context manager. A volume holds at most `NOFILE` open
  files.
- `xvfs.mkfs`: `ImageBuilder` (`ialloc`, `iappend`, `add_file`,
  `finish`) and `build_image(files)`, which make a fresh image with a
  root directory holding the given files.
- `xvfs.ls`: `fmtname(path)` and `list_path(volume, path)`, which give
  one line per file: name padded to 14 characters, type, inode number
  and size.
- `xvfs.matcher`: `match(pattern, text)` and `grep(pattern, stream)`, a
  small regular-expression matcher that knows `^`, `.`, `*` and `$`.
  `grep` yields matching lines that end in a newline; a final line
  without one is not reported.
- `xvfs.sh`: `parse_command(line)` and `gettoken(s, pos)`, which parse
  a shell command line into `ExecCmd`, `RedirCmd`, `PipeCmd`, `ListCmd`
  and `BackCmd` trees, raising `ParseError` on bad syntax.
- `xvfs.fmt`: `sprintf(fmt, *args)` understanding `%d %x %p %s %c %%`,
  and `format_int(value, base, signed)` for 32-bit integers.
- `xvfs.keyboard`: `KeyboardDecoder`, whose `feed(code)` turns PC
  keyboard scan codes into character codes, tracking Shift, Ctrl and
  Caps Lock.

Errors are raised as exceptions (`DiskError`, `LogError`, `FsError`,
`ParseError`, `ValueError`), never returned as status codes.

## Installing

    pip install .

The package has no runtime dependencies. For the tests:

    pip install ".[test]"
    pytest

## Command line

Make an image that holds some files:

    xvfs-mkfs fs.img README notes.txt

Names that start with `_` are stored without it, so `_cat` becomes
`cat` in the image. File names may not contain `/`.

List the root directory of an image, or given paths in it:

    xvfs-ls fs.img
    xvfs-ls fs.img / README

Print the lines of files (or of standard input) that match a pattern:

    xvfs-grep '^ab*c$' notes.txt

## From Python

    from xvfs.disk import MemDisk
    from xvfs.fs import FileSystem
    from xvfs.mkfs import ImageBuilder
    from xvfs.sysfile import Volume, OpenMode

    builder = ImageBuilder(1000, 200, 30)
    builder.add_file("hello", b"hello, world\n")
    image = builder.finish()

    disk = MemDisk(image, 1)
    volume = Volume(FileSystem(disk, 1))
    volume.mkdir("/docs")
    with volume.open("/docs/note", OpenMode.CREATE | OpenMode.RDWR) as f:
        f.write(b"kept on disk")
    print(volume.stat("/docs/note"))

    with open("fs.img", "wb") as out:
        out.write(disk.to_bytes())

## What it does not do

- Changes are made to the image in memory. Nothing is written back to
  a file unless you save `MemDisk.to_bytes()` yourself; `xvfs-ls` only
  reads an image.
- `xvfs.sh` parses command lines but does not run them: there are no
  processes, pipes or program execution in the package.
- There are no device drivers. A device file does nothing until an
  object is registered for its major number in `FileSystem.devsw`.
- There is no command that writes to an existing image; use `Volume`
  from Python for that.