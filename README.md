# blockfs

`blockfs` is a small inode-based filesystem that lives inside a single disk
image file. The image is 10 MiB of 512-byte blocks, laid out as follows:

- **block 0** holds the superblock.
- **the next blocks** hold the inode table, which has room for 1024 inodes.
- **the next two blocks** hold the block bitmap and the inode bitmap.
- **the remaining blocks** hold data.

Each file or directory has up to twelve direct data blocks, so a file holds at
most 6 KiB. Directories store fixed-size entries. Each entry holds an inode
number and a name of up to 255 bytes.

## Installation

```
pip install .
```

The package uses only the standard library.

## Usage

```python
from blockfs.disk import Disk
from blockfs.filesystem import FileSystem

with Disk.create("disk.img") as disk:
    fs = FileSystem(disk)
    fs.mkdir("/docs")
    fs.create("/docs/hello.txt")
    fs.write("/docs/hello.txt", b"hello, world", 0)

    print(fs.readdir("/docs"))          # ['.', '..', '.', '..', 'hello.txt']
    print(fs.read("/docs/hello.txt", 100, 0))   # b'hello, world'
    attrs = fs.getattr("/docs/hello.txt")
    print(attrs.size, attrs.nlink, attrs.is_dir)  # 12 1 False

    fs.unlink("/docs/hello.txt")
    fs.rmdir("/docs")
```

`readdir` always lists `.` and `..` first. A directory made with `mkdir` also
stores its own `.` and `..` entries, so these names appear twice for it.

`Disk.create(path)` creates a 10 MiB zero-filled image and formats it.
`Disk.open(path)` opens an existing image and loads its superblock. If the
image carries no filesystem yet, it formats it. `open_disk(path)` opens the
image at `path` if it exists and creates a new one if it does not; `path`
defaults to `disk.img`. A `Disk` is a context manager that closes the image
file on exit.

## Operations

`FileSystem` takes absolute paths:

- `getattr(path)` returns a `FileAttributes` with `mode`, `nlink`, `size`,
  `atime`, `mtime`, `ctime` and `is_dir`.
- `readdir(path)` returns the names in a directory.
- `mkdir(path)` and `create(path)` make a directory or an empty file.
- `open(path)` checks that a regular file exists and updates its access time.
- `read(path, size, offset)` returns up to `size` bytes from `offset`.
- `write(path, data, offset)` writes bytes and returns how many were written.
- `unlink(path)` removes a file; `rmdir(path)` removes an empty directory.
- `path_to_inode(path)` and `find_dir_entry(dir_inode, name)` return an inode
  number, or `None` when the name is missing.
- `add_dir_entry` and `remove_dir_entry` edit directory slots directly.

`split_path(path)` splits an absolute path into its parent and final name.

Failed operations raise `OSError` with the usual `errno` value:

| Value | Raised when |
| --- | --- |
| `ENOENT` | a path is missing |
| `ENOTDIR` | a directory was expected |
| `EISDIR` | a regular file was expected |
| `EEXIST` | a name is already taken |
| `ENOTEMPTY` | a directory still holds entries |
| `ENOSPC` | no free block or inode is left, or a file or directory would need more than twelve blocks |

`ENOSPC` is raised as `blockfs.disk.NoSpaceError`, a subclass of `OSError`.
Names that are too long or contain NUL, negative offsets and out-of-range block
or inode numbers raise `ValueError`. Operations log their name and path at
debug level through the `logging` module.

## Low-level access

`blockfs.layout` defines the on-disk records: `Superblock`, `Inode`,
`DirEntry` and `FileType`. Each record has `pack()` and `unpack()` methods. The
helpers `pack_dir_block` and `unpack_dir_block` convert a whole directory block
to and from a list of entries.

`Disk` gives raw access to the image:

- `read_block` and `write_block` read and write single blocks.
- `read_inode` and `write_inode` read and write inodes.
- `alloc_block`, `free_block`, `alloc_inode` and `free_inode` allocate and free
  blocks and inodes, always taking the lowest free number.
- `format()` writes a fresh superblock, bitmaps and an empty root directory.

## Limits

- The package does not mount the image in the operating system. It offers no
  command; the filesystem is used only through the `FileSystem` methods.
- There are no indirect blocks, permissions, renames or hard links.
- The block bitmap is a single block, so only the first 4096 blocks of the
  image can be allocated.