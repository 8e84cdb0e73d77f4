"""On-disk structures: inodes, the superblock and directory entries."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

BLOCK_SIZE = 512
MAX_NAME_LEN = 255
MAX_FILES = 1024
DIRECT_BLOCKS = 12
MAGIC_NUM = 0xDEADBEEF

# type, size, blocks, 12 direct pointers, indirect pointer,
# created/modified/accessed (64-bit times), nlinks, tail padding.
_INODE = struct.Struct(f"<3I{DIRECT_BLOCKS}II3qI4x")
_SUPERBLOCK = struct.Struct("<8I")
_DIRENT = struct.Struct(f"<I{MAX_NAME_LEN + 1}s")

INODE_SIZE = _INODE.size
INODES_PER_BLOCK = BLOCK_SIZE // INODE_SIZE
SUPERBLOCK_SIZE = _SUPERBLOCK.size
DIRENT_SIZE = _DIRENT.size
MAX_DIRENTRIES_PER_BLOCK = BLOCK_SIZE // DIRENT_SIZE


class FileType(enum.IntEnum):
    """Kinds of inode."""

    REG = 1
    DIR = 2


def _file_type(value: int) -> int:
    try:
        return FileType(value)
    except ValueError:
        return value


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class Inode:
    """An inode as stored in the inode table."""

    type: int = 0
    size: int = 0
    blocks: int = 0
    direct_blocks: list[int] = field(default_factory=lambda: [0] * DIRECT_BLOCKS)
    indirect_block: int = 0
    created: int = 0
    modified: int = 0
    accessed: int = 0
    nlinks: int = 0

    def pack(self) -> bytes:
        if len(self.direct_blocks) > DIRECT_BLOCKS:
            raise ValueError(f"an inode holds at most {DIRECT_BLOCKS} direct blocks")
        pointers = list(self.direct_blocks) + [0] * (DIRECT_BLOCKS - len(self.direct_blocks))
        try:
            return _INODE.pack(
                int(self.type),
                self.size,
                self.blocks,
                *pointers,
                self.indirect_block,
                self.created,
                self.modified,
                self.accessed,
                self.nlinks,
            )
        except struct.error as exc:
            raise ValueError(f"inode field out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> Inode:
        _require(data, INODE_SIZE, "inode")
        values = _INODE.unpack_from(data)
        type_, size, blocks = values[:3]
        direct = list(values[3:3 + DIRECT_BLOCKS])
        indirect, created, modified, accessed, nlinks = values[3 + DIRECT_BLOCKS:]
        return cls(
            type=_file_type(type_),
            size=size,
            blocks=blocks,
            direct_blocks=direct,
            indirect_block=indirect,
            created=created,
            modified=modified,
            accessed=accessed,
            nlinks=nlinks,
        )


@dataclass
class Superblock:
    """The filesystem's superblock, kept in block 0."""

    magic: int = 0
    block_count: int = 0
    inode_count: int = 0
    free_blocks: int = 0
    free_inodes: int = 0
    data_start: int = 0
    inode_start: int = 0
    root_inode: int = 0

    def pack(self) -> bytes:
        try:
            return _SUPERBLOCK.pack(
                self.magic,
                self.block_count,
                self.inode_count,
                self.free_blocks,
                self.free_inodes,
                self.data_start,
                self.inode_start,
                self.root_inode,
            )
        except struct.error as exc:
            raise ValueError(f"superblock field out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> Superblock:
        _require(data, SUPERBLOCK_SIZE, "superblock")
        return cls(*_SUPERBLOCK.unpack_from(data))


@dataclass
class DirEntry:
    """One directory slot; an inode number of 0 marks it free."""

    inode_num: int = 0
    name: str = ""

    def pack(self) -> bytes:
        encoded = self.name.encode("utf-8", "surrogateescape")
        if len(encoded) > MAX_NAME_LEN:
            raise ValueError(f"name longer than {MAX_NAME_LEN} bytes: {self.name!r}")
        if b"\0" in encoded:
            raise ValueError("name may not contain NUL")
        try:
            return _DIRENT.pack(self.inode_num, encoded)
        except struct.error as exc:
            raise ValueError(f"inode number out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> DirEntry:
        _require(data, DIRENT_SIZE, "directory entry")
        inode_num, raw = _DIRENT.unpack_from(data)
        name = raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")
        return cls(inode_num=inode_num, name=name)


def unpack_dir_block(data: bytes) -> list[DirEntry]:
    """Return every slot of a directory block, free ones included."""
    _require(data, BLOCK_SIZE, "directory block")
    return [
        DirEntry.unpack(data[offset:offset + DIRENT_SIZE])
        for offset in range(0, MAX_DIRENTRIES_PER_BLOCK * DIRENT_SIZE, DIRENT_SIZE)
    ]


def pack_dir_block(entries) -> bytes:
    """Pack directory entries into one zero-padded block."""
    entries = list(entries)
    if len(entries) > MAX_DIRENTRIES_PER_BLOCK:
        raise ValueError(
            f"a block holds at most {MAX_DIRENTRIES_PER_BLOCK} directory entries"
        )
    return b"".join(entry.pack() for entry in entries).ljust(BLOCK_SIZE, b"\0")