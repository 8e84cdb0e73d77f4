"""Path-level filesystem operations on top of a formatted disk image."""

from __future__ import annotations

import errno
import logging
import os
import stat
import time
from dataclasses import dataclass
from typing import Iterator

from .disk import Disk, NoSpaceError
from .layout import (
    BLOCK_SIZE,
    DIRECT_BLOCKS,
    DirEntry,
    FileType,
    Inode,
    pack_dir_block,
    unpack_dir_block,
)

logger = logging.getLogger(__name__)

ROOT_INODE = 0


def _error(code: int, path: str) -> OSError:
    # OSError picks the matching subclass (FileNotFoundError, ...) from the code.
    return OSError(code, os.strerror(code), path)


def _now() -> int:
    return int(time.time())


def split_path(path: str) -> tuple[str, str]:
    """Split an absolute path into its parent directory and final name."""
    parent, slash, name = path.rpartition("/")
    if not slash:
        raise ValueError(f"not an absolute path: {path!r}")
    return (parent or "/"), name


@dataclass(frozen=True)
class FileAttributes:
    """What getattr reports about a file or directory."""

    mode: int
    nlink: int
    size: int
    atime: int
    mtime: int
    ctime: int

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)


class FileSystem:
    """Files and directories stored on a Disk, addressed by absolute path."""

    def __init__(self, disk: Disk) -> None:
        self.disk = disk

    # ------------------------------------------------------------------
    # Directory helpers

    def _dir_blocks(self, inode: Inode) -> Iterator[tuple[int, list[DirEntry]]]:
        for block in inode.direct_blocks[:min(inode.blocks, DIRECT_BLOCKS)]:
            yield block, unpack_dir_block(self.disk.read_block(block))

    def _live_entries(self, inode: Inode) -> Iterator[DirEntry]:
        for _, entries in self._dir_blocks(inode):
            yield from (entry for entry in entries if entry.inode_num != 0)

    def path_to_inode(self, path: str) -> int | None:
        """Return the inode number that *path* names, or None if it is missing."""
        if path == "/":
            return ROOT_INODE
        current = ROOT_INODE
        for component in filter(None, path[1:].split("/")):
            found = self.find_dir_entry(current, component)
            if found is None:
                return None
            current = found
        return current

    def _resolve(self, path: str) -> int:
        inode_num = self.path_to_inode(path)
        if inode_num is None:
            raise _error(errno.ENOENT, path)
        return inode_num

    def find_dir_entry(self, dir_inode: int, name: str) -> int | None:
        """Return the inode number stored under *name*, or None."""
        directory = self.disk.read_inode(dir_inode)
        for entry in self._live_entries(directory):
            if entry.name == name:
                return entry.inode_num
        return None

    def add_dir_entry(self, dir_inode: int, name: str, inode_num: int) -> None:
        """Store *name* in the first free slot, growing the directory if needed."""
        new_entry = DirEntry(inode_num=inode_num, name=name)
        new_entry.pack()  # validate the name before touching the disk
        directory = self.disk.read_inode(dir_inode)
        for block, entries in self._dir_blocks(directory):
            for slot, entry in enumerate(entries):
                if entry.inode_num == 0:
                    entries[slot] = new_entry
                    self.disk.write_block(block, pack_dir_block(entries))
                    return

        if directory.blocks >= DIRECT_BLOCKS:
            raise NoSpaceError("directory has no room for another entry")
        block = self.disk.alloc_block()
        directory.direct_blocks[directory.blocks] = block
        directory.blocks += 1
        directory.size += BLOCK_SIZE
        self.disk.write_block(block, pack_dir_block([new_entry]))
        self.disk.write_inode(dir_inode, directory)

    def remove_dir_entry(self, dir_inode: int, name: str) -> None:
        """Clear the slot holding *name*."""
        directory = self.disk.read_inode(dir_inode)
        for block, entries in self._dir_blocks(directory):
            for slot, entry in enumerate(entries):
                if entry.inode_num != 0 and entry.name == name:
                    entries[slot] = DirEntry()
                    self.disk.write_block(block, pack_dir_block(entries))
                    return
        raise _error(errno.ENOENT, name)

    def _touch_parent(self, parent_num: int) -> None:
        parent = self.disk.read_inode(parent_num)
        parent.modified = parent.accessed = _now()
        self.disk.write_inode(parent_num, parent)

    def _new_node(self, path: str, file_type: FileType, nlinks: int) -> tuple[int, int, str]:
        parent_path, name = split_path(path)
        parent_num = self._resolve(parent_path)
        if self.disk.read_inode(parent_num).type != FileType.DIR:
            raise _error(errno.ENOTDIR, parent_path)
        if self.find_dir_entry(parent_num, name) is not None:
            raise _error(errno.EEXIST, path)
        new_num = self.disk.alloc_inode()
        now = _now()
        self.disk.write_inode(
            new_num,
            Inode(type=file_type, created=now, modified=now, accessed=now, nlinks=nlinks),
        )
        return parent_num, new_num, name

    def _link_into_parent(self, parent_num: int, name: str, new_num: int) -> None:
        try:
            self.add_dir_entry(parent_num, name, new_num)
        except BaseException:
            self.disk.free_inode(new_num)
            raise
        self._touch_parent(parent_num)

    # ------------------------------------------------------------------
    # Operations

    def getattr(self, path: str) -> FileAttributes:
        logger.debug("GETATTR: %s", path)
        inode = self.disk.read_inode(self._resolve(path))
        if inode.type == FileType.DIR:
            mode, size = stat.S_IFDIR | 0o755, 0
        elif inode.type == FileType.REG:
            mode, size = stat.S_IFREG | 0o644, inode.size
        else:
            raise _error(errno.ENOENT, path)
        return FileAttributes(
            mode=mode,
            nlink=inode.nlinks,
            size=size,
            atime=inode.accessed,
            mtime=inode.modified,
            ctime=inode.created,
        )

    def readdir(self, path: str) -> list[str]:
        logger.debug("READDIR: %s", path)
        directory = self.disk.read_inode(self._resolve(path))
        if directory.type != FileType.DIR:
            raise _error(errno.ENOTDIR, path)
        return [".", ".."] + [entry.name for entry in self._live_entries(directory)]

    def mkdir(self, path: str) -> None:
        logger.debug("MKDIR: %s", path)
        parent_num, new_num, name = self._new_node(path, FileType.DIR, 2)
        self.add_dir_entry(new_num, ".", new_num)
        self.add_dir_entry(new_num, "..", parent_num)
        self._link_into_parent(parent_num, name, new_num)

    def create(self, path: str) -> None:
        logger.debug("CREATE: %s", path)
        parent_num, new_num, name = self._new_node(path, FileType.REG, 1)
        self._link_into_parent(parent_num, name, new_num)

    def _open_file(self, path: str) -> tuple[int, Inode]:
        inode_num = self._resolve(path)
        inode = self.disk.read_inode(inode_num)
        if inode.type != FileType.REG:
            raise _error(errno.EISDIR, path)
        return inode_num, inode

    def open(self, path: str) -> None:
        logger.debug("OPEN: %s", path)
        inode_num, inode = self._open_file(path)
        inode.accessed = _now()
        self.disk.write_inode(inode_num, inode)

    def read(self, path: str, size: int, offset: int = 0) -> bytes:
        logger.debug("READ: %s", path)
        if size < 0 or offset < 0:
            raise ValueError("size and offset must not be negative")
        inode_num, inode = self._open_file(path)
        inode.accessed = _now()
        self.disk.write_inode(inode_num, inode)
        return self._read_data(inode, size, offset)

    def write(self, path: str, data, offset: int = 0) -> int:
        logger.debug("WRITE: %s", path)
        if offset < 0:
            raise ValueError("offset must not be negative")
        inode_num, inode = self._open_file(path)
        written = self._write_data(inode, bytes(data), offset)
        if written > 0:
            inode.modified = inode.accessed = _now()
            self.disk.write_inode(inode_num, inode)
        return written

    def unlink(self, path: str) -> None:
        logger.debug("UNLINK: %s", path)
        parent_path, name = split_path(path)
        parent_num = self._resolve(parent_path)
        file_num = self.find_dir_entry(parent_num, name)
        if file_num is None:
            raise _error(errno.ENOENT, path)
        inode = self.disk.read_inode(file_num)
        if inode.type != FileType.REG:
            raise _error(errno.EISDIR, path)
        self._release(parent_num, name, file_num, inode)

    def rmdir(self, path: str) -> None:
        logger.debug("RMDIR: %s", path)
        parent_path, name = split_path(path)
        parent_num = self._resolve(parent_path)
        dir_num = self.find_dir_entry(parent_num, name)
        if dir_num is None:
            raise _error(errno.ENOENT, path)
        directory = self.disk.read_inode(dir_num)
        if directory.type != FileType.DIR:
            raise _error(errno.ENOTDIR, path)
        if sum(1 for _ in self._live_entries(directory)) > 2:
            raise _error(errno.ENOTEMPTY, path)
        self._release(parent_num, name, dir_num, directory)

    def _release(self, parent_num: int, name: str, inode_num: int, inode: Inode) -> None:
        self.remove_dir_entry(parent_num, name)
        for block in inode.direct_blocks[:min(inode.blocks, DIRECT_BLOCKS)]:
            self.disk.free_block(block)
        self.disk.free_inode(inode_num)
        self._touch_parent(parent_num)

    # ------------------------------------------------------------------
    # File data

    def _read_data(self, inode: Inode, size: int, offset: int) -> bytes:
        if offset >= inode.size:
            return b""
        size = min(size, inode.size - offset)
        block_index, within = divmod(offset, BLOCK_SIZE)
        limit = min(inode.blocks, DIRECT_BLOCKS)
        chunks = []
        remaining = size
        while remaining > 0 and block_index < limit:
            data = self.disk.read_block(inode.direct_blocks[block_index])
            chunk = data[within:within + remaining]
            chunks.append(chunk)
            remaining -= len(chunk)
            block_index += 1
            within = 0
        return b"".join(chunks)

    def _write_data(self, inode: Inode, data: bytes, offset: int) -> int:
        if not data:
            return 0
        new_size = offset + len(data)
        needed = -(-new_size // BLOCK_SIZE)
        if needed > DIRECT_BLOCKS:
            raise NoSpaceError("file would need more than the direct blocks")
        while inode.blocks < needed:
            inode.direct_blocks[inode.blocks] = self.disk.alloc_block()
            inode.blocks += 1

        view = memoryview(data)
        written = 0
        block_index, within = divmod(offset, BLOCK_SIZE)
        while written < len(data) and block_index < inode.blocks:
            block = inode.direct_blocks[block_index]
            chunk = min(BLOCK_SIZE - within, len(data) - written)
            if within == 0 and chunk == BLOCK_SIZE:
                content = bytes(view[written:written + BLOCK_SIZE])
            else:
                buffer = bytearray(self.disk.read_block(block))
                buffer[within:within + chunk] = view[written:written + chunk]
                content = bytes(buffer)
            self.disk.write_block(block, content)
            written += chunk
            block_index += 1
            within = 0

        inode.size = max(inode.size, new_size)
        return written