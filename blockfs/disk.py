"""The disk image: block I/O, inode table and allocation bitmaps."""

from __future__ import annotations

import errno
import logging
import time
from pathlib import Path

from .layout import (
    BLOCK_SIZE,
    INODE_SIZE,
    MAGIC_NUM,
    MAX_FILES,
    FileType,
    Inode,
    Superblock,
)

logger = logging.getLogger(__name__)

DISK_SIZE = 10 * 1024 * 1024
BLOCK_COUNT = DISK_SIZE // BLOCK_SIZE
INODE_BLOCKS = (MAX_FILES * INODE_SIZE + BLOCK_SIZE - 1) // BLOCK_SIZE
INODE_START = 1
BLOCK_BITMAP_BLOCK = INODE_START + INODE_BLOCKS
INODE_BITMAP_BLOCK = BLOCK_BITMAP_BLOCK + 1
DATA_START = INODE_BITMAP_BLOCK + 1
DEFAULT_IMAGE = "disk.img"

# Each bitmap lives in a single block, so it can track this many items.
_BITMAP_BITS = BLOCK_SIZE * 8


class NoSpaceError(OSError):
    """No free block or inode is left."""

    def __init__(self, message: str) -> None:
        super().__init__(errno.ENOSPC, message)


def _set_bit(bitmap: bytearray, index: int) -> None:
    bitmap[index // 8] |= 1 << (index % 8)


def _clear_bit(bitmap: bytearray, index: int) -> None:
    bitmap[index // 8] &= ~(1 << (index % 8)) & 0xFF


def _first_clear_bit(bitmap: bytes, limit: int) -> int | None:
    for byte_index, byte in enumerate(bitmap):
        if byte != 0xFF:
            lowest_zero = (~byte & (byte + 1)).bit_length() - 1
            index = byte_index * 8 + lowest_zero
            return index if index < limit else None
    return None


class Disk:
    """A formatted disk image opened for reading and writing."""

    def __init__(self, file, path) -> None:
        self.path = Path(path)
        self._file = file
        self.superblock = Superblock()

    @classmethod
    def create(cls, path) -> Disk:
        """Create a zero-filled image at *path* and format it."""
        file = open(path, "w+b")
        try:
            file.truncate(DISK_SIZE)
            disk = cls(file, path)
            disk.format()
        except BaseException:
            file.close()
            raise
        return disk

    @classmethod
    def open(cls, path) -> Disk:
        """Open an existing image, formatting it if it carries no filesystem."""
        file = open(path, "r+b")
        try:
            disk = cls(file, path)
            disk._load()
        except BaseException:
            file.close()
            raise
        return disk

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self) -> Disk:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _load(self) -> None:
        superblock = Superblock.unpack(self.read_block(0))
        if superblock.magic != MAGIC_NUM:
            logger.warning("Disk not formatted. Formatting...")
            self.format()
        else:
            self.superblock = superblock

    @staticmethod
    def _check_block(block: int) -> None:
        if not 0 <= block < BLOCK_COUNT:
            raise ValueError(f"block {block} outside 0..{BLOCK_COUNT - 1}")

    @staticmethod
    def _check_inode(inode_num: int) -> None:
        if not 0 <= inode_num < MAX_FILES:
            raise ValueError(f"inode {inode_num} outside 0..{MAX_FILES - 1}")

    def read_block(self, block: int) -> bytes:
        self._check_block(block)
        self._file.seek(block * BLOCK_SIZE)
        return self._file.read(BLOCK_SIZE).ljust(BLOCK_SIZE, b"\0")

    def write_block(self, block: int, data) -> None:
        """Write *data*, zero-padded to a whole block."""
        self._check_block(block)
        data = bytes(data)
        if len(data) > BLOCK_SIZE:
            raise ValueError(f"block data longer than {BLOCK_SIZE} bytes")
        self._file.seek(block * BLOCK_SIZE)
        self._file.write(data.ljust(BLOCK_SIZE, b"\0"))
        self._file.flush()

    def _inode_span(self, inode_num: int) -> tuple[range, int]:
        self._check_inode(inode_num)
        offset = self.superblock.inode_start * BLOCK_SIZE + inode_num * INODE_SIZE
        first, within = divmod(offset, BLOCK_SIZE)
        last = (offset + INODE_SIZE - 1) // BLOCK_SIZE
        return range(first, last + 1), within

    def read_inode(self, inode_num: int) -> Inode:
        blocks, within = self._inode_span(inode_num)
        raw = b"".join(self.read_block(block) for block in blocks)
        return Inode.unpack(raw[within:within + INODE_SIZE])

    def write_inode(self, inode_num: int, inode: Inode) -> None:
        blocks, within = self._inode_span(inode_num)
        raw = bytearray(b"".join(self.read_block(block) for block in blocks))
        raw[within:within + INODE_SIZE] = inode.pack()
        for position, block in enumerate(blocks):
            start = position * BLOCK_SIZE
            self.write_block(block, raw[start:start + BLOCK_SIZE])

    def _write_superblock(self) -> None:
        self.write_block(0, self.superblock.pack())

    def format(self) -> None:
        """Write a fresh superblock, bitmaps and an empty root directory."""
        self.superblock = Superblock(
            magic=MAGIC_NUM,
            block_count=BLOCK_COUNT,
            inode_count=MAX_FILES,
            free_blocks=BLOCK_COUNT - DATA_START,
            free_inodes=MAX_FILES - 1,
            data_start=DATA_START,
            inode_start=INODE_START,
            root_inode=0,
        )
        self._write_superblock()

        block_bitmap = bytearray(BLOCK_SIZE)
        for block in range(min(DATA_START, BLOCK_COUNT)):
            _set_bit(block_bitmap, block)
        inode_bitmap = bytearray(BLOCK_SIZE)
        _set_bit(inode_bitmap, 0)
        self.write_block(BLOCK_BITMAP_BLOCK, block_bitmap)
        self.write_block(INODE_BITMAP_BLOCK, inode_bitmap)

        now = int(time.time())
        root = Inode(
            type=FileType.DIR,
            created=now,
            modified=now,
            accessed=now,
            nlinks=2,
        )
        self.write_inode(0, root)

    def alloc_block(self) -> int:
        """Mark the lowest free block used and return its number."""
        if self.superblock.free_blocks == 0:
            raise NoSpaceError("no free blocks")
        bitmap = bytearray(self.read_block(BLOCK_BITMAP_BLOCK))
        block = _first_clear_bit(bitmap, min(BLOCK_COUNT, _BITMAP_BITS))
        if block is None:
            raise NoSpaceError("no free blocks")
        _set_bit(bitmap, block)
        self.write_block(BLOCK_BITMAP_BLOCK, bitmap)
        self.superblock.free_blocks -= 1
        self._write_superblock()
        return block

    def free_block(self, block_num: int) -> None:
        self._check_block(block_num)
        bitmap = bytearray(self.read_block(BLOCK_BITMAP_BLOCK))
        _clear_bit(bitmap, block_num)
        self.write_block(BLOCK_BITMAP_BLOCK, bitmap)
        self.superblock.free_blocks += 1
        self._write_superblock()

    def alloc_inode(self) -> int:
        """Mark the lowest free inode used and return its number."""
        if self.superblock.free_inodes == 0:
            raise NoSpaceError("no free inodes")
        bitmap = bytearray(self.read_block(INODE_BITMAP_BLOCK))
        inode_num = _first_clear_bit(bitmap, MAX_FILES)
        if inode_num is None:
            raise NoSpaceError("no free inodes")
        _set_bit(bitmap, inode_num)
        self.write_block(INODE_BITMAP_BLOCK, bitmap)
        self.superblock.free_inodes -= 1
        self._write_superblock()
        return inode_num

    def free_inode(self, inode_num: int) -> None:
        self._check_inode(inode_num)
        bitmap = bytearray(self.read_block(INODE_BITMAP_BLOCK))
        _clear_bit(bitmap, inode_num)
        self.write_block(INODE_BITMAP_BLOCK, bitmap)
        self.superblock.free_inodes += 1
        self._write_superblock()


def open_disk(path=DEFAULT_IMAGE) -> Disk:
    """Open the image at *path*, creating and formatting it if missing."""
    if Path(path).exists():
        return Disk.open(path)
    logger.info("Creating new disk image...")
    return Disk.create(path)