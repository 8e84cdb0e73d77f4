import pytest

from blockfs.layout import (
    BLOCK_SIZE,
    DIRECT_BLOCKS,
    DIRENT_SIZE,
    INODE_SIZE,
    MAGIC_NUM,
    MAX_DIRENTRIES_PER_BLOCK,
    MAX_NAME_LEN,
    SUPERBLOCK_SIZE,
    DirEntry,
    FileType,
    Inode,
    Superblock,
    pack_dir_block,
    unpack_dir_block,
)


def test_inode_packed_size_matches_table_slot():
    assert len(Inode().pack()) == INODE_SIZE
    assert INODE_SIZE == 96


def test_inode_round_trip():
    inode = Inode(
        type=FileType.REG,
        size=1234,
        blocks=3,
        direct_blocks=[200, 201, 202] + [0] * (DIRECT_BLOCKS - 3),
        indirect_block=0,
        created=1_700_000_000,
        modified=1_700_000_100,
        accessed=1_700_000_200,
        nlinks=1,
    )
    assert Inode.unpack(inode.pack()) == inode


def test_inode_type_decodes_to_enum():
    decoded = Inode.unpack(Inode(type=2, nlinks=2).pack())
    assert decoded.type is FileType.DIR
    assert decoded.nlinks == 2


def test_inode_unknown_type_kept_as_int():
    decoded = Inode.unpack(Inode(type=7).pack())
    assert decoded.type == 7


def test_zero_inode_unpacks_empty():
    decoded = Inode.unpack(bytes(INODE_SIZE))
    assert decoded == Inode()
    assert decoded.direct_blocks == [0] * DIRECT_BLOCKS


def test_inode_short_pointer_list_is_padded():
    decoded = Inode.unpack(Inode(direct_blocks=[7, 8]).pack())
    assert decoded.direct_blocks == [7, 8] + [0] * (DIRECT_BLOCKS - 2)


def test_inode_too_many_pointers_rejected():
    with pytest.raises(ValueError):
        Inode(direct_blocks=[1] * (DIRECT_BLOCKS + 1)).pack()


def test_inode_negative_field_rejected():
    with pytest.raises(ValueError):
        Inode(size=-1).pack()


def test_inode_unpack_short_data_rejected():
    with pytest.raises(ValueError):
        Inode.unpack(bytes(INODE_SIZE - 1))


def test_superblock_round_trip():
    sb = Superblock(MAGIC_NUM, 20480, 1024, 100, 50, 195, 1, 0)
    packed = sb.pack()
    assert len(packed) == SUPERBLOCK_SIZE
    assert Superblock.unpack(packed) == sb


def test_superblock_magic_is_little_endian():
    assert Superblock(magic=MAGIC_NUM).pack()[:4] == b"\xef\xbe\xad\xde"


def test_superblock_unpack_short_data_rejected():
    with pytest.raises(ValueError):
        Superblock.unpack(b"\x00" * (SUPERBLOCK_SIZE - 1))


@pytest.mark.parametrize("name", ["a", "..", "notes.txt", "ünïcødé", "x" * MAX_NAME_LEN])
def test_dir_entry_round_trip(name):
    entry = DirEntry(inode_num=42, name=name)
    packed = entry.pack()
    assert len(packed) == DIRENT_SIZE
    assert DirEntry.unpack(packed) == entry


def test_dir_entry_name_too_long_rejected():
    with pytest.raises(ValueError):
        DirEntry(inode_num=1, name="x" * (MAX_NAME_LEN + 1)).pack()


def test_dir_entry_name_with_nul_rejected():
    with pytest.raises(ValueError):
        DirEntry(inode_num=1, name="a\0b").pack()


def test_dir_block_round_trip():
    entries = [DirEntry(inode_num=3, name="file")] * MAX_DIRENTRIES_PER_BLOCK
    block = pack_dir_block(entries)
    assert len(block) == BLOCK_SIZE
    assert unpack_dir_block(block) == entries


def test_empty_dir_block_has_only_free_slots():
    entries = unpack_dir_block(bytes(BLOCK_SIZE))
    assert len(entries) == MAX_DIRENTRIES_PER_BLOCK
    assert all(entry.inode_num == 0 and entry.name == "" for entry in entries)


def test_pack_dir_block_pads_missing_slots():
    assert pack_dir_block([]) == bytes(BLOCK_SIZE)


def test_pack_dir_block_too_many_entries_rejected():
    entries = [DirEntry(inode_num=1, name="a")] * (MAX_DIRENTRIES_PER_BLOCK + 1)
    with pytest.raises(ValueError):
        pack_dir_block(entries)


def test_unpack_dir_block_short_data_rejected():
    with pytest.raises(ValueError):
        unpack_dir_block(bytes(BLOCK_SIZE - 1))