import struct

import pytest

from hfsplusvol.structures import (
    CMPFS_MAGIC,
    TIME_OFFSET_FROM_UNIX,
    Decmpfs,
    ExtentDescriptor,
    ExtentKey,
    ForkData,
    HFSError,
    VolumeHeader,
    apple_to_unix_time,
    ascii_to_unicode,
    unicode_to_ascii,
    unix_to_apple_time,
)


def test_extent_descriptor_wire_bytes():
    assert ExtentDescriptor(1, 2).pack() == b"\x00\x00\x00\x01\x00\x00\x00\x02"


def test_extent_descriptor_round_trip():
    extent = ExtentDescriptor(123456, 789)
    assert ExtentDescriptor.unpack(extent.pack()) == extent


def test_extent_descriptor_short_data():
    with pytest.raises(HFSError):
        ExtentDescriptor.unpack(b"\x00\x01")


def test_fork_data_round_trip_pads_extents():
    fork = ForkData(4096, 0, 1, [ExtentDescriptor(10, 1)])
    packed = fork.pack()
    assert len(packed) == ForkData.SIZE
    restored = ForkData.unpack(packed)
    assert restored.logical_size == 4096
    assert restored.total_blocks == 1
    assert restored.extents[0] == ExtentDescriptor(10, 1)
    assert all(extent == ExtentDescriptor() for extent in restored.extents[1:])
    assert len(restored.extents) == 8


def test_fork_data_too_many_extents():
    fork = ForkData(extents=[ExtentDescriptor(i, 1) for i in range(9)])
    with pytest.raises(HFSError):
        fork.pack()


def test_volume_header_is_512_bytes():
    assert VolumeHeader.SIZE == 512
    assert len(VolumeHeader().pack()) == 512


def test_volume_header_round_trip():
    header = VolumeHeader(
        signature=0x482B,
        version=4,
        block_size=4096,
        total_blocks=1000,
        free_blocks=500,
        next_catalog_id=42,
        encodings_bitmap=1 << 40,
        finder_info=[1, 2, 3, 4, 5, 6, 7, 8],
        catalog_file=ForkData(8192, 4096, 2, [ExtentDescriptor(5, 2)]),
    )
    restored = VolumeHeader.unpack(header.pack())
    assert restored.pack() == header.pack()
    assert restored.signature == 0x482B
    assert restored.encodings_bitmap == 1 << 40
    assert restored.catalog_file.extents[0] == ExtentDescriptor(5, 2)
    assert restored.finder_info == [1, 2, 3, 4, 5, 6, 7, 8]


def test_volume_header_signature_is_first_and_big_endian():
    packed = VolumeHeader(signature=0x482B).pack()
    assert packed[:2] == b"H+"


def test_volume_header_short_data():
    with pytest.raises(HFSError):
        VolumeHeader.unpack(bytes(511))


def test_extent_key_round_trip_and_length():
    key = ExtentKey(file_id=5, start_block=7)
    packed = key.pack()
    assert len(packed) == ExtentKey.SIZE
    assert struct.unpack(">H", packed[:2])[0] == ExtentKey.SIZE - 2
    assert ExtentKey.unpack(packed) == key


def test_extent_key_short_data():
    with pytest.raises(HFSError):
        ExtentKey.unpack(b"\x00" * 4)


def test_decmpfs_unpack_little_endian():
    raw = b"fpmc" + struct.pack("<IQ", 3, 12345) + b"payload"
    header = Decmpfs.unpack(raw)
    assert header.magic == CMPFS_MAGIC
    assert header.flags == 3
    assert header.size == 12345
    assert header.data == b"payload"


def test_decmpfs_short_data():
    with pytest.raises(HFSError):
        Decmpfs.unpack(b"fpmc")


def test_time_conversion():
    assert apple_to_unix_time(TIME_OFFSET_FROM_UNIX) == 0
    assert unix_to_apple_time(0) == 2082844800
    assert apple_to_unix_time(unix_to_apple_time(1_000_000)) == 1_000_000


def test_unicode_to_ascii_keeps_low_byte():
    assert unicode_to_ascii([ord("a"), ord("b")]) == "ab"
    assert unicode_to_ascii([0x0141]) == chr(0x41)


def test_ascii_unicode_round_trip():
    assert unicode_to_ascii(ascii_to_unicode("Applications")) == "Applications"


def test_ascii_to_unicode_too_long():
    with pytest.raises(HFSError):
        ascii_to_unicode("x" * 256)


def test_ascii_to_unicode_limit_accepted():
    assert len(ascii_to_unicode("x" * 255)) == 255