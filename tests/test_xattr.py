import pytest

from hfsplusvol.structures import ExtentDescriptor, ForkData, HFSError
from hfsplusvol.xattr import (
    AttributeKey,
    AttributeStore,
    ExtentsAttribute,
    ForkAttribute,
    InlineAttribute,
    compare_attribute_keys,
    decode_attribute_record,
)


def test_key_pack_layout():
    packed = AttributeKey(5, "ab").pack()
    assert packed == (
        b"\x00\x12" b"\x00\x00" b"\x00\x00\x00\x05" b"\x00\x00\x00\x00"
        b"\x00\x02" b"\x00a\x00b"
    )


def test_key_round_trip():
    key = AttributeKey(42, "com.apple.decmpfs", start_block=7, pad=1)
    again = AttributeKey.unpack(key.pack())
    assert again == key
    assert again.start_block == 7
    assert again.pad == 1


def test_key_unpack_rejects_long_name():
    data = bytearray(AttributeKey(1, "a").pack())
    data[12:14] = (256).to_bytes(2, "big")
    with pytest.raises(HFSError):
        AttributeKey.unpack(bytes(data) + bytes(600))


def test_key_unpack_rejects_small_key_length():
    data = bytearray(AttributeKey(1, "abcd").pack())
    data[0:2] = (2).to_bytes(2, "big")
    with pytest.raises(HFSError):
        AttributeKey.unpack(bytes(data))


def test_key_unpack_rejects_truncated():
    with pytest.raises(HFSError):
        AttributeKey.unpack(AttributeKey(1, "abcd").pack()[:-1])


@pytest.mark.parametrize(
    "left, right, expected",
    [
        (AttributeKey(1, "z"), AttributeKey(2, "a"), -1),
        (AttributeKey(3, "a"), AttributeKey(2, "z"), 1),
        (AttributeKey(2, "ab"), AttributeKey(2, "ab", start_block=9), 0),
        (AttributeKey(2, "ab"), AttributeKey(2, "abc"), -1),
        (AttributeKey(2, "abc"), AttributeKey(2, "ab"), 1),
        (AttributeKey(2, "b"), AttributeKey(2, "ab"), 1),
        (AttributeKey(2, ""), AttributeKey(2, "a"), -1),
    ],
)
def test_compare_keys(left, right, expected):
    assert compare_attribute_keys(left, right) == expected
    assert compare_attribute_keys(right, left) == -expected


def test_inline_round_trip():
    record = InlineAttribute(b"hello")
    packed = record.pack()
    assert packed[:4] == b"\x00\x00\x00\x10"
    assert decode_attribute_record(packed) == record


def test_fork_round_trip():
    fork = ForkData(4096, 0, 1, [ExtentDescriptor(10, 1)] + [ExtentDescriptor()] * 7)
    record = ForkAttribute(fork)
    decoded = decode_attribute_record(record.pack())
    assert decoded == record


def test_extents_round_trip():
    extents = [ExtentDescriptor(i, i + 1) for i in range(8)]
    decoded = decode_attribute_record(ExtentsAttribute(extents).pack())
    assert decoded == ExtentsAttribute(extents)


def test_decode_unknown_type():
    with pytest.raises(HFSError):
        decode_attribute_record(b"\x00\x00\x00\x99" + bytes(12))


def test_decode_truncated_inline():
    packed = InlineAttribute(b"abcdef").pack()
    with pytest.raises(HFSError):
        decode_attribute_record(packed[:-2])


def test_store_set_get_unset():
    store = AttributeStore({})
    store.set(20, "user.note", b"value")
    assert store.get(20, "user.note") == b"value"
    store.set(20, "user.note", b"other")
    assert store.get(20, "user.note") == b"other"
    assert len(store.tree) == 1
    store.unset(20, "user.note")
    assert store.get(20, "user.note") is None


def test_store_missing_attribute():
    store = AttributeStore({})
    assert store.get(1, "missing") is None
    with pytest.raises(HFSError):
        store.unset(1, "missing")


def test_store_without_tree():
    store = AttributeStore()
    assert store.get(1, "x") is None
    assert store.names(1) == []
    with pytest.raises(HFSError):
        store.set(1, "x", b"y")
    with pytest.raises(HFSError):
        store.unset(1, "x")


def test_store_get_non_inline_raises():
    store = AttributeStore({AttributeKey(5, "fork"): ForkAttribute().pack()})
    with pytest.raises(HFSError):
        store.get(5, "fork")


def test_store_names_ordered_per_file():
    store = AttributeStore({})
    for name in ["zeta", "alpha", "alp"]:
        store.set(30, name, b"1")
    store.set(31, "beta", b"2")
    store.set(29, "gamma", b"3")
    assert store.names(30) == ["alp", "alpha", "zeta"]
    assert store.names(31) == ["beta"]
    assert store.names(99) == []