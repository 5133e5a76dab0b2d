"""Extended attributes: keys, records and the attributes store of a volume."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import List, MutableMapping, Optional, Union

from .structures import (
    EXTENTS_PER_RECORD,
    MAX_NAME_LENGTH,
    AttributeRecordType,
    ExtentDescriptor,
    ForkData,
    HFSError,
    ascii_to_unicode,
    pack_extent_record,
    unicode_to_ascii,
    unpack_extent_record,
)

_KEY_HEAD = struct.Struct(">HHIIH")
_UNICODE_START = _KEY_HEAD.size
_INLINE_HEAD = struct.Struct(">IIII")
_RECORD_HEAD = struct.Struct(">II")


@dataclass(frozen=True)
class AttributeKey:
    """Key of a record in the attributes tree.

    Keys are equal when their file and name are; the start block and pad
    take no part in comparison, as in the tree's ordering.
    """

    file_id: int
    name: str
    start_block: int = field(default=0, compare=False)
    pad: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        ascii_to_unicode(self.name)

    @property
    def units(self) -> List[int]:
        return ascii_to_unicode(self.name)

    @property
    def key_length(self) -> int:
        """Length written in the key, covering the whole packed key."""
        return _UNICODE_START + 2 * len(self.name)

    def pack(self) -> bytes:
        units = self.units
        head = _KEY_HEAD.pack(
            self.key_length, self.pad, self.file_id, self.start_block, len(units)
        )
        return head + struct.pack(f">{len(units)}H", *units)

    @classmethod
    def unpack(cls, data: bytes) -> "AttributeKey":
        if len(data) < _UNICODE_START:
            raise HFSError(f"attribute key needs {_UNICODE_START} bytes, got {len(data)}")
        key_length, pad, file_id, start_block, name_length = _KEY_HEAD.unpack_from(data)
        if name_length > MAX_NAME_LENGTH:
            raise HFSError(f"attribute name length {name_length} exceeds {MAX_NAME_LENGTH}")
        if key_length < _UNICODE_START - 2 + 2 * name_length:
            raise HFSError(f"attribute key length {key_length} too small for its name")
        end = _UNICODE_START + 2 * name_length
        if len(data) < end:
            raise HFSError(f"attribute key needs {end} bytes, got {len(data)}")
        units = struct.unpack_from(f">{name_length}H", data, _UNICODE_START)
        return cls(file_id, "".join(map(chr, units)), start_block, pad)


def compare_attribute_keys(left: AttributeKey, right: AttributeKey) -> int:
    """Order two keys by file id, then by name code units; return -1, 0 or 1."""
    if left.file_id != right.file_id:
        return -1 if left.file_id < right.file_id else 1
    left_units, right_units = left.units, right.units
    if left_units == right_units:
        return 0
    return -1 if left_units < right_units else 1


@dataclass
class InlineAttribute:
    """An attribute whose value is stored inside the record."""

    data: bytes = b""
    reserved: tuple = (0, 0)

    def pack(self) -> bytes:
        return (
            _INLINE_HEAD.pack(
                AttributeRecordType.INLINE_DATA, *self.reserved, len(self.data)
            )
            + bytes(self.data)
        )


@dataclass
class ForkAttribute:
    """An attribute whose value lives in a fork of its own."""

    fork: ForkData = field(default_factory=ForkData)
    reserved: int = 0

    def pack(self) -> bytes:
        return _RECORD_HEAD.pack(AttributeRecordType.FORK_DATA, self.reserved) + self.fork.pack()


@dataclass
class ExtentsAttribute:
    """Overflow extents of a fork attribute."""

    extents: List[ExtentDescriptor] = field(default_factory=list)
    reserved: int = 0

    def pack(self) -> bytes:
        return _RECORD_HEAD.pack(AttributeRecordType.EXTENTS, self.reserved) + pack_extent_record(
            self.extents
        )


AttributeRecord = Union[InlineAttribute, ForkAttribute, ExtentsAttribute]


def decode_attribute_record(data: bytes) -> AttributeRecord:
    """Decode a packed attribute record of any kind."""
    if len(data) < 4:
        raise HFSError("attribute record is too short to hold its type")
    (record_type,) = struct.unpack_from(">I", data)
    if record_type == AttributeRecordType.INLINE_DATA:
        if len(data) < _INLINE_HEAD.size:
            raise HFSError("inline attribute record is truncated")
        _, reserved1, reserved2, size = _INLINE_HEAD.unpack_from(data)
        end = _INLINE_HEAD.size + size
        if len(data) < end:
            raise HFSError(f"inline attribute needs {size} bytes of data")
        return InlineAttribute(bytes(data[_INLINE_HEAD.size:end]), (reserved1, reserved2))
    if record_type == AttributeRecordType.FORK_DATA:
        if len(data) < _RECORD_HEAD.size + ForkData.SIZE:
            raise HFSError("fork attribute record is truncated")
        _, reserved = _RECORD_HEAD.unpack_from(data)
        return ForkAttribute(ForkData.unpack(data[_RECORD_HEAD.size:]), reserved)
    if record_type == AttributeRecordType.EXTENTS:
        if len(data) < _RECORD_HEAD.size + ExtentDescriptor.SIZE * EXTENTS_PER_RECORD:
            raise HFSError("extents attribute record is truncated")
        _, reserved = _RECORD_HEAD.unpack_from(data)
        return ExtentsAttribute(unpack_extent_record(data[_RECORD_HEAD.size:]), reserved)
    raise HFSError(f"unknown attribute record type {record_type:#x}")


class AttributeStore:
    """Extended attributes of a volume, kept in an attributes tree.

    The tree is a mutable mapping from :class:`AttributeKey` to packed
    records; ``None`` means the volume has no attributes tree.
    """

    def __init__(self, tree: Optional[MutableMapping[AttributeKey, bytes]] = None) -> None:
        self.tree = tree

    def _require_tree(self) -> MutableMapping[AttributeKey, bytes]:
        if self.tree is None:
            raise HFSError("volume has no attributes tree")
        return self.tree

    def get(self, file_id: int, name: str) -> Optional[bytes]:
        """Return the value of an inline attribute, or None if there is none."""
        if self.tree is None:
            return None
        raw = self.tree.get(AttributeKey(file_id, name))
        if raw is None:
            return None
        record = decode_attribute_record(raw)
        if not isinstance(record, InlineAttribute):
            raise HFSError("unsupported attribute node format")
        return record.data

    def set(self, file_id: int, name: str, data: bytes) -> None:
        """Store ``data`` inline as the attribute ``name`` of a file."""
        tree = self._require_tree()
        key = AttributeKey(file_id, name)
        tree.pop(key, None)
        tree[key] = InlineAttribute(bytes(data)).pack()

    def unset(self, file_id: int, name: str) -> None:
        """Remove the attribute ``name`` of a file."""
        tree = self._require_tree()
        key = AttributeKey(file_id, name)
        if key not in tree:
            raise HFSError(f"file {file_id} has no attribute {name!r}")
        del tree[key]

    def names(self, file_id: int) -> List[str]:
        """List the names of a file's attributes in tree order."""
        if self.tree is None:
            return []
        keys = sorted(
            (key for key in self.tree if key.file_id == file_id),
            key=cmp_to_key(compare_attribute_keys),
        )
        return [unicode_to_ascii(key.units) for key in keys]