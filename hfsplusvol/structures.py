"""On-disk HFS+ structures, constants and small conversion helpers."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, List, Sequence

TIME_OFFSET_FROM_UNIX = 2082844800
UF_COMPRESSED = 0o40
CMPFS_MAGIC = 0x636D7066
MAX_NAME_LENGTH = 255
EXTENTS_PER_RECORD = 8

SYMLINK_FILE_TYPE = 0x736C6E6B  # 'slnk'
SYMLINK_CREATOR = 0x72686170  # 'rhap'
HARDLINK_FILE_TYPE = 0x686C6E6B  # 'hlnk'
HFSPLUS_CREATOR = 0x6866732B  # 'hfs+'

PRIVATE_DATA_DIRECTORY = ".HFS+ Private Directory Data"


class HFSError(Exception):
    """Raised when an HFS+ structure or operation is invalid."""


class CatalogNodeID(IntEnum):
    """Reserved catalog node identifiers."""

    ROOT_PARENT = 1
    ROOT_FOLDER = 2
    EXTENTS_FILE = 3
    CATALOG_FILE = 4
    BAD_BLOCK_FILE = 5
    ALLOCATION_FILE = 6
    STARTUP_FILE = 7
    ATTRIBUTES_FILE = 8
    REPAIR_CATALOG_FILE = 14
    BOGUS_EXTENT_FILE = 15
    FIRST_USER_CATALOG_NODE = 16


class CatalogRecordType(IntEnum):
    """Kinds of record stored in the catalog tree."""

    FOLDER = 0x0001
    FILE = 0x0002
    FOLDER_THREAD = 0x0003
    FILE_THREAD = 0x0004


class NodeKind(IntEnum):
    """Kinds of B-tree node."""

    LEAF = -1
    INDEX = 0
    HEADER = 1
    MAP = 2


class AttributeRecordType(IntEnum):
    """Kinds of record stored in the attributes tree."""

    INLINE_DATA = 0x10
    FORK_DATA = 0x20
    EXTENTS = 0x30


def _need(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise HFSError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class ExtentDescriptor:
    """A run of contiguous allocation blocks."""

    start_block: int = 0
    block_count: int = 0

    _STRUCT = struct.Struct(">II")
    SIZE = _STRUCT.size

    def pack(self) -> bytes:
        return self._STRUCT.pack(self.start_block, self.block_count)

    @classmethod
    def unpack(cls, data: bytes) -> "ExtentDescriptor":
        _need(data, cls.SIZE, "extent descriptor")
        return cls(*cls._STRUCT.unpack_from(data))


def pack_extent_record(extents: Sequence[ExtentDescriptor]) -> bytes:
    """Pack up to eight extents into a zero-padded extent record."""
    if len(extents) > EXTENTS_PER_RECORD:
        raise HFSError(f"an extent record holds at most {EXTENTS_PER_RECORD} extents")
    padded = list(extents) + [ExtentDescriptor()] * (EXTENTS_PER_RECORD - len(extents))
    return b"".join(extent.pack() for extent in padded)


def unpack_extent_record(data: bytes) -> List[ExtentDescriptor]:
    """Unpack the eight extents of an extent record."""
    _need(data, ExtentDescriptor.SIZE * EXTENTS_PER_RECORD, "extent record")
    return [
        ExtentDescriptor.unpack(data[offset:offset + ExtentDescriptor.SIZE])
        for offset in range(0, ExtentDescriptor.SIZE * EXTENTS_PER_RECORD, ExtentDescriptor.SIZE)
    ]


@dataclass
class ForkData:
    """Size and first extents of a file fork."""

    logical_size: int = 0
    clump_size: int = 0
    total_blocks: int = 0
    extents: List[ExtentDescriptor] = field(default_factory=list)

    _STRUCT = struct.Struct(">QII")
    SIZE = _STRUCT.size + ExtentDescriptor.SIZE * EXTENTS_PER_RECORD

    def pack(self) -> bytes:
        return (
            self._STRUCT.pack(self.logical_size, self.clump_size, self.total_blocks)
            + pack_extent_record(self.extents)
        )

    @classmethod
    def unpack(cls, data: bytes) -> "ForkData":
        _need(data, cls.SIZE, "fork data")
        logical_size, clump_size, total_blocks = cls._STRUCT.unpack_from(data)
        extents = unpack_extent_record(data[cls._STRUCT.size:cls.SIZE])
        return cls(logical_size, clump_size, total_blocks, extents)


_HEADER_FIELDS = (
    "signature",
    "version",
    "attributes",
    "last_mounted_version",
    "journal_info_block",
    "create_date",
    "modify_date",
    "backup_date",
    "checked_date",
    "file_count",
    "folder_count",
    "block_size",
    "total_blocks",
    "free_blocks",
    "next_allocation",
    "rsrc_clump_size",
    "data_clump_size",
    "next_catalog_id",
    "write_count",
    "encodings_bitmap",
)
_FORK_FIELDS = (
    "allocation_file",
    "extents_file",
    "catalog_file",
    "attributes_file",
    "startup_file",
)


@dataclass
class VolumeHeader:
    """The HFS+ volume header found 1024 bytes into the volume."""

    signature: int = 0
    version: int = 0
    attributes: int = 0
    last_mounted_version: int = 0
    journal_info_block: int = 0
    create_date: int = 0
    modify_date: int = 0
    backup_date: int = 0
    checked_date: int = 0
    file_count: int = 0
    folder_count: int = 0
    block_size: int = 0
    total_blocks: int = 0
    free_blocks: int = 0
    next_allocation: int = 0
    rsrc_clump_size: int = 0
    data_clump_size: int = 0
    next_catalog_id: int = 0
    write_count: int = 0
    encodings_bitmap: int = 0
    finder_info: List[int] = field(default_factory=lambda: [0] * 8)
    allocation_file: ForkData = field(default_factory=ForkData)
    extents_file: ForkData = field(default_factory=ForkData)
    catalog_file: ForkData = field(default_factory=ForkData)
    attributes_file: ForkData = field(default_factory=ForkData)
    startup_file: ForkData = field(default_factory=ForkData)

    _STRUCT = struct.Struct(">HHIIIIIIIIIIIIIIIIIQ8I")
    SIZE = _STRUCT.size + ForkData.SIZE * len(_FORK_FIELDS)

    def pack(self) -> bytes:
        if len(self.finder_info) != 8:
            raise HFSError("finder info must hold exactly 8 words")
        head = self._STRUCT.pack(
            *(getattr(self, name) for name in _HEADER_FIELDS), *self.finder_info
        )
        return head + b"".join(getattr(self, name).pack() for name in _FORK_FIELDS)

    @classmethod
    def unpack(cls, data: bytes) -> "VolumeHeader":
        _need(data, cls.SIZE, "volume header")
        values = cls._STRUCT.unpack_from(data)
        scalars = dict(zip(_HEADER_FIELDS, values[:len(_HEADER_FIELDS)]))
        finder_info = list(values[len(_HEADER_FIELDS):])
        forks = {}
        offset = cls._STRUCT.size
        for name in _FORK_FIELDS:
            forks[name] = ForkData.unpack(data[offset:offset + ForkData.SIZE])
            offset += ForkData.SIZE
        return cls(**scalars, finder_info=finder_info, **forks)


@dataclass
class ExtentKey:
    """Key of a record in the extents overflow tree."""

    file_id: int = 0
    start_block: int = 0
    fork_type: int = 0
    pad: int = 0
    key_length: int = 10

    _STRUCT = struct.Struct(">HBBII")
    SIZE = _STRUCT.size

    def pack(self) -> bytes:
        return self._STRUCT.pack(
            self.key_length, self.fork_type, self.pad, self.file_id, self.start_block
        )

    @classmethod
    def unpack(cls, data: bytes) -> "ExtentKey":
        _need(data, cls.SIZE, "extent key")
        key_length, fork_type, pad, file_id, start_block = cls._STRUCT.unpack_from(data)
        return cls(file_id, start_block, fork_type, pad, key_length)


@dataclass
class Decmpfs:
    """Header of the com.apple.decmpfs attribute of a compressed file."""

    magic: int
    flags: int
    size: int
    data: bytes = b""

    _STRUCT = struct.Struct("<IIQ")
    SIZE = _STRUCT.size

    @classmethod
    def unpack(cls, data: bytes) -> "Decmpfs":
        _need(data, cls.SIZE, "decmpfs header")
        magic, flags, size = cls._STRUCT.unpack_from(data)
        return cls(magic, flags, size, bytes(data[cls.SIZE:]))


def apple_to_unix_time(timestamp: int) -> int:
    """Convert seconds since 1904 to seconds since 1970."""
    return timestamp - TIME_OFFSET_FROM_UNIX


def unix_to_apple_time(timestamp: int) -> int:
    """Convert seconds since 1970 to seconds since 1904."""
    return timestamp + TIME_OFFSET_FROM_UNIX


def unicode_to_ascii(units: Iterable[int]) -> str:
    """Reduce UTF-16 code units to their low bytes, as the volume tools print them."""
    return "".join(chr(unit & 0xFF) for unit in units)


def ascii_to_unicode(text: str) -> List[int]:
    """Turn a name into the UTF-16 code units of an HFS+ name."""
    units = [ord(char) for char in text]
    if any(unit > 0xFFFF for unit in units):
        raise HFSError(f"name {text!r} has characters outside the basic plane")
    if len(units) > MAX_NAME_LENGTH:
        raise HFSError(f"name is longer than {MAX_NAME_LENGTH} characters")
    return units