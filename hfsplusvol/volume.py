"""An opened HFS+ volume, its allocation bitmap and raw access to file forks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, List, MutableMapping, Optional, Sequence, Tuple

from .structures import (
    EXTENTS_PER_RECORD,
    CatalogNodeID,
    ExtentDescriptor,
    ForkData,
    HFSError,
    VolumeHeader,
)

VOLUME_HEADER_OFFSET = 1024
DATA_FORK = 0

# Key of an extents overflow record: (fork type, file id, first file-relative block).
OverflowKey = Tuple[int, int, int]
ExtentsOverflow = MutableMapping[OverflowKey, List[ExtentDescriptor]]
ChangeCallback = Callable[["RawFile"], None]


@dataclass
class Extent:
    """A run of allocation blocks belonging to an open fork."""

    start_block: int
    block_count: int


def _padded_record(descriptors: Sequence[ExtentDescriptor]) -> List[ExtentDescriptor]:
    record = list(descriptors)[:EXTENTS_PER_RECORD]
    return record + [ExtentDescriptor() for _ in range(EXTENTS_PER_RECORD - len(record))]


class Volume:
    """An HFS+ volume stored in a seekable binary image.

    The extents overflow tree is given as a mutable mapping from
    ``(fork_type, file_id, start_block)`` to a record of eight extent
    descriptors; ``None`` means no overflow tree is loaded.
    """

    def __init__(
        self,
        image: BinaryIO,
        header: VolumeHeader,
        extents_overflow: Optional[ExtentsOverflow] = None,
    ) -> None:
        self.image = image
        self.header = header
        self.extents_overflow = extents_overflow
        self.allocation_file = self.open_fork(
            CatalogNodeID.ALLOCATION_FILE, header.allocation_file
        )

    @classmethod
    def open(
        cls, image: BinaryIO, extents_overflow: Optional[ExtentsOverflow] = None
    ) -> "Volume":
        """Read the volume header of ``image`` and open its allocation file."""
        raw = cls._read_at(image, VOLUME_HEADER_OFFSET, VolumeHeader.SIZE)
        return cls(image, VolumeHeader.unpack(raw), extents_overflow)

    @staticmethod
    def _read_at(image: BinaryIO, offset: int, size: int) -> bytes:
        image.seek(offset)
        data = image.read(size)
        if len(data) != size:
            raise HFSError(f"short read of {size} bytes at offset {offset}")
        return data

    def read_image(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes of the image at ``offset``."""
        return self._read_at(self.image, offset, size)

    def write_image(self, offset: int, data: bytes) -> None:
        """Write ``data`` into the image at ``offset``."""
        self.image.seek(offset)
        written = self.image.write(data)
        if written is not None and written != len(data):
            raise HFSError(f"short write of {len(data)} bytes at offset {offset}")

    def update(self) -> None:
        """Write the volume header and its alternate copy back to the image."""
        packed = self.header.pack()
        alternate = self.header.total_blocks * self.header.block_size - VOLUME_HEADER_OFFSET
        self.write_image(alternate, packed)
        self.write_image(VOLUME_HEADER_OFFSET, packed)

    def is_block_used(self, block: int) -> bool:
        """Tell whether an allocation block is marked used in the bitmap."""
        byte = self.allocation_file.read(block // 8, 1)[0]
        return bool(byte & (1 << (7 - block % 8)))

    def set_block_used(self, block: int, used: bool) -> None:
        """Mark an allocation block used or free in the bitmap."""
        byte = self.allocation_file.read(block // 8, 1)[0]
        mask = 1 << (7 - block % 8)
        byte = byte | mask if used else byte & ~mask & 0xFF
        self.allocation_file.write(block // 8, bytes([byte]))

    def open_fork(
        self, file_id: int, fork: ForkData, on_change: Optional[ChangeCallback] = None
    ) -> "RawFile":
        """Open a fork for block-level reading and writing."""
        return RawFile(self, file_id, fork, on_change)

    def close(self) -> None:
        self.allocation_file.close()

    def __enter__(self) -> "Volume":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class RawFile:
    """A fork of a file on a volume, addressed by byte offset."""

    def __init__(
        self,
        volume: Volume,
        file_id: int,
        fork: ForkData,
        on_change: Optional[ChangeCallback] = None,
    ) -> None:
        self.volume = volume
        self.file_id = file_id
        self.fork = fork
        self.on_change = on_change
        self.extents: List[Extent] = [
            Extent(d.start_block, d.block_count) for d in self._stored_descriptors([])
        ]

    def _overflow_tree(self) -> ExtentsOverflow:
        tree = self.volume.extents_overflow
        if tree is None:
            raise HFSError("no extents overflow file loaded yet")
        return tree

    def _stored_descriptors(self, keys: List[OverflowKey]) -> Iterator[ExtentDescriptor]:
        """Yield the fork's descriptors as stored, noting overflow keys visited."""
        blocks_left = self.fork.total_blocks
        current_block = 0
        record = _padded_record(self.fork.extents)
        index = 0
        while blocks_left > 0:
            if index == EXTENTS_PER_RECORD:
                tree = self._overflow_tree()
                key = (DATA_FORK, self.file_id, current_block)
                if key not in tree:
                    raise HFSError("inconsistent extents information")
                keys.append(key)
                record = _padded_record(tree[key])
                index = 0
                continue
            descriptor = record[index]
            yield descriptor
            current_block += descriptor.block_count
            blocks_left -= descriptor.block_count
            index += 1

    def _remove_extents(self) -> None:
        keys: List[OverflowKey] = []
        for _ in self._stored_descriptors(keys):
            pass
        if keys:
            tree = self._overflow_tree()
            for key in keys:
                del tree[key]

    def _write_extents(self) -> None:
        self._remove_extents()
        descriptors = [ExtentDescriptor(e.start_block, e.block_count) for e in self.extents]
        head = descriptors[:EXTENTS_PER_RECORD]
        self.fork.extents = _padded_record(head)
        rest = descriptors[EXTENTS_PER_RECORD:]
        if not rest:
            return
        tree = self._overflow_tree()
        current_block = sum(d.block_count for d in head)
        for start in range(0, len(rest), EXTENTS_PER_RECORD):
            chunk = rest[start:start + EXTENTS_PER_RECORD]
            tree[(DATA_FORK, self.file_id, current_block)] = _padded_record(chunk)
            current_block += sum(d.block_count for d in chunk)

    def allocate(self, size: int) -> None:
        """Grow or shrink the fork to ``size`` bytes, updating the bitmap."""
        volume = self.volume
        header = volume.header
        block_size = header.block_size
        blocks_needed = -(-size // block_size)

        if blocks_needed > self.fork.total_blocks:
            to_allocate = blocks_needed - self.fork.total_blocks
            if to_allocate > header.free_blocks:
                raise HFSError("not enough free blocks on the volume")
            zeros = bytes(block_size)
            if self.extents:
                last = self.extents[-1]
                current = last.start_block + last.block_count
            else:
                last = Extent(0, 0)
                self.extents.append(last)
                current = header.next_allocation
            while to_allocate > 0:
                if current >= header.total_blocks or volume.is_block_used(current):
                    if last.block_count > 0:
                        last = Extent(0, 0)
                        self.extents.append(last)
                    current = header.next_allocation
                    header.next_allocation += 1
                    if header.next_allocation >= header.total_blocks:
                        header.next_allocation = 0
                else:
                    if last.block_count == 0:
                        last.start_block = current
                    volume.write_image(current * block_size, zeros)
                    volume.set_block_used(current, True)
                    header.free_blocks -= 1
                    to_allocate -= 1
                    current += 1
                    last.block_count += 1
                    if current >= header.total_blocks:
                        current = header.next_allocation
        elif blocks_needed < self.fork.total_blocks:
            keep = blocks_needed
            index = 0
            while keep > 0 and keep > self.extents[index].block_count:
                keep -= self.extents[index].block_count
                index += 1
            for position, extent in enumerate(self.extents[index:]):
                first_freed = keep if position == 0 else 0
                for block in range(extent.start_block + first_freed,
                                   extent.start_block + extent.block_count):
                    volume.set_block_used(block, False)
                    header.free_blocks += 1
            kept = self.extents[:index]
            if keep > 0:
                kept.append(Extent(self.extents[index].start_block, keep))
            self.extents = kept

        self._write_extents()
        self.fork.logical_size = size
        self.fork.total_blocks = blocks_needed
        volume.update()
        if self.on_change is not None:
            self.on_change(self)

    def _spans(self, offset: int, size: int) -> Iterator[Tuple[int, int]]:
        """Yield (image offset, length) pieces covering a byte range of the fork."""
        block_size = self.volume.header.block_size
        remaining = size
        position = offset
        for extent in self.extents:
            if remaining == 0:
                return
            length = extent.block_count * block_size
            if position >= length:
                position -= length
                continue
            take = min(remaining, length - position)
            yield extent.start_block * block_size + position, take
            remaining -= take
            position = 0
        if remaining:
            raise HFSError("access beyond the blocks of the fork")

    def read(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes of the fork starting at ``offset``."""
        if not self.extents:
            raise HFSError("fork has no extents")
        return b"".join(
            self.volume.read_image(location, length)
            for location, length in self._spans(offset, size)
        )

    def write(self, offset: int, data: bytes) -> None:
        """Write ``data`` at ``offset``, growing the fork when needed."""
        end = offset + len(data)
        if self.fork.logical_size < end:
            self.allocate(end)
        view = memoryview(data)
        done = 0
        for location, length in self._spans(offset, len(data)):
            self.volume.write_image(location, bytes(view[done:done + length]))
            done += length

    def close(self) -> None:
        self.extents = []

    def __enter__(self) -> "RawFile":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()