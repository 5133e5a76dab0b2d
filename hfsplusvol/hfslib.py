"""Volume-level operations: growing a volume, copying fork contents, tar archives."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from .structures import HFSError
from .volume import RawFile, Volume

BUFFER_SIZE = 1024 * 1024
TAR_BLOCK_SIZE = 512

TAR_FILE = 0
TAR_SYMLINK = 2
TAR_DIRECTORY = 5

_OCTAL_DIGITS = re.compile(rb"[0-7]*")
_SCANF_SPACE = b" \t\n\r\v\f"


def grow_volume(volume: Volume, new_size: int) -> None:
    """Grow ``volume`` so that its image is ``new_size`` bytes long.

    The allocation bitmap is extended when it is too small, the new blocks
    are marked free and the last block is reserved for the alternate header.
    """
    header = volume.header
    new_blocks = new_size // header.block_size
    if new_blocks <= header.total_blocks:
        raise HFSError("cannot shrink volume")

    blocks_to_grow = new_blocks - header.total_blocks
    new_map_size = new_blocks // 8
    allocation_fork = header.allocation_file

    if allocation_fork.logical_size < new_map_size:
        needed = (new_map_size - allocation_fork.logical_size) // header.block_size
        if header.free_blocks < needed:
            raise HFSError("not enough room to allocate new allocation map blocks")
        volume.allocation_file.allocate(new_map_size)

    # The old alternate header block is released; a new one is reserved below.
    volume.set_block_used(header.total_blocks - 1, False)

    first_new_byte = header.total_blocks // 8 + 1
    if first_new_byte < new_map_size:
        volume.allocation_file.write(first_new_byte, bytes(new_map_size - first_new_byte))

    volume.write_image(new_size - 1, b"\0")

    header.total_blocks = new_blocks
    header.free_blocks += blocks_to_grow

    volume.set_block_used(header.total_blocks - 1, True)
    volume.update()


def copy_fork_to(fork_file: RawFile, length: int, output: BinaryIO) -> int:
    """Copy the first ``length`` bytes of a fork to ``output``; return the count."""
    position = 0
    while position < length:
        chunk_size = min(BUFFER_SIZE, length - position)
        chunk = fork_file.read(position, chunk_size)
        written = output.write(chunk)
        if written is not None and written != len(chunk):
            raise HFSError("error writing")
        position += chunk_size
    return length


def copy_into_fork(fork_file: RawFile, source: BinaryIO) -> int:
    """Replace a fork's contents with the rest of ``source``; return the byte count."""
    start = source.tell()
    end = source.seek(0, os.SEEK_END)
    source.seek(start)
    length = end - start

    fork_file.allocate(length)

    position = 0
    while position < length:
        chunk_size = min(BUFFER_SIZE, length - position)
        chunk = source.read(chunk_size)
        if len(chunk) != chunk_size:
            raise HFSError("error reading")
        fork_file.write(position, chunk)
        position += chunk_size
    return length


@dataclass
class TarEntry:
    """One member of a tar archive, as the volume importer sees it."""

    name: str
    mode: int
    type: int
    size: int
    uid: int
    gid: int
    target: str = ""
    data: bytes = b""

    @property
    def is_file(self) -> bool:
        return self.type == TAR_FILE

    @property
    def is_directory(self) -> bool:
        return self.type == TAR_DIRECTORY

    @property
    def is_symlink(self) -> bool:
        return self.type == TAR_SYMLINK


def _octal(field: bytes) -> int:
    digits = _OCTAL_DIGITS.match(field.lstrip(_SCANF_SPACE)).group()
    return int(digits, 8) & 0xFFFFFFFF if digits else 0


def _cstring(field: bytes) -> str:
    return field.split(b"\0", 1)[0].decode("latin-1")


def iter_tar_entries(data: bytes) -> Iterator[TarEntry]:
    """Yield the members of a tar archive held in ``data``.

    A leading ``./`` and one trailing ``/`` are removed from names; members
    whose name is then empty are skipped, and an empty name ends the archive.
    """
    position = 0
    while position < len(data):
        block = bytes(data[position:position + TAR_BLOCK_SIZE]).ljust(TAR_BLOCK_SIZE, b"\0")

        raw_name = _cstring(block[0:100])
        mode = _octal(block[100:108])
        uid = _octal(block[108:116])
        gid = _octal(block[116:124])
        size = _octal(block[124:136])
        entry_type = _octal(block[156:157])
        target = _cstring(block[157:257])

        if not raw_name:
            return

        name = raw_name[2:] if raw_name.startswith("./") else raw_name
        if name:
            if name.endswith("/"):
                name = name[:-1]
            payload = b""
            if entry_type == TAR_FILE:
                begin = position + TAR_BLOCK_SIZE
                payload = bytes(data[begin:begin + size])
                if len(payload) != size:
                    raise HFSError(f"tar member {name!r} is truncated")
            yield TarEntry(name, mode, entry_type, size, uid, gid, target, payload)

        position += TAR_BLOCK_SIZE + -(-size // TAR_BLOCK_SIZE) * TAR_BLOCK_SIZE