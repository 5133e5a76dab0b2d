# hfsplusvol

Pure-Python tools for working with HFS+ volume images at the level of
volume headers, fork extents, the allocation bitmap and extended
attributes. There are no dependencies beyond the standard library.
Problems are reported by raising `hfsplusvol.structures.HFSError`.

## Modules

### `hfsplusvol.structures`

On-disk structures, packed and unpacked big-endian as HFS+ stores them:

- `ExtentDescriptor`, `ForkData`, `VolumeHeader` and `ExtentKey`, each
  with `pack()` and a `unpack(data)` class method.
- `Decmpfs.unpack(data)` parses the header of a `com.apple.decmpfs`
  attribute (magic, flags, uncompressed size, remaining data). This
  header is little-endian.
- `apple_to_unix_time` / `unix_to_apple_time` convert between seconds
  since 1904 and seconds since 1970.
- `ascii_to_unicode(text)` gives the UTF-16 code units of a name and
  rejects names over 255 units or outside the basic plane;
  `unicode_to_ascii(units)` keeps the low byte of each unit.
- Enumerations of reserved node ids (`CatalogNodeID`), catalog record
  types, B-tree node kinds and attribute record types.

### `hfsplusvol.volume`

- `Volume.open(image, extents_overflow)` reads the volume header 1024
  bytes into a seekable binary image and opens the allocation file.
  The extents overflow tree is passed as a mutable mapping from
  `(fork_type, file_id, start_block)` to a list of eight
  `ExtentDescriptor`s, or `None` when there is none.
- `is_block_used(block)` and `set_block_used(block, used)` work on the
  allocation bitmap; `update()` writes the primary header and the
  alternate header 1024 bytes before the end of the volume;
  `read_image` / `write_image` access the image directly.
- `open_fork(file_id, fork, on_change)` returns a `RawFile`. Its
  `read(offset, size)` and `write(offset, data)` map fork offsets onto
  volume blocks through the fork's extents (`write` grows the fork when
  needed), and `allocate(size)` grows or shrinks the fork, zeroing new
  blocks, updating the bitmap, free-block count, stored extents
  (spilling past eight into the overflow mapping) and the volume header,
  then calling `on_change(raw_file)` if one was given.
- `Volume` and `RawFile` are context managers.

### `hfsplusvol.xattr`

- `AttributeKey` (file id and name) with `pack` / `unpack`, and
  `compare_attribute_keys` giving the tree order: file id, then name
  code units.
- Attribute records `InlineAttribute`, `ForkAttribute` and
  `ExtentsAttribute`, each with `pack()`, and `decode_attribute_record`
  to read any of them back.
- `AttributeStore(tree)` over a mutable mapping from `AttributeKey` to
  packed records: `get` returns an inline value or `None`, `set` stores
  a value inline, `unset` removes one (raising if absent), and
  `names(file_id)` lists a file's attribute names in tree order. Without
  a tree, `get` returns `None`, `names` returns `[]`, and `set` / `unset`
  raise.

### `hfsplusvol.hfslib`

- `grow_volume(volume, new_size)` enlarges a volume: it grows the
  allocation bitmap if needed, frees the new blocks, extends the image,
  moves the reserved last block and rewrites the headers. Asking for a
  size that is not larger raises `HFSError`.
- `copy_fork_to(fork_file, length, output)` copies a fork's first
  `length` bytes to a binary stream; `copy_into_fork(fork_file, source)`
  resizes a fork to the rest of a stream and copies it in. Both work in
  1 MiB chunks and return the number of bytes copied.
- `iter_tar_entries(data)` walks a tar archive held in memory and yields
  `TarEntry` items (name, mode, type, size, uid, gid, link target and,
  for regular files, the data), with `is_file`, `is_directory` and
  `is_symlink`. A leading `./` and a trailing `/` are stripped from names.

## Example

```python
import io

from hfsplusvol.hfslib import copy_fork_to, grow_volume
from hfsplusvol.structures import apple_to_unix_time
from hfsplusvol.volume import Volume
from hfsplusvol.xattr import AttributeStore

with open("disk.img", "r+b") as image:
    with Volume.open(image, extents_overflow={}) as volume:
        header = volume.header
        print(header.block_size, header.total_blocks, header.free_blocks)
        print(apple_to_unix_time(header.create_date))

        bitmap = io.BytesIO()
        copy_fork_to(volume.allocation_file,
                     header.allocation_file.logical_size, bitmap)

        grow_volume(volume, 64 * 1024 * 1024)

attributes = AttributeStore({})
attributes.set(16, "com.example.note", b"hello")
print(attributes.names(16), attributes.get(16, "com.example.note"))
```

## What it does not do

- It does not parse B-trees. The catalog tree is not read at all, so
  there is no lookup of files or folders by path, no directory listing,
  and no creating, removing, renaming or changing permissions of catalog
  entries. The extents overflow and attributes trees are supplied by the
  caller as in-memory mappings, not read from or written to the image.
- It does not decompress files stored with HFS+ compression; only the
  `decmpfs` header is parsed.
- `iter_tar_entries` only reads archives; it does not place their
  members on a volume.
- There is no command-line tool.

## Installation and tests

```
pip install .
pip install .[test]
pytest
```