# pack.py -- For dealing with packed git objects.
# Copyright (C) 2024 Tinygit contributors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# Tinygit is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Classes for dealing with packed git objects.

A pack is a compact representation of a bunch of objects, stored
using deltas where possible.

The pack starts with a 12 byte header: the signature ``PACK``, a
big-endian version and a big-endian object count. Each object follows
with a variable length header. If the MSB of a header byte is set then
the subsequent byte is still part of the header. For the first byte the
next three bits are the type, and the low four bits are the lowest bits
of the size. For each subsequent byte the low 7 bits are the next bits of
the size.

Ref-delta objects carry the 20 byte SHA of their base after the header.
The object data itself is zlib deflated. The pack does not record the
compressed length, so the only way to find where the next object starts
is to ask zlib how much of the input it consumed.
"""

__all__ = [
    "BLOB",
    "COMMIT",
    "DELTA_TYPES",
    "OFS_DELTA",
    "REF_DELTA",
    "TAG",
    "TREE",
    "BufferReader",
    "CopyOp",
    "InsertOp",
    "PackData",
    "UnpackedObject",
    "apply_delta",
    "encode_delta",
    "iter_pack_objects",
    "pack_header",
    "pack_object_header",
    "parse_delta",
    "read_pack_header",
    "unpack_object",
]

import zlib
from collections.abc import Iterable, Iterator
from hashlib import sha1
from struct import unpack_from
from typing import NamedTuple

from .errors import (
    ApplyDeltaError,
    CorruptPackEntry,
    DeltaBaseMismatch,
    DeltaOverrun,
    DeltaUnderrun,
    InvalidPackHeader,
    TinyGitError,
    TruncatedPackEntry,
)
from .log_utils import getLogger
from .objects import ObjectID, ShaFile, object_header, sha_to_hex
from .varint import decode_varint, encode_varint

logger = getLogger(__name__)

COMMIT = 1
TREE = 2
BLOB = 3
TAG = 4
OFS_DELTA = 6
REF_DELTA = 7

DELTA_TYPES = (OFS_DELTA, REF_DELTA)

TYPE_NAMES = {
    COMMIT: b"commit",
    TREE: b"tree",
    BLOB: b"blob",
    TAG: b"tag",
}

PACK_SIGNATURE = b"PACK"
PACK_HEADER_SIZE = 12
SUPPORTED_PACK_VERSIONS = (2, 3)

_ZLIB_BUFSIZE = 65536


class BufferReader:
    """Cursor over a borrowed byte buffer.

    Every read advances the position. Reading past the end raises
    ``error_cls`` rather than returning short data.
    """

    def __init__(
        self,
        data: bytes,
        offset: int = 0,
        error_cls: type[TinyGitError] = TruncatedPackEntry,
    ) -> None:
        self._data = data
        self._view = memoryview(data)
        self.offset = offset
        self._error_cls = error_cls

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def read_byte(self) -> int:
        if self.offset >= len(self._data):
            raise self._error_cls(f"unexpected end of data at offset {self.offset}")
        b = self._data[self.offset]
        self.offset += 1
        return b

    def read_bytes(self, n: int) -> bytes:
        if n > self.remaining:
            raise self._error_cls(
                f"wanted {n} bytes at offset {self.offset}, only {self.remaining} left"
            )
        ret = bytes(self._view[self.offset : self.offset + n])
        self.offset += n
        return ret

    def read_varint(self) -> int:
        try:
            value, self.offset = decode_varint(self._data, self.offset)
        except ValueError as exc:
            raise self._error_cls(f"truncated varint at offset {self.offset}") from exc
        return value

    def skip(self, n: int) -> None:
        if n > self.remaining:
            raise self._error_cls(f"cannot skip {n} bytes at offset {self.offset}")
        self.offset += n

    def view(self) -> memoryview:
        """Return a view of the unread part of the buffer."""
        return self._view[self.offset :]


class UnpackedObject:
    """Class encapsulating an object unpacked from a pack file.

    These objects should only be created from within unpack_object.
    """

    __slots__ = [
        "comp_len",  # Number of pack bytes used by this entry.
        "decomp_len",  # Decompressed length declared in the entry header.
        "delta_base",  # Delta base offset or SHA.
        "data",  # Decompressed payload.
        "offset",  # Offset in its pack.
        "pack_type_num",  # Type of this object in the pack (may be a delta).
    ]

    def __init__(
        self,
        pack_type_num: int,
        *,
        decomp_len: int,
        data: bytes,
        delta_base: None | bytes | int = None,
        offset: int | None = None,
        comp_len: int | None = None,
    ) -> None:
        self.pack_type_num = pack_type_num
        self.decomp_len = decomp_len
        self.data = data
        self.delta_base = delta_base
        self.offset = offset
        self.comp_len = comp_len

    @property
    def type_name(self) -> bytes | None:
        """Type name for non-delta entries, or None for deltas."""
        return TYPE_NAMES.get(self.pack_type_num)

    def as_frame(self) -> bytes:
        """Frame the payload of a non-delta entry as a loose object."""
        type_name = self.type_name
        if type_name is None:
            raise ValueError("delta entries have no frame until they are resolved")
        return object_header(type_name, len(self.data)) + self.data

    def sha(self) -> ObjectID:
        """Return the hex SHA of a non-delta entry."""
        return sha1(self.as_frame()).hexdigest().encode("ascii")

    def sha_file(self) -> ShaFile:
        """Return a ShaFile from this object."""
        return ShaFile.from_frame(self.as_frame())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnpackedObject):
            return False
        for slot in self.__slots__:
            if getattr(self, slot) != getattr(other, slot):
                return False
        return True

    def __ne__(self, other: object) -> bool:
        return not (self == other)

    def __repr__(self) -> str:
        data = [f"{s}={getattr(self, s)!r}" for s in self.__slots__ if s != "data"]
        data.append(f"data=<{len(self.data)} bytes>")
        return "{}({})".format(self.__class__.__name__, ", ".join(data))


def read_pack_header(data: bytes) -> tuple[int, int]:
    """Read the header of a pack file.

    Args:
      data: Pack contents
    Returns: Tuple of (pack version, number of objects).
    Raises:
      InvalidPackHeader: if the header is short, or has a bad signature
        or version
    """
    if len(data) < PACK_HEADER_SIZE:
        raise InvalidPackHeader(f"pack too short: {len(data)} bytes")
    if data[:4] != PACK_SIGNATURE:
        raise InvalidPackHeader(f"Invalid pack header {bytes(data[:4])!r}")
    (version,) = unpack_from(">L", data, 4)
    if version not in SUPPORTED_PACK_VERSIONS:
        raise InvalidPackHeader(f"Version was {version}")
    (num_objects,) = unpack_from(">L", data, 8)
    return (version, num_objects)


def _inflate(reader: BufferReader, buffer_size: int = _ZLIB_BUFSIZE) -> bytes:
    """Inflate one zlib stream at the reader's position.

    The reader is advanced by exactly the number of compressed bytes zlib
    consumed, which is where the next pack entry starts.
    """
    decomp_obj = zlib.decompressobj()
    view = reader.view()
    decomp_chunks = []
    pos = 0
    try:
        while not decomp_obj.eof:
            add = view[pos : pos + buffer_size]
            if not add:
                raise TruncatedPackEntry(
                    f"EOF before end of zlib stream starting at offset {reader.offset}"
                )
            decomp_chunks.append(decomp_obj.decompress(add))
            pos += len(add)
    except zlib.error as exc:
        raise CorruptPackEntry(
            f"corrupt zlib stream at offset {reader.offset}: {exc}"
        ) from exc
    reader.skip(pos - len(decomp_obj.unused_data))
    return b"".join(decomp_chunks)


def unpack_object(reader: BufferReader) -> UnpackedObject:
    """Unpack a single pack entry at the reader's position.

    Args:
      reader: BufferReader positioned at the start of an entry
    Returns: An UnpackedObject; the reader is left at the next entry
    Raises:
      TruncatedPackEntry: if the pack ends inside the entry
      CorruptPackEntry: if the type is invalid or the data cannot be inflated
    """
    offset = reader.offset
    byte = reader.read_byte()
    type_num = (byte >> 4) & 0x07
    size = byte & 0x0F
    shift = 4
    while byte & 0x80:
        byte = reader.read_byte()
        size |= (byte & 0x7F) << shift
        shift += 7

    delta_base: int | bytes | None
    if type_num == OFS_DELTA:
        byte = reader.read_byte()
        delta_base_offset = byte & 0x7F
        while byte & 0x80:
            byte = reader.read_byte()
            delta_base_offset += 1
            delta_base_offset <<= 7
            delta_base_offset += byte & 0x7F
        delta_base = delta_base_offset
    elif type_num == REF_DELTA:
        delta_base = sha_to_hex(reader.read_bytes(20))
    elif type_num in TYPE_NAMES:
        delta_base = None
    else:
        raise CorruptPackEntry(f"invalid object type {type_num} at offset {offset}")

    data = _inflate(reader)
    if len(data) != size:
        logger.debug(
            "entry at offset %d declares %d bytes but inflates to %d",
            offset,
            size,
            len(data),
        )
    return UnpackedObject(
        type_num,
        decomp_len=size,
        data=data,
        delta_base=delta_base,
        offset=offset,
        comp_len=reader.offset - offset,
    )


def iter_pack_objects(data: bytes) -> Iterator[UnpackedObject]:
    """Iterate over the entries of a complete pack.

    Exactly as many entries as the header announces are produced; any
    trailing data (such as the pack checksum) is ignored.

    Args:
      data: Pack contents
    Raises:
      InvalidPackHeader: if the header is invalid
      TruncatedPackEntry: if the pack ends before all entries were read
    """
    version, num_objects = read_pack_header(data)
    logger.debug("reading pack version %d with %d objects", version, num_objects)
    reader = BufferReader(data, PACK_HEADER_SIZE, error_cls=TruncatedPackEntry)
    for i in range(num_objects):
        if not reader.remaining:
            raise TruncatedPackEntry(f"pack ended after {i} of {num_objects} objects")
        yield unpack_object(reader)


class PackData:
    """The data contained in a packfile, held in memory."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.version, self._num_objects = read_pack_header(data)

    def __len__(self) -> int:
        """Returns the number of objects in this pack."""
        return self._num_objects

    def iter_unpacked(self) -> Iterator[UnpackedObject]:
        """Iterate over the entries in this pack, in pack order."""
        return iter_pack_objects(self._data)


class CopyOp(NamedTuple):
    """Copy ``length`` bytes of the base starting at ``offset``."""

    offset: int
    length: int


class InsertOp(NamedTuple):
    """Append literal data from the delta stream."""

    data: bytes


def _iter_delta_ops(reader: BufferReader) -> Iterator[CopyOp | InsertOp]:
    while reader.remaining:
        cmd = reader.read_byte()
        if cmd & 0x80:
            cp_off = 0
            for i in range(4):
                if cmd & (1 << i):
                    cp_off |= reader.read_byte() << (i * 8)
            cp_size = 0
            for i in range(3):
                if cmd & (1 << (4 + i)):
                    cp_size |= reader.read_byte() << (i * 8)
            # A zero size means 64K, as in git's patch-delta.c
            if cp_size == 0:
                cp_size = 0x10000
            yield CopyOp(cp_off, cp_size)
        elif cmd != 0:
            yield InsertOp(reader.read_bytes(cmd))
        else:
            raise ApplyDeltaError("Invalid opcode 0")


def parse_delta(delta: bytes) -> tuple[int, int, list[CopyOp | InsertOp]]:
    """Decode a delta into its sizes and instructions.

    Args:
      delta: Delta instructions
    Returns: Tuple of (base size, target size, list of operations)
    """
    reader = BufferReader(delta, error_cls=DeltaUnderrun)
    src_size = reader.read_varint()
    dest_size = reader.read_varint()
    return src_size, dest_size, list(_iter_delta_ops(reader))


def apply_delta(src_buf: bytes, delta: bytes) -> bytes:
    """Based on the similar function in git's patch-delta.c.

    Args:
      src_buf: Source buffer
      delta: Delta instructions
    Returns: The reconstructed target
    Raises:
      DeltaBaseMismatch: if src_buf does not have the recorded base size
      DeltaOverrun: if an instruction reads past the base, writes past
        the target size, or data is left once the target is complete
      DeltaUnderrun: if the delta ends before the target is complete
    """
    reader = BufferReader(delta, error_cls=DeltaUnderrun)
    src_size = reader.read_varint()
    dest_size = reader.read_varint()
    if src_size != len(src_buf):
        raise DeltaBaseMismatch(f"Unexpected source buffer size: {src_size} vs {len(src_buf)}")
    out = bytearray()
    if dest_size:
        for op in _iter_delta_ops(reader):
            if isinstance(op, CopyOp):
                if op.offset + op.length > src_size:
                    raise DeltaOverrun(
                        f"copy of {op.length} bytes at {op.offset} exceeds base size {src_size}"
                    )
                chunk = src_buf[op.offset : op.offset + op.length]
            else:
                chunk = op.data
            if len(out) + len(chunk) > dest_size:
                raise DeltaOverrun(
                    f"instruction writes {len(chunk)} bytes past {len(out)}, "
                    f"target size is {dest_size}"
                )
            out += chunk
            if len(out) == dest_size:
                break
    if len(out) < dest_size:
        raise DeltaUnderrun(f"delta produced {len(out)} of {dest_size} bytes")
    if reader.remaining:
        raise DeltaOverrun(f"delta not empty: {reader.remaining} bytes left")
    return bytes(out)


def _encode_copy_operation(start: int, length: int) -> bytes:
    scratch = bytearray([0x80])
    for i in range(4):
        if start & 0xFF << i * 8:
            scratch.append((start >> i * 8) & 0xFF)
            scratch[0] |= 1 << i
    for i in range(2):
        if length & 0xFF << i * 8:
            scratch.append((length >> i * 8) & 0xFF)
            scratch[0] |= 1 << (4 + i)
    return bytes(scratch)


def encode_delta(base_size: int, target_size: int, ops: Iterable[CopyOp | InsertOp]) -> bytes:
    """Encode delta instructions, the inverse of parse_delta.

    Copies longer than 64K and inserts longer than 127 bytes are split.

    Args:
      base_size: Size of the base object
      target_size: Size of the reconstructed object
      ops: Instructions to encode
    Returns: The delta stream
    """
    out = [encode_varint(base_size), encode_varint(target_size)]
    for op in ops:
        if isinstance(op, CopyOp):
            offset, length = op
            while length > 0:
                chunk = min(length, 0x10000)
                out.append(_encode_copy_operation(offset, chunk))
                offset += chunk
                length -= chunk
        else:
            for i in range(0, len(op.data), 0x7F):
                data = op.data[i : i + 0x7F]
                out.append(bytes([len(data)]) + data)
    return b"".join(out)


def pack_header(num_objects: int, version: int = 2) -> bytes:
    """Return the 12 byte header of a pack with the given object count."""
    return PACK_SIGNATURE + version.to_bytes(4, "big") + num_objects.to_bytes(4, "big")


def pack_object_header(type_num: int, delta_base: bytes | int | None, size: int) -> bytes:
    """Create a pack object header for the given object info.

    Args:
      type_num: Numeric type of the object.
      delta_base: Delta base offset or hex ref, or None for whole objects.
      size: Uncompressed object size.
    Returns: A header for a packed object.
    """
    header = []
    c = (type_num << 4) | (size & 15)
    size >>= 4
    while size:
        header.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    header.append(c)
    if type_num == OFS_DELTA:
        assert isinstance(delta_base, int)
        ret = [delta_base & 0x7F]
        delta_base >>= 7
        while delta_base:
            delta_base -= 1
            ret.insert(0, 0x80 | (delta_base & 0x7F))
            delta_base >>= 7
        header.extend(ret)
    elif type_num == REF_DELTA:
        assert isinstance(delta_base, bytes) and len(delta_base) == 40
        return bytes(header) + bytes.fromhex(delta_base.decode("ascii"))
    return bytes(header)
