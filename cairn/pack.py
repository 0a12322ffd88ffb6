# pack.py -- For dealing with packed git objects.
# Copyright (C) 2007 James Westby <jw+debian@jameswestby.net>
# Copyright (C) 2008-2013 Jelmer Vernooij <jelmer@jelmer.uk>
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# Cairn is dual-licensed under the Apache License, Version 2.0 and the GNU
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

A pack is a stream of objects, each one a variable-length header followed by
zlib-compressed data. Objects may be stored whole, or as a delta against
another object in the same pack (addressed by relative offset) or anywhere
(addressed by id).

The pack format is documented in git's Documentation/gitformat-pack.txt.

Reading a pack happens in two stages: PackStreamReader splits the stream
into UnpackedObject entries, and PackInflater resolves deltas against their
bases until every entry has a full object.
"""

__all__ = [
    "DELTA_TYPES",
    "OFS_DELTA",
    "REF_DELTA",
    "PackInflater",
    "PackStreamReader",
    "SHA1Writer",
    "UnpackedObject",
    "UnresolvedDeltas",
    "apply_delta",
    "create_delta",
    "pack_header_chunks",
    "pack_object_header",
    "read_pack_header",
    "read_zlib_chunks",
    "take_msb_bytes",
    "unpack_object",
    "unpack_pack",
    "write_pack_data",
    "write_pack_header",
    "write_pack_object",
]

import struct
import zlib
from collections.abc import Callable, Iterator, Sequence
from difflib import SequenceMatcher
from hashlib import sha1
from io import BytesIO
from typing import TYPE_CHECKING, Optional, Union

from .errors import ApplyDeltaError, CorruptPack, ObjectMissing
from .log_utils import getLogger
from .objects import (
    BLOB,
    COMMIT,
    TAG,
    TREE,
    ObjectID,
    hash_object,
    hex_to_sha,
    sha_to_hex,
)

if TYPE_CHECKING:
    from .object_store import BaseObjectStore

logger = getLogger(__name__)

OFS_DELTA = 6
REF_DELTA = 7

DELTA_TYPES = (OFS_DELTA, REF_DELTA)

TYPE_NUM_TO_NAME = {1: COMMIT, 2: TREE, 3: BLOB, 4: TAG}
TYPE_NAME_TO_NUM = {name: num for (num, name) in TYPE_NUM_TO_NAME.items()}

PACK_SIGNATURE = b"PACK"
PACK_HEADER_LENGTH = 12
PACK_TRAILER_LENGTH = 20

DEFAULT_PACK_VERSION = 2

_ZLIB_BUFSIZE = 65536


class UnresolvedDeltas(CorruptPack):
    """Delta objects could not be resolved."""

    def __init__(self, bases: Sequence[Union[bytes, int]]) -> None:
        """Initialize UnresolvedDeltas exception.

        Args:
            bases: Missing delta bases; hex ids for ref deltas, absolute
                pack offsets for offset deltas.
        """
        self.bases = list(bases)
        described = ", ".join(
            base.decode("ascii") if isinstance(base, bytes) else f"offset {base}"
            for base in self.bases
        )
        super().__init__(f"unresolved delta bases: {described}")


def take_msb_bytes(read: Callable[[int], bytes]) -> list[int]:
    """Read bytes marked with most significant bit.

    Args:
      read: Read function
    Returns: List of bytes read, the last one without its high bit set
    """
    ret: list[int] = []
    while len(ret) == 0 or ret[-1] & 0x80:
        b = read(1)
        if not b:
            raise CorruptPack("unexpected end of pack in variable-length field")
        ret.append(b[0])
    return ret


class UnpackedObject:
    """Class encapsulating an object unpacked from a pack stream.

    These objects are created by unpack_object. Members that depend on delta
    resolution (obj_type_num, obj_chunks) are filled in by PackInflater.
    """

    __slots__ = [
        "_sha",  # Cached hex SHA.
        "decomp_chunks",  # Decompressed object chunks.
        "decomp_len",  # Declared decompressed length.
        "delta_base",  # Delta base offset or raw SHA.
        "obj_chunks",  # Decompressed and delta-resolved chunks.
        "obj_type_num",  # Type of the resolved object.
        "offset",  # Offset in its pack.
        "pack_type_num",  # Type of this entry in the pack (may be a delta).
    ]

    def __init__(
        self,
        pack_type_num: int,
        *,
        delta_base: Union[None, bytes, int] = None,
        decomp_len: Optional[int] = None,
        decomp_chunks: Optional[list[bytes]] = None,
        offset: Optional[int] = None,
    ) -> None:
        self.offset = offset
        self._sha: Optional[ObjectID] = None
        self.pack_type_num = pack_type_num
        self.delta_base = delta_base
        self.decomp_chunks: list[bytes] = decomp_chunks or []
        if decomp_chunks is not None and decomp_len is None:
            self.decomp_len = sum(map(len, decomp_chunks))
        else:
            self.decomp_len = decomp_len
        self.obj_type_num: Optional[int]
        self.obj_chunks: Optional[list[bytes]]
        if pack_type_num in DELTA_TYPES:
            self.obj_type_num = None
            self.obj_chunks = None
        else:
            self.obj_type_num = pack_type_num
            self.obj_chunks = self.decomp_chunks

    @property
    def type_name(self) -> bytes:
        """Type name of the resolved object."""
        if self.obj_type_num is None:
            raise ValueError("delta has not been resolved")
        return TYPE_NUM_TO_NAME[self.obj_type_num]

    @property
    def data(self) -> bytes:
        """Payload of the resolved object."""
        if self.obj_chunks is None:
            raise ValueError("delta has not been resolved")
        return b"".join(self.obj_chunks)

    def sha(self) -> ObjectID:
        """Return the hex SHA of the resolved object."""
        if self._sha is None:
            self._sha = hash_object(self.type_name, self.data)
        return self._sha

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnpackedObject):
            return False
        for slot in self.__slots__:
            if getattr(self, slot) != getattr(other, slot):
                return False
        return True

    def __repr__(self) -> str:
        data = [f"{s}={getattr(self, s)!r}" for s in self.__slots__ if s != "_sha"]
        return "{}({})".format(self.__class__.__name__, ", ".join(data))


def read_zlib_chunks(
    read_some: Callable[[int], bytes],
    unpacked: UnpackedObject,
    buffer_size: int = _ZLIB_BUFSIZE,
) -> bytes:
    """Read a zlib stream and store the decompressed data in unpacked.

    Input is consumed until the decompressor reports the end of the stream;
    the declared size is only used to check the result.

    Args:
      read_some: Read function that returns at least one byte, but may
        return less than the requested size.
      unpacked: An UnpackedObject to write result data to. After this
        function, decomp_chunks holds the decompressed data.
      buffer_size: Size of the read buffer.
    Returns: Leftover unused data from the decompression.
    Raises:
      CorruptPack: if the stream is malformed, ends early or does not match
        the declared size.
    """
    if unpacked.decomp_len is None or unpacked.decomp_len <= -1:
        raise ValueError("non-negative zlib data stream size expected")
    decomp_obj = zlib.decompressobj()

    decomp_chunks = unpacked.decomp_chunks
    decomp_len = 0

    try:
        while not decomp_obj.eof:
            add = read_some(buffer_size)
            if not add:
                raise CorruptPack("EOF before end of zlib stream")
            decomp = decomp_obj.decompress(add)
            decomp_len += len(decomp)
            decomp_chunks.append(decomp)
    except zlib.error as exc:
        raise CorruptPack(
            f"invalid compressed data at offset {unpacked.offset}: {exc}"
        ) from exc

    if decomp_len != unpacked.decomp_len:
        raise CorruptPack(
            f"decompressed data does not match expected size: "
            f"{decomp_len} != {unpacked.decomp_len}"
        )
    return decomp_obj.unused_data


def read_pack_header(read: Callable[[int], bytes]) -> tuple[int, int]:
    """Read the header of a pack file.

    Args:
      read: Read function
    Returns: Tuple of (pack version, number of objects).
    Raises:
      CorruptPack: if the header is short, lacks the signature or names an
        unsupported version
    """
    header = read(PACK_HEADER_LENGTH)
    if len(header) < PACK_HEADER_LENGTH:
        raise CorruptPack("file too short to contain pack")
    if header[:4] != PACK_SIGNATURE:
        raise CorruptPack(f"Invalid pack header {header!r}")
    (version,) = struct.unpack_from(">L", header, 4)
    if version not in (2, 3):
        raise CorruptPack(f"Version was {version}")
    (num_objects,) = struct.unpack_from(">L", header, 8)
    return (version, num_objects)


def unpack_object(
    read_all: Callable[[int], bytes],
    read_some: Optional[Callable[[int], bytes]] = None,
    zlib_bufsize: int = _ZLIB_BUFSIZE,
) -> tuple[UnpackedObject, bytes]:
    """Unpack a Git object.

    Args:
      read_all: Read function that blocks until the number of requested
        bytes are read.
      read_some: Read function that returns at least one byte, but may not
        return the number of bytes requested.
      zlib_bufsize: An optional buffer size for zlib operations.
    Returns: A tuple of (unpacked, unused), where unused is the unused data
        leftover from decompression, and unpacked in an UnpackedObject with
        the following attrs set:

        * obj_chunks     (for non-delta types)
        * pack_type_num
        * delta_base     (for delta types)
        * decomp_chunks
        * decomp_len
    """
    if read_some is None:
        read_some = read_all

    raw = take_msb_bytes(read_all)
    type_num = (raw[0] >> 4) & 0x07
    size = raw[0] & 0x0F
    for i, byte in enumerate(raw[1:]):
        size += (byte & 0x7F) << ((i * 7) + 4)

    delta_base: Union[int, bytes, None]
    if type_num == OFS_DELTA:
        raw = take_msb_bytes(read_all)
        delta_base_offset = raw[0] & 0x7F
        for byte in raw[1:]:
            delta_base_offset += 1
            delta_base_offset <<= 7
            delta_base_offset += byte & 0x7F
        delta_base = delta_base_offset
    elif type_num == REF_DELTA:
        delta_base = read_all(20)
        if len(delta_base) != 20:
            raise CorruptPack("unexpected end of pack in delta base id")
    elif type_num in TYPE_NUM_TO_NAME:
        delta_base = None
    else:
        raise CorruptPack(f"invalid object type {type_num} in pack")

    unpacked = UnpackedObject(type_num, delta_base=delta_base, decomp_len=size)
    unused = read_zlib_chunks(read_some, unpacked, buffer_size=zlib_bufsize)
    return unpacked, unused


class PackStreamReader:
    """Class to read a pack stream.

    The read function may return fewer bytes than requested; unused
    decompressor input is buffered and served to the next object.
    """

    def __init__(
        self,
        read_all: Callable[[int], bytes],
        read_some: Optional[Callable[[int], bytes]] = None,
        zlib_bufsize: int = _ZLIB_BUFSIZE,
    ) -> None:
        self.read_all = read_all
        if read_some is None:
            self.read_some = read_all
        else:
            self.read_some = read_some
        self._offset = 0
        self._rbuf = BytesIO()
        self._zlib_bufsize = zlib_bufsize

    def _read(self, read: Callable[[int], bytes], size: int) -> bytes:
        """Read up to size bytes using the given callback, buffer first."""
        buf_len = self._buf_len()
        if buf_len >= size:
            data = self._rbuf.read(size)
        else:
            data = self._rbuf.read() + read(size - buf_len)
        self._offset += len(data)
        return data

    def _buf_len(self) -> int:
        buf = self._rbuf
        start = buf.tell()
        buf.seek(0, 2)  # SEEK_END
        end = buf.tell()
        buf.seek(start)
        return end - start

    @property
    def offset(self) -> int:
        """Return current offset in the stream."""
        return self._offset

    def read(self, size: int) -> bytes:
        """Read, blocking until size bytes are read or the stream ends."""
        return self._read(self.read_all, size)

    def recv(self, size: int) -> bytes:
        """Read at most size bytes, returning at least one unless at EOF."""
        buf_len = self._buf_len()
        if buf_len:
            data = self._rbuf.read(min(size, buf_len))
            self._offset += len(data)
            return data
        return self._read(self.read_some, size)

    def read_objects(self) -> Iterator[UnpackedObject]:
        """Read the objects in this pack stream.

        Yields: UnpackedObject with offset set, for each object in the pack
        Raises:
          CorruptPack: if the header is invalid or the stream ends before
            the advertised number of objects
        """
        _version, num_objects = read_pack_header(self.read)
        logger.debug("pack advertises %d objects", num_objects)

        for _ in range(num_objects):
            offset = self.offset
            unpacked, unused = unpack_object(
                self.read, read_some=self.recv, zlib_bufsize=self._zlib_bufsize
            )
            unpacked.offset = offset

            # Prepend any unused data to the buffer so the next object starts
            # reading from the right place.
            buf = BytesIO()
            buf.write(unused)
            buf.write(self._rbuf.read())
            buf.seek(0)
            self._rbuf = buf
            self._offset -= len(unused)

            yield unpacked

        # The trailer is a checksum of the preceding bytes; it is not checked.
        trailer = self.read(PACK_TRAILER_LENGTH)
        if len(trailer) < PACK_TRAILER_LENGTH:
            logger.debug(
                "pack trailer is %d bytes short", PACK_TRAILER_LENGTH - len(trailer)
            )


class PackInflater:
    """Resolve the entries of a pack into full objects.

    Whole objects resolve immediately. Deltas are resolved in passes: each
    pass applies every delta whose base is known by then, so bases may
    appear after their deltas in the stream. Resolution stops when all
    entries are done or a pass makes no progress.
    """

    def __init__(self, external_store: Optional["BaseObjectStore"] = None) -> None:
        """Create a new inflater.

        Args:
          external_store: Object store consulted for ref delta bases that
            are not in the pack itself.
        """
        self.external_store = external_store
        self._entries: list[UnpackedObject] = []

    def record(self, unpacked: UnpackedObject) -> None:
        """Add an entry read from the pack."""
        self._entries.append(unpacked)

    @classmethod
    def for_pack_data(
        cls, data: bytes, external_store: Optional["BaseObjectStore"] = None
    ) -> "PackInflater":
        """Create an inflater holding every entry of a pack.

        Args:
          data: Complete pack data, trailer included
          external_store: Optional store for ref delta bases outside the pack
        """
        inflater = cls(external_store=external_store)
        reader = PackStreamReader(BytesIO(data).read)
        for unpacked in reader.read_objects():
            inflater.record(unpacked)
        return inflater

    def _find_base(
        self,
        unpacked: UnpackedObject,
        by_offset: dict[int, UnpackedObject],
        by_sha: dict[bytes, UnpackedObject],
    ) -> Optional[tuple[int, bytes]]:
        if unpacked.pack_type_num == OFS_DELTA:
            assert isinstance(unpacked.offset, int)
            assert isinstance(unpacked.delta_base, int)
            base = by_offset.get(unpacked.offset - unpacked.delta_base)
            if base is None:
                return None
            assert base.obj_type_num is not None
            return base.obj_type_num, base.data
        assert isinstance(unpacked.delta_base, bytes)
        base = by_sha.get(unpacked.delta_base)
        if base is not None:
            assert base.obj_type_num is not None
            return base.obj_type_num, base.data
        if self.external_store is None:
            return None
        try:
            type_name, data = self.external_store.get_raw(
                sha_to_hex(unpacked.delta_base)
            )
        except ObjectMissing:
            return None
        return TYPE_NAME_TO_NUM[type_name], data

    def _missing_base(self, unpacked: UnpackedObject) -> Union[bytes, int]:
        if unpacked.pack_type_num == OFS_DELTA:
            assert isinstance(unpacked.offset, int)
            assert isinstance(unpacked.delta_base, int)
            return unpacked.offset - unpacked.delta_base
        assert isinstance(unpacked.delta_base, bytes)
        return sha_to_hex(unpacked.delta_base)

    def resolve(self) -> list[UnpackedObject]:
        """Resolve all recorded entries.

        Returns: List of entries in pack order, each with obj_type_num and
            obj_chunks set
        Raises:
          UnresolvedDeltas: if some delta bases can not be found
          ApplyDeltaError: if a delta does not apply to its base
        """
        by_offset: dict[int, UnpackedObject] = {}
        by_sha: dict[bytes, UnpackedObject] = {}

        def add_resolved(unpacked: UnpackedObject) -> None:
            if unpacked.offset is not None:
                by_offset[unpacked.offset] = unpacked
            by_sha[hex_to_sha(unpacked.sha())] = unpacked

        pending = []
        for unpacked in self._entries:
            if unpacked.pack_type_num in DELTA_TYPES:
                pending.append(unpacked)
            else:
                add_resolved(unpacked)

        passes = 0
        while pending:
            passes += 1
            still_pending = []
            for unpacked in pending:
                base = self._find_base(unpacked, by_offset, by_sha)
                if base is None:
                    still_pending.append(unpacked)
                    continue
                base_type_num, base_data = base
                unpacked.obj_type_num = base_type_num
                unpacked.obj_chunks = apply_delta(base_data, unpacked.decomp_chunks)
                add_resolved(unpacked)
            logger.debug(
                "delta resolution pass %d: %d resolved, %d pending",
                passes,
                len(pending) - len(still_pending),
                len(still_pending),
            )
            if len(still_pending) == len(pending):
                raise UnresolvedDeltas(
                    sorted(
                        {self._missing_base(unpacked) for unpacked in still_pending},
                        key=str,
                    )
                )
            pending = still_pending

        return list(self._entries)


def unpack_pack(data: bytes, store: "BaseObjectStore") -> list[ObjectID]:
    """Parse a pack and add every object in it to an object store.

    Ref delta bases that are not in the pack are looked up in the store.

    Args:
      data: Complete pack data
      store: Object store to add objects to
    Returns: List of object ids, in pack order
    """
    inflater = PackInflater.for_pack_data(data, external_store=store)
    ids = []
    for unpacked in inflater.resolve():
        ids.append(store.add_object(unpacked.type_name, unpacked.data))
    logger.debug("unpacked %d objects", len(ids))
    return ids


def get_delta_header_size(delta: bytes, index: int) -> tuple[int, int]:
    """Decode one of the size varints at the start of a delta."""
    size = 0
    i = 0
    while True:
        if index >= len(delta):
            raise ApplyDeltaError("delta header is truncated")
        cmd = delta[index]
        index += 1
        size |= (cmd & ~0x80) << i
        i += 7
        if not cmd & 0x80:
            break
    return size, index


def apply_delta(
    src_buf: Union[bytes, list[bytes]], delta: Union[bytes, list[bytes]]
) -> list[bytes]:
    """Based on the similar function in git's patch-delta.c.

    Args:
      src_buf: Source buffer
      delta: Delta instructions
    Returns: Chunks of the target buffer
    Raises:
      ApplyDeltaError: on a size mismatch, invalid opcode or a copy outside
        the source buffer
    """
    if not isinstance(src_buf, bytes):
        src_buf = b"".join(src_buf)
    if not isinstance(delta, bytes):
        delta = b"".join(delta)
    out = []
    index = 0
    delta_length = len(delta)

    src_size, index = get_delta_header_size(delta, index)
    dest_size, index = get_delta_header_size(delta, index)
    if src_size != len(src_buf):
        raise ApplyDeltaError(
            f"Unexpected source buffer size: {src_size} vs {len(src_buf)}"
        )
    while index < delta_length:
        cmd = delta[index]
        index += 1
        if cmd & 0x80:
            cp_off = 0
            for i in range(4):
                if cmd & (1 << i):
                    if index >= delta_length:
                        raise ApplyDeltaError("copy instruction is truncated")
                    cp_off |= delta[index] << (i * 8)
                    index += 1
            cp_size = 0
            for i in range(3):
                if cmd & (1 << (4 + i)):
                    if index >= delta_length:
                        raise ApplyDeltaError("copy instruction is truncated")
                    cp_size |= delta[index] << (i * 8)
                    index += 1
            if cp_size == 0:
                cp_size = 0x10000
            if cp_off + cp_size > src_size or cp_size > dest_size:
                raise ApplyDeltaError(
                    f"copy of {cp_size} bytes at {cp_off} exceeds source size {src_size}"
                )
            out.append(src_buf[cp_off : cp_off + cp_size])
        elif cmd != 0:
            if index + cmd > delta_length:
                raise ApplyDeltaError("insert instruction is truncated")
            out.append(delta[index : index + cmd])
            index += cmd
        else:
            raise ApplyDeltaError("Invalid opcode 0")

    if dest_size != sum(map(len, out)):
        raise ApplyDeltaError("dest size incorrect")

    return out


class SHA1Writer:
    """Wrapper for a write function that computes the SHA1 of written data."""

    def __init__(self, write: Callable[[bytes], object]) -> None:
        self._write = write
        self.sha1 = sha1()
        self.length = 0

    def write(self, data: bytes) -> None:
        self.sha1.update(data)
        self.length += len(data)
        self._write(data)

    def write_sha(self) -> bytes:
        """Write the digest of everything written so far, and return it."""
        sha = self.sha1.digest()
        assert len(sha) == 20
        self._write(sha)
        self.length += len(sha)
        return sha


def pack_object_header(
    type_num: int, delta_base: Union[bytes, int, None], size: int
) -> bytearray:
    """Create a pack object header for the given object info.

    Args:
      type_num: Numeric type of the object.
      delta_base: Delta base offset or raw id, or None for whole objects.
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
        assert isinstance(delta_base, bytes)
        assert len(delta_base) == 20
        header += delta_base
    return bytearray(header)


def write_pack_object(
    write: Callable[[bytes], object],
    type_num: int,
    object: Union[bytes, tuple[Union[bytes, int], bytes]],
    compression_level: int = -1,
) -> int:
    """Write pack object to a file.

    Args:
      write: Write function to use
      type_num: Numeric type of the object
      object: Payload, or (delta base, delta) for delta types
      compression_level: the zlib compression level
    Returns: Number of bytes written
    """
    delta_base: Union[bytes, int, None]
    if type_num in DELTA_TYPES:
        assert isinstance(object, tuple)
        delta_base, data = object
    else:
        assert isinstance(object, bytes)
        delta_base, data = None, object
    header = bytes(pack_object_header(type_num, delta_base, len(data)))
    compressed = zlib.compress(data, compression_level)
    write(header)
    write(compressed)
    return len(header) + len(compressed)


def pack_header_chunks(num_objects: int) -> Iterator[bytes]:
    """Yield chunks for a pack header."""
    yield PACK_SIGNATURE  # Pack header
    yield struct.pack(">L", DEFAULT_PACK_VERSION)  # Pack version
    yield struct.pack(">L", num_objects)  # Number of objects in pack


def write_pack_header(write: Callable[[bytes], object], num_objects: int) -> None:
    """Write a pack header for the given number of objects."""
    for chunk in pack_header_chunks(num_objects):
        write(chunk)


def write_pack_data(
    write: Callable[[bytes], object],
    records: Sequence[tuple[int, Union[bytes, tuple[Union[bytes, int], bytes]]]],
    compression_level: int = -1,
) -> tuple[list[int], bytes]:
    """Write a complete pack, trailer included.

    Args:
      write: Write function to use
      records: Sequence of (type_num, object) as accepted by
        write_pack_object
      compression_level: the zlib compression level
    Returns: Tuple of (offset of each record, pack checksum)
    """
    f = SHA1Writer(write)
    write_pack_header(f.write, len(records))
    offsets = []
    for type_num, obj in records:
        offsets.append(f.length)
        write_pack_object(f.write, type_num, obj, compression_level=compression_level)
    return offsets, f.write_sha()


def _delta_encode_size(size: int) -> bytes:
    ret = bytearray()
    c = size & 0x7F
    size >>= 7
    while size:
        ret.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    ret.append(c)
    return bytes(ret)


# The length of delta compression copy operations in version 2 packs is limited
# to 64K.  To copy more, we use several copy operations.
_MAX_COPY_LEN = 0xFFFF


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


def _create_delta_chunks(base_buf: bytes, target_buf: bytes) -> Iterator[bytes]:
    """Use python difflib to work out how to transform base_buf to target_buf.

    Args:
      base_buf: Base buffer
      target_buf: Target buffer
    """
    yield _delta_encode_size(len(base_buf))
    yield _delta_encode_size(len(target_buf))
    seq = SequenceMatcher(isjunk=None, a=base_buf, b=target_buf, autojunk=False)
    for opcode, i1, i2, j1, j2 in seq.get_opcodes():
        # Deleted ranges need no instruction; they are simply not copied.
        if opcode == "equal":
            copy_start = i1
            copy_len = i2 - i1
            while copy_len > 0:
                to_copy = min(copy_len, _MAX_COPY_LEN)
                yield _encode_copy_operation(copy_start, to_copy)
                copy_start += to_copy
                copy_len -= to_copy
        if opcode == "replace" or opcode == "insert":
            s = j2 - j1
            o = j1
            while s > 127:
                yield bytes([127])
                yield target_buf[o : o + 127]
                s -= 127
                o += 127
            if s:
                yield bytes([s])
                yield target_buf[o : o + s]


def create_delta(base_buf: bytes, target_buf: bytes) -> bytes:
    """Compute a delta that transforms base_buf into target_buf."""
    return b"".join(_create_delta_chunks(base_buf, target_buf))

