# test_pack.py -- Tests for the handling of git packs.
# Copyright (C) 2007 James Westby, except where noted
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

"""Tests for Cairn packs."""

import struct
import zlib
from io import BytesIO

from cairn.errors import ApplyDeltaError, CorruptPack
from cairn.object_store import MemoryObjectStore
from cairn.objects import BLOB, COMMIT, TREE, hash_object, hex_to_sha
from cairn.pack import (
    OFS_DELTA,
    PACK_SIGNATURE,
    REF_DELTA,
    TYPE_NAME_TO_NUM,
    PackInflater,
    PackStreamReader,
    UnpackedObject,
    UnresolvedDeltas,
    apply_delta,
    create_delta,
    pack_object_header,
    read_pack_header,
    read_zlib_chunks,
    take_msb_bytes,
    unpack_object,
    unpack_pack,
    write_pack_data,
    write_pack_header,
)

from . import TestCase
from .utils import build_pack

BLOB_NUM = TYPE_NAME_TO_NUM[BLOB]
TREE_NUM = TYPE_NAME_TO_NUM[TREE]
COMMIT_NUM = TYPE_NAME_TO_NUM[COMMIT]

EMPTY_PACK = PACK_SIGNATURE + struct.pack(">LL", 2, 0) + b"\0" * 20


class ReadPackHeaderTests(TestCase):
    def test_valid(self) -> None:
        self.assertEqual((2, 3), read_pack_header(BytesIO(b"PACK\0\0\0\x02\0\0\0\x03").read))

    def test_version_3(self) -> None:
        self.assertEqual((3, 0), read_pack_header(BytesIO(b"PACK\0\0\0\x03\0\0\0\0").read))

    def test_bad_signature(self) -> None:
        self.assertRaises(
            CorruptPack, read_pack_header, BytesIO(b"KCAP\0\0\0\x02\0\0\0\0").read
        )

    def test_short(self) -> None:
        self.assertRaises(CorruptPack, read_pack_header, BytesIO(b"PACK\0\0\0\x02").read)

    def test_empty(self) -> None:
        self.assertRaises(CorruptPack, read_pack_header, BytesIO(b"").read)

    def test_unsupported_version(self) -> None:
        self.assertRaises(
            CorruptPack, read_pack_header, BytesIO(b"PACK\0\0\0\x04\0\0\0\0").read
        )


class TakeMsbBytesTests(TestCase):
    def test_single(self) -> None:
        self.assertEqual([0x05], take_msb_bytes(BytesIO(b"\x05rest").read))

    def test_multiple(self) -> None:
        self.assertEqual([0x95, 0x81, 0x01], take_msb_bytes(BytesIO(b"\x95\x81\x01").read))

    def test_eof(self) -> None:
        self.assertRaises(CorruptPack, take_msb_bytes, BytesIO(b"\x95\x81").read)


class PackObjectHeaderTests(TestCase):
    def test_small(self) -> None:
        self.assertEqual(bytearray([0x35]), pack_object_header(BLOB_NUM, None, 5))

    def test_large_size(self) -> None:
        header = pack_object_header(BLOB_NUM, None, 100000)
        unpacked, _ = unpack_object(
            BytesIO(bytes(header) + zlib.compress(b"x" * 100000)).read
        )
        self.assertEqual(100000, unpacked.decomp_len)

    def test_ofs_delta_offset_bias(self) -> None:
        for offset in (1, 127, 128, 16511, 16512, 2**21):
            header = pack_object_header(OFS_DELTA, offset, 0)
            data = bytes(header) + zlib.compress(b"")
            unpacked, _ = unpack_object(BytesIO(data).read)
            self.assertEqual(offset, unpacked.delta_base)

    def test_ref_delta_base(self) -> None:
        raw = hex_to_sha(hash_object(BLOB, b"base"))
        data = bytes(pack_object_header(REF_DELTA, raw, 0)) + zlib.compress(b"")
        unpacked, _ = unpack_object(BytesIO(data).read)
        self.assertEqual(raw, unpacked.delta_base)
        self.assertEqual(REF_DELTA, unpacked.pack_type_num)


class ReadZlibTests(TestCase):
    decomp = b"tree 4ada885c9196b6b6fa08744b5862bf92896fc002\nauthor x\n\nmsg\n"

    def setUp(self) -> None:
        super().setUp()
        self.read = BytesIO(zlib.compress(self.decomp) + b"xxx").read
        self.unpacked = UnpackedObject(
            COMMIT_NUM, decomp_len=len(self.decomp), offset=0
        )

    def test_decompress(self) -> None:
        unused = read_zlib_chunks(self.read, self.unpacked)
        self.assertEqual(self.decomp, b"".join(self.unpacked.decomp_chunks))
        self.assertEqual(b"xxx", unused)

    def test_small_buffer(self) -> None:
        unused = read_zlib_chunks(self.read, self.unpacked, buffer_size=3)
        self.assertEqual(self.decomp, b"".join(self.unpacked.decomp_chunks))
        # Input past the last chunk read stays with the caller.
        self.assertEqual(b"xxx", unused + self.read())

    def test_size_mismatch(self) -> None:
        self.unpacked.decomp_len += 1
        self.assertRaises(CorruptPack, read_zlib_chunks, self.read, self.unpacked)

    def test_truncated(self) -> None:
        read = BytesIO(zlib.compress(self.decomp)[:10]).read
        self.assertRaises(CorruptPack, read_zlib_chunks, read, self.unpacked)

    def test_garbage(self) -> None:
        read = BytesIO(b"\xff" * 20).read
        self.assertRaises(CorruptPack, read_zlib_chunks, read, self.unpacked)

    def test_negative_size(self) -> None:
        self.unpacked.decomp_len = -1
        self.assertRaises(ValueError, read_zlib_chunks, self.read, self.unpacked)


class ApplyDeltaTests(TestCase):
    def test_roundtrip(self) -> None:
        base = b"The quick brown fox jumps over the lazy dog\n" * 3
        target = base.replace(b"lazy", b"sleepy") + b"trailing\n"
        delta = create_delta(base, target)
        self.assertEqual(target, b"".join(apply_delta(base, delta)))

    def test_copy_size_zero_means_64k(self) -> None:
        base = bytes(range(256)) * 256
        # src size 65536, dest size 65536, copy offset 0 with no size bytes.
        delta = b"\x80\x80\x04" + b"\x80\x80\x04" + b"\x80"
        self.assertEqual(base, b"".join(apply_delta(base, delta)))

    def test_insert(self) -> None:
        delta = b"\x00\x05\x05hello"
        self.assertEqual([b"hello"], apply_delta(b"", delta))

    def test_source_size_mismatch(self) -> None:
        delta = b"\x03\x05\x05hello"
        self.assertRaises(ApplyDeltaError, apply_delta, b"ab", delta)

    def test_opcode_zero(self) -> None:
        self.assertRaises(ApplyDeltaError, apply_delta, b"", b"\x00\x01\x00")

    def test_copy_out_of_range(self) -> None:
        # copy offset 2, size 4 from a 4 byte source
        delta = b"\x04\x04\x91\x02\x04"
        self.assertRaises(ApplyDeltaError, apply_delta, b"abcd", delta)

    def test_dest_size_mismatch(self) -> None:
        delta = b"\x00\x06\x05hello"
        self.assertRaises(ApplyDeltaError, apply_delta, b"", delta)

    def test_truncated_insert(self) -> None:
        delta = b"\x00\x05\x05hel"
        self.assertRaises(ApplyDeltaError, apply_delta, b"", delta)

    def test_truncated_header(self) -> None:
        self.assertRaises(ApplyDeltaError, apply_delta, b"", b"\x80")

    def test_is_corrupt_pack(self) -> None:
        self.assertTrue(issubclass(ApplyDeltaError, CorruptPack))


class CreateDeltaTests(TestCase):
    def test_long_insert(self) -> None:
        target = bytes(range(256)) * 2
        self.assertEqual(target, b"".join(apply_delta(b"", create_delta(b"", target))))

    def test_identical(self) -> None:
        base = b"same contents\n"
        self.assertEqual(base, b"".join(apply_delta(base, create_delta(base, base))))


class WritePackTests(TestCase):
    def test_write_pack_header(self) -> None:
        f = BytesIO()
        write_pack_header(f.write, 42)
        self.assertEqual(b"PACK\x00\x00\x00\x02\x00\x00\x00*", f.getvalue())

    def test_write_pack_data_empty(self) -> None:
        f = BytesIO()
        offsets, checksum = write_pack_data(f.write, [])
        self.assertEqual([], offsets)
        self.assertEqual(12 + 20, len(f.getvalue()))
        self.assertEqual(checksum, f.getvalue()[-20:])

    def test_write_pack_data_offsets(self) -> None:
        f = BytesIO()
        offsets, _ = write_pack_data(f.write, [(BLOB_NUM, b"one"), (BLOB_NUM, b"two")])
        self.assertEqual(12, offsets[0])
        self.assertLess(offsets[0], offsets[1])


class PackStreamReaderTests(TestCase):
    def test_empty_pack(self) -> None:
        reader = PackStreamReader(BytesIO(EMPTY_PACK).read)
        self.assertEqual([], list(reader.read_objects()))
        self.assertEqual(len(EMPTY_PACK), reader.offset)

    def test_offsets(self) -> None:
        f = BytesIO()
        offsets, _ = write_pack_data(
            f.write, [(BLOB_NUM, b"one"), (BLOB_NUM, b"two"), (BLOB_NUM, b"three")]
        )
        reader = PackStreamReader(BytesIO(f.getvalue()).read)
        unpacked = list(reader.read_objects())
        self.assertEqual(offsets, [u.offset for u in unpacked])
        self.assertEqual([b"one", b"two", b"three"], [u.data for u in unpacked])

    def test_read_some(self) -> None:
        data, _ = build_pack([(BLOB_NUM, b"x" * 1000), (BLOB_NUM, b"y" * 10)])
        f = BytesIO(data)

        def read_some(size: int) -> bytes:
            return f.read(min(size, 7))

        reader = PackStreamReader(f.read, read_some=read_some, zlib_bufsize=7)
        unpacked = list(reader.read_objects())
        self.assertEqual([b"x" * 1000, b"y" * 10], [u.data for u in unpacked])

    def test_too_few_objects(self) -> None:
        data, _ = build_pack([(BLOB_NUM, b"one")])
        data = data[:8] + struct.pack(">L", 2) + data[12:]
        reader = PackStreamReader(BytesIO(data).read)
        self.assertRaises(CorruptPack, list, reader.read_objects())

    def test_invalid_type(self) -> None:
        data = b"PACK" + struct.pack(">LL", 2, 1) + bytes([5 << 4]) + zlib.compress(b"")
        reader = PackStreamReader(BytesIO(data).read)
        self.assertRaises(CorruptPack, list, reader.read_objects())

    def test_missing_trailer_tolerated(self) -> None:
        data, _ = build_pack([(BLOB_NUM, b"one")])
        reader = PackStreamReader(BytesIO(data[:-20]).read)
        self.assertEqual([b"one"], [u.data for u in reader.read_objects()])


class PackInflaterTests(TestCase):
    def test_empty(self) -> None:
        self.assertEqual([], PackInflater.for_pack_data(EMPTY_PACK).resolve())

    def test_whole_objects(self) -> None:
        data, expected = build_pack(
            [(BLOB_NUM, b"blob"), (TREE_NUM, b""), (BLOB_NUM, b"other")]
        )
        entries = PackInflater.for_pack_data(data).resolve()
        self.assertEqual(
            expected, [(e.type_name, e.data, e.sha()) for e in entries]
        )

    def test_ofs_delta(self) -> None:
        data, expected = build_pack(
            [(BLOB_NUM, b"blob contents\n" * 5), (OFS_DELTA, (0, b"blob contents\n" * 6))]
        )
        entries = PackInflater.for_pack_data(data).resolve()
        self.assertEqual(expected, [(e.type_name, e.data, e.sha()) for e in entries])
        self.assertEqual(OFS_DELTA, entries[1].pack_type_num)

    def test_ref_delta_chain_depth_3(self) -> None:
        base = b"line one\nline two\nline three\n"
        data, expected = build_pack(
            [
                (BLOB_NUM, base),
                (REF_DELTA, (0, base + b"line four\n")),
                (REF_DELTA, (1, base + b"line four\nline five\n")),
                (REF_DELTA, (2, base + b"line four\nline five\nline six\n")),
            ]
        )
        entries = PackInflater.for_pack_data(data).resolve()
        self.assertEqual(expected, [(e.type_name, e.data, e.sha()) for e in entries])
        self.assertEqual(
            base + b"line four\nline five\nline six\n", entries[3].data
        )
        self.assertEqual(BLOB, entries[3].type_name)

    def test_ref_delta_before_base(self) -> None:
        data, expected = build_pack(
            [
                (REF_DELTA, (2, b"derived from the base\n")),
                (REF_DELTA, (0, b"derived from the derived\n")),
                (BLOB_NUM, b"the base\n"),
            ]
        )
        entries = PackInflater.for_pack_data(data).resolve()
        self.assertEqual(expected, [(e.type_name, e.data, e.sha()) for e in entries])

    def test_resolved_kind_is_base_kind(self) -> None:
        data, _ = build_pack(
            [(COMMIT_NUM, b"commit payload\n"), (OFS_DELTA, (0, b"commit payload 2\n"))]
        )
        entries = PackInflater.for_pack_data(data).resolve()
        self.assertEqual(COMMIT, entries[1].type_name)

    def test_unresolved_ref_delta(self) -> None:
        store = MemoryObjectStore()
        base_sha = store.add_object(BLOB, b"external base\n")
        data, _ = build_pack([(REF_DELTA, (base_sha, b"external base\nmore\n"))], store)
        with self.assertRaises(UnresolvedDeltas) as cm:
            PackInflater.for_pack_data(data).resolve()
        self.assertEqual([base_sha], cm.exception.bases)
        self.assertIsInstance(cm.exception, CorruptPack)

    def test_external_base(self) -> None:
        store = MemoryObjectStore()
        base_sha = store.add_object(BLOB, b"external base\n")
        data, expected = build_pack(
            [(REF_DELTA, (base_sha, b"external base\nmore\n"))], store
        )
        entries = PackInflater.for_pack_data(data, external_store=store).resolve()
        self.assertEqual(expected, [(e.type_name, e.data, e.sha()) for e in entries])

    def test_external_store_missing_base(self) -> None:
        other = MemoryObjectStore()
        base_sha = other.add_object(BLOB, b"elsewhere\n")
        data, _ = build_pack([(REF_DELTA, (base_sha, b"elsewhere\n!\n"))], other)
        inflater = PackInflater.for_pack_data(data, external_store=MemoryObjectStore())
        self.assertRaises(UnresolvedDeltas, inflater.resolve)

    def test_bad_delta(self) -> None:
        base_sha = hash_object(BLOB, b"base")
        raw = hex_to_sha(base_sha)
        f = BytesIO()
        write_pack_data(
            f.write,
            [(BLOB_NUM, b"base"), (REF_DELTA, (raw, b"\x09\x01\x01x"))],
        )
        inflater = PackInflater.for_pack_data(f.getvalue())
        self.assertRaises(ApplyDeltaError, inflater.resolve)


class UnpackPackTests(TestCase):
    def test_empty(self) -> None:
        store = MemoryObjectStore()
        self.assertEqual([], unpack_pack(EMPTY_PACK, store))
        self.assertEqual(0, len(store))

    def test_bad_signature(self) -> None:
        store = MemoryObjectStore()
        self.assertRaises(CorruptPack, unpack_pack, b"JUNK" + EMPTY_PACK[4:], store)

    def test_stores_objects_in_pack_order(self) -> None:
        data, expected = build_pack(
            [
                (BLOB_NUM, b"a\n" * 10),
                (OFS_DELTA, (0, b"a\n" * 11)),
                (REF_DELTA, (1, b"a\n" * 12)),
            ]
        )
        store = MemoryObjectStore()
        ids = unpack_pack(data, store)
        self.assertEqual([sha for (_, _, sha) in expected], ids)
        for type_name, payload, sha in expected:
            self.assertEqual((type_name, payload), store.get_raw(sha))

    def test_thin_pack_against_store(self) -> None:
        store = MemoryObjectStore()
        base_sha = store.add_object(BLOB, b"already here\n")
        data, expected = build_pack(
            [(REF_DELTA, (base_sha, b"already here\nand new\n"))], store
        )
        self.assertEqual([expected[0][2]], unpack_pack(data, store))
        self.assertEqual(b"already here\nand new\n", store.get(expected[0][2]).data)
