# utils.py -- Test utilities for Cairn.
# Copyright (C) 2010 Google, Inc.
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

"""Utility functions common to Cairn tests."""

import os
import shutil
import tempfile
from io import BytesIO
from typing import Optional, Union
from unittest import TestCase

from cairn.object_store import BaseObjectStore
from cairn.objects import hash_object, hex_to_sha
from cairn.pack import (
    DELTA_TYPES,
    OFS_DELTA,
    REF_DELTA,
    TYPE_NAME_TO_NUM,
    TYPE_NUM_TO_NAME,
    SHA1Writer,
    create_delta,
    write_pack_header,
    write_pack_object,
)
from cairn.protocol import pkt_line
from cairn.repo import Repo

PackSpec = list[tuple[int, Union[bytes, tuple[Union[int, bytes], bytes]]]]


def make_repo(testcase: TestCase) -> Repo:
    """Create a repository in a temporary directory removed after the test."""
    path = tempfile.mkdtemp()
    testcase.addCleanup(shutil.rmtree, path)
    return Repo.init(path)


def make_tempdir(testcase: TestCase) -> str:
    path = tempfile.mkdtemp()
    testcase.addCleanup(shutil.rmtree, path)
    return path


def write_file(path: str, contents: bytes, mode: Optional[int] = None) -> None:
    dirname = os.path.dirname(path)
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    with open(path, "wb") as f:
        f.write(contents)
    if mode is not None:
        os.chmod(path, mode)


def build_pack(
    objects_spec: PackSpec, store: Optional[BaseObjectStore] = None
) -> tuple[bytes, list[tuple[bytes, bytes, bytes]]]:
    """Write test pack data from a concise spec.

    Args:
      objects_spec: A list of (type_num, obj). For non-delta types, obj
        is the payload of that object. For delta types, obj is a tuple of
        (base, data), where base is either an index in objects_spec of the
        base for that delta, or for a ref delta a hex id looked up in store
        (making the pack thin), and data is the full, non-deltified payload.
        Offset deltas must come after their base.
      store: An optional object store for looking up external bases.
    Returns: Tuple of (pack data, list of (type name, payload, hex id) in
        the order of objects_spec)
    """
    num_objects = len(objects_spec)
    full_objects: dict[int, tuple[int, bytes, bytes]] = {}

    while len(full_objects) < num_objects:
        for i, (type_num, obj) in enumerate(objects_spec):
            if i in full_objects:
                continue
            if type_num not in DELTA_TYPES:
                assert isinstance(obj, bytes)
                full_objects[i] = (
                    type_num,
                    obj,
                    hash_object(TYPE_NUM_TO_NAME[type_num], obj),
                )
                continue
            assert isinstance(obj, tuple)
            base, data = obj
            if isinstance(base, int):
                if base not in full_objects:
                    continue
                base_type_num = full_objects[base][0]
            else:
                assert store is not None
                base_type_name, _ = store.get_raw(base)
                base_type_num = TYPE_NAME_TO_NUM[base_type_name]
            full_objects[i] = (
                base_type_num,
                data,
                hash_object(TYPE_NUM_TO_NAME[base_type_num], data),
            )

    buf = BytesIO()
    sf = SHA1Writer(buf.write)
    write_pack_header(sf.write, num_objects)
    offsets: dict[int, int] = {}
    for i, (type_num, obj) in enumerate(objects_spec):
        offset = sf.length
        if type_num == OFS_DELTA:
            assert isinstance(obj, tuple)
            base_index, data = obj
            assert isinstance(base_index, int)
            _, base_data, _ = full_objects[base_index]
            obj = (offset - offsets[base_index], create_delta(base_data, data))
        elif type_num == REF_DELTA:
            assert isinstance(obj, tuple)
            base_ref, data = obj
            if isinstance(base_ref, int):
                _, base_data, base_sha = full_objects[base_ref]
            else:
                assert store is not None
                _, base_data = store.get_raw(base_ref)
                base_sha = base_ref
            obj = (hex_to_sha(base_sha), create_delta(base_data, data))
        write_pack_object(sf.write, type_num, obj)
        offsets[i] = offset
    sf.write_sha()

    return buf.getvalue(), [
        (TYPE_NUM_TO_NAME[full_objects[i][0]], full_objects[i][1], full_objects[i][2])
        for i in range(num_objects)
    ]


def pkt_lines(*lines: Optional[bytes]) -> bytes:
    """Encode a sequence of pkt-lines; None becomes a flush-pkt."""
    return b"".join(pkt_line(line) for line in lines)


def side_band(channel: int, data: bytes, chunk_size: int = 1000) -> bytes:
    """Encode data as side-band pkt-lines on one channel."""
    return b"".join(
        pkt_line(bytes([channel]) + data[i : i + chunk_size])
        for i in range(0, len(data), chunk_size)
    )
