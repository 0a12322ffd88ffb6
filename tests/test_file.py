# test_file.py -- Test for git files
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

import os
import stat

from cairn.file import AtomicFile, ensure_dir_exists

from . import TestCase
from .utils import make_tempdir


class AtomicFileTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self._tempdir = make_tempdir(self)
        self.path = os.path.join(self._tempdir, "foo")

    def path_contents(self) -> bytes:
        with open(self.path, "rb") as f:
            return f.read()

    def test_write(self) -> None:
        f = AtomicFile(self.path)
        f.write(b"new contents")
        self.assertFalse(os.path.exists(self.path))
        f.close()
        self.assertTrue(f.closed)
        self.assertEqual(b"new contents", self.path_contents())
        self.assertEqual(["foo"], os.listdir(self._tempdir))

    def test_replace_existing(self) -> None:
        with open(self.path, "wb") as orig:
            orig.write(b"original")
        with AtomicFile(self.path) as f:
            f.write(b"replacement")
            self.assertEqual(b"original", self.path_contents())
        self.assertEqual(b"replacement", self.path_contents())

    def test_abort(self) -> None:
        with open(self.path, "wb") as orig:
            orig.write(b"original")
        f = AtomicFile(self.path)
        f.write(b"discarded")
        f.abort()
        self.assertTrue(f.closed)
        self.assertEqual(b"original", self.path_contents())
        self.assertEqual(["foo"], os.listdir(self._tempdir))

    def test_abort_on_exception(self) -> None:
        with self.assertRaises(RuntimeError):
            with AtomicFile(self.path) as f:
                f.write(b"partial")
                raise RuntimeError("boom")
        self.assertEqual([], os.listdir(self._tempdir))

    def test_close_twice(self) -> None:
        f = AtomicFile(self.path)
        f.write(b"data")
        f.close()
        f.close()
        self.assertEqual(b"data", self.path_contents())

    def test_mask(self) -> None:
        with AtomicFile(self.path, mask=0o444) as f:
            f.write(b"data")
        self.assertEqual(0o444, stat.S_IMODE(os.stat(self.path).st_mode))

    def test_fsync(self) -> None:
        with AtomicFile(self.path, fsync=True) as f:
            f.write(b"synced")
        self.assertEqual(b"synced", self.path_contents())

    def test_fspath(self) -> None:
        f = AtomicFile(self.path)
        self.addCleanup(f.abort)
        self.assertEqual(self.path, os.fspath(f))


class EnsureDirExistsTests(TestCase):
    def test_creates_nested(self) -> None:
        path = os.path.join(make_tempdir(self), "a", "b")
        ensure_dir_exists(path)
        self.assertTrue(os.path.isdir(path))
        ensure_dir_exists(path)
