# __init__.py -- The tests for cairn
# Copyright (C) 2007 James Westby <jw+debian@jameswestby.net>
# Copyright (C) 2009-2012 Jelmer Vernooij <jelmer@jelmer.uk>
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


"""Tests for Cairn."""

__all__ = [
    "SkipTest",
    "TestCase",
    "skipIf",
]

import os
import shutil
import tempfile
import unittest
from unittest import SkipTest, skipIf
from unittest import TestCase as _TestCase


class TestCase(_TestCase):
    """Test case that isolates the test from the user's git environment.

    HOME and XDG_CONFIG_HOME point at an empty directory, and the GIT_*
    variables that influence identities, dates and tracing are cleared.
    """

    def setUp(self) -> None:
        super().setUp()
        self._old_environ = dict(os.environ)
        self._home = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self._home)
        os.environ["HOME"] = self._home
        os.environ["XDG_CONFIG_HOME"] = os.path.join(self._home, ".config")
        for name in list(os.environ):
            if name.startswith("GIT_"):
                del os.environ[name]
        for name in ("http_proxy", "https_proxy", "all_proxy", "no_proxy", "NO_PROXY"):
            os.environ.pop(name, None)

    def tearDown(self) -> None:
        super().tearDown()
        os.environ.clear()
        os.environ.update(self._old_environ)


def self_test_suite() -> unittest.TestSuite:
    names = [
        "__main__",
        "cli",
        "client",
        "clone",
        "config",
        "file",
        "log_utils",
        "object_store",
        "objects",
        "pack",
        "porcelain",
        "protocol",
        "refs",
        "repository",
        "worktree",
    ]
    module_names = ["tests.test_" + name for name in names]
    loader = unittest.TestLoader()
    return loader.loadTestsFromNames(module_names)


def test_suite() -> unittest.TestSuite:
    return self_test_suite()
