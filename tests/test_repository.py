# test_repository.py -- tests for repository.py
# Copyright (C) 2007 James Westby <jw+debian@jameswestby.net>
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

"""Tests for the repository."""

import os
import socket
import time

from cairn.config import ConfigDict, StackedConfig
from cairn.errors import NotFound, NotGitRepository
from cairn.objects import BLOB
from cairn.repo import Repo, get_user_identity, get_user_timestamp

from . import TestCase
from .utils import make_tempdir


class CreateRepositoryTests(TestCase):
    def _check_repo_contents(self, repo: Repo) -> None:
        controldir = repo.controldir()
        for d in ("objects", "refs", os.path.join("refs", "heads"), os.path.join("refs", "tags")):
            self.assertTrue(os.path.isdir(os.path.join(controldir, d)), d)
        with open(os.path.join(controldir, "HEAD"), "rb") as f:
            self.assertEqual(b"ref: refs/heads/main\n", f.read())
        config = repo.get_config()
        self.assertEqual(b"0", config.get((b"core",), b"repositoryformatversion"))
        self.assertFalse(config.get_boolean((b"core",), b"bare"))

    def test_create_disk(self) -> None:
        tmp_dir = make_tempdir(self)
        repo = Repo.init(tmp_dir)
        self.assertEqual(os.path.join(tmp_dir, ".git"), repo.controldir())
        self._check_repo_contents(repo)

    def test_create_mkdir(self) -> None:
        target = os.path.join(make_tempdir(self), "a", "b")
        repo = Repo.init(target, mkdir=True)
        self._check_repo_contents(repo)

    def test_create_missing_directory(self) -> None:
        target = os.path.join(make_tempdir(self), "missing")
        self.assertRaises(FileNotFoundError, Repo.init, target)

    def test_default_branch(self) -> None:
        repo = Repo.init(make_tempdir(self), default_branch=b"trunk")
        self.assertEqual(b"refs/heads/trunk", repo.refs.get_symref_target(b"HEAD"))

    def test_reinit_keeps_state(self) -> None:
        tmp_dir = make_tempdir(self)
        repo = Repo.init(tmp_dir)
        sha = repo.object_store.add_object(BLOB, b"keep me\n")
        repo.refs.set_symbolic_ref(b"HEAD", b"refs/heads/other")
        repo.refs.set_ref(b"refs/heads/other", sha)
        config = repo.get_config()
        config.set((b"user",), b"name", b"Kept")
        config.write_to_path()

        repo = Repo.init(tmp_dir)
        self.assertIn(sha, repo.object_store)
        self.assertEqual(b"refs/heads/other", repo.refs.get_symref_target(b"HEAD"))
        self.assertEqual(sha, repo.head())
        self.assertEqual(b"Kept", repo.get_config().get((b"user",), b"name"))


class RepositoryTests(TestCase):
    def test_not_a_repository(self) -> None:
        with self.assertRaises(NotGitRepository) as cm:
            Repo(make_tempdir(self))
        self.assertIsInstance(cm.exception, NotFound)

    def test_open(self) -> None:
        tmp_dir = make_tempdir(self)
        Repo.init(tmp_dir)
        repo = Repo(tmp_dir)
        self.assertEqual(tmp_dir, repo.path)
        self.assertEqual(
            os.path.join(tmp_dir, ".git", "objects"), repo.object_store.path
        )
        self.assertEqual(f"<Repo at {tmp_dir!r}>", repr(repo))

    def test_head_unborn(self) -> None:
        repo = Repo.init(make_tempdir(self))
        self.assertRaises(KeyError, repo.head)

    def test_get_config_missing(self) -> None:
        repo = Repo.init(make_tempdir(self))
        os.unlink(os.path.join(repo.controldir(), "config"))
        config = repo.get_config()
        self.assertEqual([], list(config.sections()))
        config.set((b"core",), b"bare", False)
        config.write_to_path()
        self.assertTrue(os.path.exists(os.path.join(repo.controldir(), "config")))

    def test_get_config_stack(self) -> None:
        repo = Repo.init(make_tempdir(self))
        with open(os.path.join(os.environ["HOME"], ".gitconfig"), "wb") as f:
            f.write(b"[user]\n\tname = Global\n[core]\n\tbare = true\n")
        stack = repo.get_config_stack()
        self.assertEqual(b"Global", stack.get((b"user",), b"name"))
        self.assertFalse(stack.get_boolean((b"core",), b"bare"))
        self.assertIs(stack.writable, stack.backends[0])


class GetUserIdentityTests(TestCase):
    def test_from_environ(self) -> None:
        os.environ["GIT_COMMITTER_NAME"] = "Environ User"
        os.environ["GIT_COMMITTER_EMAIL"] = "environ@example.com"
        self.assertEqual(
            b"Environ User <environ@example.com>",
            get_user_identity(StackedConfig([]), kind="COMMITTER"),
        )

    def test_environ_kind_mismatch(self) -> None:
        os.environ["GIT_AUTHOR_NAME"] = "Author"
        config = ConfigDict()
        config.set(b"user", b"name", b"Config")
        config.set(b"user", b"email", b"config@example.com")
        self.assertEqual(
            b"Config <config@example.com>",
            get_user_identity(StackedConfig([config]), kind="COMMITTER"),
        )

    def test_from_config(self) -> None:
        config = ConfigDict()
        config.set(b"user", b"name", b"Config")
        config.set(b"user", b"email", b"<config@example.com>")
        self.assertEqual(
            b"Config <config@example.com>", get_user_identity(StackedConfig([config]))
        )

    def test_default(self) -> None:
        os.environ["USER"] = "jelmer"
        os.environ["LOGNAME"] = "jelmer"
        os.environ.pop("EMAIL", None)
        identity = get_user_identity(StackedConfig([]))
        self.assertTrue(
            identity.endswith(
                b" <jelmer@" + socket.gethostname().encode("utf-8") + b">"
            ),
            identity,
        )

    def test_default_email(self) -> None:
        os.environ["EMAIL"] = "someone@example.com"
        identity = get_user_identity(StackedConfig([]))
        self.assertTrue(identity.endswith(b" <someone@example.com>"), identity)


class GetUserTimestampTests(TestCase):
    def test_from_environ(self) -> None:
        os.environ["GIT_AUTHOR_DATE"] = "1234567890 -0230"
        self.assertEqual((1234567890, -9000), get_user_timestamp("AUTHOR"))

    def test_invalid(self) -> None:
        os.environ["GIT_AUTHOR_DATE"] = "1234567890 +2"
        self.assertRaises(ValueError, get_user_timestamp, "AUTHOR")

    def test_now(self) -> None:
        before = int(time.time())
        seconds, offset = get_user_timestamp("COMMITTER")
        self.assertLessEqual(before, seconds)
        self.assertLessEqual(seconds, int(time.time()))
        self.assertEqual(time.localtime(seconds).tm_gmtoff, offset)
