# object_store.py -- Object store for git objects
# Copyright (C) 2008-2013 Jelmer Vernooij <jelmer@jelmer.uk>
#                         and others
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

"""Git object store interfaces and implementation."""

__all__ = [
    "BaseObjectStore",
    "DiskObjectStore",
    "MemoryObjectStore",
]

import os
from collections.abc import Iterable, Iterator
from typing import Union

from .errors import ObjectMissing
from .file import AtomicFile
from .log_utils import getLogger
from .objects import GitObject, ObjectID, hex_to_filename, valid_hexsha

logger = getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

# Mode of loose object files; git makes them read-only.
OBJECT_FILE_MODE = 0o444


class BaseObjectStore:
    """Object store interface."""

    def add_object(self, type_name: bytes, payload: bytes) -> ObjectID:
        """Add a single object to this object store.

        Args:
          type_name: Object type (b"blob", b"tree", b"commit" or b"tag")
          payload: Object contents, without header
        Returns: Hex id of the object
        """
        raise NotImplementedError(self.add_object)

    def add_objects(self, objects: Iterable[GitObject]) -> list[ObjectID]:
        """Add a set of objects to this object store.

        Args:
          objects: Iterable over GitObject instances
        Returns: List of ids, in input order
        """
        return [self.add_object(obj.type_name, obj.data) for obj in objects]

    def get(self, sha: ObjectID) -> GitObject:
        """Retrieve an object by id.

        Raises:
          ObjectMissing: if the object is not present
          CorruptObject: if the stored object can not be decoded
        """
        raise NotImplementedError(self.get)

    def get_raw(self, sha: ObjectID) -> tuple[bytes, bytes]:
        """Obtain the type name and payload of an object."""
        obj = self.get(sha)
        return obj.type_name, obj.data

    def __getitem__(self, sha: ObjectID) -> GitObject:
        return self.get(sha)

    def __contains__(self, sha: object) -> bool:
        raise NotImplementedError(self.__contains__)

    def __iter__(self) -> Iterator[ObjectID]:
        raise NotImplementedError(self.__iter__)


class DiskObjectStore(BaseObjectStore):
    """Git-style object store that exists on disk as loose objects."""

    def __init__(self, path: PathLike, fsync_object_files: bool = False) -> None:
        """Open an object store.

        Args:
          path: Path of the object store, usually ``.git/objects``
          fsync_object_files: Whether to fsync object files before renaming
        """
        self.path = os.fspath(path)
        self.fsync_object_files = fsync_object_files

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.path!r})>"

    @classmethod
    def init(cls, path: PathLike) -> "DiskObjectStore":
        """Create a new, empty object store directory."""
        os.makedirs(path, exist_ok=True)
        return cls(path)

    def _get_shafile_path(self, sha: ObjectID) -> str:
        return hex_to_filename(self.path, sha)

    def add_object(self, type_name: bytes, payload: bytes) -> ObjectID:
        obj = GitObject(type_name, payload)
        path = self._get_shafile_path(obj.id)
        dir = os.path.dirname(path)
        try:
            os.mkdir(dir)
        except FileExistsError:
            pass
        if os.path.exists(path):
            return obj.id  # Already there, no need to write again
        with AtomicFile(
            path, mask=OBJECT_FILE_MODE, fsync=self.fsync_object_files
        ) as f:
            f.write(obj.as_legacy_object())
        logger.debug(
            "wrote %s object %s", type_name.decode("ascii"), obj.id.decode("ascii")
        )
        return obj.id

    def get(self, sha: ObjectID) -> GitObject:
        if not valid_hexsha(sha):
            raise ObjectMissing(sha)
        path = self._get_shafile_path(sha)
        try:
            with open(path, "rb") as f:
                return GitObject.from_file(f)
        except FileNotFoundError as exc:
            raise ObjectMissing(sha) from exc

    def __contains__(self, sha: object) -> bool:
        if not isinstance(sha, bytes) or not valid_hexsha(sha):
            return False
        return os.path.exists(self._get_shafile_path(sha))

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the ids of all loose objects."""
        try:
            buckets = sorted(os.listdir(self.path))
        except FileNotFoundError:
            return
        for base in buckets:
            if len(base) != 2:
                continue
            for rest in sorted(os.listdir(os.path.join(self.path, base))):
                sha = os.fsencode(base + rest)
                if valid_hexsha(sha):
                    yield sha


class MemoryObjectStore(BaseObjectStore):
    """Object store that keeps all objects in memory."""

    def __init__(self) -> None:
        self._data: dict[ObjectID, GitObject] = {}

    def add_object(self, type_name: bytes, payload: bytes) -> ObjectID:
        obj = GitObject(type_name, payload)
        self._data.setdefault(obj.id, obj)
        return obj.id

    def get(self, sha: ObjectID) -> GitObject:
        try:
            return self._data[sha]
        except KeyError as exc:
            raise ObjectMissing(sha) from exc

    def __contains__(self, sha: object) -> bool:
        return sha in self._data

    def __iter__(self) -> Iterator[ObjectID]:
        return iter(list(self._data.keys()))

    def __len__(self) -> int:
        return len(self._data)
