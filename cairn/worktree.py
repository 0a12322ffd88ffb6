# worktree.py -- Building trees from, and writing trees to, the file system
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

"""Convert between directories on disk and tree objects.

There is no index: write_tree_from_directory hashes whatever is on disk, and
checkout_tree writes every entry of a tree below a target directory.
"""

__all__ = [
    "checkout_tree",
    "cleanup_mode",
    "validate_path_element",
    "write_tree_from_directory",
]

import os
import stat
from typing import Optional, Union

from .errors import CorruptObject
from .log_utils import getLogger
from .object_store import BaseObjectStore
from .objects import BLOB, TREE, ObjectID, TreeEntry, decode_tree, encode_tree

logger = getLogger(__name__)

S_IFGITLINK = 0o160000

INVALID_DOTNAMES = (b".git", b".", b"..", b"")

PathLike = Union[str, "os.PathLike[str]"]


def cleanup_mode(mode: int) -> int:
    """Cleanup a mode value.

    This will return a mode that can be stored in a tree object.

    Args:
      mode: Mode to clean up.

    Returns:
      mode
    """
    if stat.S_ISLNK(mode):
        return stat.S_IFLNK
    elif stat.S_ISDIR(mode):
        return stat.S_IFDIR
    ret = stat.S_IFREG | 0o644
    if mode & 0o100:
        ret |= 0o111
    return ret


def _mode_bytes(mode: int) -> bytes:
    return b"%o" % mode


def validate_path_element(element: bytes) -> bool:
    """Check whether a tree entry name is safe to create on disk."""
    if b"/" in element or b"\0" in element:
        return False
    if os.path.sep != "/" and os.fsencode(os.path.sep) in element:
        return False
    return element.lower() not in INVALID_DOTNAMES


def write_tree_from_directory(
    object_store: BaseObjectStore,
    path: PathLike,
    ignore: tuple[str, ...] = (".git",),
) -> ObjectID:
    """Store the contents of a directory as blobs and trees.

    Regular files become blobs with mode 100644, or 100755 when the owner
    execute bit is set; symbolic links become blobs holding the link target.
    Directories become subtrees; empty ones are left out, as git does.

    Args:
      object_store: Object store to add objects to
      path: Directory to read
      ignore: Names to skip at every level
    Returns: Id of the tree for the directory
    """
    tree_id = _write_tree(object_store, os.fspath(path), ignore)
    if tree_id is None:
        tree_id = object_store.add_object(TREE, b"")
    return tree_id


def _write_tree(
    object_store: BaseObjectStore, path: str, ignore: tuple[str, ...]
) -> Optional[ObjectID]:
    entries = []
    with os.scandir(path) as it:
        for dir_entry in it:
            if dir_entry.name in ignore:
                continue
            st = dir_entry.stat(follow_symlinks=False)
            mode = cleanup_mode(st.st_mode)
            name = os.fsencode(dir_entry.name)
            if stat.S_ISLNK(mode):
                target = os.readlink(dir_entry.path)
                sha = object_store.add_object(BLOB, os.fsencode(target))
            elif stat.S_ISDIR(mode):
                subtree = _write_tree(object_store, dir_entry.path, ignore)
                if subtree is None:
                    continue
                sha = subtree
            else:
                with open(dir_entry.path, "rb") as f:
                    sha = object_store.add_object(BLOB, f.read())
            entries.append(TreeEntry(_mode_bytes(mode), name, sha))
    if not entries:
        return None
    return object_store.add_object(TREE, encode_tree(entries))


def _build_file_from_blob(contents: bytes, mode: int, target_path: str) -> None:
    if stat.S_ISLNK(mode):
        if os.path.lexists(target_path):
            os.unlink(target_path)
        os.symlink(os.fsdecode(contents), target_path)
        return
    with open(target_path, "wb") as f:
        f.write(contents)
    if mode & 0o111:
        os.chmod(target_path, 0o755)
    else:
        os.chmod(target_path, 0o644)


def checkout_tree(
    object_store: BaseObjectStore, tree_id: ObjectID, target: PathLike
) -> int:
    """Write the files of a tree below a directory.

    Args:
      object_store: Object store to read objects from
      tree_id: Id of the tree to check out
      target: Directory to write to; created if missing
    Returns: Number of files written
    Raises:
      ObjectMissing: if an object of the tree is not in the store
      CorruptObject: if an entry has an unsafe name or the wrong type
    """
    target = os.fspath(target)
    os.makedirs(target, exist_ok=True)
    obj = object_store.get(tree_id)
    if obj.type_name != TREE:
        raise CorruptObject(
            f"{tree_id.decode('ascii')} is a {obj.type_name.decode('ascii')}, not a tree"
        )
    count = 0
    for entry in decode_tree(obj.data):
        if not validate_path_element(entry.name):
            raise CorruptObject(f"refusing to check out unsafe path {entry.name!r}")
        path = os.path.join(target, os.fsdecode(entry.name))
        mode = int(entry.mode, 8)
        if stat.S_ISDIR(mode):
            count += checkout_tree(object_store, entry.sha, path)
        elif stat.S_IFMT(mode) == S_IFGITLINK:
            # Submodules are not fetched; leave an empty directory.
            os.makedirs(path, exist_ok=True)
        else:
            blob = object_store.get(entry.sha)
            if blob.type_name != BLOB:
                raise CorruptObject(f"{entry.name!r} does not refer to a blob")
            _build_file_from_blob(blob.data, mode, path)
            count += 1
    logger.debug("checked out %d files into %s", count, target)
    return count
