# porcelain.py -- Porcelain-like layer on top of Cairn
# Copyright (C) 2013 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Simple wrapper that provides porcelain-like functions on top of Cairn.

Currently implemented:
 * cat_file
 * clone
 * commit_tree
 * hash_object
 * init
 * ls_tree
 * write_tree

These functions are meant to behave similarly to the git subcommands.
Differences in behaviour are considered bugs.

Functions should generally accept both unicode strings and bytestrings
"""

__all__ = [
    "cat_file",
    "clone",
    "commit_tree",
    "hash_object",
    "init",
    "ls_tree",
    "open_repo",
    "resolve_object_id",
    "write_tree",
]

import os
import sys
from collections.abc import Callable, Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from typing import TYPE_CHECKING, BinaryIO, Optional, TextIO, Union
from urllib.parse import urlparse

from .clone import do_clone
from .errors import InvalidArgument
from .objects import (
    BLOB,
    COMMIT,
    TREE,
    Commit,
    GitObject,
    ObjectID,
    decode_commit,
    decode_tree,
    encode_commit,
    format_identity,
    hash_object as _hash_object,
    pretty_format_tree_entry,
    valid_hexsha,
)
from .refs import HEADREF, LOCAL_BRANCH_PREFIX, LOCAL_TAG_PREFIX, check_ref_format
from .repo import Repo, get_user_identity, get_user_timestamp
from .worktree import write_tree_from_directory

if TYPE_CHECKING:
    import urllib3

RepoPath = Union[str, "os.PathLike[str]", Repo]

DEFAULT_ENCODING = "utf-8"

CAT_FILE_MODES = ("pretty", "type", "size")


@contextmanager
def _noop_context_manager(obj: Repo) -> Iterator[Repo]:
    """Context manager that has the same api as closing but does nothing."""
    yield obj


def open_repo(path_or_repo: RepoPath) -> AbstractContextManager[Repo]:
    """Open an argument that can be a repository or a path for a repository."""
    if isinstance(path_or_repo, Repo):
        return _noop_context_manager(path_or_repo)
    return _noop_context_manager(Repo(path_or_repo))


def _default_bytes_out() -> BinaryIO:
    return getattr(sys.stdout, "buffer", sys.stdout)


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode(DEFAULT_ENCODING)
    return value


def _ref_candidates(name: bytes) -> list[bytes]:
    if name == HEADREF:
        return [name]
    if name.startswith(b"refs/"):
        candidates = [name]
    else:
        candidates = [LOCAL_TAG_PREFIX + name, LOCAL_BRANCH_PREFIX + name]
    return [c for c in candidates if check_ref_format(c)]


def resolve_object_id(repo: Repo, name: Union[str, bytes]) -> ObjectID:
    """Turn a full id, an abbreviated id or a ref name into an object id.

    Raises:
      InvalidArgument: if name does not match exactly one object
    """
    name = _to_bytes(name)
    if valid_hexsha(name.lower()):
        return name.lower()
    for refname in _ref_candidates(name):
        try:
            return repo.refs[refname]
        except KeyError:
            pass
    text = name.decode("ascii", "replace").lower()
    if 4 <= len(text) < 40 and all(c in "0123456789abcdef" for c in text):
        bucket = os.path.join(repo.object_store.path, text[:2])
        try:
            matches = [
                text[:2] + rest
                for rest in os.listdir(bucket)
                if rest.startswith(text[2:])
            ]
        except FileNotFoundError:
            matches = []
        if len(matches) == 1:
            return matches[0].encode("ascii")
        if len(matches) > 1:
            raise InvalidArgument(f"short object ID {text} is ambiguous")
    raise InvalidArgument(f"Not a valid object name {name.decode('utf-8', 'replace')}")


def init(path: Union[str, "os.PathLike[str]"] = ".") -> Repo:
    """Create a new git repository.

    Args:
      path: Path to repository; created if missing
    Returns: A Repo instance
    """
    return Repo.init(path, mkdir=True)


def cat_file(
    repo: RepoPath,
    object_id: Union[str, bytes],
    mode: str = "pretty",
    outstream: Optional[BinaryIO] = None,
) -> None:
    """Show the contents, type or size of an object.

    Args:
      repo: Path to the repository
      object_id: Object to show
      mode: "pretty" prints the payload (trees in ls-tree format), "type"
        the type name and "size" the payload length
      outstream: Binary stream to write to
    """
    if mode not in CAT_FILE_MODES:
        raise InvalidArgument(f"unknown cat-file mode {mode!r}")
    if outstream is None:
        outstream = _default_bytes_out()
    with open_repo(repo) as r:
        obj = r.object_store.get(resolve_object_id(r, object_id))
    if mode == "type":
        outstream.write(obj.type_name + b"\n")
    elif mode == "size":
        outstream.write(str(obj.raw_length()).encode("ascii") + b"\n")
    elif obj.type_name == TREE:
        for entry in decode_tree(obj.data):
            outstream.write(pretty_format_tree_entry(entry).encode(DEFAULT_ENCODING))
    else:
        outstream.write(obj.data)


def hash_object(
    path: Union[str, "os.PathLike[str]"],
    repo: Optional[RepoPath] = None,
    write: bool = False,
    type_name: bytes = BLOB,
) -> ObjectID:
    """Compute the id of a file's contents, optionally storing it.

    Args:
      path: File to hash
      repo: Repository to write to; required when write is set
      write: Whether to add the object to the repository
      type_name: Object type to hash the contents as
    Returns: Object id
    """
    with open(path, "rb") as f:
        data = f.read()
    if not write:
        GitObject(type_name, data)
        return _hash_object(type_name, data)
    if repo is None:
        raise InvalidArgument("a repository is required to write objects")
    with open_repo(repo) as r:
        return r.object_store.add_object(type_name, data)


def ls_tree(
    repo: RepoPath,
    treeish: Union[str, bytes] = HEADREF,
    outstream: TextIO = sys.stdout,
    name_only: bool = False,
) -> None:
    """List contents of a tree.

    Args:
      repo: Path to the repository
      treeish: Tree id, or a commit id or ref to list the tree of
      outstream: Output stream (defaults to stdout)
      name_only: Only print the entry names
    """
    with open_repo(repo) as r:
        obj = r.object_store.get(resolve_object_id(r, treeish))
        if obj.type_name == COMMIT:
            obj = r.object_store.get(decode_commit(obj.data).tree)
        if obj.type_name != TREE:
            raise InvalidArgument(f"{obj.id.decode('ascii')} is not a tree object")
        for entry in decode_tree(obj.data):
            if name_only:
                outstream.write(entry.name.decode(DEFAULT_ENCODING, "replace") + "\n")
            else:
                outstream.write(pretty_format_tree_entry(entry))


def write_tree(repo: RepoPath) -> ObjectID:
    """Store the working directory of a repository as a tree.

    Args:
      repo: Path to the repository
    Returns: Id of the root tree
    """
    with open_repo(repo) as r:
        return write_tree_from_directory(r.object_store, r.path)


def _check_object_type(repo: Repo, sha: ObjectID, type_name: bytes) -> None:
    obj = repo.object_store.get(sha)
    if obj.type_name != type_name:
        raise InvalidArgument(
            f"{sha.decode('ascii')} is a {obj.type_name.decode('ascii')}, "
            f"not a {type_name.decode('ascii')}"
        )


def commit_tree(
    repo: RepoPath,
    tree: Union[str, bytes],
    message: Union[str, bytes],
    parents: Sequence[Union[str, bytes]] = (),
    author: Optional[bytes] = None,
    committer: Optional[bytes] = None,
) -> ObjectID:
    """Create a new commit object.

    Args:
      repo: Path to repository
      tree: An existing tree object
      message: Commit message; a trailing newline is added if missing
      parents: Ids of the parent commits
      author: Optional author name and email
      committer: Optional committer name and email
    Returns: Id of the new commit
    """
    with open_repo(repo) as r:
        tree_id = resolve_object_id(r, tree)
        _check_object_type(r, tree_id, TREE)
        parent_ids = []
        for parent in parents:
            parent_id = resolve_object_id(r, parent)
            _check_object_type(r, parent_id, COMMIT)
            parent_ids.append(parent_id)

        config = r.get_config_stack()
        if author is None:
            author = get_user_identity(config, kind="AUTHOR")
        if committer is None:
            committer = get_user_identity(config, kind="COMMITTER")
        author_time, author_tz = get_user_timestamp("AUTHOR")
        commit_time, commit_tz = get_user_timestamp("COMMITTER")

        message = _to_bytes(message)
        if message and not message.endswith(b"\n"):
            message += b"\n"
        commit = Commit(
            tree_id,
            parent_ids,
            author=format_identity(author, author_time, author_tz),
            committer=format_identity(committer, commit_time, commit_tz),
            message=message,
        )
        return r.object_store.add_object(COMMIT, encode_commit(commit))


def _default_clone_target(url: str) -> str:
    path = urlparse(url).path.rstrip("/")
    name = path.rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name:
        raise InvalidArgument(f"unable to derive a directory name from {url}")
    return name


def clone(
    source: str,
    target: Optional[Union[str, "os.PathLike[str]"]] = None,
    checkout: bool = True,
    pool_manager: Optional["urllib3.PoolManager"] = None,
    progress: Optional[Callable[[bytes], None]] = None,
) -> Repo:
    """Clone a remote git repository over smart HTTP.

    Args:
      source: URL of the source repository
      target: Path to target repository; derived from the URL when omitted
      checkout: Whether or not to check out the fetched commit
      pool_manager: Optional urllib3 pool manager
      progress: Optional function called with progress output
    Returns: The new repository
    """
    if target is None:
        target = _default_clone_target(source)
    return do_clone(
        source, target, checkout=checkout, pool_manager=pool_manager, progress=progress
    )

