# objects.py -- Access to base git objects
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

"""Access to base git objects.

An object is a (type name, payload) pair. Its id is the SHA-1 of the
canonical encoding ``b"<type> <length>\\0" + payload``. On disk, loose objects
hold the zlib-compressed canonical encoding.

Trees and commits have structured payloads; encode_tree/decode_tree and
encode_commit/decode_commit convert between those payloads and Python values.
"""

__all__ = [
    "BLOB",
    "COMMIT",
    "OBJECT_TYPE_NAMES",
    "TAG",
    "TREE",
    "ZERO_SHA",
    "Commit",
    "GitObject",
    "ObjectID",
    "TreeEntry",
    "decode_commit",
    "decode_tree",
    "encode_commit",
    "encode_tree",
    "format_identity",
    "format_timezone",
    "hash_object",
    "hex_to_filename",
    "hex_to_sha",
    "object_header",
    "parse_identity",
    "parse_timezone",
    "pretty_format_tree_entry",
    "sha_to_hex",
    "split_object_text",
    "valid_hexsha",
]

import binascii
import os
import stat
import zlib
from collections.abc import Iterable
from hashlib import sha1
from typing import IO, NamedTuple, Optional

from .errors import CorruptObject

ObjectID = bytes

BLOB = b"blob"
TREE = b"tree"
COMMIT = b"commit"
TAG = b"tag"

OBJECT_TYPE_NAMES = (COMMIT, TREE, BLOB, TAG)

ZERO_SHA = b"0" * 40

# Header fields for commits
_TREE_HEADER = b"tree"
_PARENT_HEADER = b"parent"
_AUTHOR_HEADER = b"author"
_COMMITTER_HEADER = b"committer"

S_IFGITLINK = 0o160000

# Size of the chunks fed to the decompressor when reading loose objects.
_ZLIB_BUFSIZE = 4096


def sha_to_hex(sha: bytes) -> ObjectID:
    """Takes a binary sha and returns a hex sha."""
    hexsha = binascii.hexlify(sha)
    assert len(hexsha) == 40, f"Incorrect length of sha1 string: {hexsha!r}"
    return hexsha


def hex_to_sha(hex: ObjectID) -> bytes:
    """Takes a hex sha and returns a binary sha."""
    assert len(hex) == 40, f"Incorrect length of hexsha: {hex!r}"
    try:
        return binascii.unhexlify(hex)
    except (TypeError, binascii.Error) as exc:
        raise ValueError(exc.args[0]) from exc


def valid_hexsha(hex: bytes) -> bool:
    """Check whether hex is a well-formed 40 character hex sha."""
    if len(hex) != 40:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, binascii.Error):
        return False
    return hex == hex.lower()


def hex_to_filename(path: str, hex: ObjectID) -> str:
    """Takes a hex sha and returns its filename relative to the given path."""
    hexstr = hex.decode("ascii")
    return os.path.join(path, hexstr[:2], hexstr[2:])


def object_header(type_name: bytes, length: int) -> bytes:
    """Return an object header for the given type and content length."""
    return type_name + b" " + str(length).encode("ascii") + b"\0"


def hash_object(type_name: bytes, payload: bytes) -> ObjectID:
    """Compute the hex id of an object."""
    sha = sha1(object_header(type_name, len(payload)))
    sha.update(payload)
    return sha.hexdigest().encode("ascii")


def split_object_text(text: bytes) -> tuple[bytes, bytes]:
    """Split an uncompressed loose object into type name and payload.

    Raises:
      CorruptObject: if the header is malformed or the declared size does
        not match the payload length.
    """
    header, sep, payload = text.partition(b"\0")
    if not sep:
        raise CorruptObject("object has no header separator")
    type_name, sep, size_text = header.partition(b" ")
    if not sep:
        raise CorruptObject(f"malformed object header {header!r}")
    if type_name not in OBJECT_TYPE_NAMES:
        raise CorruptObject(f"unknown object type {type_name!r}")
    if not size_text.isdigit() or (size_text.startswith(b"0") and size_text != b"0"):
        raise CorruptObject(f"size is not in canonical format: {size_text!r}")
    if int(size_text) != len(payload):
        raise CorruptObject(
            f"declared size {int(size_text)} does not match payload length "
            f"{len(payload)}"
        )
    return type_name, payload


def read_compressed(f: IO[bytes], bufsize: int = _ZLIB_BUFSIZE) -> bytes:
    """Decompress a complete zlib stream read from a file.

    The file is read in fixed-size chunks until the decompressor reports the
    end of the stream.

    Raises:
      CorruptObject: on a malformed stream, or if the file ends before the
        stream does.
    """
    decomp = zlib.decompressobj()
    chunks = []
    try:
        while not decomp.eof:
            data = f.read(bufsize)
            if not data:
                raise CorruptObject("EOF before end of zlib stream")
            chunks.append(decomp.decompress(data))
    except zlib.error as exc:
        raise CorruptObject(f"invalid compressed object: {exc}") from exc
    return b"".join(chunks)


class GitObject:
    """An immutable git object: a type name and its payload."""

    __slots__ = ("_sha", "data", "type_name")

    def __init__(self, type_name: bytes, data: bytes) -> None:
        if type_name not in OBJECT_TYPE_NAMES:
            raise ValueError(f"unknown object type {type_name!r}")
        self.type_name = type_name
        self.data = data
        self._sha: Optional[ObjectID] = None

    @property
    def id(self) -> ObjectID:
        """The hex SHA of this object."""
        if self._sha is None:
            self._sha = hash_object(self.type_name, self.data)
        return self._sha

    def raw_length(self) -> int:
        return len(self.data)

    def as_raw_string(self) -> bytes:
        """Return the canonical encoding, header included."""
        return object_header(self.type_name, len(self.data)) + self.data

    def as_legacy_object(self, compression_level: int = -1) -> bytes:
        """Return the loose object file contents for this object."""
        return zlib.compress(self.as_raw_string(), compression_level)

    @classmethod
    def from_file(cls, f: IO[bytes]) -> "GitObject":
        """Read a loose object from a file."""
        type_name, payload = split_object_text(read_compressed(f))
        return cls(type_name, payload)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GitObject):
            return NotImplemented
        return self.type_name == other.type_name and self.data == other.data

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.type_name.decode('ascii')} {self.id.decode('ascii')}>"


class TreeEntry(NamedTuple):
    """A single entry in a tree object."""

    mode: bytes
    name: bytes
    sha: ObjectID

    def is_tree(self) -> bool:
        return stat.S_ISDIR(int(self.mode, 8))


def _tree_sort_key(entry: TreeEntry) -> bytes:
    # Subtrees sort as if their name ended in a slash.
    if entry.is_tree():
        return entry.name + b"/"
    return entry.name


def encode_tree(entries: Iterable[TreeEntry]) -> bytes:
    """Serialize tree entries in git's canonical order.

    Args:
      entries: Iterable of TreeEntry, in any order
    Returns: Tree payload
    Raises:
      CorruptObject: if two entries share a name or an entry is malformed
    """
    chunks = []
    seen = set()
    for entry in sorted(entries, key=_tree_sort_key):
        if entry.name in seen:
            raise CorruptObject(f"duplicate tree entry {entry.name!r}")
        seen.add(entry.name)
        if not entry.name or b"/" in entry.name or b"\0" in entry.name:
            raise CorruptObject(f"invalid tree entry name {entry.name!r}")
        try:
            raw_sha = hex_to_sha(entry.sha)
        except (AssertionError, ValueError) as exc:
            raise CorruptObject(f"invalid sha for {entry.name!r}: {entry.sha!r}") from exc
        chunks.append(entry.mode + b" " + entry.name + b"\0" + raw_sha)
    return b"".join(chunks)


def decode_tree(payload: bytes) -> list[TreeEntry]:
    """Parse a tree payload.

    Args:
      payload: Tree payload
    Returns: list of TreeEntry, in payload order
    Raises:
      CorruptObject: if a delimiter is missing or a hash is truncated
    """
    entries = []
    count = 0
    length = len(payload)
    while count < length:
        mode_end = payload.find(b" ", count)
        if mode_end == -1:
            raise CorruptObject("tree entry has no mode terminator")
        mode = payload[count:mode_end]
        if not mode or mode.strip(b"01234567"):
            raise CorruptObject(f"invalid mode {mode!r} in tree entry")
        name_end = payload.find(b"\0", mode_end + 1)
        if name_end == -1:
            raise CorruptObject("tree entry has no name terminator")
        name = payload[mode_end + 1 : name_end]
        count = name_end + 21
        if count > length:
            raise CorruptObject(f"tree entry {name!r} has a truncated hash")
        entries.append(TreeEntry(mode, name, sha_to_hex(payload[name_end + 1 : count])))
    return entries


def pretty_format_tree_entry(entry: TreeEntry) -> str:
    """Format a tree entry the way ``git cat-file -p`` does."""
    mode = int(entry.mode, 8)
    if stat.S_ISDIR(mode):
        kind = "tree"
    elif stat.S_IFMT(mode) == S_IFGITLINK:
        kind = "commit"
    else:
        kind = "blob"
    return "{:06o} {} {}\t{}\n".format(
        mode,
        kind,
        entry.sha.decode("ascii"),
        entry.name.decode("utf-8", "replace"),
    )


def parse_timezone(text: bytes) -> int:
    """Parse a timezone text fragment (e.g. b'+0100').

    Returns: Offset from UTC in seconds
    """
    if text[:1] not in (b"+", b"-") or len(text) != 5 or not text[1:].isdigit():
        raise ValueError(f"invalid timezone {text!r}")
    sign = text[:1]
    offset = int(text[1:])
    signum = -1 if sign == b"-" else 1
    hours = offset // 100
    minutes = offset % 100
    return signum * (hours * 3600 + minutes * 60)


def format_timezone(offset: int) -> bytes:
    """Format a timezone for git serialization.

    Args:
      offset: Timezone offset as seconds difference to UTC
    """
    if offset % 60 != 0:
        raise ValueError("Unable to handle non-minute offset.")
    if offset < 0:
        sign = "-"
        offset = -offset
    else:
        sign = "+"
    return ("%c%02d%02d" % (sign, offset / 3600, (offset / 60) % 60)).encode("ascii")


def format_identity(identity: bytes, time: int, timezone: int) -> bytes:
    """Build an author or committer line value.

    Args:
      identity: b"Name <email>"
      time: Seconds since the epoch
      timezone: Offset from UTC in seconds
    """
    return identity + b" " + str(time).encode("ascii") + b" " + format_timezone(timezone)


def parse_identity(value: bytes) -> tuple[bytes, int, int]:
    """Split an author or committer value into identity, time and offset."""
    try:
        rest, time_text, tz_text = value.rsplit(b" ", 2)
        return rest, int(time_text), parse_timezone(tz_text)
    except ValueError as exc:
        raise CorruptObject(f"malformed identity line {value!r}") from exc


class Commit:
    """A parsed commit payload."""

    def __init__(
        self,
        tree: ObjectID,
        parents: Optional[list[ObjectID]] = None,
        author: bytes = b"",
        committer: bytes = b"",
        message: bytes = b"",
        extra: Optional[list[tuple[bytes, bytes]]] = None,
    ) -> None:
        self.tree = tree
        self.parents = list(parents or [])
        self.author = author
        self.committer = committer
        self.message = message
        # Headers other than tree/parent/author/committer, e.g. encoding or
        # gpgsig, in their original position after committer.
        self.extra = list(extra or [])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Commit):
            return NotImplemented
        return (
            self.tree == other.tree
            and self.parents == other.parents
            and self.author == other.author
            and self.committer == other.committer
            and self.message == other.message
            and self.extra == other.extra
        )

    def __repr__(self) -> str:
        return f"Commit(tree={self.tree!r}, parents={self.parents!r})"


def _format_header(field: bytes, value: bytes) -> bytes:
    # Multi-line values continue on lines starting with a space.
    return field + b" " + value.replace(b"\n", b"\n ") + b"\n"


def encode_commit(commit: Commit) -> bytes:
    """Serialize a commit into its payload."""
    chunks = [_format_header(_TREE_HEADER, commit.tree)]
    for parent in commit.parents:
        chunks.append(_format_header(_PARENT_HEADER, parent))
    chunks.append(_format_header(_AUTHOR_HEADER, commit.author))
    chunks.append(_format_header(_COMMITTER_HEADER, commit.committer))
    for field, value in commit.extra:
        chunks.append(_format_header(field, value))
    chunks.append(b"\n")
    chunks.append(commit.message)
    return b"".join(chunks)


def _parse_message(payload: bytes) -> tuple[list[tuple[bytes, bytes]], bytes]:
    """Split a commit payload into header fields and message."""
    headers: list[tuple[bytes, bytes]] = []
    lines = payload.split(b"\n")
    for i, line in enumerate(lines):
        if line == b"":
            return headers, b"\n".join(lines[i + 1 :])
        if line.startswith(b" "):
            if not headers:
                raise CorruptObject("continuation line without a header")
            field, value = headers[-1]
            headers[-1] = (field, value + b"\n" + line[1:])
            continue
        field, sep, value = line.partition(b" ")
        if not sep:
            raise CorruptObject(f"malformed commit header line {line!r}")
        headers.append((field, value))
    raise CorruptObject("commit has no blank line after its headers")


def decode_commit(payload: bytes) -> Commit:
    """Parse a commit payload.

    Raises:
      CorruptObject: if the tree, author or committer header is missing or
        out of place, or a referenced id is malformed
    """
    headers, message = _parse_message(payload)
    if not headers or headers[0][0] != _TREE_HEADER:
        raise CorruptObject("commit does not start with a tree header")
    tree = headers[0][1]
    if not valid_hexsha(tree):
        raise CorruptObject(f"invalid tree id {tree!r}")
    parents = []
    author = committer = None
    extra = []
    for field, value in headers[1:]:
        if field == _PARENT_HEADER:
            if author is not None or not valid_hexsha(value):
                raise CorruptObject(f"invalid parent line {value!r}")
            parents.append(value)
        elif field == _AUTHOR_HEADER and author is None:
            author = value
        elif field == _COMMITTER_HEADER and committer is None:
            committer = value
        else:
            extra.append((field, value))
    if author is None:
        raise CorruptObject("commit has no author")
    if committer is None:
        raise CorruptObject("commit has no committer")
    return Commit(tree, parents, author, committer, message, extra)
