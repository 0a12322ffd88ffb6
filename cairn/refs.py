# refs.py -- For dealing with git refs
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

"""Ref handling.

Only loose refs are supported: each ref is a file under the repository
control directory holding either a hex id or ``ref: <target>``.
"""

__all__ = [
    "HEADREF",
    "LOCAL_BRANCH_PREFIX",
    "LOCAL_REMOTE_PREFIX",
    "LOCAL_TAG_PREFIX",
    "SYMREF",
    "DiskRefsContainer",
    "SymrefLoop",
    "check_ref_format",
    "parse_symref_value",
]

import os
from typing import Optional, Union

from .errors import RefNotFound
from .file import AtomicFile, ensure_dir_exists
from .log_utils import getLogger
from .objects import ObjectID, valid_hexsha

logger = getLogger(__name__)

Ref = bytes

HEADREF = b"HEAD"
SYMREF = b"ref: "
LOCAL_BRANCH_PREFIX = b"refs/heads/"
LOCAL_TAG_PREFIX = b"refs/tags/"
LOCAL_REMOTE_PREFIX = b"refs/remotes/"
BAD_REF_CHARS = set(b"\177 ~^:?*[")

# Longest chain of symbolic refs that is followed.
MAX_SYMREF_DEPTH = 5


class SymrefLoop(RefNotFound):
    """There is a loop between one or more symrefs."""

    def __init__(self, ref: bytes, depth: int) -> None:
        self.ref = ref
        self.depth = depth
        super().__init__(
            f"symbolic ref loop while resolving {ref.decode('utf-8', 'replace')}"
        )


def parse_symref_value(contents: bytes) -> bytes:
    """Parse a symref value.

    Args:
      contents: Contents to parse
    Returns: Destination
    """
    if contents.startswith(SYMREF):
        return contents[len(SYMREF) :].rstrip(b"\r\n")
    raise ValueError(contents)


def check_ref_format(refname: Ref) -> bool:
    """Check if a refname is correctly formatted.

    Implements all the same rules as git-check-ref-format[1].

    [1]
    http://www.kernel.org/pub/software/scm/git/docs/git-check-ref-format.html

    Args:
      refname: The refname to check
    Returns: True if refname is valid, False otherwise
    """
    # These could be combined into one big expression, but are listed
    # separately to parallel [1].
    if b"/." in refname or refname.startswith(b"."):
        return False
    if b"/" not in refname:
        return False
    if b".." in refname:
        return False
    for c in refname:
        if c < 0o40 or c in BAD_REF_CHARS:
            return False
    if refname[-1] in b"/.":
        return False
    if refname.endswith(b".lock"):
        return False
    if b"@{" in refname:
        return False
    if b"\\" in refname:
        return False
    return True


class DiskRefsContainer:
    """Refs container backed by loose ref files in a control directory."""

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self.path = os.fsencode(os.fspath(path))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.path!r})"

    def refpath(self, name: Ref) -> bytes:
        """Return the disk path of a ref."""
        if os.path.sep != "/":
            name = name.replace(b"/", os.fsencode(os.path.sep))
        return os.path.join(self.path, name)

    def _check_refname(self, name: Ref) -> None:
        if name == HEADREF:
            return
        if not name.startswith(b"refs/") or not check_ref_format(name):
            raise ValueError(f"invalid ref name {name!r}")

    def read_ref(self, refname: Ref) -> Optional[bytes]:
        """Read a loose reference and return its contents.

        Args:
          refname: the refname to read
        Returns: The contents of the ref file (a hex id, or ``ref: <target>``
            for symbolic refs), or None if it does not exist.
        """
        filename = self.refpath(refname)
        try:
            with open(filename, "rb") as f:
                header = f.read(len(SYMREF))
                if header == SYMREF:
                    return header + f.read().rstrip(b"\r\n")
                return (header + f.read()).strip()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def follow(self, name: Ref) -> tuple[list[Ref], Optional[ObjectID]]:
        """Follow a reference name.

        Returns: a tuple of (refnames, sha), wheres refnames are the names of
            references in the chain
        """
        contents: Optional[bytes] = SYMREF + name
        depth = 0
        refnames = []
        while contents and contents.startswith(SYMREF):
            refname = contents[len(SYMREF) :]
            refnames.append(refname)
            contents = self.read_ref(refname)
            if not contents:
                break
            depth += 1
            if depth > MAX_SYMREF_DEPTH:
                raise SymrefLoop(name, depth)
        return refnames, contents

    def get_symref_target(self, name: Ref) -> Optional[Ref]:
        """Return the target of a symbolic ref, or None if it is not one."""
        contents = self.read_ref(name)
        if contents is None or not contents.startswith(SYMREF):
            return None
        return parse_symref_value(contents)

    def __contains__(self, refname: object) -> bool:
        if not isinstance(refname, bytes):
            return False
        return bool(self.read_ref(refname))

    def __getitem__(self, name: Ref) -> ObjectID:
        """Get the SHA1 for a reference name.

        This method follows all symbolic references.
        """
        _, sha = self.follow(name)
        if sha is None:
            raise KeyError(name)
        return sha

    def _write(self, name: Ref, contents: bytes) -> None:
        filename = self.refpath(name)
        ensure_dir_exists(os.path.dirname(filename))
        with AtomicFile(os.fsdecode(filename)) as f:
            f.write(contents + b"\n")

    def set_symbolic_ref(self, name: Ref, other: Ref) -> None:
        """Make a ref point at another ref.

        Args:
          name: Name of the ref to set
          other: Name of the ref to point at
        """
        self._check_refname(name)
        self._check_refname(other)
        self._write(name, SYMREF + other)
        logger.debug("set %s to point at %s", name.decode(), other.decode())

    def set_ref(self, name: Ref, sha: ObjectID) -> None:
        """Point a ref directly at an object, replacing any symbolic ref.

        Args:
          name: Name of the ref to set
          sha: Hex id to store
        """
        self._check_refname(name)
        if not valid_hexsha(sha):
            raise ValueError(f"invalid object id {sha!r}")
        self._write(name, sha)
        logger.debug("set %s to %s", name.decode(), sha.decode())
