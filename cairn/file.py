# file.py -- Safe access to git files
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

"""Safe access to git files."""

__all__ = [
    "AtomicFile",
    "ensure_dir_exists",
]

import os
import tempfile
from types import TracebackType
from typing import IO, Optional, Union

PathLike = Union[str, "os.PathLike[str]"]


def ensure_dir_exists(dirname: PathLike) -> None:
    """Ensure a directory exists, creating if necessary."""
    try:
        os.makedirs(dirname)
    except FileExistsError:
        pass


class AtomicFile:
    """Write-only file that appears at its final path only once complete.

    Data is written to a uniquely named temporary file next to the target
    and moved into place with os.replace() on close. Two writers targeting
    the same path never see each other's partial output; the last one to
    close wins.

    Note: You *must* call close() or abort(). Using the object as a context
        manager does that for you, aborting if the block raises.
    """

    def __init__(self, filename: PathLike, mask: int = 0o644, fsync: bool = False) -> None:
        self._filename = os.fspath(filename)
        self._fsync = fsync
        self._mask = mask
        dirname, basename = os.path.split(self._filename)
        fd, self._tmpname = tempfile.mkstemp(
            prefix=f".{basename}.", suffix=".tmp", dir=dirname or "."
        )
        self._file: IO[bytes] = os.fdopen(fd, "wb")
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return whether the file is closed."""
        return self._closed

    def write(self, data: bytes) -> int:
        return self._file.write(data)

    def abort(self) -> None:
        """Close and discard the temporary file without touching the target.

        If the file is already closed, this is a no-op.
        """
        if self._closed:
            return
        self._file.close()
        try:
            os.remove(self._tmpname)
        except FileNotFoundError:
            pass
        self._closed = True

    def close(self) -> None:
        """Close this file, moving the temporary file over the target.

        Raises:
          OSError: if the target could not be replaced. The temporary file
            is removed in that case.
        """
        if self._closed:
            return
        self._file.flush()
        if self._fsync:
            os.fsync(self._file.fileno())
        self._file.close()
        try:
            os.chmod(self._tmpname, self._mask)
            os.replace(self._tmpname, self._filename)
        finally:
            self.abort()

    def __enter__(self) -> "AtomicFile":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def __fspath__(self) -> str:
        return self._filename
