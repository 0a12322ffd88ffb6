# errors.py -- errors for cairn
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

"""Cairn-related exception classes.

The classes fall into five families: missing things (NotFound), damaged
loose objects (CorruptObject), damaged pack streams (CorruptPack), transport
failures (NetworkError) and bad caller input (InvalidArgument).
"""

from collections.abc import Sequence
from typing import Optional, Union


class NotFound(Exception):
    """Something that was asked for does not exist."""


class ObjectMissing(NotFound):
    """Indicates that a requested object is missing."""

    def __init__(self, sha: Union[bytes, str], *args: object, **kwargs: object) -> None:
        """Initialize an ObjectMissing exception.

        Args:
            sha: The hex SHA of the missing object.
            *args: Additional positional arguments.
            **kwargs: Additional keyword arguments.
        """
        self.sha = sha
        if isinstance(sha, bytes):
            sha = sha.decode("ascii", "replace")
        Exception.__init__(self, f"{sha} is not in the object store")


class RefNotFound(NotFound):
    """Indicates that no usable ref could be found."""


class NotGitRepository(NotFound):
    """Indicates that no Git repository was found."""


class FileFormatException(Exception):
    """Base class for exceptions relating to reading git file formats."""


class CorruptObject(FileFormatException):
    """Indicates an error parsing or decompressing an object."""


class CorruptPack(FileFormatException):
    """Indicates an error parsing a pack stream."""


class ApplyDeltaError(CorruptPack):
    """Indicates that applying a delta failed."""


class NetworkError(Exception):
    """A failure while talking to a remote repository."""


class HTTPStatusError(NetworkError):
    """The remote returned an HTTP status other than 200."""

    def __init__(self, status: int, url: str) -> None:
        """Initialize an HTTPStatusError.

        Args:
            status: HTTP status code returned by the server.
            url: URL that was requested.
        """
        self.status = status
        self.url = url
        super().__init__(f"unexpected http resp {status} for {url}")


class GitProtocolError(NetworkError):
    """Git protocol exception."""

    def __eq__(self, other: object) -> bool:
        """Check equality between GitProtocolError instances."""
        return isinstance(other, GitProtocolError) and self.args == other.args

    def __hash__(self) -> int:
        return hash(self.args)


class HangupException(GitProtocolError):
    """Hangup exception."""

    def __init__(self, stderr_lines: Optional[Sequence[bytes]] = None) -> None:
        """Initialize a HangupException.

        Args:
          stderr_lines: Optional list of error lines sent by the remote.
        """
        if stderr_lines:
            super().__init__(
                "\n".join(
                    line.decode("utf-8", "surrogateescape") for line in stderr_lines
                )
            )
        else:
            super().__init__("The remote server unexpectedly closed the connection.")
        self.stderr_lines = stderr_lines

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, HangupException)
            and self.stderr_lines == other.stderr_lines
        )

    def __hash__(self) -> int:
        return hash(tuple(self.stderr_lines or ()))


class InvalidArgument(Exception):
    """Malformed input was passed to a command."""
