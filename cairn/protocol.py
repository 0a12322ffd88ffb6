# protocol.py -- Shared parts of the git protocols
# Copyright (C) 2008 John Carr <john.carr@unrouted.co.uk>
# Copyright (C) 2008-2012 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Generic functions for talking the git smart server protocol."""

__all__ = [
    "CAPABILITY_AGENT",
    "CAPABILITY_OFS_DELTA",
    "CAPABILITY_SIDE_BAND",
    "CAPABILITY_SIDE_BAND_64K",
    "CAPABILITY_SYMREF",
    "DELIM_PKT",
    "FLUSH_PKT",
    "SIDE_BAND_CHANNEL_DATA",
    "SIDE_BAND_CHANNEL_FATAL",
    "SIDE_BAND_CHANNEL_PROGRESS",
    "Protocol",
    "extract_capabilities",
    "format_capability_line",
    "parse_capability",
    "pkt_line",
]

from collections.abc import Callable, Iterable, Iterator
from typing import Optional

from .errors import GitProtocolError, HangupException

# Magic ref that is used to attach capabilities to when
# there are no refs. Always advertised with ZERO_SHA.
CAPABILITIES_REF = b"capabilities^{}"

SIDE_BAND_CHANNEL_DATA = 1
SIDE_BAND_CHANNEL_PROGRESS = 2
SIDE_BAND_CHANNEL_FATAL = 3

CAPABILITY_AGENT = b"agent"
CAPABILITY_OFS_DELTA = b"ofs-delta"
CAPABILITY_SIDE_BAND = b"side-band"
CAPABILITY_SIDE_BAND_64K = b"side-band-64k"
CAPABILITY_SYMREF = b"symref"

FLUSH_PKT = b"0000"
DELIM_PKT = b"0001"

# Largest payload that fits in a single pkt-line.
MAX_PKT_PAYLOAD = 65516


def pkt_line(data: Optional[bytes]) -> bytes:
    """Wrap data in a pkt-line.

    Args:
      data: The data to wrap, as a str or None.
    Returns: The data prefixed with its length in pkt-line format; if data was
        None, returns the flush-pkt ('0000').
    """
    if data is None:
        return FLUSH_PKT
    if len(data) > MAX_PKT_PAYLOAD:
        raise ValueError(f"pkt-line payload too long: {len(data)} bytes")
    return ("%04x" % (len(data) + 4)).encode("ascii") + data


def parse_capability(capability: bytes) -> tuple[bytes, Optional[bytes]]:
    """Parse a capability string into key and value.

    Args:
      capability: Capability string, e.g. b"agent=git/2.40" or b"ofs-delta"
    Returns: Tuple of (key, value); value is None for bare capabilities
    """
    parts = capability.split(b"=", 1)
    if len(parts) == 1:
        return (parts[0], None)
    return (parts[0], parts[1])


def format_capability_line(capabilities: Iterable[bytes]) -> bytes:
    """Format a list of capabilities for appending to a want line."""
    return b"".join([b" " + c for c in capabilities])


def extract_capabilities(text: bytes) -> tuple[bytes, list[bytes]]:
    """Extract a capabilities list from a string, if present.

    Args:
      text: String to extract from
    Returns: Tuple with text with capabilities removed and list of capabilities
    """
    if b"\0" not in text:
        return text, []
    text, capabilities = text.rstrip().split(b"\0", 1)
    return (text, capabilities.strip().split(b" "))


class Protocol:
    """Class for interacting with a remote git process over the wire.

    Parts of the git wire protocol use 'pkt-lines' to communicate. A pkt-line
    consists of the length of the line as a 4-byte hex string, followed by the
    payload data. The length includes the 4-byte header. The special line
    '0000' indicates the end of a section of input and is called a 'flush-pkt';
    '0001' is a delimiter.

    For details on the pkt-line format, see the cgit distribution:
        Documentation/technical/protocol-common.txt
    """

    def __init__(
        self,
        read: Callable[[int], bytes],
        write: Optional[Callable[[bytes], object]] = None,
    ) -> None:
        self.read = read
        self.write = write

    def _read_exactly(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining > 0:
            data = self.read(remaining)
            if not data:
                break
            chunks.append(data)
            remaining -= len(data)
        return b"".join(chunks)

    def read_pkt_line(self) -> Optional[bytes]:
        """Reads a pkt-line from the remote git process.

        Returns: The next string from the stream, without the length prefix,
            or None for a flush-pkt or delim-pkt.
        Raises:
          HangupException: if the stream ends before a length prefix
          GitProtocolError: on a malformed length or a truncated line
        """
        sizestr = self._read_exactly(4)
        if not sizestr:
            raise HangupException()
        if len(sizestr) != 4:
            raise GitProtocolError(f"truncated pkt-line length {sizestr!r}")
        if sizestr.strip(b"0123456789abcdefABCDEF"):
            raise GitProtocolError(f"Invalid pkt-line length {sizestr!r}")
        size = int(sizestr, 16)
        if size == 0 or size == 1:
            return None
        if size < 4:
            raise GitProtocolError(f"Invalid pkt-line length {size}")
        pkt_contents = self._read_exactly(size - 4)
        if len(pkt_contents) + 4 != size:
            raise GitProtocolError(
                f"Length of pkt read {len(pkt_contents) + 4:04x} does not match "
                f"length prefix {size:04x}"
            )
        return pkt_contents

    def read_pkt_seq(self) -> Iterator[bytes]:
        """Read a sequence of pkt-lines from the remote git process.

        Returns: Yields each line of data up to but not including the next
            flush-pkt or delim-pkt.
        """
        pkt = self.read_pkt_line()
        while pkt is not None:
            yield pkt
            pkt = self.read_pkt_line()

    def write_pkt_line(self, line: Optional[bytes]) -> None:
        """Sends a pkt-line to the remote git process.

        Args:
          line: A string containing the data to send, without the length
            prefix; None sends a flush-pkt.
        """
        if self.write is None:
            raise GitProtocolError("protocol is read-only")
        self.write(pkt_line(line))
