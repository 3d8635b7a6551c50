# protocol.py -- Shared parts of the git protocols
# Copyright (C) 2024 Tinygit contributors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# Tinygit is dual-licensed under the Apache License, Version 2.0 and the GNU
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

"""Generic functions for talking the git smart protocol.

Messages are framed as pkt-lines: four hex digits giving the length of
the line including the four digits themselves, followed by the data.
The special length ``0000`` is a flush-pkt.
"""

__all__ = [
    "CAPABILITY_SYMREF",
    "FLUSH_PKT",
    "PktLineReader",
    "extract_capabilities",
    "format_want_line",
    "pkt_line",
    "symref_capabilities",
]

from collections.abc import Iterable, Iterator

from .errors import NetworkFailure

FLUSH_PKT = b"0000"

CAPABILITY_SYMREF = b"symref"

# Largest length a pkt-line may declare
MAX_PKT_LEN = 65520


def pkt_line(data: bytes | None) -> bytes:
    """Wrap data in a pkt-line.

    Args:
      data: The data to wrap, as bytes or None.
    Returns: The data prefixed with its length in pkt-line format; if data was
        None, returns the flush-pkt ('0000').
    """
    if data is None:
        return FLUSH_PKT
    return ("%04x" % (len(data) + 4)).encode("ascii") + data


def format_want_line(sha: bytes) -> bytes:
    """Format a want line for an upload-pack request."""
    return pkt_line(b"want " + sha + b"\n")


class PktLineReader:
    """Read pkt-lines from an in-memory buffer.

    The position after the last line read is available as ``offset``, so
    callers can switch to reading raw data once the pkt-lines end.
    """

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = data
        self.offset = offset

    def read_pkt_line(self) -> bytes | None:
        """Read the next pkt-line.

        Returns: The payload of the line, or None for a flush-pkt
        Raises:
          NetworkFailure: if the data is not valid pkt-line framing
        """
        sizestr = self._data[self.offset : self.offset + 4]
        if len(sizestr) < 4:
            raise NetworkFailure("unexpected end of pkt-line stream")
        try:
            size = int(sizestr, 16)
        except ValueError as exc:
            raise NetworkFailure(f"Invalid pkt-line length {sizestr!r}") from exc
        if size == 0:
            self.offset += 4
            return None
        if size < 4 or size > MAX_PKT_LEN:
            raise NetworkFailure(f"Invalid pkt-line length {size}")
        if self.offset + size > len(self._data):
            raise NetworkFailure("pkt-line extends past end of data")
        pkt = self._data[self.offset + 4 : self.offset + size]
        self.offset += size
        return pkt

    def read_pkt_seq(self) -> Iterator[bytes]:
        """Read a sequence of pkt-lines up to the next flush-pkt."""
        pkt = self.read_pkt_line()
        while pkt is not None:
            yield pkt
            pkt = self.read_pkt_line()

    def peek(self, n: int) -> bytes:
        return self._data[self.offset : self.offset + n]


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


def symref_capabilities(capabilities: Iterable[bytes]) -> dict[bytes, bytes]:
    """Collect ``symref=<name>:<target>`` capabilities into a dict."""
    symrefs = {}
    for capability in capabilities:
        name, _, value = capability.partition(b"=")
        if name != CAPABILITY_SYMREF:
            continue
        src, sep, dst = value.partition(b":")
        if sep:
            symrefs[src] = dst
    return symrefs
