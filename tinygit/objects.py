# objects.py -- Access to base git objects
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

"""Access to base git objects.

Every object is stored as a frame ``<type> SP <decimal size> NUL <payload>``.
The SHA-1 of the frame is the object id, and the zlib-compressed frame is
what ends up on disk.
"""

__all__ = [
    "OBJECT_CLASSES",
    "S_IFGITLINK",
    "Blob",
    "Commit",
    "ObjectID",
    "ShaFile",
    "Tree",
    "TreeEntry",
    "compress",
    "decode_frame",
    "decompress",
    "format_timezone",
    "hex_to_filename",
    "hex_to_sha",
    "key_entry",
    "obj_digest",
    "object_class",
    "object_header",
    "parse_commit",
    "parse_identity",
    "parse_timezone",
    "parse_tree",
    "pretty_format_tree_entry",
    "serialize_tree",
    "sha_to_hex",
    "sorted_tree_items",
    "valid_hexsha",
]

import binascii
import os
import stat
import zlib
from collections.abc import Iterable, Iterator
from hashlib import sha1
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from _hashlib import HASH

from .errors import MalformedCommit, MalformedObject, TruncatedTree

ObjectID = bytes

# Header fields for commits
_TREE_HEADER = b"tree"
_PARENT_HEADER = b"parent"
_AUTHOR_HEADER = b"author"
_COMMITTER_HEADER = b"committer"

S_IFGITLINK = 0o160000

HEX_SHA_LENGTH = 40
RAW_SHA_LENGTH = 20


def S_ISGITLINK(m: int) -> bool:
    """Check if a mode indicates a submodule."""
    return stat.S_IFMT(m) == S_IFGITLINK


def compress(data: bytes, level: int = -1) -> bytes:
    """Compress a frame the way loose objects are stored."""
    return zlib.compress(data, level)


def decompress(data: bytes) -> bytes:
    """Inflate a complete zlib stream.

    Raises:
      zlib.error: if the data is not a complete zlib stream
    """
    dcomp = zlib.decompressobj()
    dcomped = dcomp.decompress(data)
    dcomped += dcomp.flush()
    if not dcomp.eof:
        raise zlib.error("incomplete zlib stream")
    return dcomped


def obj_digest(frame: bytes) -> bytes:
    """Return the raw 20-byte SHA-1 of an object frame."""
    return sha1(frame).digest()


def sha_to_hex(sha: bytes) -> ObjectID:
    """Takes a string and returns the hex of the sha within."""
    hexsha = binascii.hexlify(sha)
    assert len(hexsha) == HEX_SHA_LENGTH, f"Incorrect length of sha1 string: {hexsha!r}"
    return hexsha


def hex_to_sha(hex: bytes | str) -> bytes:
    """Takes a hex sha and returns a binary sha."""
    assert len(hex) == HEX_SHA_LENGTH, f"Incorrect length of hexsha: {hex!r}"
    try:
        return binascii.unhexlify(hex)
    except TypeError as exc:
        if not isinstance(hex, bytes):
            raise
        raise ValueError(exc.args[0]) from exc


def valid_hexsha(hex: bytes | str) -> bool:
    """Check whether a string is a 40 character hex sha."""
    if len(hex) != HEX_SHA_LENGTH:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, binascii.Error):
        return False
    else:
        return True


def hex_to_filename(path: str, hex: bytes | str) -> str:
    """Takes a hex sha and returns its filename relative to the given path."""
    if not isinstance(hex, str):
        hex = hex.decode("ascii")
    dir = hex[:2]
    file = hex[2:]
    return os.path.join(path, dir, file)


def object_header(type_name: bytes, length: int) -> bytes:
    """Return an object header for the given type and content length."""
    return type_name + b" " + str(length).encode("ascii") + b"\0"


def decode_frame(frame: bytes) -> tuple[bytes, bytes]:
    """Split a frame into its type name and payload.

    Args:
      frame: Uncompressed object frame
    Returns: Tuple of (type name, payload)
    Raises:
      MalformedObject: if a separator is missing or the size is wrong
    """
    space = frame.find(b" ")
    if space == -1:
        raise MalformedObject("object header is missing its type separator")
    nul = frame.find(b"\0", space + 1)
    if nul == -1:
        raise MalformedObject("object header is missing its size terminator")
    type_name = frame[:space]
    size_text = frame[space + 1 : nul]
    if not size_text.isdigit() or (len(size_text) > 1 and size_text[:1] == b"0"):
        raise MalformedObject(f"size {size_text!r} is not in canonical format")
    payload = frame[nul + 1 :]
    if int(size_text) != len(payload):
        raise MalformedObject(
            f"declared size {int(size_text)} does not match payload length {len(payload)}"
        )
    return type_name, payload


class TreeEntry(NamedTuple):
    """Named tuple encapsulating a single tree entry."""

    path: bytes
    mode: int
    sha: ObjectID


def parse_tree(text: bytes) -> list[TreeEntry]:
    """Parse a tree text.

    Args:
      text: Serialized text to parse
    Returns: list of TreeEntry items, in the order they appear
    Raises:
      TruncatedTree: if an entry is cut short
      MalformedObject: if a mode is not an octal number
    """
    entries = []
    count = 0
    length = len(text)
    while count < length:
        mode_end = text.find(b" ", count)
        if mode_end == -1:
            raise TruncatedTree(f"tree entry at offset {count} has no mode terminator")
        mode_text = text[count:mode_end]
        try:
            mode = int(mode_text, 8)
        except ValueError as exc:
            raise MalformedObject(f"Invalid mode {mode_text!r}") from exc
        name_end = text.find(b"\0", mode_end)
        if name_end == -1:
            raise TruncatedTree(f"tree entry at offset {count} has no name terminator")
        name = text[mode_end + 1 : name_end]
        count = name_end + 1 + RAW_SHA_LENGTH
        if count > length:
            raise TruncatedTree(
                f"tree entry {name!r} has {length - name_end - 1} digest bytes, "
                f"expected {RAW_SHA_LENGTH}"
            )
        sha = text[name_end + 1 : count]
        entries.append(TreeEntry(name, mode, sha_to_hex(sha)))
    return entries


def serialize_tree(items: Iterable[TreeEntry]) -> Iterator[bytes]:
    """Serialize the items in a tree to a text.

    Args:
      items: Sorted iterable over (name, mode, sha) tuples
    Returns: Serialized tree text as chunks
    """
    for name, mode, hexsha in items:
        yield (f"{mode:o}".encode("ascii") + b" " + name + b"\0" + hex_to_sha(hexsha))


def key_entry(entry: tuple[bytes, int]) -> bytes:
    """Sort key for tree entry.

    Args:
      entry: (name, mode) tuple
    """
    (name, mode) = entry
    if stat.S_ISDIR(mode):
        name += b"/"
    return name


def sorted_tree_items(entries: dict[bytes, tuple[int, ObjectID]]) -> Iterator[TreeEntry]:
    """Iterate over a tree entries dictionary.

    Entries are ordered by name, comparing bytes; a directory compares as
    its name followed by a slash.

    Args:
      entries: Dictionary mapping names to (mode, sha) tuples
    Returns: Iterator over (name, mode, hexsha)
    """
    for name, (mode, hexsha) in sorted(
        entries.items(), key=lambda item: key_entry((item[0], item[1][0]))
    ):
        if not isinstance(mode, int):
            raise TypeError(f"Expected integer/long for mode, got {mode!r}")
        yield TreeEntry(name, mode, hexsha)


def pretty_format_tree_entry(name: bytes, mode: int, hexsha: bytes) -> str:
    """Pretty format tree entry.

    Args:
      name: Name of the directory entry
      mode: Mode of entry
      hexsha: Hexsha of the referenced object
    Returns: string describing the tree entry
    """
    if S_ISGITLINK(mode):
        kind = "commit"
    elif mode & stat.S_IFDIR:
        kind = "tree"
    else:
        kind = "blob"
    return "{:06o} {} {}\t{}\n".format(
        mode,
        kind,
        hexsha.decode("ascii"),
        name.decode("utf-8", "replace"),
    )


def parse_timezone(text: bytes) -> int:
    """Parse a timezone text fragment (e.g. b'+0100').

    Args:
      text: Text to parse.
    Returns: Offset from UTC in seconds
    Raises:
      ValueError: if the text is not of the form [+-]HHMM
    """
    if len(text) != 5 or text[:1] not in (b"+", b"-") or not text[1:].isdigit():
        raise ValueError(f"Invalid timezone {text!r}")
    sign = -1 if text[:1] == b"-" else 1
    hours = int(text[1:3])
    minutes = int(text[3:5])
    return sign * (hours * 3600 + minutes * 60)


def format_timezone(offset: int) -> bytes:
    """Format a timezone for Git serialization.

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


def parse_identity(identity: bytes) -> tuple[bytes, bytes]:
    """Split an identity of the form ``Name <email>``.

    Returns: Tuple of (name, email)
    Raises:
      ValueError: if the identity has no bracketed email
    """
    start = identity.find(b"<")
    end = identity.find(b">", start)
    if start == -1 or end == -1 or end != len(identity) - 1:
        raise ValueError(f"Invalid identity {identity!r}")
    return identity[:start].rstrip(b" "), identity[start + 1 : end]


def _parse_person_line(field: bytes, value: bytes) -> tuple[bytes, int, int]:
    try:
        identity, timetext, timezonetext = value.rsplit(b" ", 2)
        parse_identity(identity)
        return identity, int(timetext), parse_timezone(timezonetext)
    except ValueError as exc:
        raise MalformedCommit(
            f"unable to parse {field.decode('ascii')} line {value!r}"
        ) from exc


def _parse_message(text: bytes) -> tuple[list[tuple[bytes, bytes]], bytes]:
    """Split a commit text into header fields and message.

    Continuation lines (starting with a space) are folded into the value
    of the preceding header.
    """
    fields: list[tuple[bytes, bytes]] = []
    head, sep, message = text.partition(b"\n\n")
    if not sep:
        head = head.rstrip(b"\n")
        message = b""
    for line in head.split(b"\n"):
        if line.startswith(b" "):
            if not fields:
                raise MalformedCommit("continuation line before any header")
            k, v = fields[-1]
            fields[-1] = (k, v + b"\n" + line[1:])
            continue
        field, _, value = line.partition(b" ")
        fields.append((field, value))
    return fields, message


def parse_commit(text: bytes) -> dict:
    """Parse a commit payload.

    Args:
      text: Serialized commit payload
    Returns: dict with tree, parents, author, author_time,
        author_timezone, committer, commit_time, commit_timezone,
        extra and message keys
    Raises:
      MalformedCommit: if tree, author or committer are missing or invalid
    """
    ret: dict = {"parents": [], "extra": []}
    fields, message = _parse_message(text)
    for field, value in fields:
        if field == _TREE_HEADER:
            if not valid_hexsha(value):
                raise MalformedCommit(f"invalid tree sha {value!r}")
            ret["tree"] = value
        elif field == _PARENT_HEADER:
            if not valid_hexsha(value):
                raise MalformedCommit(f"invalid parent sha {value!r}")
            ret["parents"].append(value)
        elif field == _AUTHOR_HEADER:
            (
                ret["author"],
                ret["author_time"],
                ret["author_timezone"],
            ) = _parse_person_line(field, value)
        elif field == _COMMITTER_HEADER:
            (
                ret["committer"],
                ret["commit_time"],
                ret["commit_timezone"],
            ) = _parse_person_line(field, value)
        else:
            ret["extra"].append((field, value))
    for required in ("tree", "author", "committer"):
        if required not in ret:
            raise MalformedCommit(f"commit has no {required} line")
    ret["message"] = message
    return ret


def serializable_property(name: str, docstring: str | None = None) -> property:
    """A property that marks its object for re-serialization when set."""

    def set(obj: "ShaFile", value: object) -> None:
        setattr(obj, "_" + name, value)
        obj._needs_serialization = True

    def get(obj: "ShaFile") -> object:
        return getattr(obj, "_" + name)

    return property(get, set, doc=docstring)


class ShaFile:
    """A git SHA file.

    An object read from a payload keeps that payload, so its id is the
    digest of the bytes it was stored under even when they are not in
    canonical form. Changing the object through its setters discards the
    payload and the next serialization rebuilds it.
    """

    type_name: bytes
    type_num: int

    _needs_serialization = True
    _raw: bytes | None = None

    def _deserialize(self, text: bytes) -> None:
        raise NotImplementedError(self._deserialize)

    def _serialize(self) -> bytes:
        raise NotImplementedError(self._serialize)

    def set_raw_string(self, text: bytes) -> None:
        """Set the contents of this object from its payload."""
        self._deserialize(text)
        self._raw = text
        self._needs_serialization = False

    @staticmethod
    def from_raw_string(type: int | bytes, string: bytes) -> "ShaFile":
        """Creates an object of the indicated type from the raw string given.

        Args:
          type: The numeric type of the object, or its type name.
          string: The raw uncompressed contents.
        """
        obj = object_class(type)()
        obj.set_raw_string(string)
        return obj

    @staticmethod
    def from_frame(frame: bytes) -> "ShaFile":
        """Decode a complete object frame into a Blob, Tree or Commit."""
        type_name, payload = decode_frame(frame)
        try:
            cls = object_class(type_name)
        except KeyError as exc:
            raise MalformedObject(f"{type_name!r} is not a known object type") from exc
        obj = cls()
        obj.set_raw_string(payload)
        return obj

    @classmethod
    def from_string(cls, string: bytes) -> "ShaFile":
        """Create a ShaFile from a string."""
        obj = cls()
        obj.set_raw_string(string)
        return obj

    def as_raw_string(self) -> bytes:
        """Return the payload of this object."""
        if self._needs_serialization or self._raw is None:
            self._raw = self._serialize()
            self._needs_serialization = False
        return self._raw

    def as_frame(self) -> bytes:
        """Return the frame (header plus payload) of this object."""
        raw = self.as_raw_string()
        return object_header(self.type_name, len(raw)) + raw

    def as_pretty_string(self) -> bytes:
        """Return a string representing this object, fit for display."""
        return self.as_raw_string()

    def raw_length(self) -> int:
        """Returns the length of the raw string of this object."""
        return len(self.as_raw_string())

    def sha(self) -> "HASH":
        """The SHA1 object that is the name of this object."""
        return sha1(self.as_frame())

    @property
    def id(self) -> ObjectID:
        """The hex SHA of this object."""
        return self.sha().hexdigest().encode("ascii")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id!r}>"

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        """Return true if the sha of the two objects match."""
        return isinstance(other, ShaFile) and self.id == other.id

    def __ne__(self, other: object) -> bool:
        return not self == other


class Blob(ShaFile):
    """A Git Blob object."""

    type_name = b"blob"
    type_num = 3

    def __init__(self) -> None:
        self._data = b""

    def _deserialize(self, text: bytes) -> None:
        self._data = text

    def _serialize(self) -> bytes:
        return self._data

    def _get_data(self) -> bytes:
        return self._data

    def _set_data(self, data: bytes) -> None:
        self._data = data
        self._needs_serialization = True

    data = property(_get_data, _set_data, doc="The text contained within the blob object.")

    @classmethod
    def from_path(cls, path: str | os.PathLike) -> "Blob":
        """Create a blob from the contents of a file."""
        with open(path, "rb") as f:
            return cls.from_string(f.read())


class Tree(ShaFile):
    """A Git tree object."""

    type_name = b"tree"
    type_num = 2

    def __init__(self) -> None:
        self._entries: dict[bytes, tuple[int, ObjectID]] = {}

    def __contains__(self, name: bytes) -> bool:
        return name in self._entries

    def __getitem__(self, name: bytes) -> tuple[int, ObjectID]:
        return self._entries[name]

    def __setitem__(self, name: bytes, value: tuple[int, ObjectID]) -> None:
        """Set a tree entry by name.

        Args:
          name: The name of the entry, as a string.
          value: A tuple of (mode, hexsha), where mode is the mode of the
            entry as an integral type and hexsha is the hex SHA of the entry as
            a string.
        """
        mode, hexsha = value
        self._entries[name] = (mode, hexsha)
        self._needs_serialization = True

    def __delitem__(self, name: bytes) -> None:
        del self._entries[name]
        self._needs_serialization = True

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._entries)

    def add(self, name: bytes, mode: int, hexsha: ObjectID) -> None:
        """Add an entry to the tree.

        Args:
          mode: The mode of the entry as an integral type.
          name: The name of the entry, as a string.
          hexsha: The hex SHA of the entry as a string.
        """
        self._entries[name] = mode, hexsha
        self._needs_serialization = True

    def items(self) -> list[TreeEntry]:
        """Return the sorted entries in this tree.

        Returns: List with (name, mode, sha) tuples
        """
        return list(sorted_tree_items(self._entries))

    def _deserialize(self, text: bytes) -> None:
        """Grab the entries in the tree."""
        self._entries = {n: (m, s) for n, m, s in parse_tree(text)}

    def _serialize(self) -> bytes:
        return b"".join(serialize_tree(self.items()))

    def as_pretty_string(self) -> bytes:
        """Return a human-readable listing of this tree."""
        text = [pretty_format_tree_entry(name, mode, hexsha) for name, mode, hexsha in self.items()]
        return "".join(text).encode("utf-8")


class Commit(ShaFile):
    """A git commit object."""

    type_name = b"commit"
    type_num = 1

    def __init__(self) -> None:
        self._tree: ObjectID | None = None
        self._parents: list[ObjectID] = []
        self._author: bytes | None = None
        self._author_time = 0
        self._author_timezone = 0
        self._committer: bytes | None = None
        self._commit_time = 0
        self._commit_timezone = 0
        self._extra: list[tuple[bytes, bytes]] = []
        self._message = b""

    def _deserialize(self, text: bytes) -> None:
        for key, value in parse_commit(text).items():
            setattr(self, "_" + key, value)

    def _serialize(self) -> bytes:
        if self.tree is None or self.author is None or self.committer is None:
            raise MalformedCommit("commit needs a tree, an author and a committer")
        chunks = [_TREE_HEADER + b" " + self.tree + b"\n"]
        for p in self.parents:
            chunks.append(_PARENT_HEADER + b" " + p + b"\n")
        chunks.append(
            _AUTHOR_HEADER
            + b" "
            + self.author
            + b" "
            + str(self.author_time).encode("ascii")
            + b" "
            + format_timezone(self.author_timezone)
            + b"\n"
        )
        chunks.append(
            _COMMITTER_HEADER
            + b" "
            + self.committer
            + b" "
            + str(self.commit_time).encode("ascii")
            + b" "
            + format_timezone(self.commit_timezone)
            + b"\n"
        )
        for k, v in self.extra:
            chunks.append(k + b" " + v.replace(b"\n", b"\n ") + b"\n")
        chunks.append(b"\n")  # There must be a new line after the headers
        chunks.append(self.message)
        return b"".join(chunks)

    tree = serializable_property("tree", "Tree that is the state of this commit")
    parents = serializable_property(
        "parents", "Parents of this commit, by their SHA1; assign a new list to change them"
    )
    author = serializable_property("author", "The name of the author of the commit")
    author_time = serializable_property(
        "author_time", "The timestamp the commit was written, as seconds since the epoch"
    )
    author_timezone = serializable_property("author_timezone", "The zone the commit was authored in")
    committer = serializable_property("committer", "The name of the committer of the commit")
    commit_time = serializable_property(
        "commit_time", "The timestamp of the commit, as seconds since the epoch"
    )
    commit_timezone = serializable_property("commit_timezone", "The zone the commit time is in")
    extra = serializable_property("extra", "Extra header fields not understood by tinygit")
    message = serializable_property("message", "The commit message")


OBJECT_CLASSES = (
    Commit,
    Tree,
    Blob,
)

_TYPE_MAP: dict[bytes | int, type[ShaFile]] = {}

for cls in OBJECT_CLASSES:
    _TYPE_MAP[cls.type_name] = cls
    _TYPE_MAP[cls.type_num] = cls


def object_class(type: bytes | int) -> type[ShaFile]:
    """Get the object class corresponding to the given type.

    Args:
      type: Either a type name string or a numeric type.
    Returns: The ShaFile subclass corresponding to the given type.
    Raises:
      KeyError: for unknown types, including tags
    """
    return _TYPE_MAP[type]
