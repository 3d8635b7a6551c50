# refs.py -- For dealing with git refs
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


"""Ref handling."""

__all__ = [
    "HEADREF",
    "LOCAL_BRANCH_PREFIX",
    "PEELED_TAG_SUFFIX",
    "SYMREF",
    "DiskRefsContainer",
    "check_ref_format",
    "is_full_refname",
    "parse_symref_value",
]

import os
from collections.abc import Iterator

from .errors import RefFormatError, SymrefLoop
from .file import GitFile, ensure_dir_exists
from .objects import ObjectID, valid_hexsha

Ref = bytes

HEADREF = b"HEAD"
SYMREF = b"ref: "
REFS_PREFIX = b"refs/"
LOCAL_BRANCH_PREFIX = REFS_PREFIX + b"heads/"
BAD_REF_CHARS = set(b"\177 ~^:?*[")
PEELED_TAG_SUFFIX = b"^{}"

# Maximum number of symrefs followed before giving up
MAX_SYMREF_DEPTH = 5


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

    Follows the rules of git-check-ref-format, for a name given without
    its leading ``refs/``.

    Args:
      refname: The refname to check
    Returns: True if refname is valid, False otherwise
    """
    if b"/" not in refname or refname[-1:] in (b"/", b"."):
        return False
    if refname.startswith(b".") or refname.endswith(b".lock"):
        return False
    for forbidden in (b"/.", b"..", b"//", b"@{", b"\\"):
        if forbidden in refname:
            return False
    return not any(c < 0o40 or c in BAD_REF_CHARS for c in refname)


def is_full_refname(name: Ref) -> bool:
    """Check that name is a well-formed ref under ``refs/``."""
    return name.startswith(REFS_PREFIX) and check_ref_format(name[len(REFS_PREFIX) :])


class DiskRefsContainer:
    """Refs container that reads and writes loose refs on disk."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.path!r})"

    def refpath(self, name: Ref) -> str:
        """Return the disk path of a ref."""
        return os.path.join(self.path, *os.fsdecode(name).split("/"))

    def _check_refname(self, name: Ref) -> None:
        """Ensure a refname is valid and lives in refs or is HEAD.

        Raises:
          RefFormatError: if a refname is not HEAD or is otherwise not valid.
        """
        if name == HEADREF:
            return
        if not is_full_refname(name):
            raise RefFormatError(name)

    def allkeys(self) -> set[Ref]:
        """All refs present in this container, HEAD included if it exists."""
        keys = set(self._iter_loose_refs())
        if os.path.exists(self.refpath(HEADREF)):
            keys.add(HEADREF)
        return keys

    def __iter__(self) -> Iterator[Ref]:
        return iter(sorted(self.allkeys()))

    def _iter_loose_refs(self) -> Iterator[Ref]:
        refspath = os.path.join(self.path, "refs")
        prefix_len = len(os.path.join(self.path, ""))
        for root, dirs, files in os.walk(refspath):
            directory = os.fsencode(root[prefix_len:])
            if os.path.sep != "/":
                directory = directory.replace(os.fsencode(os.path.sep), b"/")
            for filename in files:
                refname = b"/".join([directory, os.fsencode(filename)])
                if is_full_refname(refname):
                    yield refname

    def read_ref(self, name: Ref) -> bytes | None:
        """Read a reference file and return its contents.

        If the reference is symbolic, the first line is returned, otherwise
        the first 40 bytes.

        Args:
          name: the refname to read
        Returns: The contents of the ref file, or None if it does not exist.
        """
        filename = self.refpath(name)
        try:
            with GitFile(filename, "rb") as f:
                header = f.read(len(SYMREF))
                if header == SYMREF:
                    return header + next(iter(f), b"").rstrip(b"\r\n")
                return header + f.read(40 - len(SYMREF))
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def follow(self, name: Ref) -> tuple[list[Ref], bytes | None]:
        """Follow a reference name.

        Returns: a tuple of (refnames, sha), where refnames are the names of
            references in the chain
        Raises:
          SymrefLoop: if more than a handful of symrefs are chained
        """
        contents: bytes | None = SYMREF + name
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

    def __contains__(self, refname: Ref) -> bool:
        return self.follow(refname)[1] is not None

    def __getitem__(self, name: Ref) -> ObjectID:
        """Get the SHA1 for a reference name, following symbolic references."""
        _, sha = self.follow(name)
        if sha is None:
            raise KeyError(name)
        return sha

    def get_symref(self, name: Ref) -> Ref | None:
        """Return the target of a symbolic ref, or None for a direct ref."""
        contents = self.read_ref(name)
        if contents is None or not contents.startswith(SYMREF):
            return None
        return parse_symref_value(contents)

    def _write(self, name: Ref, contents: bytes) -> None:
        filename = self.refpath(name)
        ensure_dir_exists(os.path.dirname(filename))
        with GitFile(filename, "wb") as f:
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

    def __setitem__(self, name: Ref, sha: ObjectID) -> None:
        """Set a reference name to point to the given SHA1.

        Symbolic references are followed, so setting HEAD updates the branch
        it points at.
        """
        self._check_refname(name)
        if not valid_hexsha(sha):
            raise ValueError(f"{sha!r} is not a valid sha")
        try:
            realnames, _ = self.follow(name)
            realname = realnames[-1]
        except SymrefLoop:
            realname = name
        self._check_refname(realname)
        self._write(realname, sha)

    def as_dict(self) -> dict[Ref, ObjectID]:
        """Return the resolvable refs in this container as a dictionary."""
        ret = {}
        for key in self:
            try:
                ret[key] = self[key]
            except (SymrefLoop, KeyError):
                continue  # Unable to resolve
        return ret
