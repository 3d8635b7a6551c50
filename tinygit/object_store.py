# object_store.py -- Object store for git objects
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

"""Git object store interfaces and implementation."""

__all__ = ["DiskObjectStore", "iter_tree_contents"]

import os
import stat
import zlib
from collections.abc import Iterator

from .errors import CorruptObject, MalformedObject, ObjectNotFound
from .file import GitFile
from .log_utils import getLogger
from .objects import (
    ObjectID,
    ShaFile,
    Tree,
    TreeEntry,
    compress,
    decompress,
    hex_to_filename,
    obj_digest,
    sha_to_hex,
    valid_hexsha,
)

logger = getLogger(__name__)

PACK_MODE = 0o444


class DiskObjectStore:
    """Git-style loose object store that exists on disk.

    Objects live at ``<path>/<first two hex chars>/<remaining 38>`` as
    zlib-compressed frames.
    """

    def __init__(self, path: str | os.PathLike[str], *, compression_level: int = -1) -> None:
        """Open an object store.

        Args:
          path: Path of the object store ("objects" directory).
          compression_level: zlib compression level for new objects
        """
        self.path = os.fspath(path)
        self.compression_level = compression_level

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.path!r})>"

    @classmethod
    def init(cls, path: str | os.PathLike[str], **kwargs: int) -> "DiskObjectStore":
        """Create a new, empty object store at the given path."""
        try:
            os.mkdir(path)
        except FileExistsError:
            pass
        return cls(path, **kwargs)

    def _to_hexsha(self, sha: bytes) -> ObjectID:
        if len(sha) == 20:
            return sha_to_hex(sha)
        if not valid_hexsha(sha):
            raise ValueError(f"invalid object id {sha!r}")
        return sha.lower()

    def _get_shafile_path(self, sha: ObjectID) -> str:
        return hex_to_filename(self.path, sha)

    def contains_loose(self, sha: bytes) -> bool:
        """Check if a particular object is present by SHA1 and is loose."""
        return os.path.exists(self._get_shafile_path(self._to_hexsha(sha)))

    def __contains__(self, sha: bytes) -> bool:
        """Check if a particular object is present by SHA1.

        Accepts either a 40-byte hex SHA or a 20-byte raw SHA.
        """
        return self.contains_loose(sha)

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs of all loose objects."""
        for base in sorted(os.listdir(self.path)):
            if len(base) != 2:
                continue
            dirpath = os.path.join(self.path, base)
            if not os.path.isdir(dirpath):
                continue
            for rest in sorted(os.listdir(dirpath)):
                sha = os.fsencode(base + rest)
                if valid_hexsha(sha):
                    yield sha

    def add_raw(self, frame: bytes) -> ObjectID:
        """Add a framed object to the store.

        The write is a no-op if the object already exists; existing
        content is not re-validated.

        Args:
          frame: Uncompressed frame (header and payload)
        Returns: Hex SHA of the frame
        """
        sha = sha_to_hex(obj_digest(frame))
        path = self._get_shafile_path(sha)
        if os.path.exists(path):
            return sha  # Already there, no need to write again
        dir = os.path.dirname(path)
        try:
            os.mkdir(dir)
        except FileExistsError:
            pass
        with GitFile(path, "wb", mask=PACK_MODE) as f:
            f.write(compress(frame, self.compression_level))
        logger.debug("wrote object %s", sha.decode("ascii"))
        return sha

    def add_object(self, obj: ShaFile) -> ObjectID:
        """Add a single object to this object store.

        Args:
          obj: Object to add
        Returns: Hex SHA of the object
        """
        return self.add_raw(obj.as_frame())

    def get_raw(self, sha: bytes) -> bytes:
        """Obtain the uncompressed frame for an object.

        Args:
          sha: hex or raw sha for the object
        Returns: The object frame
        Raises:
          ObjectNotFound: if the object is not in the store
          CorruptObject: if the stored data cannot be decompressed
        """
        hexsha = self._to_hexsha(sha)
        path = self._get_shafile_path(hexsha)
        try:
            with GitFile(path, "rb") as f:
                data = f.read()
        except FileNotFoundError as exc:
            raise ObjectNotFound(hexsha) from exc
        try:
            return decompress(data)
        except zlib.error as exc:
            raise CorruptObject(hexsha, str(exc)) from exc

    def __getitem__(self, sha: bytes) -> ShaFile:
        """Obtain an object by SHA1, decoded into a Blob, Tree or Commit."""
        return ShaFile.from_frame(self.get_raw(sha))


def iter_tree_contents(
    store: DiskObjectStore, tree_id: ObjectID, *, include_trees: bool = False
) -> Iterator[TreeEntry]:
    """Iterate the contents of a tree and all subtrees.

    Iteration is depth-first pre-order, as in e.g. os.walk. Paths are
    joined with ``/``.

    Args:
      store: Object store to get trees from
      tree_id: SHA1 of the tree.
      include_trees: If True, include tree objects in the iteration.
    Yields: TreeEntry namedtuples for all the objects in a tree.
    Raises:
      MalformedObject: if a subtree entry does not point at a tree
    """
    todo = [TreeEntry(b"", stat.S_IFDIR, tree_id)]
    while todo:
        entry = todo.pop()
        if stat.S_ISDIR(entry.mode):
            tree = store[entry.sha]
            if not isinstance(tree, Tree):
                raise MalformedObject(
                    f"expected tree at {entry.path!r}, got {tree.type_name!r}"
                )
            extra = []
            for subentry in tree.items():
                path = entry.path + b"/" + subentry.path if entry.path else subentry.path
                extra.append(TreeEntry(path, subentry.mode, subentry.sha))
            todo.extend(reversed(extra))
        if not stat.S_ISDIR(entry.mode) or include_trees:
            yield entry
