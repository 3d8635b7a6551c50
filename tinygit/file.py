# file.py -- Safe access to git files
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


"""Atomic writes for files under the control directory.

Loose objects and refs are never written in place. New content goes to
``<name>.lock``, created exclusively so that a second writer fails fast,
and the lock file replaces ``<name>`` once it is complete.
"""

__all__ = [
    "FileLocked",
    "GitFile",
    "ensure_dir_exists",
]

import os
import warnings
from types import TracebackType
from typing import IO

from .errors import TinyGitError

LOCK_SUFFIX = ".lock"


def ensure_dir_exists(dirname: str | os.PathLike[str]) -> None:
    """Create a directory and its parents unless it already exists."""
    os.makedirs(dirname, exist_ok=True)


def GitFile(
    filename: str | os.PathLike[str],
    mode: str = "rb",
    mask: int = 0o644,
    fsync: bool = True,
) -> "IO[bytes] | _LockedFile":
    """Open a file for binary reading, or for an atomic binary write.

    Args:
      filename: Path to the file
      mode: "rb" for a plain read, "wb" for a locked write
      mask: Permission bits of a newly written file
      fsync: Whether to sync written data to disk before renaming
    Raises:
      OSError: for any other mode
      FileLocked: if the file is already being written
    """
    if mode == "rb":
        return open(filename, mode)
    if mode == "wb":
        return _LockedFile(filename, mask, fsync)
    raise OSError(f"unsupported mode {mode!r}: only 'rb' and 'wb' are allowed")


class FileLocked(TinyGitError):
    """File is already locked."""

    def __init__(self, filename: str | os.PathLike[str], lockfilename: str) -> None:
        self.filename = filename
        self.lockfilename = lockfilename
        super().__init__(filename, lockfilename)

    def __str__(self) -> str:
        return f"unable to lock {os.fspath(self.filename)}: {self.lockfilename} exists"


class _LockedFile:
    """Write-only file whose content only becomes visible on close().

    Either close() (publish) or abort() (discard) must be called; using the
    object as a context manager does this, aborting on an exception.
    """

    def __init__(self, filename: str | os.PathLike[str], mask: int, fsync: bool) -> None:
        self._filename = os.fspath(filename)
        self._lockfilename = self._filename + LOCK_SUFFIX
        self._fsync = fsync
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)
        try:
            fd = os.open(self._lockfilename, flags, mask)
        except FileExistsError as exc:
            raise FileLocked(filename, self._lockfilename) from exc
        self._file = os.fdopen(fd, "wb")
        self._closed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._filename!r}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        return self._file.write(data)

    def abort(self) -> None:
        """Drop the lock file, leaving the target untouched."""
        if self._closed:
            return
        self._closed = True
        self._file.close()
        try:
            os.remove(self._lockfilename)
        except FileNotFoundError:
            pass

    def close(self) -> None:
        """Move the written data into place and release the lock.

        Raises:
          OSError: if the rename fails; the lock file is removed either way
        """
        if self._closed:
            return
        self._file.flush()
        if self._fsync:
            os.fsync(self._file.fileno())
        self._file.close()
        try:
            os.replace(self._lockfilename, self._filename)
        finally:
            self.abort()

    def __del__(self) -> None:
        if not getattr(self, "_closed", True):
            warnings.warn(f"unclosed {self!r}", ResourceWarning, stacklevel=2)
            self.abort()

    def __enter__(self) -> "_LockedFile":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()
