# errors.py -- errors for tinygit
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

"""Tinygit-related exception classes."""

__all__ = [
    "ApplyDeltaError",
    "CorruptObject",
    "CorruptPackEntry",
    "DeltaBaseMismatch",
    "DeltaOverrun",
    "DeltaUnderrun",
    "FileFormatException",
    "HTTPNotFound",
    "InvalidPackHeader",
    "MalformedCommit",
    "MalformedObject",
    "NetworkFailure",
    "NotGitRepository",
    "ObjectFormatException",
    "ObjectNotFound",
    "PackFormatException",
    "RefFormatError",
    "SymrefLoop",
    "TinyGitError",
    "TruncatedPackEntry",
    "TruncatedTree",
]


class TinyGitError(Exception):
    """Base class for all errors raised by tinygit."""


class FileFormatException(TinyGitError):
    """Base class for exceptions relating to reading git file formats."""


class ObjectFormatException(FileFormatException):
    """Indicates an error parsing an object."""


class MalformedObject(ObjectFormatException):
    """An object frame lacks its header separators or has a bad size."""


class TruncatedTree(ObjectFormatException):
    """A tree payload ended in the middle of an entry."""


class MalformedCommit(ObjectFormatException):
    """A commit payload is missing required headers or has bad ones."""


class PackFormatException(FileFormatException):
    """Indicates an error parsing a pack stream."""


class InvalidPackHeader(PackFormatException):
    """The pack header is short, has a bad signature or a bad version."""


class TruncatedPackEntry(PackFormatException):
    """The pack ended before all announced entries were read."""


class CorruptPackEntry(PackFormatException):
    """The compressed payload of a pack entry could not be inflated."""


class ApplyDeltaError(TinyGitError):
    """Indicates that applying a delta failed."""

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Initialize an ApplyDeltaError.

        Args:
            *args: Error message and additional positional arguments.
            **kwargs: Additional keyword arguments.
        """
        Exception.__init__(self, *args, **kwargs)


class DeltaOverrun(ApplyDeltaError):
    """A delta instruction would read or write past a buffer boundary."""


class DeltaUnderrun(ApplyDeltaError):
    """The delta stream ended before the target size was reached."""


class DeltaBaseMismatch(ApplyDeltaError):
    """The base buffer does not have the size recorded in the delta."""


class ObjectNotFound(TinyGitError, KeyError):
    """Indicates that a requested object is missing from the store."""

    def __init__(self, sha: bytes, *args: object, **kwargs: object) -> None:
        """Initialize an ObjectNotFound exception.

        Args:
            sha: The hex SHA of the missing object.
            *args: Additional positional arguments.
            **kwargs: Additional keyword arguments.
        """
        self.sha = sha
        Exception.__init__(self, f"{sha.decode('ascii')} is not in the object store")

    def __str__(self) -> str:
        return Exception.__str__(self)


class CorruptObject(TinyGitError):
    """A stored object could not be decompressed."""

    def __init__(self, sha: bytes, reason: str) -> None:
        """Initialize a CorruptObject exception.

        Args:
            sha: The hex SHA of the object.
            reason: Description of the underlying failure.
        """
        self.sha = sha
        Exception.__init__(self, f"object {sha.decode('ascii')} is corrupt: {reason}")


class NetworkFailure(TinyGitError):
    """Talking to the remote repository failed."""

    def __eq__(self, other: object) -> bool:
        """Check equality between NetworkFailure instances.

        Args:
            other: The object to compare with.

        Returns:
            True if both are of the same class with the same args.
        """
        return type(other) is type(self) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class HTTPNotFound(NetworkFailure):
    """The remote URL does not point at a repository."""


class NotGitRepository(TinyGitError):
    """Indicates that no Git repository was found."""

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Initialize a NotGitRepository exception.

        Args:
            *args: Error message and additional positional arguments.
            **kwargs: Additional keyword arguments.
        """
        Exception.__init__(self, *args, **kwargs)


class RefFormatError(TinyGitError):
    """Indicates an invalid ref name."""


class SymrefLoop(TinyGitError):
    """There is a loop between one or more symrefs."""

    def __init__(self, ref: bytes, depth: int) -> None:
        self.ref = ref
        self.depth = depth
        Exception.__init__(self, f"symref loop at {ref!r} after {depth} steps")
