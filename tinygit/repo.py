# repo.py -- For dealing with git repositories.
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


"""Repository access.

A repository is a directory holding a control directory (``.git`` by
default) with an ``objects`` store, a ``refs`` hierarchy and a ``HEAD``
file pointing at the current branch.
"""

__all__ = [
    "OBJECTDIR",
    "REFSDIR",
    "Repo",
]

import os

from .config import Config
from .errors import NotGitRepository
from .log_utils import getLogger
from .object_store import DiskObjectStore
from .objects import ObjectID, ShaFile
from .refs import HEADREF, LOCAL_BRANCH_PREFIX, DiskRefsContainer, is_full_refname

logger = getLogger(__name__)

OBJECTDIR = "objects"
REFSDIR = "refs"
REFSDIR_TAGS = "tags"
REFSDIR_HEADS = "heads"

BASE_DIRECTORIES = [
    [OBJECTDIR],
    [REFSDIR],
    [REFSDIR, REFSDIR_TAGS],
    [REFSDIR, REFSDIR_HEADS],
]


class Repo:
    """A git repository backed by local disk.

    Attributes:
      path: Path to the working copy
      object_store: Object store holding the repository's objects
      refs: Container of the repository's refs
    """

    def __init__(self, root: str | os.PathLike[str], config: Config | None = None) -> None:
        """Open a repository on disk.

        Args:
          root: Path to the repository's root (the working tree).
          config: Configuration to use; defaults to the built-in settings
        Raises:
          NotGitRepository: if there is no repository at ``root``
        """
        self.path = os.fspath(root)
        self.config = config if config is not None else Config()
        self._controldir = os.path.join(self.path, self.config.controldir)
        if not os.path.isdir(os.path.join(self._controldir, OBJECTDIR)):
            raise NotGitRepository(f"No git repository was found at {self.path}")
        self.object_store = DiskObjectStore(
            os.path.join(self._controldir, OBJECTDIR),
            compression_level=self.config.compression_level,
        )
        self.refs = DiskRefsContainer(self._controldir)

    def __repr__(self) -> str:
        return f"<Repo at {self.path!r}>"

    def controldir(self) -> str:
        """Return the path of the control directory."""
        return self._controldir

    def __getitem__(self, name: bytes) -> ShaFile:
        """Retrieve an object by SHA, or by ref name if it is not a SHA.

        Short names are looked up under refs/tags/ and refs/heads/.

        Raises:
          KeyError: if neither an object nor a ref matches
        """
        if len(name) in (20, 40):
            try:
                return self.object_store[name]
            except (KeyError, ValueError):
                pass
        for ref in (name, b"refs/tags/" + name, LOCAL_BRANCH_PREFIX + name):
            if ref != HEADREF and not is_full_refname(ref):
                continue
            if ref in self.refs:
                return self.object_store[self.refs[ref]]
        raise KeyError(name)

    def head(self) -> ObjectID:
        """Return the SHA1 pointed at by HEAD.

        Raises:
          KeyError: if HEAD does not resolve (e.g. an empty repository)
        """
        return self.refs[HEADREF]

    def get_head_ref(self) -> bytes | None:
        """Return the branch HEAD points at, or None for a detached HEAD."""
        return self.refs.get_symref(HEADREF)

    @classmethod
    def init(
        cls,
        path: str | os.PathLike[str],
        config: Config | None = None,
        *,
        mkdir: bool = False,
        default_branch: bytes | None = None,
    ) -> "Repo":
        """Create a new repository.

        Re-initializing an existing repository keeps its objects and refs;
        only HEAD is rewritten.

        Args:
          path: Path in which to create the repository
          config: Configuration object
          mkdir: Whether to create the directory
          default_branch: Branch for HEAD to point at, overriding the config
        Returns: `Repo` instance
        """
        path = os.fspath(path)
        if config is None:
            config = Config()
        if mkdir:
            os.mkdir(path)
        controldir = os.path.join(path, config.controldir)
        for d in [[]] + BASE_DIRECTORIES:
            try:
                os.mkdir(os.path.join(controldir, *d))
            except FileExistsError:
                pass
        ret = cls(path, config=config)
        if default_branch is None:
            default_branch = config.default_branch
        ret.refs.set_symbolic_ref(HEADREF, default_branch)
        logger.info("initialized repository in %s", controldir)
        return ret
