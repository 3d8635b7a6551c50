# porcelain.py -- Porcelain-like layer on top of Tinygit
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


"""Simple wrapper that provides porcelain-like functions on top of Tinygit.

Currently implemented:
 * cat_file
 * clone
 * commit_tree
 * hash_object
 * init
 * ls_tree
 * write_tree

These functions are meant to behave similarly to the git subcommands.
Differences in behaviour are considered bugs.
"""

__all__ = [
    "Error",
    "cat_file",
    "clone",
    "commit_tree",
    "hash_object",
    "init",
    "ls_tree",
    "open_repo",
    "write_tree",
]

import os
import posixpath
import stat
import sys
import time
from collections.abc import Iterable
from typing import BinaryIO, cast
from urllib.parse import urlparse

from . import clone as _clone
from .config import Config
from .errors import TinyGitError
from .objects import (
    Blob,
    Commit,
    ObjectID,
    ShaFile,
    Tree,
    pretty_format_tree_entry,
)
from .repo import Repo

default_bytes_out_stream: BinaryIO = cast(BinaryIO, getattr(sys.stdout, "buffer", sys.stdout))

DEFAULT_ENCODING = "utf-8"

RepoPath = str | os.PathLike[str] | Repo


class Error(TinyGitError):
    """Porcelain-based error."""


def open_repo(path_or_repo: RepoPath, config: Config | None = None) -> Repo:
    """Open an argument that can be a repository or a path for a repository."""
    if isinstance(path_or_repo, Repo):
        return path_or_repo
    return Repo(path_or_repo, config=config)


def _resolve(r: Repo, name: bytes | str) -> ShaFile:
    if isinstance(name, str):
        name = name.encode("ascii")
    try:
        return r[name]
    except KeyError as exc:
        raise Error(f"not a valid object name {name.decode('ascii', 'replace')}") from exc


def init(path: str | os.PathLike[str] = ".", config: Config | None = None) -> Repo:
    """Create a new git repository.

    Args:
      path: Path to repository.
      config: Configuration; its default_branch is what HEAD points at
    Returns: A Repo instance
    """
    if not os.path.exists(path):
        os.mkdir(path)
    return Repo.init(path, config)


def hash_object(repo: RepoPath | None, path: str | os.PathLike[str], write: bool = True) -> ObjectID:
    """Compute the SHA of a file's contents as a blob, optionally storing it.

    Args:
      repo: Repository to write to; may be None if write is False
      path: Path of the file to hash
      write: Whether to write the blob to the object store
    Returns: Hex SHA of the blob
    """
    blob = Blob.from_path(path)
    if write:
        if repo is None:
            raise ValueError("a repository is required to write objects")
        open_repo(repo).object_store.add_object(blob)
    return blob.id


def cat_file(
    repo: RepoPath,
    name: bytes | str,
    outstream: BinaryIO = default_bytes_out_stream,
) -> None:
    """Print the contents of an object.

    Blobs are written verbatim, trees as one ``<mode> <type> <sha>\\t<name>``
    line per entry and commits as their raw text.
    """
    obj = _resolve(open_repo(repo), name)
    outstream.write(obj.as_pretty_string())


def ls_tree(
    repo: RepoPath,
    treeish: bytes | str = b"HEAD",
    outstream: BinaryIO = default_bytes_out_stream,
    recursive: bool = False,
    name_only: bool = False,
) -> None:
    """List contents of a tree.

    Args:
      repo: Path to the repository
      treeish: Tree id, or a commit id or ref whose tree to list
      outstream: Output stream
      recursive: Whether to recursively list files
      name_only: Only print item name
    """
    r = open_repo(repo)

    def list_tree(treeid: bytes, base: bytes) -> None:
        tree = r.object_store[treeid]
        assert isinstance(tree, Tree)
        for name, mode, sha in tree.items():
            if base:
                name = posixpath.join(base, name)
            if stat.S_ISDIR(mode) and recursive:
                list_tree(sha, name)
                continue
            if name_only:
                outstream.write(name + b"\n")
            else:
                outstream.write(pretty_format_tree_entry(name, mode, sha).encode("utf-8"))

    obj = _resolve(r, treeish)
    if isinstance(obj, Commit):
        assert obj.tree is not None
        obj = r.object_store[obj.tree]
    if not isinstance(obj, Tree):
        raise Error(f"{obj.id.decode('ascii')} is a {obj.type_name.decode('ascii')}, not a tree")
    list_tree(obj.id, b"")


def _tree_from_directory(r: Repo, path: str, ignore: str) -> ObjectID | None:
    tree = Tree()
    with os.scandir(path) as it:
        for entry in it:
            if entry.name == ignore:
                continue
            name = os.fsencode(entry.name)
            if entry.is_symlink():
                blob = Blob.from_string(os.fsencode(os.readlink(entry.path)))
                tree.add(name, stat.S_IFLNK, r.object_store.add_object(blob))
            elif entry.is_dir():
                subtree = _tree_from_directory(r, entry.path, ignore)
                if subtree is not None:
                    tree.add(name, stat.S_IFDIR, subtree)
            elif entry.is_file():
                blob = Blob.from_path(entry.path)
                if entry.stat().st_mode & stat.S_IXUSR:
                    mode = stat.S_IFREG | 0o755
                else:
                    mode = stat.S_IFREG | 0o644
                tree.add(name, mode, r.object_store.add_object(blob))
    if not len(tree):
        return None
    return r.object_store.add_object(tree)


def write_tree(repo: RepoPath, path: str | os.PathLike[str] | None = None) -> ObjectID:
    """Write a tree object snapshotting a directory.

    The control directory is skipped and empty directories are left out,
    as git cannot represent them. An empty top-level directory yields the
    empty tree.

    Args:
      repo: Repository for which to write tree
      path: Directory to snapshot, defaults to the repository's working tree
    Returns: tree id for the tree that was written
    """
    r = open_repo(repo)
    if path is None:
        path = r.path
    tree_id = _tree_from_directory(r, os.fspath(path), r.config.controldir)
    if tree_id is None:
        tree_id = r.object_store.add_object(Tree())
    return tree_id


def commit_tree(
    repo: RepoPath,
    tree: bytes | str,
    message: bytes | str,
    parents: Iterable[bytes | str] = (),
    author: bytes | None = None,
    committer: bytes | None = None,
    commit_time: int | None = None,
    timezone: int = 0,
) -> ObjectID:
    """Create a new commit object.

    Args:
      repo: Path to repository
      tree: An existing tree object
      message: Commit message; a trailing newline is added if missing
      parents: Parent commit ids
      author: Optional author name and email, defaults to the config's
      committer: Optional committer name and email, defaults to the config's
      commit_time: Seconds since the epoch, defaults to now
      timezone: Offset from UTC in seconds
    Returns: id of the new commit
    """
    r = open_repo(repo)
    tree_obj = _resolve(r, tree)
    if not isinstance(tree_obj, Tree):
        raise Error(f"{tree_obj.id.decode('ascii')} is not a tree")
    parent_ids = []
    for parent in parents:
        parent_obj = _resolve(r, parent)
        if not isinstance(parent_obj, Commit):
            raise Error(f"{parent_obj.id.decode('ascii')} is not a commit")
        parent_ids.append(parent_obj.id)
    if isinstance(message, str):
        message = message.encode(DEFAULT_ENCODING)
    if not message.endswith(b"\n"):
        message += b"\n"
    if commit_time is None:
        commit_time = int(time.time())

    c = Commit()
    c.tree = tree_obj.id
    c.parents = parent_ids
    c.author = author or r.config.get_author()
    c.committer = committer or r.config.get_committer()
    c.author_time = c.commit_time = commit_time
    c.author_timezone = c.commit_timezone = timezone
    c.message = message
    return r.object_store.add_object(c)


def get_clone_target(source: str) -> str:
    """Return the directory name ``git clone`` would pick for a URL."""
    path = urlparse(source).path.rstrip("/")
    name = posixpath.basename(path)
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name:
        raise Error(f"cannot derive a directory name from {source!r}")
    return name


def clone(
    source: str,
    target: str | os.PathLike[str] | None = None,
    config: Config | None = None,
) -> Repo:
    """Clone a remote git repository over HTTP.

    Args:
      source: URL of the source repository
      target: Path to target repository, defaults to the URL's last
        component without ``.git``
      config: Configuration to use
    Returns: The new repository
    """
    if target is None:
        target = get_clone_target(source)
    if os.path.exists(target) and os.listdir(target):
        raise Error(f"destination path {os.fspath(target)!r} already exists and is not empty")
    return _clone.clone(source, target, config=config)
