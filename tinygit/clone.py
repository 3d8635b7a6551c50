# clone.py -- Cloning remote repositories over smart HTTP
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


"""Clone a remote repository.

Cloning discovers the remote refs, initializes the target repository,
fetches a single pack with every advertised object, writes the pack's
objects to the loose object store (resolving ref-deltas against objects
already written), records the refs and finally checks out the working
tree of the remote HEAD.
"""

__all__ = [
    "PackImportResult",
    "build_working_tree",
    "clone",
    "import_pack",
    "validate_path",
]

import os
import shutil
import stat
from typing import NamedTuple

from .client import HttpGitClient, LsRemoteResult, get_transport_and_path
from .config import Config
from .log_utils import getLogger
from .object_store import DiskObjectStore, iter_tree_contents
from .objects import S_ISGITLINK, Commit, ObjectID, decode_frame, object_header
from .pack import REF_DELTA, TYPE_NAMES, apply_delta, iter_pack_objects
from .refs import HEADREF, PEELED_TAG_SUFFIX, is_full_refname
from .repo import Repo

logger = getLogger(__name__)

INVALID_DOTNAMES = (b".git", b".", b"..", b"")

# Pack entry types that are stored as loose objects
STORED_TYPES = (b"commit", b"tree", b"blob")


class PackImportResult(NamedTuple):
    """Counts of what happened to the entries of an imported pack."""

    written: int
    resolved: int
    skipped: int


def validate_path_element(element: bytes) -> bool:
    return element.lower() not in INVALID_DOTNAMES


def validate_path(path: bytes) -> bool:
    """Check that no element of a tree path escapes or touches ``.git``."""
    return all(validate_path_element(p) for p in path.split(b"/"))


def import_pack(store: DiskObjectStore, data: bytes) -> PackImportResult:
    """Write the objects of a pack to a loose object store.

    Entries are processed in pack order. Ref-delta bases must already be
    in the store, either from an earlier entry or from before the import.

    Args:
      store: Object store to write to
      data: Complete pack contents
    Returns: PackImportResult with written, resolved and skipped counts
    Raises:
      ObjectNotFound: if a ref-delta base is not in the store
      PackFormatException: if the pack is malformed
      ApplyDeltaError: if a delta cannot be applied
    """
    written = resolved = skipped = 0
    for entry in iter_pack_objects(data):
        if entry.pack_type_num == REF_DELTA:
            assert isinstance(entry.delta_base, bytes)
            base_type, base = decode_frame(store.get_raw(entry.delta_base))
            target = apply_delta(base, entry.data)
            store.add_raw(object_header(base_type, len(target)) + target)
            resolved += 1
        elif TYPE_NAMES.get(entry.pack_type_num) in STORED_TYPES:
            store.add_raw(entry.as_frame())
            written += 1
        else:
            logger.debug(
                "skipping pack entry of type %d at offset %d",
                entry.pack_type_num,
                entry.offset,
            )
            skipped += 1
    logger.info(
        "imported pack: %d objects written, %d deltas resolved, %d entries skipped",
        written,
        resolved,
        skipped,
    )
    return PackImportResult(written, resolved, skipped)


def build_working_tree(
    store: DiskObjectStore, tree_id: ObjectID, target: str | os.PathLike[str]
) -> int:
    """Materialize a tree into a directory.

    Regular files are written with mode 0o644, executables with 0o755.
    Symlinks are written as regular files holding the link target, and
    submodules (gitlinks) are skipped.

    Args:
      store: Object store holding the tree and its blobs
      tree_id: SHA of the tree to check out
      target: Directory to write into
    Returns: Number of files written
    Raises:
      ValueError: if the tree contains a path that is not safe to write
    """
    root = os.fspath(target)
    count = 0
    for entry in iter_tree_contents(store, tree_id):
        if S_ISGITLINK(entry.mode):
            logger.debug("skipping submodule at %r", entry.path)
            continue
        if not validate_path(entry.path):
            raise ValueError(f"refusing to check out unsafe path {entry.path!r}")
        full_path = os.path.join(root, *os.fsdecode(entry.path).split("/"))
        parent = os.path.dirname(full_path)
        if not os.path.isdir(parent):
            os.makedirs(parent)
        blob = store[entry.sha]
        with open(full_path, "wb") as f:
            f.write(blob.as_raw_string())
        if stat.S_ISREG(entry.mode) and entry.mode & 0o111:
            os.chmod(full_path, 0o755)
        else:
            os.chmod(full_path, 0o644)
        count += 1
    logger.info("checked out %d files into %s", count, root)
    return count


def _import_remote_refs(repo: Repo, result: LsRemoteResult) -> None:
    for name, sha in result.refs.items():
        if name == HEADREF or name.endswith(PEELED_TAG_SUFFIX):
            continue
        if not is_full_refname(name):
            logger.warning("ignoring invalid remote ref %r", name)
            continue
        if sha not in repo.object_store:
            logger.debug("not writing ref %r: %s was not fetched", name, sha)
            continue
        repo.refs[name] = sha


def clone(
    source: str,
    target: str | os.PathLike[str],
    config: Config | None = None,
    client: HttpGitClient | None = None,
) -> Repo:
    """Clone a remote repository into a new directory.

    Args:
      source: URL of the remote repository
      target: Directory to clone into; created if it does not exist
      config: Configuration to use
      client: Client to use instead of one derived from ``source``
    Returns: The cloned repository
    Raises:
      NetworkFailure: if talking to the remote fails
      TinyGitError: if the fetched data is malformed
    """
    if config is None:
        config = Config()
    if client is None:
        client, _ = get_transport_and_path(source, config)
    target_path = os.fspath(target)
    mkdir = not os.path.exists(target_path)

    result = client.discover_refs()
    head_ref = result.head_ref
    if head_ref is not None and not is_full_refname(head_ref):
        logger.warning("ignoring invalid remote HEAD %r", head_ref)
        head_ref = None
    try:
        repo = Repo.init(target_path, config, mkdir=mkdir, default_branch=head_ref)
        wants = result.wants()
        if not wants:
            logger.warning("remote %s is empty", source)
            return repo
        import_pack(repo.object_store, client.fetch_pack(wants))
        _import_remote_refs(repo, result)

        head_sha = result.refs.get(HEADREF)
        if head_sha is None and head_ref is not None:
            head_sha = result.refs.get(head_ref)
        if head_sha is None:
            logger.warning("remote HEAD does not resolve; not checking out")
            return repo
        if head_ref is None:
            # No branch advertised for HEAD; point the default branch at it
            repo.refs[HEADREF] = head_sha
        commit = repo.object_store[head_sha]
        if not isinstance(commit, Commit):
            logger.warning("remote HEAD is a %s, not checking out", commit.type_name.decode())
            return repo
        build_working_tree(repo.object_store, commit.tree, target_path)
    except BaseException:
        if mkdir and os.path.exists(target_path):
            shutil.rmtree(target_path)
        raise
    return repo
