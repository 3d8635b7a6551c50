# utils.py -- Test utilities for tinygit.
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


"""Utility functions common to tinygit tests."""

import os
import shutil
import tempfile
import zlib
from hashlib import sha1

from tinygit.objects import decode_frame, object_header
from tinygit.pack import (
    REF_DELTA,
    TYPE_NAMES,
    CopyOp,
    InsertOp,
    apply_delta,
    encode_delta,
    pack_header,
    pack_object_header,
)
from tinygit.repo import Repo


def init_repo(testcase, **kwargs) -> Repo:
    """Create a repository in a temporary directory removed after the test."""
    path = tempfile.mkdtemp()
    testcase.addCleanup(shutil.rmtree, path)
    return Repo.init(path, **kwargs)


def write_file(path, contents: bytes, mode: int | None = None) -> None:
    dirname = os.path.dirname(path)
    if dirname and not os.path.isdir(dirname):
        os.makedirs(dirname)
    with open(path, "wb") as f:
        f.write(contents)
    if mode is not None:
        os.chmod(path, mode)


def make_delta(base: bytes, ops: list[CopyOp | InsertOp]) -> bytes:
    """Encode ops against base, computing the target size from the ops."""
    target_size = 0
    for op in ops:
        target_size += op.length if isinstance(op, CopyOp) else len(op.data)
    return encode_delta(len(base), target_size, ops)


def build_pack(entries, store=None, compression_level: int = -1):
    """Write test pack data from a list of entries.

    Args:
      entries: A list of (type_num, obj). For non-delta types, obj
        is the payload of that object.
        For ref-deltas, obj is a tuple of (base, ops), where base is either
        an index in entries of an earlier entry, or a hex SHA of an
        object in ``store``; ops is a list of CopyOp/InsertOp instructions.
      store: An optional object store for looking up external bases.
      compression_level: zlib level for the entry payloads
    Returns: Tuple of (pack data, expected), where expected is a list in the
      order of entries of (offset, type name, payload, hex sha) with
      deltas already resolved.
    """
    chunks = [pack_header(len(entries))]
    offset = len(chunks[0])
    expected = []
    for type_num, obj in entries:
        if type_num == REF_DELTA:
            base, ops = obj
            if isinstance(base, int):
                _, type_name, base_data, base_sha = expected[base]
            else:
                type_name, base_data = decode_frame(store.get_raw(base))
                base_sha = base
            raw = make_delta(base_data, ops)
            data = apply_delta(base_data, raw)
            header = pack_object_header(type_num, base_sha, len(raw))
        else:
            type_name = TYPE_NAMES[type_num]
            data = raw = obj
            header = pack_object_header(type_num, None, len(raw))
        entry = header + zlib.compress(raw, compression_level)
        sha = sha1(object_header(type_name, len(data)) + data).hexdigest().encode("ascii")
        expected.append((offset, type_name, data, sha))
        chunks.append(entry)
        offset += len(entry)
    pack = b"".join(chunks)
    return pack + sha1(pack).digest(), expected
