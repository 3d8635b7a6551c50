# test_refs.py -- tests for refs.py
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


"""Tests for tinygit.refs."""

import os
import shutil
import tempfile

from tinygit.errors import RefFormatError, SymrefLoop
from tinygit.refs import (
    DiskRefsContainer,
    check_ref_format,
    is_full_refname,
    parse_symref_value,
)

from . import TestCase

ONES = b"1" * 40
TWOS = b"2" * 40


class CheckRefFormatTests(TestCase):
    def test_valid(self) -> None:
        self.assertTrue(check_ref_format(b"heads/foo"))
        self.assertTrue(check_ref_format(b"foo/bar/baz"))

    def test_invalid(self) -> None:
        self.assertFalse(check_ref_format(b"foo"))
        self.assertFalse(check_ref_format(b"heads/foo/"))
        self.assertFalse(check_ref_format(b"heads//foo"))
        self.assertFalse(check_ref_format(b"./foo"))
        self.assertFalse(check_ref_format(b".refs/foo"))
        self.assertFalse(check_ref_format(b"heads/foo..bar"))
        self.assertFalse(check_ref_format(b"heads/foo?bar"))
        self.assertFalse(check_ref_format(b"heads/foo.lock"))
        self.assertFalse(check_ref_format(b"heads/v@{ation"))
        self.assertFalse(check_ref_format(b"heads/foo\bar"))
        self.assertFalse(check_ref_format(b"heads/../../../etc"))

    def test_full_refname(self) -> None:
        self.assertTrue(is_full_refname(b"refs/heads/main"))
        self.assertTrue(is_full_refname(b"refs/tags/v1.0"))
        self.assertFalse(is_full_refname(b"HEAD"))
        self.assertFalse(is_full_refname(b"heads/main"))
        self.assertFalse(is_full_refname(b"refs/main"))
        self.assertFalse(is_full_refname(b"refs/heads/.hidden"))

    def test_parse_symref_value(self) -> None:
        self.assertEqual(b"refs/heads/main", parse_symref_value(b"ref: refs/heads/main\n"))
        self.assertRaises(ValueError, parse_symref_value, ONES)


class DiskRefsContainerTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.path = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.path)
        self.refs = DiskRefsContainer(self.path)

    def test_set_and_get(self) -> None:
        self.refs[b"refs/heads/main"] = ONES
        self.assertEqual(ONES, self.refs[b"refs/heads/main"])
        with open(os.path.join(self.path, "refs", "heads", "main"), "rb") as f:
            self.assertEqual(ONES + b"\n", f.read())

    def test_symref(self) -> None:
        self.refs.set_symbolic_ref(b"HEAD", b"refs/heads/main")
        with open(os.path.join(self.path, "HEAD"), "rb") as f:
            self.assertEqual(b"ref: refs/heads/main\n", f.read())
        self.assertNotIn(b"HEAD", self.refs)
        self.assertEqual(b"refs/heads/main", self.refs.get_symref(b"HEAD"))
        self.refs[b"HEAD"] = TWOS
        self.assertEqual(TWOS, self.refs[b"refs/heads/main"])
        self.assertEqual(TWOS, self.refs[b"HEAD"])
        self.assertEqual(
            ([b"HEAD", b"refs/heads/main"], TWOS), self.refs.follow(b"HEAD")
        )

    def test_missing(self) -> None:
        self.assertRaises(KeyError, self.refs.__getitem__, b"refs/heads/nope")
        self.assertIsNone(self.refs.read_ref(b"refs/heads/nope"))
        self.assertIsNone(self.refs.get_symref(b"HEAD"))

    def test_invalid_names(self) -> None:
        self.assertRaises(RefFormatError, self.refs.__setitem__, b"refs/heads/../x", ONES)
        self.assertRaises(RefFormatError, self.refs.__setitem__, b"config", ONES)
        self.assertRaises(
            RefFormatError, self.refs.set_symbolic_ref, b"HEAD", b"../outside"
        )

    def test_invalid_sha(self) -> None:
        self.assertRaises(ValueError, self.refs.__setitem__, b"refs/heads/main", b"xyz")

    def test_symref_loop(self) -> None:
        self.refs.set_symbolic_ref(b"refs/heads/a", b"refs/heads/b")
        self.refs.set_symbolic_ref(b"refs/heads/b", b"refs/heads/a")
        self.assertRaises(SymrefLoop, self.refs.follow, b"refs/heads/a")

    def test_as_dict(self) -> None:
        self.refs.set_symbolic_ref(b"HEAD", b"refs/heads/main")
        self.refs[b"refs/heads/main"] = ONES
        self.refs[b"refs/tags/v1.0"] = TWOS
        self.assertEqual(
            {
                b"HEAD": ONES,
                b"refs/heads/main": ONES,
                b"refs/tags/v1.0": TWOS,
            },
            self.refs.as_dict(),
        )
        self.assertEqual([b"HEAD", b"refs/heads/main", b"refs/tags/v1.0"], list(self.refs))
