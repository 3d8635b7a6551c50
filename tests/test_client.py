# test_client.py -- Tests for the git protocol, client side
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


"""Tests for the smart HTTP client."""

import urllib3
import urllib3.exceptions

from tinygit.client import (
    HttpGitClient,
    LsRemoteResult,
    default_urllib3_manager,
    get_transport_and_path,
    read_pkt_refs,
)
from tinygit.config import Config
from tinygit.errors import HTTPNotFound, NetworkFailure
from tinygit.pack import pack_header
from tinygit.protocol import PktLineReader, pkt_line

from . import TestCase

ONES = b"1" * 40
TWOS = b"2" * 40
THREES = b"3" * 40

ADVERTISEMENT_TYPE = "application/x-git-upload-pack-advertisement"


def advertisement(*lines: bytes) -> bytes:
    return (
        pkt_line(b"# service=git-upload-pack\n")
        + b"0000"
        + b"".join(pkt_line(line) for line in lines)
        + b"0000"
    )


class FakeResponse:
    def __init__(self, status: int, data: bytes, content_type: str | None = None) -> None:
        self.status = status
        self.data = data
        self.headers = {}
        if content_type is not None:
            self.headers["Content-Type"] = content_type


class FakePoolManager:
    """Pool manager that answers from a list of canned responses."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[str, str, dict, bytes | None]] = []

    def request(self, method, url, headers=None, body=None, timeout=None):
        self.requests.append((method, url, headers, body))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class ReadPktRefsTests(TestCase):
    def test_refs_and_capabilities(self) -> None:
        data = (
            pkt_line(ONES + b" HEAD\0multi_ack symref=HEAD:refs/heads/main\n")
            + pkt_line(ONES + b" refs/heads/main\n")
            + pkt_line(TWOS + b" refs/tags/v1\n")
            + pkt_line(THREES + b" refs/tags/v1^{}\n")
            + b"0000"
        )
        refs, caps = read_pkt_refs(PktLineReader(data))
        self.assertEqual(
            {
                b"HEAD": ONES,
                b"refs/heads/main": ONES,
                b"refs/tags/v1": TWOS,
                b"refs/tags/v1^{}": THREES,
            },
            refs,
        )
        self.assertEqual([b"multi_ack", b"symref=HEAD:refs/heads/main"], caps)

    def test_empty_repository(self) -> None:
        data = pkt_line(b"0" * 40 + b" capabilities^{}\0multi_ack\n") + b"0000"
        self.assertEqual(({}, [b"multi_ack"]), read_pkt_refs(PktLineReader(data)))

    def test_error_line(self) -> None:
        data = pkt_line(b"ERR access denied\n") + b"0000"
        self.assertRaises(NetworkFailure, read_pkt_refs, PktLineReader(data))

    def test_invalid_sha(self) -> None:
        data = pkt_line(b"nothex refs/heads/main\n") + b"0000"
        self.assertRaises(NetworkFailure, read_pkt_refs, PktLineReader(data))


class LsRemoteResultTests(TestCase):
    def test_head_from_symref(self) -> None:
        result = LsRemoteResult(
            {b"HEAD": ONES, b"refs/heads/main": ONES},
            {b"HEAD": b"refs/heads/main"},
        )
        self.assertEqual(b"refs/heads/main", result.head_ref)

    def test_head_from_digest(self) -> None:
        result = LsRemoteResult(
            {b"HEAD": TWOS, b"refs/heads/a": ONES, b"refs/heads/b": TWOS}, {}
        )
        self.assertEqual(b"refs/heads/b", result.head_ref)

    def test_head_falls_back_to_master(self) -> None:
        result = LsRemoteResult({b"refs/heads/master": ONES}, {})
        self.assertEqual(b"refs/heads/master", result.head_ref)
        self.assertIsNone(LsRemoteResult({}, {}).head_ref)

    def test_wants(self) -> None:
        result = LsRemoteResult(
            {
                b"HEAD": ONES,
                b"refs/heads/main": ONES,
                b"refs/tags/v1": TWOS,
                b"refs/tags/v1^{}": THREES,
            },
            {},
        )
        self.assertEqual([ONES, TWOS], result.wants())

    def test_eq(self) -> None:
        self.assertEqual(LsRemoteResult({b"HEAD": ONES}, {}), LsRemoteResult({b"HEAD": ONES}, {}))
        self.assertNotEqual(LsRemoteResult({b"HEAD": ONES}, {}), LsRemoteResult({}, {}))


class HttpGitClientTests(TestCase):
    def make_client(self, *responses) -> tuple[HttpGitClient, FakePoolManager]:
        manager = FakePoolManager(*responses)
        client = HttpGitClient(
            "https://example.com/repo.git/", config=Config(http_timeout=5.0), pool_manager=manager
        )
        return client, manager

    def test_discover_refs(self) -> None:
        body = advertisement(
            ONES + b" HEAD\0symref=HEAD:refs/heads/main agent=git/2.40\n",
            ONES + b" refs/heads/main\n",
        )
        client, manager = self.make_client(FakeResponse(200, body, ADVERTISEMENT_TYPE))
        result = client.discover_refs()
        self.assertEqual({b"HEAD": ONES, b"refs/heads/main": ONES}, result.refs)
        self.assertEqual({b"HEAD": b"refs/heads/main"}, result.symrefs)
        self.assertEqual(b"refs/heads/main", result.head_ref)
        self.assertIn(b"agent=git/2.40", result.capabilities)
        (method, url, headers, body) = manager.requests[0]
        self.assertEqual("GET", method)
        self.assertEqual(
            "https://example.com/repo.git/info/refs?service=git-upload-pack", url
        )
        self.assertIsNone(body)

    def test_discover_refs_dumb_server(self) -> None:
        client, _ = self.make_client(FakeResponse(200, ONES + b"\trefs/heads/main\n", "text/plain"))
        self.assertRaises(NetworkFailure, client.discover_refs)

    def test_discover_refs_missing_announcement(self) -> None:
        body = pkt_line(ONES + b" HEAD\n") + b"0000"
        client, _ = self.make_client(FakeResponse(200, body, ADVERTISEMENT_TYPE))
        self.assertRaises(NetworkFailure, client.discover_refs)

    def test_not_found(self) -> None:
        client, _ = self.make_client(FakeResponse(404, b"not found"))
        self.assertRaises(HTTPNotFound, client.discover_refs)

    def test_server_error(self) -> None:
        client, _ = self.make_client(FakeResponse(500, b"oops"))
        with self.assertRaises(NetworkFailure) as cm:
            client.discover_refs()
        self.assertNotIsInstance(cm.exception, HTTPNotFound)

    def test_transport_error(self) -> None:
        client, _ = self.make_client(urllib3.exceptions.MaxRetryError(None, "url", "boom"))
        self.assertRaises(NetworkFailure, client.discover_refs)

    def test_fetch_pack(self) -> None:
        pack = pack_header(0) + b"\x00" * 20
        client, manager = self.make_client(
            FakeResponse(200, pkt_line(b"NAK\n") + pack, "application/x-git-upload-pack-result")
        )
        self.assertEqual(pack, client.fetch_pack([ONES, TWOS]))
        (method, url, headers, body) = manager.requests[0]
        self.assertEqual("POST", method)
        self.assertEqual("https://example.com/repo.git/git-upload-pack", url)
        self.assertEqual("application/x-git-upload-pack-request", headers["Content-Type"])
        self.assertEqual(
            pkt_line(b"want " + ONES + b"\n")
            + pkt_line(b"want " + TWOS + b"\n")
            + b"0000"
            + b"0009done\n",
            body,
        )

    def test_fetch_pack_without_nak(self) -> None:
        pack = pack_header(0)
        client, _ = self.make_client(FakeResponse(200, pack))
        self.assertEqual(pack, client.fetch_pack([ONES]))

    def test_fetch_pack_error_line(self) -> None:
        client, _ = self.make_client(FakeResponse(200, pkt_line(b"ERR upload-pack: not our ref\n")))
        with self.assertRaises(NetworkFailure) as cm:
            client.fetch_pack([ONES])
        self.assertIn("not our ref", str(cm.exception))

    def test_fetch_pack_no_pack(self) -> None:
        client, _ = self.make_client(FakeResponse(200, pkt_line(b"NAK\n")))
        self.assertRaises(NetworkFailure, client.fetch_pack, [ONES])

    def test_fetch_pack_nothing_wanted(self) -> None:
        client, _ = self.make_client()
        self.assertRaises(ValueError, client.fetch_pack, [])


class DefaultUrllib3ManagerTests(TestCase):
    def test_pool_manager(self) -> None:
        manager = default_urllib3_manager(Config(user_agent="tinygit-test", http_timeout=7.0))
        self.assertIsInstance(manager, urllib3.PoolManager)
        self.assertNotIsInstance(manager, urllib3.ProxyManager)
        self.assertEqual("tinygit-test", manager.headers["User-agent"])
        self.assertEqual(7.0, manager.connection_pool_kw["timeout"].total)

    def test_proxy(self) -> None:
        self.overrideEnv("http_proxy", "http://proxy.example.com:3128/")
        manager = default_urllib3_manager(None)
        self.assertIsInstance(manager, urllib3.ProxyManager)
        self.assertEqual("proxy.example.com", manager.proxy.host)


class GetTransportAndPathTests(TestCase):
    def test_https(self) -> None:
        client, path = get_transport_and_path("https://example.com/foo/bar.git")
        self.assertIsInstance(client, HttpGitClient)
        self.assertEqual("/foo/bar.git", path)
        self.assertEqual("https://example.com/foo/bar.git", client.get_url())

    def test_http(self) -> None:
        client, path = get_transport_and_path("http://example.com/repo")
        self.assertEqual("/repo", path)

    def test_unsupported(self) -> None:
        self.assertRaises(ValueError, get_transport_and_path, "git://example.com/repo")
        self.assertRaises(ValueError, get_transport_and_path, "/local/path")
