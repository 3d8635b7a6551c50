# client.py -- Implementation of the client side git protocols
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

"""Client side support for the git smart HTTP protocol.

Only the parts needed to clone are implemented: reference discovery
through ``info/refs`` and a single ``git-upload-pack`` request asking for
every advertised object. No capabilities are requested, so the server
answers with a plain pack that uses ref-deltas only.
"""

__all__ = [
    "UPLOAD_PACK_SERVICE",
    "HttpGitClient",
    "LsRemoteResult",
    "default_urllib3_manager",
    "get_transport_and_path",
    "read_pkt_refs",
]

import os
from collections.abc import Iterable
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlparse

from .config import Config
from .errors import HTTPNotFound, NetworkFailure
from .log_utils import getLogger
from .objects import ObjectID, valid_hexsha
from .pack import PACK_SIGNATURE
from .protocol import (
    FLUSH_PKT,
    PktLineReader,
    extract_capabilities,
    format_want_line,
    pkt_line,
    symref_capabilities,
)

if TYPE_CHECKING:
    import urllib3

logger = getLogger(__name__)

UPLOAD_PACK_SERVICE = b"git-upload-pack"

CAPABILITIES_REF = b"capabilities^{}"
ZERO_SHA = b"0" * 40
HEADREF = b"HEAD"
PEELED_TAG_SUFFIX = b"^{}"


class LsRemoteResult:
    """Result of a ls-remote operation.

    Attributes:
      refs: Dictionary with all remote refs
      symrefs: Dictionary with remote symrefs
      capabilities: Capabilities advertised by the server
    """

    def __init__(
        self,
        refs: dict[bytes, ObjectID],
        symrefs: dict[bytes, bytes],
        capabilities: Iterable[bytes] = (),
    ) -> None:
        self.refs = refs
        self.symrefs = symrefs
        self.capabilities = set(capabilities)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LsRemoteResult):
            return False
        return self.refs == other.refs and self.symrefs == other.symrefs

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.refs!r}, {self.symrefs!r})"

    @property
    def head_ref(self) -> bytes | None:
        """Name of the branch the remote HEAD points at.

        Uses the ``symref=HEAD:`` capability when present. Otherwise, picks
        the first branch whose SHA matches HEAD, then ``refs/heads/master``.
        """
        if HEADREF in self.symrefs:
            return self.symrefs[HEADREF]
        head_sha = self.refs.get(HEADREF)
        if head_sha is not None:
            for name, sha in sorted(self.refs.items()):
                if name.startswith(b"refs/heads/") and sha == head_sha:
                    return name
        if b"refs/heads/master" in self.refs:
            return b"refs/heads/master"
        return None

    def wants(self) -> list[ObjectID]:
        """Return the distinct SHAs advertised, in advertisement order."""
        ret: list[ObjectID] = []
        seen = set()
        for name, sha in self.refs.items():
            if name.endswith(PEELED_TAG_SUFFIX) or sha in seen:
                continue
            seen.add(sha)
            ret.append(sha)
        return ret


def read_pkt_refs(reader: PktLineReader) -> tuple[dict[bytes, ObjectID], list[bytes]]:
    """Read a reference advertisement.

    Args:
      reader: PktLineReader positioned at the first ref line
    Returns: Tuple of (refs, capabilities)
    Raises:
      NetworkFailure: on an ERR line or a malformed ref line
    """
    server_capabilities: list[bytes] | None = None
    refs: dict[bytes, ObjectID] = {}
    for pkt in reader.read_pkt_seq():
        try:
            (sha, ref) = pkt.rstrip(b"\n").split(None, 1)
        except ValueError as exc:
            raise NetworkFailure(f"Invalid ref line {pkt!r}") from exc
        if sha == b"ERR":
            raise NetworkFailure(ref.decode("utf-8", "replace"))
        if server_capabilities is None:
            (ref, server_capabilities) = extract_capabilities(ref)
        if not valid_hexsha(sha):
            raise NetworkFailure(f"Invalid sha {sha!r} for ref {ref!r}")
        refs[ref] = sha

    if refs == {CAPABILITIES_REF: ZERO_SHA}:
        refs = {}
    return refs, server_capabilities or []


def default_urllib3_manager(config: Config | None) -> "urllib3.PoolManager":
    """Return urllib3 connection pool manager.

    Honour proxy settings from the environment.

    Args:
      config: Config instance with the timeout and user agent to use.
    Returns:
      Either a ProxyManager for proxy configurations or a PoolManager
      otherwise
    """
    import urllib3

    if config is None:
        config = Config()

    headers = {"User-agent": config.user_agent}
    kwargs = {
        "timeout": urllib3.Timeout(total=config.http_timeout),
        "cert_reqs": "CERT_REQUIRED",
    }

    proxy_server = None
    for proxyname in ("https_proxy", "http_proxy", "all_proxy"):
        proxy_server = os.environ.get(proxyname)
        if proxy_server:
            break

    if proxy_server:
        proxy_server_url = urlparse(proxy_server)
        if proxy_server_url.username is not None:
            proxy_headers = urllib3.make_headers(
                proxy_basic_auth=f"{proxy_server_url.username}:{proxy_server_url.password or ''}"
            )
        else:
            proxy_headers = {}
        return urllib3.ProxyManager(
            proxy_server, proxy_headers=proxy_headers, headers=headers, **kwargs
        )
    return urllib3.PoolManager(headers=headers, **kwargs)


class HttpGitClient:
    """Git client that talks smart HTTP through urllib3."""

    def __init__(
        self,
        base_url: str,
        config: Config | None = None,
        pool_manager: "urllib3.PoolManager | None" = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self.config = config if config is not None else Config()
        if pool_manager is None:
            self.pool_manager = default_urllib3_manager(self.config)
        else:
            self.pool_manager = pool_manager

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._base_url!r})"

    def get_url(self) -> str:
        return self._base_url.rstrip("/")

    def _http_request(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
    ) -> tuple[str | None, bytes]:
        """Perform HTTP request.

        Args:
          url: Request URL.
          headers: Optional custom headers to override defaults.
          data: Request data; a POST is sent if given.
        Returns:
          Tuple (content type, body)
        Raises:
          NetworkFailure: on transport errors or unexpected status codes
        """
        import urllib3.exceptions

        req_headers = {"Pragma": "no-cache"}
        if headers is not None:
            req_headers.update(headers)

        method = "GET" if data is None else "POST"
        logger.debug("%s %s", method, url)
        try:
            resp = self.pool_manager.request(
                method,
                url,
                headers=req_headers,
                body=data,
                timeout=self.config.http_timeout,
            )
        except urllib3.exceptions.HTTPError as e:
            raise NetworkFailure(str(e)) from e

        if resp.status == 404:
            raise HTTPNotFound(f"repository not found at {url}")
        if resp.status != 200:
            raise NetworkFailure(f"unexpected http resp {resp.status} for {url}")
        return resp.headers.get("Content-Type"), resp.data

    def discover_refs(self) -> LsRemoteResult:
        """Retrieve the references advertised by the remote.

        Returns: LsRemoteResult with refs, symrefs and capabilities
        Raises:
          NetworkFailure: if the request fails or the server is not smart
        """
        service = UPLOAD_PACK_SERVICE.decode("ascii")
        url = urljoin(self._base_url, f"info/refs?service={service}")
        content_type, body = self._http_request(url, {"Accept": "*/*"})
        if content_type is None or not content_type.startswith("application/x-git-"):
            raise NetworkFailure(f"{url} does not speak the smart HTTP protocol")
        reader = PktLineReader(body)
        pkts = list(reader.read_pkt_seq())
        if pkts != [b"# service=" + UPLOAD_PACK_SERVICE + b"\n"]:
            raise NetworkFailure(f"unexpected service announcement {pkts!r}")
        refs, capabilities = read_pkt_refs(reader)
        result = LsRemoteResult(refs, symref_capabilities(capabilities), capabilities)
        logger.info(
            "discovered %d refs at %s, HEAD is %s",
            len(refs),
            self.get_url(),
            result.head_ref,
        )
        return result

    def fetch_pack(self, wants: Iterable[ObjectID]) -> bytes:
        """Request a pack containing the given objects and everything they
        reference.

        Args:
          wants: Hex SHAs to ask for
        Returns: The raw pack data
        Raises:
          NetworkFailure: if the request fails or no pack comes back
        """
        body = [format_want_line(sha) for sha in wants]
        if not body:
            raise ValueError("nothing to fetch")
        body.append(FLUSH_PKT)
        body.append(pkt_line(b"done\n"))
        service = UPLOAD_PACK_SERVICE.decode("ascii")
        url = urljoin(self._base_url, service)
        _, data = self._http_request(
            url,
            {
                "Content-Type": f"application/x-{service}-request",
                "Accept": f"application/x-{service}-result",
            },
            data=b"".join(body),
        )
        reader = PktLineReader(data)
        while reader.peek(4) != PACK_SIGNATURE:
            pkt = reader.read_pkt_line()
            if pkt is not None and pkt.startswith(b"ERR "):
                raise NetworkFailure(pkt[4:].rstrip(b"\n").decode("utf-8", "replace"))
        logger.info("received %d bytes of pack data", len(data) - reader.offset)
        return data[reader.offset :]


def get_transport_and_path(location: str, config: Config | None = None) -> tuple[HttpGitClient, str]:
    """Obtain a git client from a URL.

    Args:
      location: URL of the remote repository
      config: Optional config to pass to the client
    Returns:
      Tuple with client instance and relative path.
    Raises:
      ValueError: if the URL does not use http or https
    """
    parsed = urlparse(location)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"unsupported URL {location!r}: only http(s) is supported")
    return HttpGitClient(location, config=config), parsed.path
