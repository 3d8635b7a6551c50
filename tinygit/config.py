# config.py -- Run-time configuration for tinygit
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

"""Run-time configuration.

A Config is built once (usually from the environment) and passed to every
entry point; nothing reads global state after that.
"""

__all__ = ["DEFAULT_HTTP_TIMEOUT", "Config", "default_user_agent_string"]

import os
from collections.abc import Mapping
from dataclasses import dataclass

import tinygit

DEFAULT_HTTP_TIMEOUT = 60.0


def default_user_agent_string() -> str:
    """Return the User-Agent sent with HTTP requests."""
    return "git/tinygit/{}".format(".".join(str(x) for x in tinygit.__version__))


@dataclass
class Config:
    """Settings shared by all commands."""

    controldir: str = ".git"
    default_branch: bytes = b"refs/heads/main"
    author_name: bytes = b"tinygit"
    author_email: bytes = b"tinygit@example.com"
    committer_name: bytes | None = None
    committer_email: bytes | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    user_agent: str = default_user_agent_string()
    compression_level: int = -1

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "Config":
        """Build a configuration honouring the usual git environment variables.

        Args:
          environ: Environment mapping, defaults to os.environ
        """
        if environ is None:
            environ = os.environ
        config = cls()

        def _get(name: str) -> bytes | None:
            value = environ.get(name)
            if value is None:
                return None
            return os.fsencode(value)

        config.author_name = _get("GIT_AUTHOR_NAME") or config.author_name
        config.author_email = _get("GIT_AUTHOR_EMAIL") or config.author_email
        config.committer_name = _get("GIT_COMMITTER_NAME")
        config.committer_email = _get("GIT_COMMITTER_EMAIL")
        timeout = environ.get("TINYGIT_HTTP_TIMEOUT")
        if timeout:
            try:
                config.http_timeout = float(timeout)
            except ValueError as exc:
                raise ValueError(f"invalid TINYGIT_HTTP_TIMEOUT {timeout!r}") from exc
        return config

    def get_author(self) -> bytes:
        """Return the author identity as ``Name <email>``."""
        return self.author_name + b" <" + self.author_email + b">"

    def get_committer(self) -> bytes:
        """Return the committer identity, defaulting to the author."""
        name = self.committer_name or self.author_name
        email = self.committer_email or self.author_email
        return name + b" <" + email + b">"
