# test_config.py -- Tests for reading and writing configuration files
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


"""Tests for run-time configuration."""

from tinygit.config import DEFAULT_HTTP_TIMEOUT, Config, default_user_agent_string

from . import TestCase


class ConfigTests(TestCase):
    def test_defaults(self) -> None:
        config = Config()
        self.assertEqual(".git", config.controldir)
        self.assertEqual(b"refs/heads/main", config.default_branch)
        self.assertEqual(DEFAULT_HTTP_TIMEOUT, config.http_timeout)
        self.assertEqual(60.0, config.http_timeout)
        self.assertTrue(config.user_agent.startswith("git/tinygit/"))
        self.assertEqual(default_user_agent_string(), config.user_agent)

    def test_identities(self) -> None:
        config = Config(author_name=b"Jane", author_email=b"jane@example.com")
        self.assertEqual(b"Jane <jane@example.com>", config.get_author())
        self.assertEqual(b"Jane <jane@example.com>", config.get_committer())
        config.committer_name = b"Bot"
        self.assertEqual(b"Bot <jane@example.com>", config.get_committer())

    def test_from_environ(self) -> None:
        config = Config.from_environ(
            {
                "GIT_AUTHOR_NAME": "Jane",
                "GIT_AUTHOR_EMAIL": "jane@example.com",
                "GIT_COMMITTER_NAME": "Joe",
                "GIT_COMMITTER_EMAIL": "joe@example.com",
                "TINYGIT_HTTP_TIMEOUT": "5",
            }
        )
        self.assertEqual(b"Jane <jane@example.com>", config.get_author())
        self.assertEqual(b"Joe <joe@example.com>", config.get_committer())
        self.assertEqual(5.0, config.http_timeout)

    def test_from_environ_defaults(self) -> None:
        self.assertEqual(Config(), Config.from_environ({}))

    def test_from_os_environ(self) -> None:
        self.overrideEnv("GIT_AUTHOR_NAME", "Env Author")
        self.assertEqual(b"Env Author", Config.from_environ().author_name)

    def test_invalid_timeout(self) -> None:
        self.assertRaises(ValueError, Config.from_environ, {"TINYGIT_HTTP_TIMEOUT": "soon"})
