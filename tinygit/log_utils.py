# log_utils.py -- Logging utilities for tinygit
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

"""Logging for tinygit.

The library logs under the ``tinygit`` logger and stays silent until the
command-line front end calls default_logging_config().
"""

import logging
import os
import sys
from collections.abc import Mapping

getLogger = logging.getLogger

TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

tinygit_logger = getLogger("tinygit")
tinygit_logger.addHandler(logging.NullHandler())


def trace_target(environ: Mapping[str, str] | None = None) -> str | None:
    """Return where GIT_TRACE sends debug output.

    "1", "2" and "true" mean stderr, returned as "-". An absolute path is
    returned as is. Any other value disables tracing and gives None.
    """
    if environ is None:
        environ = os.environ
    value = environ.get("GIT_TRACE", "")
    if value.lower() in ("1", "2", "true"):
        return "-"
    if os.path.isabs(value):
        return value
    return None


def default_logging_config(environ: Mapping[str, str] | None = None) -> logging.Handler:
    """Send tinygit's log records to stderr, or to the GIT_TRACE target.

    The handler replaces any handler already on the ``tinygit`` logger.

    Returns: the installed handler
    """
    target = trace_target(environ)
    handler: logging.Handler
    if target is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(message)s"))
        tinygit_logger.setLevel(logging.INFO)
    else:
        if target == "-":
            handler = logging.StreamHandler(sys.stderr)
        else:
            try:
                handler = logging.FileHandler(target)
            except OSError as e:
                sys.stderr.write(f"warning: cannot open GIT_TRACE file {target}: {e}\n")
                handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(TRACE_FORMAT))
        tinygit_logger.setLevel(logging.DEBUG)
    for old in list(tinygit_logger.handlers):
        tinygit_logger.removeHandler(old)
        old.close()
    tinygit_logger.addHandler(handler)
    return handler
