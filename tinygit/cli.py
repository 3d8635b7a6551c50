# cli.py -- Command-line interface to tinygit
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


"""Simple command-line interface to tinygit.

This is a very small command-line wrapper for tinygit, covering the
plumbing needed to create objects by hand and to clone over HTTP.
"""

__all__ = [
    "Command",
    "cmd_cat_file",
    "cmd_clone",
    "cmd_commit_tree",
    "cmd_hash_object",
    "cmd_init",
    "cmd_ls_tree",
    "cmd_write_tree",
    "commands",
    "main",
]

import argparse
import os
import signal
import sys
import types
from collections.abc import Sequence
from typing import BinaryIO

from . import porcelain
from .config import Config
from .errors import TinyGitError
from .log_utils import default_logging_config, getLogger

logger = getLogger(__name__)


def signal_int(signal: int, frame: types.FrameType | None) -> None:
    """Handle interrupt signal by exiting."""
    sys.exit(1)


def _stdout() -> BinaryIO:
    return getattr(sys.stdout, "buffer", sys.stdout)


class Command:
    """A tinygit subcommand."""

    def __init__(self, config: Config | None = None) -> None:
        self.config = config if config is not None else Config.from_environ()

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_init(Command):
    """Create an empty Git repository or reinitialize an existing one."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="tinygit init")
        parser.add_argument("path", nargs="?", default=os.getcwd(), help="Repository path")
        parsed_args = parser.parse_args(args)
        porcelain.init(parsed_args.path, config=self.config)
        sys.stdout.write(
            f"Initialized empty Git repository in {os.path.abspath(parsed_args.path)}\n"
        )


class cmd_cat_file(Command):
    """Provide content of repository objects."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="tinygit cat-file")
        parser.add_argument(
            "-p",
            dest="pretty",
            action="store_true",
            required=True,
            help="Pretty-print the contents of the object",
        )
        parser.add_argument("object", help="Object to show")
        parsed_args = parser.parse_args(args)
        porcelain.cat_file(
            porcelain.open_repo(".", self.config), parsed_args.object, outstream=_stdout()
        )


class cmd_hash_object(Command):
    """Compute object ID and optionally create a blob from a file."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="tinygit hash-object")
        parser.add_argument(
            "-w", dest="write", action="store_true", help="Write the object into the database"
        )
        parser.add_argument("path", help="File to hash")
        parsed_args = parser.parse_args(args)
        repo = porcelain.open_repo(".", self.config) if parsed_args.write else None
        sha = porcelain.hash_object(repo, parsed_args.path, write=parsed_args.write)
        sys.stdout.write(sha.decode("ascii") + "\n")


class cmd_ls_tree(Command):
    """List the contents of a tree object."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="tinygit ls-tree")
        parser.add_argument(
            "-r",
            "--recursive",
            action="store_true",
            help="Recursively list tree contents.",
        )
        parser.add_argument("--name-only", action="store_true", help="Only display name.")
        parser.add_argument("treeish", nargs="?", default="HEAD", help="Tree-ish to list")
        parsed_args = parser.parse_args(args)
        porcelain.ls_tree(
            porcelain.open_repo(".", self.config),
            parsed_args.treeish,
            outstream=_stdout(),
            recursive=parsed_args.recursive,
            name_only=parsed_args.name_only,
        )


class cmd_write_tree(Command):
    """Create a tree object from the working directory."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="tinygit write-tree")
        parser.parse_args(args)
        sys.stdout.write(
            "{}\n".format(porcelain.write_tree(porcelain.open_repo(".", self.config)).decode())
        )


class cmd_commit_tree(Command):
    """Create a new commit object from a tree."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="tinygit commit-tree")
        parser.add_argument("--message", "-m", required=True, help="Commit message")
        parser.add_argument(
            "-p", dest="parents", action="append", default=[], help="Parent commit"
        )
        parser.add_argument("tree", help="Tree SHA to commit")
        parsed_args = parser.parse_args(args)
        sha = porcelain.commit_tree(
            porcelain.open_repo(".", self.config),
            tree=parsed_args.tree,
            message=parsed_args.message,
            parents=parsed_args.parents,
        )
        sys.stdout.write(sha.decode("ascii") + "\n")


class cmd_clone(Command):
    """Clone a repository into a new directory."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="tinygit clone")
        parser.add_argument("source", help="Repository to clone from")
        parser.add_argument("target", nargs="?", help="Directory to clone into")
        parsed_args = parser.parse_args(args)
        porcelain.clone(parsed_args.source, parsed_args.target, config=self.config)


commands = {
    "cat-file": cmd_cat_file,
    "clone": cmd_clone,
    "commit-tree": cmd_commit_tree,
    "hash-object": cmd_hash_object,
    "init": cmd_init,
    "ls-tree": cmd_ls_tree,
    "write-tree": cmd_write_tree,
}


def main(argv: Sequence[str] | None = None) -> int | None:
    """Main entry point for the tinygit CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        parser = argparse.ArgumentParser(
            prog="tinygit", description="Simple command-line interface to tinygit"
        )
        parser.add_argument(
            "command",
            nargs="?",
            help=f"Command to run. Available: {', '.join(sorted(commands.keys()))}",
        )
        parser.print_help()
        return 1

    default_logging_config()

    cmd = argv[0]
    cmd_args = argv[1:]

    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logger.fatal("No such subcommand: %s", cmd)
        return 1
    try:
        return cmd_kls().run(cmd_args)
    except (TinyGitError, OSError, ValueError) as e:
        logger.error("fatal: %s", e)
        return 1


def _main() -> None:
    signal.signal(signal.SIGINT, signal_int)
    sys.exit(main())


if __name__ == "__main__":
    _main()
