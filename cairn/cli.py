#
# cairn - Simple command-line interface to Cairn
# Copyright (C) 2008-2011 Jelmer Vernooij <jelmer@jelmer.uk>
# vim: expandtab
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# Cairn is dual-licensed under the Apache License, Version 2.0 and the GNU
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

"""Simple command-line interface to Cairn.

This is a very simple command-line wrapper for Cairn. It is by
no means intended to be a full-blown Git command-line interface but just
a way to test Cairn.
"""

__all__ = [
    "Command",
    "commands",
    "main",
]

import argparse
import logging
import os
import signal
import sys
import types
from collections.abc import Sequence
from typing import BinaryIO, NoReturn, Optional

from . import porcelain
from .errors import FileFormatException, InvalidArgument, NetworkError, NotFound
from .log_utils import default_logging_config, getLogger

logger = getLogger(__name__)


def signal_int(signal: int, frame: Optional[types.FrameType]) -> None:
    """Handle interrupt signal by exiting.

    Args:
        signal: Signal number
        frame: Current stack frame
    """
    sys.exit(1)


def _stdout_bytes() -> BinaryIO:
    return getattr(sys.stdout, "buffer", sys.stdout)


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors as InvalidArgument."""

    def error(self, message: str) -> NoReturn:
        raise InvalidArgument(f"{self.prog}: {message}")


class Command:
    """A Cairn subcommand."""

    def run(self, args: Sequence[str]) -> Optional[int]:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_init(Command):
    """Create an empty Git repository or reinitialize an existing one."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the init command.

        Args:
            args: Command line arguments
        """
        parser = _ArgumentParser(prog="cairn init")
        parser.add_argument(
            "path", nargs="?", default=os.getcwd(), help="Repository path"
        )
        parsed_args = parser.parse_args(args)
        repo = porcelain.init(parsed_args.path)
        print(f"Initialized empty Git repository in {repo.controldir()}")


class cmd_cat_file(Command):
    """Provide content, type or size information for repository objects."""

    def run(self, args: Sequence[str]) -> None:
        parser = _ArgumentParser(prog="cairn cat-file")
        group = parser.add_mutually_exclusive_group(required=True)
        group.add_argument(
            "-p",
            dest="mode",
            action="store_const",
            const="pretty",
            help="Pretty-print the contents of the object",
        )
        group.add_argument(
            "-t",
            dest="mode",
            action="store_const",
            const="type",
            help="Show the object type",
        )
        group.add_argument(
            "-s",
            dest="mode",
            action="store_const",
            const="size",
            help="Show the object size",
        )
        parser.add_argument("object", help="Object to show")
        parsed_args = parser.parse_args(args)
        outstream = _stdout_bytes()
        porcelain.cat_file(
            ".", parsed_args.object, mode=parsed_args.mode, outstream=outstream
        )
        outstream.flush()


class cmd_hash_object(Command):
    """Compute object ID and optionally create an object from a file."""

    def run(self, args: Sequence[str]) -> None:
        parser = _ArgumentParser(prog="cairn hash-object")
        parser.add_argument(
            "-w",
            dest="write",
            action="store_true",
            help="Write the object into the object database",
        )
        parser.add_argument("file", help="File to hash")
        parsed_args = parser.parse_args(args)
        if parsed_args.write:
            sha = porcelain.hash_object(parsed_args.file, repo=".", write=True)
        else:
            sha = porcelain.hash_object(parsed_args.file)
        print(sha.decode("ascii"))


class cmd_ls_tree(Command):
    """List the contents of a tree object."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the ls-tree command.

        Args:
            args: Command line arguments
        """
        parser = _ArgumentParser(prog="cairn ls-tree")
        parser.add_argument(
            "--name-only", action="store_true", help="Only display name."
        )
        parser.add_argument("treeish", nargs="?", default="HEAD", help="Tree to list")
        parsed_args = parser.parse_args(args)
        porcelain.ls_tree(
            ".",
            parsed_args.treeish,
            outstream=sys.stdout,
            name_only=parsed_args.name_only,
        )


class cmd_write_tree(Command):
    """Create a tree object from the working directory."""

    def run(self, args: Sequence[str]) -> None:
        parser = _ArgumentParser(prog="cairn write-tree")
        parser.parse_args(args)
        print(porcelain.write_tree(".").decode("ascii"))


class cmd_commit_tree(Command):
    """Create a new commit object from a tree."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the commit-tree command.

        Args:
            args: Command line arguments
        """
        parser = _ArgumentParser(prog="cairn commit-tree")
        parser.add_argument("--message", "-m", required=True, help="Commit message")
        parser.add_argument(
            "-p",
            dest="parents",
            action="append",
            default=[],
            help="Id of a parent commit (may be repeated)",
        )
        parser.add_argument("tree", help="Tree SHA to commit")
        parsed_args = parser.parse_args(args)
        sha = porcelain.commit_tree(
            ".",
            tree=parsed_args.tree,
            message=parsed_args.message,
            parents=parsed_args.parents,
        )
        print(sha.decode("ascii"))


class cmd_clone(Command):
    """Clone a repository into a new directory."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the clone command.

        Args:
            args: Command line arguments
        """
        parser = _ArgumentParser(prog="cairn clone")
        parser.add_argument(
            "--no-checkout",
            help="do not checkout HEAD after clone is complete",
            action="store_true",
        )
        parser.add_argument(
            "--quiet", "-q", action="store_true", help="Do not show remote progress"
        )
        parser.add_argument("source", help="Repository to clone (http or https URL)")
        parser.add_argument("target", nargs="?", help="Directory to clone into")
        parsed_args = parser.parse_args(args)

        progress = None
        if not parsed_args.quiet:
            errstream = getattr(sys.stderr, "buffer", None)
            if errstream is not None:
                progress = errstream.write
        porcelain.clone(
            parsed_args.source,
            parsed_args.target,
            checkout=not parsed_args.no_checkout,
            progress=progress,
        )


commands = {
    "cat-file": cmd_cat_file,
    "clone": cmd_clone,
    "commit-tree": cmd_commit_tree,
    "hash-object": cmd_hash_object,
    "init": cmd_init,
    "ls-tree": cmd_ls_tree,
    "write-tree": cmd_write_tree,
}


def main(argv: Optional[Sequence[str]] = None) -> Optional[int]:
    """Main entry point for the Cairn CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        parser = argparse.ArgumentParser(
            prog="cairn", description="Simple command-line interface to Cairn"
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
    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logging.fatal("No such subcommand: %s", cmd)
        return 1
    try:
        return cmd_kls().run(argv[1:])
    except (
        NotFound,
        FileFormatException,
        NetworkError,
        InvalidArgument,
        ValueError,
        OSError,
    ) as e:
        logger.debug("%s failed", cmd, exc_info=True)
        sys.stderr.write(f"error: {e}\n")
        return 1


def _main() -> None:
    signal.signal(signal.SIGINT, signal_int)

    sys.exit(main())


if __name__ == "__main__":
    _main()
