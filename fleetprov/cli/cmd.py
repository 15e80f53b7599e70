"""Declarative command tree on top of argparse.

A command is a class. Its position in the tree is given by its base class:
subclassing ``RootCommand`` makes a top-level command, subclassing another
command makes a subcommand of it. The parser is assembled by walking the
tree from ``RootCommand`` down.
"""

import argparse
from typing import Callable, TYPE_CHECKING

from . import FLEETPROV_ENTRYPOINT_NAME

if TYPE_CHECKING:
    from ..config import GlobalConfig
    from .completion import ArgumentParser

    CLIEntrypoint = Callable[["GlobalConfig", argparse.Namespace], int]


class BaseCommand:
    cmd: str | None
    help: str | None
    description: str | None
    has_subcommands: bool
    has_main: bool

    def __init_subclass__(
        cls,
        cmd: str | None,
        help: str | None = None,
        description: str | None = None,
        has_subcommands: bool = False,
        has_main: bool | None = None,
        **kwargs: object,
    ) -> None:
        super().__init_subclass__(**kwargs)
        cls.cmd = cmd
        cls.help = help
        cls.description = description
        cls.has_subcommands = has_subcommands
        # a command group shows its help when invoked bare
        cls.has_main = (not has_subcommands) if has_main is None else has_main

    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        """Adds the command's own arguments to ``p``."""

    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        raise NotImplementedError

    @classmethod
    def children(cls) -> "list[type[BaseCommand]]":
        return sorted(
            (c for c in cls.__subclasses__() if c.cmd is not None),
            key=lambda c: c.cmd or "",
        )

    @classmethod
    def _fill_parser(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        cls.configure_args(gc, p)

        if cls.has_main:
            p.set_defaults(func=cls.main)
        else:
            p.set_defaults(func=_help_printer(p))

        if not cls.has_subcommands:
            return

        sp = p.add_subparsers(title="subcommands", metavar="COMMAND")
        for child in cls.children():
            assert child.cmd is not None
            cp = sp.add_parser(
                child.cmd,
                help=child.help,
                description=child.description or child.help,
                formatter_class=argparse.RawDescriptionHelpFormatter,
            )
            child._fill_parser(gc, cp)


def _help_printer(p: argparse.ArgumentParser) -> "CLIEntrypoint":
    def _print_help(gc: "GlobalConfig", args: argparse.Namespace) -> int:
        p.print_help()
        return 0

    return _print_help


class RootCommand(
    BaseCommand,
    cmd=None,
    has_subcommands=True,
    has_main=False,
    description="Provision device OS images for fleet membership",
):
    @classmethod
    def build_argparse(cls, gc: "GlobalConfig") -> "ArgumentParser":
        from .completion import ArgumentParser

        p = ArgumentParser(prog=FLEETPROV_ENTRYPOINT_NAME, description=cls.description)
        cls._fill_parser(gc, p)
        return p

    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        from .version_cli import cli_version

        p.add_argument(
            "-V",
            "--version",
            action="store_const",
            dest="func",
            const=cli_version,
            help="Print version information and exit",
        )
        p.add_argument(
            "--porcelain",
            action="store_true",
            help="Emit machine-readable JSON lines where supported",
        )
