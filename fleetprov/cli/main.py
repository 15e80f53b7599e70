import sys
from typing import TYPE_CHECKING

from ..config import GlobalConfig
from ..utils.global_mode import GlobalMode

if TYPE_CHECKING:
    from .cmd import CLIEntrypoint


def main(gm: GlobalMode, gc: GlobalConfig, argv: list[str]) -> int:
    # registers every command with the tree
    from . import builtin_commands  # noqa: F401
    from .cmd import RootCommand

    p = RootCommand.build_argparse(gc)
    if gm.is_cli_autocomplete:
        from .completion import offer_completions

        offer_completions(p)

    args = p.parse_args(argv[1:])
    gm.is_porcelain = args.porcelain

    gc.logger.D(f"running {gm.argv0} under {sys.executable} with {args}")

    func: "CLIEntrypoint" = args.func
    return func(gc, args)
