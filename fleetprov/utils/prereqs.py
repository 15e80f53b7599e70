"""Checks for the host tools that image editing shells out to."""

import shutil
import sys
from typing import Final, Iterable, NoReturn

from ..cli.user_input import pause_before_continuing
from ..log import FleetprovLogger

# where to get each tool on common distributions
TOOL_PACKAGES: Final[dict[str, str]] = {
    "sfdisk": "util-linux",
    "mcopy": "mtools",
    "mdir": "mtools",
    "mmd": "mtools",
    "mtype": "mtools",
}


def find_missing_cmds(cmds: Iterable[str]) -> list[str]:
    return sorted({c for c in cmds if shutil.which(c) is None})


def _describe(missing: list[str]) -> str:
    cmds = ", ".join(f"[yellow]{c}[/]" for c in missing)
    pkgs = sorted({TOOL_PACKAGES.get(c, c) for c in missing})
    return f"{cmds} (from {', '.join(pkgs)})"


def ensure_cmds(
    logger: FleetprovLogger,
    cmds: Iterable[str],
    interactive_retry: bool = True,
) -> None | NoReturn:
    """Returns once every command in ``cmds`` is on PATH.

    On a terminal the user may install the missing tools and retry, otherwise
    the process exits with status 1.
    """

    cmds = list(cmds)
    interactive_retry = interactive_retry and sys.stdin.isatty()

    while missing := find_missing_cmds(cmds):
        msg = f"[yellow]fleetprov[/] needs {_describe(missing)} in PATH"
        if not interactive_retry:
            logger.F(msg)
            sys.exit(1)

        logger.W(msg)
        logger.I("install them and press [green]Enter[/] to check again, or [green]Ctrl+C[/] to give up")
        try:
            pause_before_continuing(logger)
        except (EOFError, KeyboardInterrupt):
            logger.I("giving up")
            sys.exit(1)

    return None
