import argparse
import platform
from typing import TYPE_CHECKING

from .cmd import RootCommand

if TYPE_CHECKING:
    from ..config import GlobalConfig


class VersionCommand(
    RootCommand,
    cmd="version",
    help="Print version information",
):
    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        return cli_version(cfg, args)


def cli_version(cfg: "GlobalConfig", args: argparse.Namespace) -> int:
    from rich.markup import escape

    from ..version import COPYRIGHT_NOTICE, FLEETPROV_SEMVER

    host = f"{platform.system().lower()}/{platform.machine()}"
    cfg.logger.stdout(f"fleetprov {FLEETPROV_SEMVER} ({host})")
    cfg.logger.stdout(f"Fleet API endpoint: {escape(cfg.api_url)}", end="\n\n")
    cfg.logger.stdout(COPYRIGHT_NOTICE, end="")
    return 0
