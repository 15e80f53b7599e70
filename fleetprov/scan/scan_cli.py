import argparse
from typing import TYPE_CHECKING

from ..cli.cmd import RootCommand

if TYPE_CHECKING:
    from ..cli.completion import ArgumentParser
    from ..config import GlobalConfig
    from ..log import FleetprovLogger
    from .discover import DeviceScanResult


class ScanCommand(
    RootCommand,
    cmd="scan",
    help="Scan the local network for devices in development mode",
    description="""\
Look for devices in development mode on the local network. Without HOST
arguments, devices announcing themselves over mDNS during the timeout are
probed; given hosts are probed instead of browsing.
""",
):
    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        p.add_argument(
            "host",
            type=str,
            nargs="*",
            help="Host name or address to probe instead of browsing mDNS",
        )
        p.add_argument(
            "-t",
            "--timeout",
            type=int,
            help=f"mDNS browsing time and per-host timeout in seconds (default: {gc.scan_timeout})",
        )
        p.add_argument(
            "--verbose",
            action="store_true",
            help="Display full device info",
        )

    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        from ..utils.porcelain import PorcelainOutput
        from .discover import DeviceProber, scan_hosts
        from .mdns import DiscoveryError, discover_devices

        logger = cfg.logger
        hosts: list[str] = args.host
        timeout: int = args.timeout if args.timeout is not None else cfg.scan_timeout
        verbose: bool = args.verbose

        if timeout <= 0:
            logger.F(f"invalid timeout {timeout}: must be positive")
            return 1

        addresses: dict[str, str] = {}
        if not hosts:
            logger.I("scanning for devices on the local network")
            try:
                devices = discover_devices(logger, timeout)
            except DiscoveryError as e:
                logger.F(f"mDNS discovery failed: {e}")
                return 1
            hosts = [d.host for d in devices]
            addresses = {d.host: d.address for d in devices}

        prober = DeviceProber(logger, cfg.scan_port, timeout)
        results = scan_hosts(logger, prober, hosts, verbose, addresses)

        if cfg.is_porcelain:
            with PorcelainOutput() as po:
                for r in results:
                    po.emit(r.to_porcelain())
            return 0 if results else 1

        if not results:
            where = "among the given hosts" if args.host else "on the local network"
            logger.F(f"could not find any devices {where}")
            return 1

        for i, r in enumerate(results):
            if i > 0:
                logger.stdout("")
            _print_result(logger, r)

        return 0


def _print_result(logger: "FleetprovLogger", r: "DeviceScanResult") -> None:
    from rich.markup import escape

    if r.address:
        logger.stdout(f"* [bold green]{r.host}[/bold green] ({r.address})")
    else:
        logger.stdout(f"* [bold green]{r.host}[/bold green]")
    for title, data in (("Docker info", r.docker_info), ("Docker version", r.docker_version)):
        if isinstance(data, str):
            logger.stdout(f"  {title}: [yellow]{data}[/yellow]")
            continue

        logger.stdout(f"  {title}:")
        for k, v in data.items():
            logger.stdout(f"    {k}: [blue]{escape(str(v))}[/blue]")
