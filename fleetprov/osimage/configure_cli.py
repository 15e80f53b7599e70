import argparse
import sys
from typing import TYPE_CHECKING

from ..cli.cmd import RootCommand

if TYPE_CHECKING:
    from ..cli.completion import ArgumentParser
    from ..config import GlobalConfig
    from .configure import Diagnostic, OsConfigureRequest


# flags answering configuration questions, with the names of their answers
# derived by dropping the "config-" prefix and camel-casing the rest
CONFIG_FLAGS = (
    "config-app-update-poll-interval",
    "config-network",
    "config-wifi-key",
    "config-wifi-ssid",
)


class OsCommand(
    RootCommand,
    cmd="os",
    has_subcommands=True,
    help="Work with device OS images",
):
    pass


class OsConfigureCommand(
    OsCommand,
    cmd="configure",
    help="Configure a previously downloaded OS image for a device or an application",
    description="""\
Configure a previously downloaded OS image for a specific device or for an
application, writing the config.json descriptor and any system connection
profiles into its boot partition.

Configuration questions not answered with --config-* flags or a --config
file are asked interactively. Questions in the "advanced" group are only
asked with --advanced; otherwise their defaults apply.

examples:
  fleetprov os configure ../path/rpi3.img --device 7cf02a6
  fleetprov os configure ../path/rpi3.img --application MyApp
  fleetprov os configure ../path/rpi3.img --app MyApp --device-type raspberrypi3
  fleetprov os configure ../path/rpi3.img --app MyApp --config-network wifi \\
      --config-wifi-ssid mynet --config-wifi-key secret
""",
):
    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        p.add_argument(
            "image",
            type=str,
            metavar="IMAGE",
            help="Path to the OS image file",
        )
        p.add_argument(
            "-v",
            "--advanced",
            action="store_true",
            help="Ask advanced configuration questions as well",
        )
        p.add_argument(
            "--application",
            "--app",
            type=str,
            dest="application",
            help="Application name, slug or ID to configure the image for",
        )
        p.add_argument(
            "--config",
            type=str,
            metavar="PATH",
            help="Path to a config.json file to write verbatim, or to take answers from",
        )
        p.add_argument(
            "--config-app-update-poll-interval",
            type=int,
            metavar="MINUTES",
            help="Interval in minutes between checks for application updates",
        )
        p.add_argument(
            "--config-network",
            type=str,
            choices=["ethernet", "wifi"],
            help="Network type",
        )
        p.add_argument(
            "--config-wifi-key",
            type=str,
            help="WiFi passphrase, if the network type is wifi",
        )
        p.add_argument(
            "--config-wifi-ssid",
            type=str,
            help="WiFi SSID, if the network type is wifi",
        )
        p.add_argument(
            "--device",
            type=str,
            metavar="UUID",
            help="UUID of the device to configure the image for",
        )
        p.add_argument(
            "-k",
            "--device-api-key",
            type=str,
            help="Custom device key (deprecated; a key is generated if omitted)",
        )
        p.add_argument(
            "--device-type",
            type=str,
            metavar="SLUG",
            help="Device type slug, if different from the application's; only with --application",
        )
        p.add_argument(
            "--version",
            type=str,
            metavar="VER",
            help="OS version of the image, e.g. 2.32.0; read from the image if omitted",
        )
        p.add_argument(
            "-c",
            "--system-connection",
            type=str,
            action="append",
            default=[],
            metavar="PATH",
            help="Path to a network connection profile to copy into the image (may be repeated)",
        )

    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        from .configure import OsConfigureRequest

        flags: dict[str, object] = {}
        for name in CONFIG_FLAGS:
            v = getattr(args, name.replace("-", "_"))
            if v is not None:
                flags[name] = v

        req = OsConfigureRequest(
            image=args.image,
            device=args.device,
            application=args.application,
            device_type=args.device_type,
            config_path=args.config,
            config_flags=flags,
            advanced=args.advanced,
            version=args.version,
            device_api_key=args.device_api_key,
            system_connections=tuple(args.system_connection),
        )
        return do_os_configure(cfg, req)


def do_os_configure(cfg: "GlobalConfig", req: "OsConfigureRequest") -> int:
    from ..utils import prereqs
    from .configure import OsImageConfigurator, validate_request
    from .descriptor import FleetDescriptorGenerator
    from .errors import ProvisionError, WriteError
    from .imagefs import ImageManifestProvider, MtoolsImage, OsReleaseVersionReader
    from .prompt import ConsolePrompter

    logger = cfg.logger

    def render(diag: "Diagnostic") -> None:
        if diag.level == "warn":
            logger.W(diag.message)
        else:
            logger.I(diag.message)

    try:
        # fail on bad usage before looking for host tools
        validate_request(req, sys.platform)
    except ProvisionError as e:
        logger.F(str(e))
        return e.exit_code

    prereqs.ensure_cmds(logger, prereqs.TOOL_PACKAGES)

    fleet = cfg.fleet
    image = MtoolsImage(logger)
    configurator = OsImageConfigurator(
        logger,
        targets=fleet,
        device_types=fleet,
        image_manifests=ImageManifestProvider(logger, image, fleet),
        versions=OsReleaseVersionReader(logger, image),
        prompter=ConsolePrompter(logger),
        descriptors=FleetDescriptorGenerator(logger, fleet),
        writer=image,
        platform=sys.platform,
        on_diagnostic=render,
    )

    try:
        configurator.run(req)
    except WriteError as e:
        logger.F(str(e))
        if e.is_partial:
            logger.I(
                f"the image was partially modified ({len(e.written)} file(s) written before the failure); please re-download it before retrying"
            )
        return e.exit_code
    except ProvisionError as e:
        logger.F(str(e))
        return e.exit_code

    logger.I(f"the image [green]{req.image}[/] is configured")
    return 0
