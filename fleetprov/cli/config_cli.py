import argparse
from typing import Callable, TYPE_CHECKING

from .cmd import RootCommand

if TYPE_CHECKING:
    from ..config import GlobalConfig
    from ..config.editor import ConfigEditor
    from .completion import ArgumentParser


def _edit_user_config(cfg: "GlobalConfig", edit: "Callable[[ConfigEditor], None]") -> int:
    from ..config.editor import ConfigEditor
    from ..config.errors import ConfigError

    try:
        with ConfigEditor.work_on_user_local_config(cfg) as ed:
            edit(ed)
            ed.stage()
    except ConfigError as e:
        cfg.logger.F(str(e))
        return 1

    cfg.logger.D(f"updated {cfg.local_user_config_file}")
    return 0


class ConfigCommand(
    RootCommand,
    cmd="config",
    has_subcommands=True,
    help="Show or change fleetprov settings",
    description="""\
Show or change fleetprov settings. Changes are written to the user config
file, $XDG_CONFIG_HOME/fleetprov/config.toml.

Known options:
  api.url       fleet API endpoint
  api.token     fleet API session token (FLEETPROV_API_TOKEN takes precedence)
  api.timeout   fleet API request timeout, in seconds
  scan.port     device engine port probed by "fleetprov scan"
  scan.timeout  per-host timeout of "fleetprov scan", in seconds
""",
):
    pass


class ConfigGetCommand(
    ConfigCommand,
    cmd="get",
    help="Print the effective value of an option",
):
    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        p.add_argument("key", help="Option to print, e.g. api.url")

    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        from ..config.errors import ConfigError, UnsetConfigValueError
        from ..config.schema import encode_value

        try:
            cfg.logger.stdout(encode_value(cfg.get_by_key(args.key), args.key))
        except UnsetConfigValueError as e:
            # nothing to print, like git config
            cfg.logger.D(str(e))
            return 1
        except ConfigError as e:
            cfg.logger.F(str(e))
            return 1
        return 0


class ConfigSetCommand(
    ConfigCommand,
    cmd="set",
    help="Set an option in the user config file",
):
    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        p.add_argument("key", help="Option to set, e.g. api.timeout")
        p.add_argument("value", help="New value of the option")

    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        from ..config.errors import ConfigError
        from ..config.schema import decode_value

        key: str = args.key
        try:
            val = decode_value(key, args.value)
        except ConfigError as e:
            cfg.logger.F(str(e))
            return 1

        return _edit_user_config(cfg, lambda ed: ed.set_value(key, val))


class ConfigUnsetCommand(
    ConfigCommand,
    cmd="unset",
    help="Remove an option from the user config file",
):
    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        p.add_argument("key", help="Option to remove")

    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        key: str = args.key
        return _edit_user_config(cfg, lambda ed: ed.unset_value(key))


class ConfigRemoveSectionCommand(
    ConfigCommand,
    cmd="remove-section",
    help="Remove a whole section from the user config file",
):
    @classmethod
    def configure_args(cls, gc: "GlobalConfig", p: "ArgumentParser") -> None:
        p.add_argument("section", help="Section to remove, e.g. scan")

    @classmethod
    def main(cls, cfg: "GlobalConfig", args: argparse.Namespace) -> int:
        section: str = args.section
        return _edit_user_config(cfg, lambda ed: ed.remove_section(section))
