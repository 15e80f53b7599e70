from functools import cached_property
import os
import pathlib
import sys
from typing import Any, Final, Iterator, Mapping, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from typing_extensions import Self

    from ..api.client import FleetClient
    from ..log import FleetprovLogger
    from ..utils.global_mode import ProvidesGlobalMode

from . import errors
from . import schema

APP_NAME: Final = "fleetprov"
CONFIG_FILE_NAME: Final = "config.toml"

DEFAULT_API_URL: Final = "https://api.fleetprov.dev"
DEFAULT_API_TIMEOUT: Final = 30  # seconds
DEFAULT_SCAN_PORT: Final = 2375
DEFAULT_SCAN_TIMEOUT: Final = 5  # seconds

# distribution-provided defaults, lowest precedence first
if sys.platform == "linux":
    VENDOR_CONFIG_FILES: Final[tuple[str, ...]] = (
        "/usr/share/fleetprov/config.toml",
        "/usr/local/share/fleetprov/config.toml",
    )
else:
    VENDOR_CONFIG_FILES: Final[tuple[str, ...]] = ()


def user_config_dir(env: Mapping[str, str] | None = None) -> pathlib.Path:
    env = os.environ if env is None else env
    if base := env.get("XDG_CONFIG_HOME"):
        return pathlib.Path(base) / APP_NAME
    return pathlib.Path.home() / ".config" / APP_NAME


def iter_config_files(env: Mapping[str, str] | None = None) -> Iterator[pathlib.Path]:
    """Yields every place a config file may live, lowest precedence first, so
    that applying them in order lets later files win.

    Only the XDG Base Directory rules for configuration are followed.
    """

    env = os.environ if env is None else env
    for p in VENDOR_CONFIG_FILES:
        yield pathlib.Path(p)

    # XDG_CONFIG_DIRS lists the most important directory first
    system_dirs = [d for d in env.get("XDG_CONFIG_DIRS", "/etc/xdg").split(":") if d]
    for d in reversed(system_dirs):
        yield pathlib.Path(d) / APP_NAME / CONFIG_FILE_NAME

    yield user_config_dir(env) / CONFIG_FILE_NAME


class GlobalConfig:
    """Effective settings of this invocation, from defaults, config files and
    the environment, in increasing precedence."""

    def __init__(self, gm: "ProvidesGlobalMode", logger: "FleetprovLogger") -> None:
        self._gm = gm
        self.logger = logger

        self.api_url: str = DEFAULT_API_URL
        self.api_token: str | None = None
        self.api_timeout: int = DEFAULT_API_TIMEOUT
        self.scan_port: int = DEFAULT_SCAN_PORT
        self.scan_timeout: int = DEFAULT_SCAN_TIMEOUT

    @property
    def is_debug(self) -> bool:
        return self._gm.is_debug

    @property
    def is_porcelain(self) -> bool:
        return self._gm.is_porcelain

    @property
    def local_user_config_file(self) -> pathlib.Path:
        return user_config_dir() / CONFIG_FILE_NAME

    def get_by_key(self, key: str | Sequence[str]) -> object:
        return getattr(self, schema.lookup_option(key).attr)

    def set_by_key(self, key: str | Sequence[str], value: object) -> None:
        opt = schema.ensure_valid_config_kv(key, True, value)
        setattr(self, opt.attr, value)

    def apply_config(self, data: Mapping[str, Any], source: object = None) -> None:
        """Applies the settings in one parsed config file.

        Unknown keys are ignored, so that newer config files keep working.
        Known keys with bad values are reported and skipped.
        """

        for opt in schema.OPTIONS:
            section = data.get(opt.section)
            if not isinstance(section, Mapping) or opt.name not in section:
                continue

            val = section[opt.name]
            # tomlkit items wrap plain values
            val = val.unwrap() if hasattr(val, "unwrap") else val
            try:
                self.set_by_key(opt.key, val)
            except errors.ConfigError as e:
                self.logger.W(f"ignoring {opt.key} from {source or 'config'}: {e}")

    def _apply_config_file(self, path: pathlib.Path) -> None:
        import tomlkit
        from tomlkit.exceptions import TOMLKitError

        try:
            with open(path, "rb") as fp:
                data = tomlkit.load(fp)
        except FileNotFoundError:
            return
        except (OSError, TOMLKitError) as e:
            self.logger.W(f"cannot read config file [yellow]{path}[/]: {e}")
            return

        self.logger.D(f"applying config from {path}")
        self.apply_config(data, path)

    @cached_property
    def fleet(self) -> "FleetClient":
        from ..api.client import FleetClient

        return FleetClient(
            self.logger,
            self.api_url,
            token=self.api_token,
            timeout=self.api_timeout,
        )

    @classmethod
    def load_from_config(
        cls,
        gm: "ProvidesGlobalMode",
        logger: "FleetprovLogger",
    ) -> "Self":
        obj = cls(gm, logger)
        for path in iter_config_files():
            obj._apply_config_file(path)

        # FLEETPROV_API_TOKEN beats any config file
        if token := gm.api_token:
            obj.api_token = token

        return obj
