"""The known config options, and conversions between their values and the
strings users type on the command line."""

from dataclasses import dataclass
from typing import Any, Callable, Final, Sequence

from .errors import (
    InvalidConfigKeyError,
    InvalidConfigSectionError,
    InvalidConfigValueError,
    InvalidConfigValueTypeError,
    UnsetConfigValueError,
)


def _anything(v: Any) -> bool:
    return True


def _positive(v: int) -> bool:
    return v > 0


def _http_url(v: str) -> bool:
    return v.startswith(("http://", "https://"))


def _tcp_port(v: int) -> bool:
    return 0 < v < 65536


@dataclass(frozen=True)
class ConfigOption:
    section: str
    name: str
    type: type
    attr: str
    """Attribute of ``GlobalConfig`` holding the effective value"""

    check: Callable[[Any], bool] = _anything
    expected: str = ""
    """Describes acceptable values, for error messages"""

    @property
    def key(self) -> str:
        return f"{self.section}.{self.name}"


SECTION_API: Final = "api"
SECTION_SCAN: Final = "scan"

OPTIONS: Final[tuple[ConfigOption, ...]] = (
    ConfigOption(SECTION_API, "url", str, "api_url", _http_url, "an http(s) URL"),
    ConfigOption(SECTION_API, "token", str, "api_token"),
    ConfigOption(SECTION_API, "timeout", int, "api_timeout", _positive, "a positive number of seconds"),
    ConfigOption(SECTION_SCAN, "port", int, "scan_port", _tcp_port, "a TCP port number"),
    ConfigOption(SECTION_SCAN, "timeout", int, "scan_timeout", _positive, "a positive number of seconds"),
)

_BY_KEY: Final = {o.key: o for o in OPTIONS}


def parse_config_key(key: str | Sequence[str]) -> list[str]:
    return key.split(".") if isinstance(key, str) else list(key)


def lookup_option(key: str | Sequence[str]) -> ConfigOption:
    try:
        return _BY_KEY[".".join(parse_config_key(key))]
    except KeyError:
        raise InvalidConfigKeyError(key) from None


def validate_section(section: str) -> None:
    if not any(o.section == section for o in OPTIONS):
        raise InvalidConfigSectionError(section)


def ensure_valid_config_kv(
    key: str | Sequence[str],
    check_val: bool = False,
    val: object | None = None,
) -> ConfigOption:
    """Looks up the option for ``key``, additionally checking ``val`` against
    it if ``check_val`` is set."""

    opt = lookup_option(key)
    if not check_val:
        return opt

    # bool is an int subclass, but not an acceptable int setting
    if not isinstance(val, opt.type) or (opt.type is int and isinstance(val, bool)):
        raise InvalidConfigValueTypeError(key, val, opt.type)
    if not opt.check(val):
        raise InvalidConfigValueError(key, val, opt.expected)
    return opt


def encode_value(v: object, key: str | None = None) -> str:
    """Gives the string form of a config value, as printed by ``config get``."""

    match v:
        case None:
            raise UnsetConfigValueError(key)
        case bool():
            return "true" if v else "false"
        case int() | str():
            return str(v)
    raise NotImplementedError(f"config values of type {type(v).__name__} are not supported")


def decode_str(val: str, ty: type, key: str | Sequence[str] | None = None) -> object:
    if ty is str:
        return val
    if ty is int:
        try:
            return int(val, 10)
        except ValueError:
            raise InvalidConfigValueError(key, val, "an integer") from None
    if ty is bool:
        if val in ("true", "yes", "1"):
            return True
        if val in ("false", "no", "0"):
            return False
        raise InvalidConfigValueError(key, val, "a boolean")
    raise NotImplementedError(f"config values of type {ty.__name__} are not supported")


def decode_value(key: str | Sequence[str], val: str) -> object:
    """Parses a value typed by the user for the option ``key``."""

    return decode_str(val, lookup_option(key).type, key)
