from os import PathLike
from typing import Any, Sequence


def _fmt_key(key: str | Sequence[str] | None) -> str:
    if key is None:
        return "(unknown)"
    return key if isinstance(key, str) else ".".join(key)


class ConfigError(Exception):
    """Base class of config problems. ``str()`` gives the message for users."""


class InvalidConfigSectionError(ConfigError):
    def __init__(self, section: str) -> None:
        super().__init__(f"invalid config section: {section}")
        self.section = section


class InvalidConfigKeyError(ConfigError):
    def __init__(self, key: str | Sequence[str]) -> None:
        super().__init__(f"invalid config key: {_fmt_key(key)}")
        self.key = key


class InvalidConfigValueTypeError(ConfigError, TypeError):
    def __init__(self, key: str | Sequence[str], val: object, expected: type) -> None:
        super().__init__(
            f"config key {_fmt_key(key)} takes a {expected.__name__} value, not {type(val).__name__}"
        )
        self.key = key
        self.val = val


class InvalidConfigValueError(ConfigError, ValueError):
    def __init__(
        self,
        key: str | Sequence[str] | None,
        val: object,
        expected: str,
    ) -> None:
        super().__init__(
            f"invalid config value for {_fmt_key(key)}: {val!r} is not {expected}"
        )
        self.key = key
        self.val = val


class UnsetConfigValueError(ConfigError):
    """Raised when a config value that has no default and was never set is to
    be shown. TOML has no null, so there is nothing to print."""

    def __init__(self, key: str | Sequence[str] | None = None) -> None:
        super().__init__(f"config option {_fmt_key(key)} is not set")
        self.key = key


class MalformedConfigFileError(ConfigError):
    def __init__(self, path: PathLike[Any]) -> None:
        super().__init__(f"malformed config file: {path}")
        self.path = path
