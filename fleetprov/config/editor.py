import pathlib
from types import TracebackType
from typing import Sequence, TYPE_CHECKING

import tomlkit
from tomlkit.exceptions import ParseError
from tomlkit.items import Table

from .errors import MalformedConfigFileError
from .schema import ensure_valid_config_kv, validate_section

if TYPE_CHECKING:
    from typing_extensions import Self

    from . import GlobalConfig


class ConfigEditor:
    """Edits one TOML config file in place, keeping its comments and layout.

    Edits only reach the disk if :meth:`stage` was called, and then only when
    the ``with`` block is left without an exception.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        self._staged = False
        self._doc = self._load(path)

    @staticmethod
    def _load(path: pathlib.Path) -> tomlkit.TOMLDocument:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return tomlkit.document()

        try:
            return tomlkit.parse(text)
        except ParseError as e:
            raise MalformedConfigFileError(path) from e

    @classmethod
    def work_on_user_local_config(cls, gc: "GlobalConfig") -> "Self":
        return cls(gc.local_user_config_file)

    def __enter__(self) -> "Self":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is None and self._staged:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(tomlkit.dumps(self._doc), encoding="utf-8")

    def stage(self) -> None:
        """Marks the edits made so far for saving."""
        self._staged = True

    def _section(self, name: str, create: bool) -> Table | None:
        if name not in self._doc:
            if not create:
                return None
            self._doc[name] = tomlkit.table()

        tbl = self._doc[name]
        if not isinstance(tbl, Table):
            # e.g. "api = 1" where a table is expected
            raise MalformedConfigFileError(self.path)
        return tbl

    def set_value(self, key: str | Sequence[str], val: object | None) -> None:
        opt = ensure_valid_config_kv(key, check_val=True, val=val)
        tbl = self._section(opt.section, create=True)
        assert tbl is not None
        tbl[opt.name] = val

    def unset_value(self, key: str | Sequence[str]) -> None:
        opt = ensure_valid_config_kv(key)
        tbl = self._section(opt.section, create=False)
        if tbl is not None and opt.name in tbl:
            del tbl[opt.name]

    def remove_section(self, section: str) -> None:
        validate_section(section)
        if section in self._doc:
            del self._doc[section]
