import abc
import datetime
from functools import cached_property
import io
import sys
import time
from typing import Any, Final, Literal, TextIO, TYPE_CHECKING

if TYPE_CHECKING:
    # rich is only imported once something is actually printed
    from rich.console import Console, RenderableType

from ..utils.global_mode import ProvidesGlobalMode
from ..utils.porcelain import PorcelainEntity, PorcelainEntityType, PorcelainOutput

LogLevel = Literal["D", "I", "W", "F"]

LEVEL_BADGES: Final[dict[str, str]] = {
    "I": "[bold green]info:[/]",
    "W": "[bold yellow]warn:[/]",
    "F": "[bold red]fatal error:[/]",
}


class PorcelainLog(PorcelainEntity):
    t: int
    """Microseconds since the Unix epoch"""

    lvl: str
    """One of D, I, W or F"""

    msg: str
    """The message with rich markup rendered away"""


def render_plain(message: "RenderableType", *objects: Any, sep: str = " ") -> str:
    """Renders rich markup to plain text."""

    from rich.console import Console

    buf = io.StringIO()
    Console(file=buf, color_system=None, soft_wrap=True).print(
        message,
        *objects,
        sep=sep,
        end="",
    )
    return buf.getvalue()


class FleetprovLogger(metaclass=abc.ABCMeta):
    """Where fleetprov sends everything meant for a human (or a porcelain
    consumer) to read.

    Implementations provide :meth:`stdout` for primary program output, and
    :meth:`log` for diagnostics on stderr. The one-letter methods are
    shorthands for the latter.
    """

    @abc.abstractmethod
    def stdout(
        self,
        message: "RenderableType",
        *objects: Any,
        sep: str = " ",
        end: str = "\n",
    ) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def log(
        self,
        lvl: LogLevel,
        message: "RenderableType",
        *objects: Any,
        sep: str = " ",
        end: str = "\n",
    ) -> None:
        raise NotImplementedError

    def D(self, message: "RenderableType", *objects: Any, sep: str = " ", end: str = "\n") -> None:
        self.log("D", message, *objects, sep=sep, end=end)

    def I(  # noqa: E743 # one letter per level, like the others
        self,
        message: "RenderableType",
        *objects: Any,
        sep: str = " ",
        end: str = "\n",
    ) -> None:
        self.log("I", message, *objects, sep=sep, end=end)

    def W(self, message: "RenderableType", *objects: Any, sep: str = " ", end: str = "\n") -> None:
        self.log("W", message, *objects, sep=sep, end=end)

    def F(self, message: "RenderableType", *objects: Any, sep: str = " ", end: str = "\n") -> None:
        self.log("F", message, *objects, sep=sep, end=end)


class FleetprovConsoleLogger(FleetprovLogger):
    def __init__(
        self,
        gm: ProvidesGlobalMode,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._gm = gm
        self._stdout = sys.stdout if stdout is None else stdout
        self._stderr = sys.stderr if stderr is None else stderr

    @cached_property
    def _out(self) -> "Console":
        from rich.console import Console

        return Console(file=self._stdout, highlight=False, soft_wrap=True)

    @cached_property
    def _err(self) -> "Console":
        from rich.console import Console

        return Console(file=self._stderr, highlight=False, soft_wrap=True)

    @cached_property
    def _porcelain(self) -> PorcelainOutput:
        return PorcelainOutput(self._stderr)

    def stdout(
        self,
        message: "RenderableType",
        *objects: Any,
        sep: str = " ",
        end: str = "\n",
    ) -> None:
        self._out.print(message, *objects, sep=sep, end=end)

    def log(
        self,
        lvl: LogLevel,
        message: "RenderableType",
        *objects: Any,
        sep: str = " ",
        end: str = "\n",
    ) -> None:
        if lvl == "D" and not self._gm.is_debug:
            return

        if self._gm.is_porcelain:
            rec: PorcelainLog = {
                "ty": PorcelainEntityType.LogV1,
                "t": int(time.time() * 1_000_000),
                "lvl": lvl,
                "msg": render_plain(message, *objects, sep=sep),
            }
            self._porcelain.emit(rec)
            return

        if lvl == "D":
            ts = datetime.datetime.now().isoformat(timespec="milliseconds")
            self._err.print(f"[dim]debug {ts}:[/]", message, *objects, sep=sep, end=end)
            return

        self._err.print(f"{LEVEL_BADGES[lvl]} {message}", *objects, sep=sep, end=end)
