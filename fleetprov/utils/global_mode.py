"""Process-wide switches that are decided before argument parsing.

These need to be known early: the logger is set up before ``argparse`` runs,
and shell completion must not pay for importing the whole CLI.
"""

from dataclasses import dataclass
import os
from typing import Final, Mapping, Protocol, runtime_checkable

ENV_DEBUG: Final = "FLEETPROV_DEBUG"
ENV_API_TOKEN: Final = "FLEETPROV_API_TOKEN"

# set by argcomplete in the environment of completion requests
ENV_ARGCOMPLETE: Final = "_ARGCOMPLETE"

_TRUTHY: Final = frozenset(("1", "on", "true", "y", "yes"))


def env_flag(env: Mapping[str, str], var: str) -> bool:
    return env.get(var, "").strip().lower() in _TRUTHY


@runtime_checkable
class ProvidesGlobalMode(Protocol):
    @property
    def argv0(self) -> str: ...

    @property
    def is_debug(self) -> bool: ...

    @property
    def is_porcelain(self) -> bool: ...

    @property
    def is_cli_autocomplete(self) -> bool: ...

    @property
    def api_token(self) -> str | None: ...


@dataclass
class GlobalMode:
    argv0: str = "fleetprov"
    is_debug: bool = False
    is_porcelain: bool = False
    is_cli_autocomplete: bool = False
    api_token: str | None = None

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        argv: list[str] | None = None,
    ) -> "GlobalMode":
        if env is None:
            env = os.environ
        argv = argv or []

        return cls(
            argv0=argv[0] if argv else "fleetprov",
            is_debug=env_flag(env, ENV_DEBUG),
            # --porcelain is a root option, so it can only come first; argparse
            # confirms the guess later
            is_porcelain=argv[1:2] == ["--porcelain"],
            is_cli_autocomplete=ENV_ARGCOMPLETE in env,
            api_token=env.get(ENV_API_TOKEN) or None,
        )
