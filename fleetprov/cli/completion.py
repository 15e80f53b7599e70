"""Shell completion support.

argcomplete is only imported when the shell is asking for completions, as
the import is expensive. ``ArgumentParser`` exists so that type checkers
know about the ``completer`` attribute argcomplete reads off actions (see
https://github.com/kislyuk/argcomplete/issues/443).
"""

import argparse
from typing import Any, Callable, cast


class ArgcompleteAction(argparse.Action):
    completer: Callable[..., list[str]] | None


class ArgumentParser(argparse.ArgumentParser):
    def add_argument(self, *args: Any, **kwargs: Any) -> ArgcompleteAction:
        return cast(ArgcompleteAction, super().add_argument(*args, **kwargs))


def offer_completions(p: argparse.ArgumentParser) -> None:
    """Answers a pending completion request and exits, if there is one."""

    import argcomplete

    # positional arguments here are image paths, host names and config
    # values, none of which can be guessed
    def _no_completions(**kwargs: Any) -> list[str]:
        return []

    argcomplete.autocomplete(
        p,
        always_complete_options=True,
        default_completer=_no_completions,
    )
