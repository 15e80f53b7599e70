"""Terminal prompts.

Helpers raise ``ValueError`` when stdin runs out before an answer is given,
except for :func:`ask_for_yesno_confirmation` which falls back to its
default and :func:`pause_before_continuing` which lets ``EOFError`` through.
"""

import getpass
from typing import Final

from ..log import FleetprovLogger

YES_WORDS: Final = frozenset(("y", "yes"))
NO_WORDS: Final = frozenset(("n", "no"))


def _read_line(prompt: str) -> str:
    try:
        return input(prompt).strip()
    except EOFError as e:
        raise ValueError("stdin closed before an answer was given") from e


def _reject(logger: FleetprovLogger, raw: str, expected: str) -> None:
    logger.stdout(f"[yellow]'{raw}'[/] is not valid here; expected {expected}.")


def pause_before_continuing(logger: FleetprovLogger) -> None:
    logger.stdout("Press [green]<ENTER>[/] to continue: ", end="")
    input()


def ask_for_yesno_confirmation(
    logger: FleetprovLogger,
    prompt: str,
    default: bool = False,
) -> bool:
    hint = "[Y/n]" if default else "[y/N]"
    while True:
        try:
            raw = _read_line(f"{prompt} {hint} ")
        except ValueError:
            logger.W(f"no answer on stdin, taking the default ({'yes' if default else 'no'})")
            return default

        if not raw:
            return default
        if raw.lower() in YES_WORDS:
            return True
        if raw.lower() in NO_WORDS:
            return False
        _reject(logger, raw, "y or n")


def ask_for_choice(
    logger: FleetprovLogger,
    prompt: str,
    choices_texts: list[str],
    default_idx: int | None = None,
) -> int:
    """Shows a numbered menu and returns the 0-based index picked."""

    n = len(choices_texts)
    if default_idx is not None and not 0 <= default_idx < n:
        raise ValueError(f"default choice {default_idx} is not one of the {n} choices")

    logger.stdout(prompt)
    for i, text in enumerate(choices_texts, start=1):
        logger.stdout(f"  [bold]{i}[/]) {text}")

    hint = f"[1-{n}]" if default_idx is None else f"[1-{n}, default {default_idx + 1}]"
    while True:
        raw = _read_line(f"Choice {hint}: ")
        if not raw and default_idx is not None:
            return default_idx
        if raw.isdigit() and 1 <= int(raw) <= n:
            return int(raw) - 1
        _reject(logger, raw, f"a number between 1 and {n}")


def ask_for_text(
    logger: FleetprovLogger,
    prompt: str,
    default: str | None = None,
    allow_empty: bool = False,
) -> str:
    suffix = "" if default is None else f" [{default}]"
    while True:
        raw = _read_line(f"{prompt}{suffix}: ")
        if raw:
            return raw
        if default is not None:
            return default
        if allow_empty:
            return ""
        logger.stdout("This question needs an answer.")


def ask_for_secret(logger: FleetprovLogger, prompt: str) -> str:
    """Like :func:`ask_for_text` without echo. Empty is allowed, e.g. for
    an open WiFi network."""

    try:
        return getpass.getpass(f"{prompt}: ")
    except EOFError as e:
        raise ValueError("stdin closed before an answer was given") from e


def ask_for_int(
    logger: FleetprovLogger,
    prompt: str,
    default: int | None = None,
) -> int:
    while True:
        raw = ask_for_text(logger, prompt, None if default is None else str(default))
        try:
            return int(raw, 10)
        except ValueError:
            _reject(logger, raw, "a whole number")
