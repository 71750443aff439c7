"""Interactive prompts that can be answered up front for unattended runs."""

from __future__ import annotations

import getpass
import os
from typing import Callable, Sequence

from config import ANSWER_ENV
from provision.errors import AuthenticationError
from provision.utils import log


def answers_from_env() -> dict[str, str]:
    answers: dict[str, str] = {}
    for key, var in ANSWER_ENV.items():
        value = os.environ.get(var)
        if value:
            answers[key] = value
    return answers


def confirm(
    prompt: str,
    default: bool = False,
    assume_yes: bool = False,
    input_fn: Callable[[str], str] = input,
) -> bool:
    if assume_yes:
        log(f"CONFIRM (auto): {prompt}")
        return True
    suffix = "[Y/n]" if default else "[y/N]"
    try:
        response = input_fn(f"{prompt} {suffix}: ").strip().lower()
    except EOFError:
        response = ""
    if not response:
        return default
    return response in ("y", "yes")


def ask(
    prompt: str,
    secret: bool = False,
    input_fn: Callable[[str], str] = input,
    secret_fn: Callable[[str], str] = getpass.getpass,
) -> str:
    reader = secret_fn if secret else input_fn
    try:
        return reader(f"{prompt}: ").strip()
    except EOFError:
        return ""


def choose(
    prompt: str,
    options: Sequence[str],
    input_fn: Callable[[str], str] = input,
) -> int | None:
    """Print a numbered menu and return the 0-based index picked, or None."""
    for i, label in enumerate(options, 1):
        print(f"  {i}) {label}")
    try:
        raw = input_fn(f"{prompt} (1-{len(options)}): ").strip()
    except EOFError:
        return None
    if not raw.isdigit():
        return None
    choice = int(raw)
    if 1 <= choice <= len(options):
        return choice - 1
    return None


def ask_verified(
    read: Callable[[], str],
    verify: Callable[[str], bool],
    attempts: int,
    what: str = "password",
) -> str:
    """Read a secret until ``verify`` accepts it; fatal after ``attempts`` tries."""
    for attempt in range(1, attempts + 1):
        value = read()
        if verify(value):
            return value
        log(f"FAIL: incorrect {what} (attempt {attempt}/{attempts})")
        print(f"Incorrect {what}. Try again.")
    raise AuthenticationError(f"too many failed {what} attempts ({attempts})")
