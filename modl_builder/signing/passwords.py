"""
Password providers: where keystore and alias secrets come from.

Signing code asks a provider for a named secret and never branches on where it
came from. Configured values (file or env) are tried first; an interactive
terminal is the fallback, and its absence is fatal.
"""

from __future__ import annotations

import getpass
import sys
from typing import Callable, Mapping, Optional, Protocol, runtime_checkable

from ..core.errors import TerminalUnavailableError

KEYSTORE_PASSWORD = "keystore_password"
ALIAS_PASSWORD = "alias_password"

PROMPTS = {
    KEYSTORE_PASSWORD: "Enter the keystore password:",
    ALIAS_PASSWORD: "Enter the alias password:",
}


@runtime_checkable
class PasswordProvider(Protocol):
    def get_password(self, name: str, prompt: str) -> str:
        """Return the secret called name; prompt is shown if the user must type it."""
        ...


class ConsolePasswordProvider:
    """Reads secrets from the controlling terminal without echo."""

    def __init__(
        self,
        reader: Callable[[str], str] = getpass.getpass,
        isatty: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._reader = reader
        self._isatty = isatty or (lambda: sys.stdin is not None and sys.stdin.isatty())

    def get_password(self, name: str, prompt: str) -> str:
        if not self._isatty():
            raise TerminalUnavailableError(
                f"Cannot prompt for {name}: no interactive terminal. "
                "Supply it in configuration or the environment."
            )
        return self._reader(prompt)


class StaticPasswordProvider:
    """Pre-supplied secrets; missing or empty ones go to fallback (if any)."""

    def __init__(
        self,
        values: Mapping[str, Optional[str]],
        fallback: Optional[PasswordProvider] = None,
    ) -> None:
        self._values = dict(values)
        self._fallback = fallback

    def get_password(self, name: str, prompt: str) -> str:
        value = self._values.get(name)
        if value:
            return value
        if self._fallback is None:
            raise TerminalUnavailableError(
                f"{name} not configured and interactive entry is disabled"
            )
        return self._fallback.get_password(name, prompt)


def default_password_provider(
    keystore_password: Optional[str] = None,
    alias_password: Optional[str] = None,
) -> PasswordProvider:
    """Configured values first, then the terminal."""
    return StaticPasswordProvider(
        {KEYSTORE_PASSWORD: keystore_password, ALIAS_PASSWORD: alias_password},
        fallback=ConsolePasswordProvider(),
    )


def obtain(provider: PasswordProvider, name: str) -> str:
    return provider.get_password(name, PROMPTS.get(name, f"Enter {name}:"))


__all__ = [
    "ALIAS_PASSWORD",
    "ConsolePasswordProvider",
    "KEYSTORE_PASSWORD",
    "PasswordProvider",
    "StaticPasswordProvider",
    "default_password_provider",
    "obtain",
]
