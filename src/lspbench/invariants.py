"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn

from lspbench.exceptions import NeverThrown


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as unreachable.

    The optional env payload is attached to the raised ``NeverThrown`` and is
    metadata only.
    """
    raise NeverThrown(reason or "never() marker reached", env=env)


def require(condition: bool, reason: str, **env: object) -> None:
    if not condition:
        never(reason, **env)
