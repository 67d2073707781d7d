from __future__ import annotations

import logging
from os import getenv


def first_env(*names: str) -> str | None:
    """Value of the first variable in `names` that is set and non-empty."""
    for name in names:
        v = getenv(name)
        if v:
            return v
    return None


def parse_timeout(v: str | None, *, default: float) -> float:
    if not v:
        return default
    try:
        timeout = float(v.strip())
    except ValueError:
        return default
    if timeout <= 0:
        return default
    return timeout


def parse_level(v: str | None, *, default: int) -> int:
    if not v:
        return default
    s = v.strip().upper()
    if s.isdigit():
        return int(s)
    # noinspection PyUnresolvedReferences,PyProtectedMember
    return logging._nameToLevel.get(s, default)


def parse_quiet(v: str | None, *, default_level: int | None):
    if v is None:
        return default_level

    s = v.strip().upper()

    if s in ('0', 'FALSE', 'NO', 'OFF', 'NONE', 'DISABLE'):
        return None

    if s.isdigit():
        return int(s)

    # noinspection PyUnresolvedReferences,PyProtectedMember
    lvl = logging._nameToLevel.get(s)

    if lvl is not None:
        return lvl

    return default_level


def parse_attr(v: str) -> tuple[str, str]:
    """Split a `key=value` pair, as passed on the command line."""
    key, sep, value = v.partition('=')
    key = key.strip()
    if not sep or not key:
        raise ValueError(f'expected key=value, got {v!r}')
    return key, value
