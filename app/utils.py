"""Utility helpers for the StreamFlix API service."""

from __future__ import annotations

import math
import re
from typing import Any


SEASON_COUNT_RE = re.compile(r"(\d+)\s+Season", re.IGNORECASE)
EPISODE_TOKEN_RE = re.compile(r"s(\d+).*?e(\d+)", re.IGNORECASE)


def coerce_int(value: Any) -> int | None:
    """Parse loosely typed upstream numbers, returning ``None`` when invalid."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    text = str(value).strip()
    match = re.match(r"[+-]?\d+", text)
    if not match:
        return None
    return int(match.group(0))


def coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def coerce_positive_int(value: Any, default: int) -> int:
    """Return ``value`` as a positive integer or fall back to ``default``."""

    number = coerce_int(value)
    if number is None or number < 1:
        return default
    return number


def parse_season_count(duration: str | None) -> int:
    """Extract the season count from strings such as ``"3 Seasons"``."""

    if not duration:
        return 1
    match = SEASON_COUNT_RE.search(duration)
    if not match:
        return 1
    return max(1, int(match.group(1)))


def parse_episode_token(token: str) -> tuple[int, int] | None:
    """Return ``(season, episode)`` from tokens such as ``"s2e5"``."""

    match = EPISODE_TOKEN_RE.search(token)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def paginate(items: list[Any], page: int, limit: int) -> list[Any]:
    offset = (page - 1) * limit
    return items[offset : offset + limit]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, rounding halves up."""

    return math.floor(value + 0.5)
