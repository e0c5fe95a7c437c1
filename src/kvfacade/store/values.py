"""Argument validation for facade operations.

All checks here run before any request is sent to the store and raise
InvalidArgumentError on failure.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Union

from pydantic import ValidationError

from kvfacade.models import ScoredMember

from .exceptions import InvalidArgumentError

Scalar = Union[str, int, float, bytes]
ScoreBound = Union[str, int, float]
Ttl = Union[int, float, timedelta]

_INFINITIES = {
    "-inf": -math.inf,
    "+inf": math.inf,
    "inf": math.inf,
}


def validate_key(key: str, operation: str, name: str = "key") -> str:
    if not isinstance(key, str) or not key:
        raise InvalidArgumentError(
            f"{name} must be a non-empty string, got {key!r}", operation=operation
        )
    return key


def validate_scalar(value: Scalar, operation: str, key: str | None = None) -> Scalar:
    """Accept str, bytes and finite int/float values.

    bool is rejected even though it is an int subclass, since the store
    would silently turn it into "True"/"False".
    """
    if isinstance(value, bool) or not isinstance(value, (str, bytes, int, float)):
        raise InvalidArgumentError(
            f"unsupported value type {type(value).__name__}",
            operation=operation,
            key=key,
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidArgumentError(
            f"non-finite value {value!r}", operation=operation, key=key
        )
    return value


def validate_scalars(
    values: Iterable[Scalar], operation: str, key: str | None = None
) -> list[Scalar]:
    checked = [validate_scalar(v, operation, key) for v in values]
    if not checked:
        raise InvalidArgumentError(
            "at least one value is required", operation=operation, key=key
        )
    return checked


def ttl_seconds(ttl: Ttl | None, operation: str, key: str | None = None) -> float:
    """Normalize a ttl to seconds. None and zero both mean "no expiration"."""
    if ttl is None:
        return 0.0
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    elif isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise InvalidArgumentError(
            f"ttl must be seconds or timedelta, got {type(ttl).__name__}",
            operation=operation,
            key=key,
        )
    else:
        seconds = float(ttl)
    if seconds < 0 or not math.isfinite(seconds):
        raise InvalidArgumentError(
            f"ttl must not be negative, got {ttl!r}", operation=operation, key=key
        )
    return seconds


def expire_kwargs(seconds: float) -> dict[str, int]:
    """Pick EX or PX so sub-second ttls are not truncated to zero."""
    if seconds.is_integer():
        return {"ex": int(seconds)}
    return {"px": max(1, round(seconds * 1000))}


def scored_mapping(
    members: Mapping[str, float] | Iterable[ScoredMember],
    operation: str,
    key: str | None = None,
) -> dict[str, float]:
    """Normalize sorted-set input to the member -> score mapping redis-py takes."""
    try:
        if isinstance(members, Mapping):
            pairs = [ScoredMember(member=m, score=s) for m, s in members.items()]
        else:
            pairs = list(members)
    except ValidationError as e:
        raise InvalidArgumentError(
            f"invalid scored member: {e.errors()[0]['msg']}", operation=operation, key=key
        ) from e
    if not pairs:
        raise InvalidArgumentError(
            "at least one scored member is required", operation=operation, key=key
        )

    mapping: dict[str, float] = {}
    for pair in pairs:
        if not isinstance(pair, ScoredMember):
            raise InvalidArgumentError(
                f"expected ScoredMember, got {type(pair).__name__}",
                operation=operation,
                key=key,
            )
        # Later duplicates win, matching a single ZADD call
        mapping[pair.member] = pair.score
    return mapping


def parse_score_bound(bound: ScoreBound, operation: str, key: str | None = None) -> float:
    """Return the numeric value of a score bound.

    Accepts numbers, numeric strings, "-inf"/"+inf"/"inf", and the
    "(" prefix for exclusive bounds.
    """
    if isinstance(bound, bool):
        raise InvalidArgumentError(
            f"invalid score bound {bound!r}", operation=operation, key=key
        )
    if isinstance(bound, (int, float)):
        if math.isnan(bound):
            raise InvalidArgumentError(
                "score bound must not be NaN", operation=operation, key=key
            )
        return float(bound)
    if not isinstance(bound, str):
        raise InvalidArgumentError(
            f"invalid score bound type {type(bound).__name__}",
            operation=operation,
            key=key,
        )

    text = bound.strip()
    if text.startswith("("):
        text = text[1:]
    lowered = text.lower()
    if lowered in _INFINITIES:
        return _INFINITIES[lowered]
    try:
        value = float(text)
    except ValueError:
        raise InvalidArgumentError(
            f"invalid score bound {bound!r}", operation=operation, key=key
        ) from None
    if math.isnan(value):
        raise InvalidArgumentError(
            "score bound must not be NaN", operation=operation, key=key
        )
    return value


def format_score_bound(bound: ScoreBound) -> str:
    """Render a bound for the wire, keeping any exclusive prefix."""
    if isinstance(bound, str):
        return bound.strip()
    if isinstance(bound, int):
        return str(bound)
    if math.isinf(bound):
        return "+inf" if bound > 0 else "-inf"
    return repr(bound)


def validate_score_range(
    min_score: ScoreBound,
    max_score: ScoreBound,
    operation: str,
    key: str | None = None,
) -> tuple[str, str]:
    low = parse_score_bound(min_score, operation, key)
    high = parse_score_bound(max_score, operation, key)
    if low > high:
        raise InvalidArgumentError(
            f"min must be less than or equal to max, got {min_score!r} > {max_score!r}",
            operation=operation,
            key=key,
        )
    return format_score_bound(min_score), format_score_bound(max_score)


def score_window(
    start: int, stop: int, operation: str, key: str | None = None
) -> tuple[int, int] | None:
    """Turn an inclusive (start, stop) window into a LIMIT offset/count.

    Returns None when the window is empty. A negative stop means "through
    the end of the matched subset" and yields a count of -1.
    """
    if isinstance(start, bool) or not isinstance(start, int) or start < 0:
        raise InvalidArgumentError(
            f"start must be a non-negative integer, got {start!r}",
            operation=operation,
            key=key,
        )
    if isinstance(stop, bool) or not isinstance(stop, int):
        raise InvalidArgumentError(
            f"stop must be an integer, got {stop!r}", operation=operation, key=key
        )
    if stop < 0:
        return start, -1
    if stop < start:
        return None
    return start, stop - start + 1


def validate_index(value: int, name: str, operation: str, key: str | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(
            f"{name} must be an integer, got {value!r}", operation=operation, key=key
        )
    return value
