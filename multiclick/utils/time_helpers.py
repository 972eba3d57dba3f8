"""Time-of-day predicates exposed to configuration scripts.

Times may be given as ``datetime.time``, ``"HH:MM"`` / ``"HH:MM:SS"`` strings,
an ``(h, m[, s])`` tuple or a bare hour. Every predicate accepts an optional
``clock`` returning the current ``datetime`` so tests can pin the time.
"""
from __future__ import annotations
from datetime import datetime, time
from typing import Callable, Optional, Tuple, Union

TimeLike = Union[time, str, int, Tuple[int, ...]]
Clock = Callable[[], datetime]


def parse_time(value: TimeLike) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        return time(value)
    if isinstance(value, tuple):
        return time(*value)
    if isinstance(value, str):
        fmt = "%H:%M:%S" if value.count(":") == 2 else "%H:%M"
        return datetime.strptime(value.strip(), fmt).time()
    raise TypeError(f"cannot interpret {value!r} as a time of day")


def now(clock: Optional[Clock] = None) -> time:
    """Current local time of day, truncated to whole seconds."""
    return (clock or datetime.now)().time().replace(microsecond=0)


def before(value: TimeLike, clock: Optional[Clock] = None) -> bool:
    return now(clock) < parse_time(value)


def after(value: TimeLike, clock: Optional[Clock] = None) -> bool:
    return now(clock) >= parse_time(value)


def between(start: TimeLike, end: TimeLike, clock: Optional[Clock] = None) -> bool:
    """``start <= now < end``; a window with ``start > end`` wraps past midnight."""
    lo, hi, current = parse_time(start), parse_time(end), now(clock)
    if lo <= hi:
        return lo <= current < hi
    return current >= lo or current < hi
