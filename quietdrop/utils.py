from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar


_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?i?B)\s*$", re.IGNORECASE)
_METRIC = {"B": 1, "KB": 1000, "MB": 1000 ** 2, "GB": 1000 ** 3, "TB": 1000 ** 4}
_BASE2 = {"KIB": 1024, "MIB": 1024 ** 2, "GIB": 1024 ** 3, "TIB": 1024 ** 4}


def parse_duration(value: str) -> float:
    """Parse "300", "90s", "5m" or "1h30m" into seconds. Bare numbers are seconds."""
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION_RE.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def parse_size(value: str) -> int:
    """Parse "10MB" (powers of 1000) or "10MiB" (powers of 1024) into bytes."""
    m = _SIZE_RE.match(value)
    if not m:
        raise ValueError(f"invalid size: {value!r}")
    number, unit = float(m.group(1)), m.group(2).upper()
    factor = _METRIC.get(unit) or _BASE2.get(unit)
    if factor is None:
        raise ValueError(f"invalid size unit: {m.group(2)!r}")
    return int(number * factor)


def fmt_bytes(n: int) -> str:
    value = float(n)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if value < 1024 or unit == "TB":
            return (f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}")
        value /= 1024.0
    return f"{value:.1f} PB"


def fmt_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, secs = divmod(seconds, 60)
    if minutes < 1:
        return f"{secs:.1f}s"
    hours, minutes = divmod(int(minutes), 60)
    if hours:
        return f"{hours}h{minutes}m{secs:.0f}s"
    return f"{minutes}m{secs:.0f}s"


T = TypeVar("T")


def retry(
    fn: Callable[[], T],
    *,
    retries: int = 5,
    base_delay: float = 0.5,
    exc_types: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    attempt = 0
    while True:
        try:
            return fn()
        except exc_types as e:
            attempt += 1
            if attempt > retries:
                raise
            if on_retry:
                on_retry(attempt, e)
            delay = base_delay * (2 ** (attempt - 1))
            time.sleep(min(delay, 10.0))


@dataclass
class Stats:
    files: int = 0
    bytes: int = 0
    duration_s: float = 0.0
    retries: int = 0
    failures: int = 0
