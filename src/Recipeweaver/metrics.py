"""Process-local counters and millisecond histograms.

An installer invocation is a short-lived process, so metrics live in module
state. The CLI logs a snapshot when a command finishes; tests read single
counters. Histograms are flattened into ``histo.<name>.<bucket>`` counters.
"""

from __future__ import annotations

import time
from bisect import bisect_left
from collections import Counter
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

DEFAULT_BUCKETS_MS: tuple[int, ...] = (10, 50, 100, 250, 500, 1000, 5000, 15000, 60000)

_counters: Counter[str] = Counter()
_histograms: dict[str, Counter[str]] = {}
# name -> [sum, count]
_totals: dict[str, list[int]] = {}


def inc_counter(name: str, value: int = 1) -> None:
    _counters[name] += int(value)


def get_counter(name: str) -> int:
    return _counters[name]


def reset_counters() -> None:
    _counters.clear()
    _histograms.clear()
    _totals.clear()


def observe_histogram(name: str, value: int, *, buckets: Sequence[int] = DEFAULT_BUCKETS_MS) -> None:
    """Count ``value`` into the first bucket whose upper bound it does not exceed."""
    index = bisect_left(buckets, value)
    label = f"le_{buckets[index]}" if index < len(buckets) else f"gt_{buckets[-1]}"
    _histograms.setdefault(name, Counter())[label] += 1
    total = _totals.setdefault(name, [0, 0])
    total[0] += int(value)
    total[1] += 1


@contextmanager
def timed(name: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        observe_histogram(name, int((time.perf_counter() - started) * 1000))


def get_counters() -> dict[str, int]:
    out = dict(_counters)
    for name, buckets in _histograms.items():
        for label, count in buckets.items():
            out[f"histo.{name}.{label}"] = count
        out[f"histo.{name}.sum"], out[f"histo.{name}.count"] = _totals[name]
    return out
