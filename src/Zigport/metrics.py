"""Process-local counters and millisecond histograms for the import pipeline.

Counter names are dotted (``resolver.best_bet``, ``atomic_cache.hit``,
``import.records.cluster``). Histograms keep ``le_<bound>`` buckets plus an
overflow bucket and are flattened into ``histo.<name>.*`` keys by
``get_counters`` so a caller can dump everything as one mapping.
"""

from __future__ import annotations

import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager

DEFAULT_MS_BUCKETS: tuple[int, ...] = (1, 2, 5, 10, 20, 50, 100, 250, 500, 1000, 2000, 5000)

_counters: dict[str, int] = defaultdict(int)
_histograms: dict[str, dict[str, int]] = {}
_hist_sums: dict[str, int] = defaultdict(int)
_hist_counts: dict[str, int] = defaultdict(int)


def inc_counter(name: str, value: int = 1) -> None:
    _counters[name] += int(value)


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def reset_counters() -> None:
    _counters.clear()
    _histograms.clear()
    _hist_sums.clear()
    _hist_counts.clear()


def get_counters(prefix: str | None = None) -> dict[str, int]:
    """Counters and flattened histograms, optionally limited to names under ``prefix``."""
    out = dict(_counters)
    for name, buckets in _histograms.items():
        for label, cnt in buckets.items():
            out[f"histo.{name}.{label}"] = cnt
        out[f"histo.{name}.sum"] = _hist_sums.get(name, 0)
        out[f"histo.{name}.count"] = _hist_counts.get(name, 0)
    if prefix is None:
        return out
    return {k: v for k, v in out.items() if k.startswith(prefix) or k.startswith(f"histo.{prefix}")}


def observe_histogram(name: str, value: int, *, buckets: tuple[int, ...] | None = None) -> None:
    """Count ``value`` into the first bucket whose upper bound it does not exceed."""
    bounds = buckets or DEFAULT_MS_BUCKETS
    label = next((f"le_{ub}" for ub in bounds if value <= ub), f"gt_{bounds[-1]}")
    h = _histograms.setdefault(name, {})
    h[label] = h.get(label, 0) + 1
    _hist_sums[name] += int(value)
    _hist_counts[name] += 1


@contextmanager
def timed(name: str) -> Iterator[dict[str, int]]:
    """Observe the wall time of the block, in ms, into histogram ``name``.

    The yielded dict receives ``elapsed_ms`` once the block finishes, including
    when it raises.
    """
    result: dict[str, int] = {}
    started = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - started) * 1000)
        observe_histogram(name, result["elapsed_ms"])
