# gatepass/infra/timings.py
from __future__ import annotations
import math
import time
from typing import Dict, List

# ------------ hot path: O(1) per sample ------------
# one running aggregate per kind; no locks, single-threaded event loop


class _Running:
    """Welford running mean/variance; memory stays flat per kind."""
    __slots__ = ("n", "mean", "m2", "max")

    def __init__(self) -> None:
        self.n = 0
        self.mean = 0.0
        self.m2 = 0.0
        self.max = 0.0

    def add(self, value: float) -> None:
        self.n += 1
        delta = value - self.mean
        self.mean += delta / self.n
        self.m2 += delta * (value - self.mean)
        if self.n == 1 or value > self.max:
            self.max = value

    @property
    def std(self) -> float:
        # sample standard deviation, like statistics.stdev
        return math.sqrt(self.m2 / (self.n - 1)) if self.n > 1 else 0.0


_TIMINGS: Dict[str, _Running] = {}


def now_ts() -> float:
    # monotonic for durations
    return time.perf_counter()


def record_timing(kind: str, value: float) -> None:
    agg = _TIMINGS.get(kind)
    if agg is None:
        agg = _Running()
        _TIMINGS[kind] = agg
    agg.add(float(value))


class timeit:
    """async usage:
        async with timeit("gateway.create_order"):
            await fn()
    """
    __slots__ = ("_kind", "_t0")

    def __init__(self, kind: str):
        self._kind = kind
        self._t0 = 0.0

    async def __aenter__(self):
        self._t0 = now_ts()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        record_timing(self._kind, now_ts() - self._t0)


# ------------ stats only when asked ------------

def snapshot() -> List[Dict[str, float]]:
    """One aggregate per kind: {"kind","n","mean_ms","std_ms","max_ms"}."""
    out = []
    for kind, agg in sorted(_TIMINGS.items()):
        out.append({
            "kind": kind,
            "n": agg.n,
            "mean_ms": agg.mean * 1000,
            "std_ms": agg.std * 1000,
            "max_ms": agg.max * 1000,
        })
    return out


def reset() -> None:
    _TIMINGS.clear()
