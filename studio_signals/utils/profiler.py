"""
Profiling utilities for Studio Signals.

Measures a block of work (one rule evaluation, one whole refresh) so the
orchestrator can log how long each step took and how much memory the fetched
history needed:
- Wall-clock time (perf_counter)
- Peak RSS via a background sampling thread (psutil)
- CPU percent (psutil, best-effort snapshot)

Usage:
    from studio_signals.utils.profiler import profile_block

    with profile_block("no_show_risk") as stats:
        findings = rule.evaluate(snapshot, settings)

    log.info("rule evaluated", extra={"duration_ms": stats.duration_ms})
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)

    @property
    def duration_ms(self) -> float:
        return round(self.duration_seconds * 1000, 2)


@contextlib.contextmanager
def profile_block(label: str, sample_interval_ms: int = 50) -> Generator[ProfileStats, None, None]:
    """
    Context manager to profile a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        Interval in milliseconds for RSS sampling. Lower = more accurate but higher overhead.

    Notes
    -----
    Stats are filled in even when the block raises, so failures can be logged
    with their duration.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    stop_sampling = threading.Event()
    peak_rss = process.memory_info().rss

    def _sample_memory() -> None:
        nonlocal peak_rss
        while not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                return
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    # CPU percent needs a priming call
    process.cpu_percent(interval=None)

    sampler = threading.Thread(target=_sample_memory, daemon=True)
    sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts

        stop_sampling.set()
        sampler.join(timeout=1.0)

        stats.peak_rss_bytes = peak_rss if peak_rss > 0 else None
        stats.cpu_percent = process.cpu_percent(interval=None)


__all__ = ["ProfileStats", "profile_block"]
