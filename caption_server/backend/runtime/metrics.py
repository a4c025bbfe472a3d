"""Runtime metrics for caption sessions."""

import bisect
import threading
from collections import defaultdict
from dataclasses import dataclass
from itertools import accumulate
from typing import Any, Dict, Iterable


@dataclass(frozen=True)
class HistogramSnapshot:
    bounds: tuple[float, ...]
    cumulative_counts: tuple[int, ...]
    count: int
    sum: float


class Histogram:
    """Fixed-bucket latency histogram. Callers hold the owning lock."""

    def __init__(self, bounds: Iterable[float]):
        self._bounds = tuple(sorted({float(bound) for bound in bounds if bound >= 0}))
        # Last slot is the +Inf bucket.
        self._counts = [0] * (len(self._bounds) + 1)
        self._total = 0.0

    def observe(self, value: float) -> None:
        if value < 0:
            return
        self._counts[bisect.bisect_left(self._bounds, value)] += 1
        self._total += value

    def snapshot(self) -> HistogramSnapshot:
        cumulative = tuple(accumulate(self._counts))
        return HistogramSnapshot(
            bounds=self._bounds,
            cumulative_counts=cumulative,
            count=cumulative[-1],
            sum=self._total,
        )


_LATENCY_BOUNDS_MS = (50.0, 100.0, 250.0, 500.0, 1000.0, 2000.0, 5000.0, 10000.0)


class Metrics:
    """Thread-safe counters and aggregations for server metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active_sessions = 0
        self._sessions_started = 0
        self._sessions_timed_out = 0
        self._chunks_accepted = 0
        self._chunk_bytes_total = 0
        self._chunks_rejected: Dict[str, int] = defaultdict(int)
        self._batches_dispatched = 0
        self._batch_bytes_total = 0
        self._captions_emitted = 0
        self._empty_transcripts = 0
        self._results_orphaned = 0
        self._translation_cache_hits = 0
        self._translation_cache_misses = 0
        self._error_counts: Dict[str, int] = defaultdict(int)
        self._stt_latency_max = 0.0
        self._translation_latency_max = 0.0
        self._stt_latency_hist = Histogram(_LATENCY_BOUNDS_MS)
        self._translation_latency_hist = Histogram(_LATENCY_BOUNDS_MS)

    def increase_active_sessions(self) -> None:
        with self._lock:
            self._active_sessions += 1
            self._sessions_started += 1

    def decrease_active_sessions(self) -> None:
        with self._lock:
            if self._active_sessions > 0:
                self._active_sessions -= 1

    def record_session_timeout(self) -> None:
        with self._lock:
            self._sessions_timed_out += 1

    def record_chunk(self, byte_length: int) -> None:
        """Record an accepted audio chunk."""
        with self._lock:
            self._chunks_accepted += 1
            self._chunk_bytes_total += max(0, int(byte_length))

    def record_chunk_rejected(self, reason: str) -> None:
        """Record a rejected audio chunk keyed by reason."""
        with self._lock:
            self._chunks_rejected[reason or "unknown"] += 1

    def record_batch(self, byte_length: int) -> None:
        with self._lock:
            self._batches_dispatched += 1
            self._batch_bytes_total += max(0, int(byte_length))

    def record_caption(
        self, stt_latency_ms: float, translation_latency_ms: float | None = None
    ) -> None:
        """Record an emitted caption and its provider latencies."""
        with self._lock:
            self._captions_emitted += 1
            self._stt_latency_max = max(self._stt_latency_max, stt_latency_ms)
            self._stt_latency_hist.observe(stt_latency_ms)
            if translation_latency_ms is not None:
                self._translation_latency_max = max(
                    self._translation_latency_max, translation_latency_ms
                )
                self._translation_latency_hist.observe(translation_latency_ms)

    def record_empty_transcript(self) -> None:
        with self._lock:
            self._empty_transcripts += 1

    def record_result_orphaned(self, count: int = 1) -> None:
        """Record provider results that arrived after their session was cleaned."""
        with self._lock:
            self._results_orphaned += max(count, 0)

    def record_translation_cache(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._translation_cache_hits += 1
            else:
                self._translation_cache_misses += 1

    def record_error(self, code: str) -> None:
        """Record an error code occurrence."""
        with self._lock:
            self._error_counts[str(code)] += 1

    def render(self) -> Dict[str, Any]:
        """Render metrics as a serializable payload."""
        with self._lock:
            payload = {
                "active_sessions": self._active_sessions,
                "sessions_started_total": self._sessions_started,
                "sessions_timed_out_total": self._sessions_timed_out,
                "chunks_accepted_total": self._chunks_accepted,
                "chunk_bytes_total": self._chunk_bytes_total,
                "chunks_rejected": dict(self._chunks_rejected),
                "batches_dispatched_total": self._batches_dispatched,
                "batch_bytes_total": self._batch_bytes_total,
                "captions_emitted_total": self._captions_emitted,
                "empty_transcripts_total": self._empty_transcripts,
                "results_orphaned_total": self._results_orphaned,
                "translation_cache_hits": self._translation_cache_hits,
                "translation_cache_misses": self._translation_cache_misses,
                "stt_latency_ms_max": self._stt_latency_max,
                "translation_latency_ms_max": self._translation_latency_max,
                "error_counts": dict(self._error_counts),
            }
            payload["histograms"] = self._render_histograms()
            return payload

    def _render_histograms(self) -> Dict[str, Dict[str, Any]]:
        """Render histogram values as JSON-friendly maps."""
        return {
            "stt_latency_ms": self._histogram_payload(self._stt_latency_hist),
            "translation_latency_ms": self._histogram_payload(
                self._translation_latency_hist
            ),
        }

    @staticmethod
    def _histogram_payload(histogram: Histogram) -> Dict[str, Any]:
        snap = histogram.snapshot()
        buckets: Dict[str, int] = {}
        for idx, bound in enumerate(snap.bounds):
            buckets[str(bound)] = snap.cumulative_counts[idx]
        buckets["+Inf"] = snap.cumulative_counts[-1]
        return {"buckets": buckets, "count": snap.count, "sum": snap.sum}

    def snapshot(self) -> Dict[str, float]:
        """Return a snapshot with averages and maxima for key metrics."""
        with self._lock:
            stt_snap = self._stt_latency_hist.snapshot()
            tr_snap = self._translation_latency_hist.snapshot()
            stt_avg = stt_snap.sum / stt_snap.count if stt_snap.count else 0.0
            tr_avg = tr_snap.sum / tr_snap.count if tr_snap.count else 0.0
            lookups = self._translation_cache_hits + self._translation_cache_misses
            hit_ratio = self._translation_cache_hits / lookups if lookups else 0.0
            return {
                "active_sessions": float(self._active_sessions),
                "captions_emitted": float(self._captions_emitted),
                "stt_latency_ms_avg": stt_avg,
                "stt_latency_ms_max": self._stt_latency_max,
                "translation_latency_ms_avg": tr_avg,
                "translation_latency_ms_max": self._translation_latency_max,
                "translation_cache_hit_ratio": hit_ratio,
                "results_orphaned": float(self._results_orphaned),
            }
