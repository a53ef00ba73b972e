import json
import logging
import os
import threading
from typing import Dict, List, Optional

from app.config import METRICS_PATH

logger = logging.getLogger(__name__)

# Only the most recent latencies are kept for percentile estimates
MAX_LATENCY_SAMPLES = 1000


class MetricsTracker:
    """
    Process-wide request and workflow counters.

    Persisted to a JSON file after every update when a path is given,
    otherwise kept in memory only.
    """

    def __init__(self, path: Optional[str] = METRICS_PATH):

        self._path = path or None
        self._lock = threading.Lock()

        self._metrics: Dict = self._empty()

        self._load()

    @staticmethod
    def _empty() -> Dict:

        return {

            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,

            "total_latency": 0.0,
            "avg_latency": 0.0,
            "latencies": [],

            "generation_calls": 0,
            "documents_uploaded": 0,
            "questions_answered": 0,
            "oversize_retries": 0,
            "summaries_generated": 0,
            "summary_cache_hits": 0,
            "map_cache_hits": 0,
            "comparisons": 0,

        }

    def _load(self):

        if not self._path or not os.path.exists(self._path):
            return

        try:

            with open(self._path, "r") as f:
                data = json.load(f)

        except (OSError, ValueError) as e:

            logger.warning(
                "Metrics file unreadable, starting fresh",
                extra={"path": self._path, "error": str(e)},
            )
            return

        # Backward compatibility: keep defaults for missing counters
        self._metrics.update(
            {key: value for key, value in data.items() if key in self._metrics}
        )

    def _save(self):

        if not self._path:
            return

        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(self._path, "w") as f:
            json.dump(self._metrics, f, indent=2)

    def record_success(self, latency: float):

        with self._lock:

            self._metrics["total_requests"] += 1
            self._metrics["successful_requests"] += 1
            self._metrics["total_latency"] += latency

            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["total_requests"]
            )

            latencies = self._metrics["latencies"]
            latencies.append(latency)
            del latencies[:-MAX_LATENCY_SAMPLES]

            self._save()

    def record_failure(self):

        with self._lock:

            self._metrics["total_requests"] += 1
            self._metrics["failed_requests"] += 1

            self._save()

    def increment(self, counter: str, amount: int = 1):

        with self._lock:

            if counter not in self._metrics:
                raise KeyError(f"Unknown metric: {counter}")

            self._metrics[counter] += amount

            self._save()

    def get_metrics(self) -> Dict:

        with self._lock:

            snapshot = dict(self._metrics)
            snapshot.pop("latencies", None)

        snapshot["p95_latency"] = self.get_latency_percentile(95)

        return snapshot

    def get_latency_percentile(self, percentile: float) -> float:

        with self._lock:
            latencies: List[float] = list(self._metrics.get("latencies", []))

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]


metrics_tracker = MetricsTracker()
