"""
Metrics Collection for the Reconciliation Pipeline

Collects and exposes metrics for:
- Recompute runs (started, completed, failed)
- Stage processing times (average, p95)
- Anomaly findings by category
- Statement builds

Metrics are held in memory only; callers that need history export
get_summary() themselves.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class RunMetrics:
    """Metrics for recompute runs."""
    started: int = 0
    completed: int = 0
    failed: int = 0
    last_completed_at: Optional[datetime] = None
    last_error: Optional[str] = None

    # By resolution strategy
    by_strategy: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"started": 0, "completed": 0, "failed": 0}))


@dataclass
class VolumeMetrics:
    """Record volumes seen by the last completed run."""
    transactions: int = 0
    payments: int = 0
    profiles: int = 0
    unlinked_payments: int = 0


@dataclass
class AnomalyMetrics:
    """Anomaly findings, cumulative by category."""
    reports: int = 0
    entries: int = 0
    by_category: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    # By stage
    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for the reconciliation pipeline.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_run_started("strict")
        metrics.record_processing_time("allocate", duration_ms=12.5)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.runs = RunMetrics()
        self.volumes = VolumeMetrics()
        self.anomalies = AnomalyMetrics()
        self.timings = TimingMetrics()
        self.statements = 0
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self):
        """Clear every counter and sample."""
        with self._lock:
            self.runs = RunMetrics()
            self.volumes = VolumeMetrics()
            self.anomalies = AnomalyMetrics()
            self.timings = TimingMetrics()
            self.statements = 0

    # =========================================================================
    # Run Metrics
    # =========================================================================

    def record_run_started(self, strategy: str):
        """Record a recompute start."""
        with self._lock:
            self.runs.started += 1
            self.runs.by_strategy[strategy]["started"] += 1

    def record_run_completed(
        self,
        strategy: str,
        duration_ms: float = None,
        transactions: int = 0,
        payments: int = 0,
        profiles: int = 0,
        unlinked_payments: int = 0,
    ):
        """Record a recompute completion and the volumes it handled."""
        with self._lock:
            self.runs.completed += 1
            self.runs.by_strategy[strategy]["completed"] += 1
            self.runs.last_completed_at = datetime.utcnow()
            self.volumes = VolumeMetrics(
                transactions=transactions,
                payments=payments,
                profiles=profiles,
                unlinked_payments=unlinked_payments,
            )

            if duration_ms:
                self.timings.add_sample(duration_ms, f"recompute.{strategy}")

    def record_run_failed(self, strategy: str, error: str = None):
        """Record a recompute failure."""
        with self._lock:
            self.runs.failed += 1
            self.runs.by_strategy[strategy]["failed"] += 1
            self.runs.last_error = error

    # =========================================================================
    # Anomaly / Statement Metrics
    # =========================================================================

    def record_anomaly_report(self, counts: Dict[str, int], entries: int):
        """Record one anomaly detection pass."""
        with self._lock:
            self.anomalies.reports += 1
            self.anomalies.entries += entries
            for category, count in counts.items():
                self.anomalies.by_category[category] += count

    def record_statement_built(self, duration_ms: float = None):
        with self._lock:
            self.statements += 1
            if duration_ms:
                self.timings.add_sample(duration_ms, "statement")

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            last = self.runs.last_completed_at
            return {
                "runs": {
                    "started": self.runs.started,
                    "completed": self.runs.completed,
                    "failed": self.runs.failed,
                    "last_completed_at": last.isoformat() if last else None,
                    "last_error": self.runs.last_error,
                    "by_strategy": {k: dict(v) for k, v in self.runs.by_strategy.items()},
                },
                "volumes": {
                    "transactions": self.volumes.transactions,
                    "payments": self.volumes.payments,
                    "profiles": self.volumes.profiles,
                    "unlinked_payments": self.volumes.unlinked_payments,
                },
                "anomalies": {
                    "reports": self.anomalies.reports,
                    "entries": self.anomalies.entries,
                    "by_category": dict(self.anomalies.by_category),
                },
                "statements": self.statements,
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()

