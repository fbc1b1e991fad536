"""
Metrics Collection for the recurring planner.

In-process counters for materialization, soft deletes and migrations.
"""

from typing import Dict, Any
from collections import defaultdict
import threading

from recurring_planner.utils.dates import utc_now


class MetricsCollector:
    """Collects and manages engine counters."""

    def __init__(self):
        self.metrics = defaultdict(int)
        self.lock = threading.Lock()
        self.reset()

    def reset(self):
        with self.lock:
            self.metrics.clear()
            self.metrics["instances_created_total"] = 0
            self.metrics["instance_failures_total"] = 0
            self.metrics["instances_soft_deleted_total"] = 0
            self.metrics["patterns_migrated_total"] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        with self.lock:
            self.metrics[metric_name] += value

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timestamp": utc_now().isoformat()
            }

    def instance_created(self, count: int = 1):
        self.increment_counter("instances_created_total", count)

    def instance_failed(self):
        self.increment_counter("instance_failures_total")

    def instances_soft_deleted(self, count: int):
        self.increment_counter("instances_soft_deleted_total", count)

    def pattern_migrated(self):
        self.increment_counter("patterns_migrated_total")


# Global metrics instance
metrics_collector = MetricsCollector()
