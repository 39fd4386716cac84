"""Per-run workflow metrics"""

import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger


class RunMetrics:
    """Track state outcomes, soft timeouts and failures for one workflow run"""

    def __init__(self, run_id: str = "N/A", clock: Callable[[], float] = time.monotonic):
        """
        Initialize run metrics

        Args:
            run_id: Correlation id of the run
            clock: Monotonic clock (injectable for tests)
        """
        self.run_id = run_id
        self.clock = clock
        self.started_at = clock()
        self.metrics = {
            'states': [],
            'by_status': defaultdict(int),
            'timeouts': [],
            'failures': [],
            'snapshots': 0,
        }
        logger.debug(f"[{run_id}] Run metrics initialized")

    def record_state(self, state: str, status: str, elapsed: float, detail: str = ""):
        """Record the outcome of one workflow state"""
        self.metrics['states'].append({
            'state': state,
            'status': status,
            'elapsed': round(elapsed, 2),
            'detail': detail,
        })
        self.metrics['by_status'][status] += 1

    def record_timeout(self, description: str, elapsed: float):
        """Record a soft timeout (workflow continued)"""
        self.metrics['timeouts'].append({
            'timestamp': datetime.now().isoformat(),
            'description': description,
            'elapsed': round(elapsed, 2),
        })

    def record_snapshot(self, count: int = 1):
        self.metrics['snapshots'] += count

    def record_failure(
        self,
        failure_type: str,
        component: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Record a detailed failure

        Args:
            failure_type: Type of failure (extraction, generate_click, ...)
            component: Component that failed (openwebui, presenton, ...)
            reason: Detailed reason for failure
            context: Additional context (state, url, ...)
        """
        self.metrics['failures'].append({
            'timestamp': datetime.now().isoformat(),
            'type': failure_type,
            'component': component,
            'reason': reason,
            'context': context or {},
        })

    @property
    def states_visited(self) -> List[str]:
        return [entry['state'] for entry in self.metrics['states']]

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary"""
        return {
            'run_id': self.run_id,
            'duration_seconds': round(self.clock() - self.started_at, 2),
            'states_visited': len(self.metrics['states']),
            'by_status': dict(self.metrics['by_status']),
            'soft_timeouts': len(self.metrics['timeouts']),
            'timeouts': list(self.metrics['timeouts']),
            'failures': list(self.metrics['failures']),
            'snapshots': self.metrics['snapshots'],
        }

    def log_summary(self):
        """Log the run summary"""
        summary = self.get_summary()
        logger.info(
            f"[{self.run_id}] Run summary: {summary['states_visited']} states in "
            f"{summary['duration_seconds']:.0f}s, {summary['soft_timeouts']} soft timeout(s), "
            f"{len(summary['failures'])} failure(s)"
        )
        for failure in summary['failures']:
            logger.info(f"[{self.run_id}]   - {failure['component']}/{failure['type']}: {failure['reason']}")
