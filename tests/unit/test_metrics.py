"""Unit tests for RunMetrics"""

from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from deckrelay.analytics.metrics import RunMetrics


class TestRunMetrics:
    """Test metric recording and the summary"""

    def test_summary(self, fake_clock):
        """Test that states, timeouts, failures and snapshots are counted"""
        metrics = RunMetrics(run_id="abc", clock=fake_clock)

        metrics.record_state("init", "success", 1.234)
        metrics.record_state("login_check", "timed_out", 9.0, "page state unclear")
        metrics.record_timeout("login_check", 9.0)
        metrics.record_failure("extraction", "openwebui", "no strategy produced text", {"state": "response_extract"})
        metrics.record_snapshot()
        metrics.record_snapshot()
        fake_clock.now = 42.0

        summary = metrics.get_summary()

        assert summary["run_id"] == "abc"
        assert summary["duration_seconds"] == 42.0
        assert summary["states_visited"] == 2
        assert summary["by_status"] == {"success": 1, "timed_out": 1}
        assert summary["soft_timeouts"] == 1
        assert summary["failures"][0]["component"] == "openwebui"
        assert summary["failures"][0]["context"] == {"state": "response_extract"}
        assert summary["snapshots"] == 2

    def test_states_visited_order(self, fake_clock):
        metrics = RunMetrics(clock=fake_clock)
        metrics.record_state("init", "success", 0)
        metrics.record_state("login_check", "success", 0)

        assert metrics.states_visited == ["init", "login_check"]

    def test_elapsed_rounded(self, fake_clock):
        metrics = RunMetrics(clock=fake_clock)
        metrics.record_state("render_wait", "success", 12.3456)

        assert metrics.metrics["states"][0]["elapsed"] == 12.35

    def test_log_summary_empty_run(self, fake_clock):
        """Test that logging an empty run does not raise"""
        RunMetrics(clock=fake_clock).log_summary()
