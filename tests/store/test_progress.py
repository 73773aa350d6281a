"""
Tests for refresh progress tracking.
"""
from __future__ import annotations

from containerhub.store.progress import Progress, ProgressTracker, Stage


class TestProgress:

    def test_percent(self):
        assert Progress(Stage.TAGS, 5, 20).percent == 25.0
        assert Progress(Stage.IDLE).percent == 0.0
        assert Progress(Stage.DONE).percent == 100.0

    def test_running(self):
        assert Progress(Stage.MANIFESTS, 1, 2).running
        assert not Progress(Stage.DONE, 2, 2).running
        assert not Progress(Stage.FAILED).running


class TestProgressTracker:

    def test_monotonic_until_finish(self):
        tracker = ProgressTracker()
        seen = []
        tracker.subscribe(seen.append)

        tracker.start(Stage.SOURCES)
        tracker.stage(Stage.TAGS, total=4)
        tracker.advance(2)
        tracker.stage(Stage.MANIFESTS)
        tracker.advance(1)
        tracker.advance(5)
        tracker.finish()

        percents = [progress.percent for progress in seen]
        assert percents == sorted(percents)
        assert seen[-2].completed == 4  # capped at total
        assert seen[-1] == Progress(Stage.DONE, 4, 4)

    def test_total_never_shrinks(self):
        tracker = ProgressTracker()
        tracker.start(Stage.TAGS, total=10)
        tracker.stage(Stage.MANIFESTS, total=3)
        assert tracker.current.total == 10

    def test_fail_keeps_counts(self):
        tracker = ProgressTracker()
        tracker.start(Stage.TAGS, total=10)
        tracker.advance(3)
        tracker.fail()
        assert tracker.current == Progress(Stage.FAILED, 3, 10)
