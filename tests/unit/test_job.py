"""
Tests for adbsync.core.job module.
"""


import pytest

from adbsync.core.errors import CommandCancelled
from adbsync.core.job import JobContext, JobProgress, JobStatus


class TestJobStatus:
    """Tests for JobStatus."""

    def test_terminal_states(self) -> None:
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert JobStatus.CANCELLED.is_terminal

    def test_non_terminal_states(self) -> None:
        assert not JobStatus.PENDING.is_terminal
        assert not JobStatus.RUNNING.is_terminal
        assert not JobStatus.PAUSED.is_terminal


class TestJobProgress:
    """Tests for JobProgress."""

    def test_default_values(self) -> None:
        progress = JobProgress()
        assert progress.processed == 0
        assert progress.total == 0
        assert progress.bytes_transferred == 0
        assert progress.eta_seconds is None
        assert progress.percentage == 0.0

    def test_percentage(self) -> None:
        progress = JobProgress(processed=25, total=100)
        assert progress.percentage == 25.0

    def test_percentage_capped(self) -> None:
        progress = JobProgress(processed=150, total=100)
        assert progress.percentage == 100.0


class TestJobContext:
    """Tests for JobContext."""

    def test_initial_state(self) -> None:
        context = JobContext()
        assert not context.is_cancelled
        assert not context.is_aborted
        assert not context.is_paused

    def test_cancel_does_not_abort(self) -> None:
        context = JobContext()
        context.cancel()

        assert context.is_cancelled
        assert not context.is_aborted
        assert not context.abort_event.is_set()
        context.check_cancelled()

    def test_abort_implies_cancel(self) -> None:
        context = JobContext()
        context.abort()

        assert context.is_cancelled
        assert context.is_aborted
        assert context.abort_event.is_set()

    def test_check_cancelled_raises_after_abort(self) -> None:
        context = JobContext()
        context.abort()

        with pytest.raises(CommandCancelled):
            context.check_cancelled()

    def test_pause_resume(self) -> None:
        context = JobContext()
        context.pause()
        assert context.is_paused

        context.resume()
        assert not context.is_paused

    def test_update_progress(self) -> None:
        context = JobContext()
        context.update_progress(total=10)
        snapshot = context.update_progress(processed=4, current_file="/a.jpg")

        assert snapshot.total == 10
        assert snapshot.processed == 4
        assert context.get_progress().current_file == "/a.jpg"

    def test_progress_callbacks(self) -> None:
        context = JobContext()
        seen: list[JobProgress] = []
        context.add_progress_callback(seen.append)

        context.update_progress(processed=1)
        context.update_progress(processed=2)

        assert [p.processed for p in seen] == [1, 2]

    def test_failing_callback_does_not_break_others(self) -> None:
        context = JobContext()
        seen: list[JobProgress] = []

        def broken(progress: JobProgress) -> None:
            raise RuntimeError("boom")

        context.add_progress_callback(broken)
        context.add_progress_callback(seen.append)

        context.update_progress(processed=1)
        assert len(seen) == 1
