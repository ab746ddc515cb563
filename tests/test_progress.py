"""Tests for phone_pilot.core.progress."""

from __future__ import annotations

from phone_pilot.core.progress import (
    ProgressPublisher,
    ProgressSnapshot,
    format_step_detail,
)
from phone_pilot.models.actions import Point, Tap
from phone_pilot.models.task import StepResult, TaskRunState


class TestProgressPublisher:
    """Tests for publish / subscribe / snapshot."""

    def test_initial_snapshot(self) -> None:
        assert ProgressPublisher().snapshot() == ProgressSnapshot()

    def test_publish_updates_only_named_fields(self) -> None:
        publisher = ProgressPublisher()
        publisher.publish(current_step=3)
        publisher.publish(step_detail="x")
        snapshot = publisher.snapshot()
        assert snapshot.current_step == 3
        assert snapshot.step_detail == "x"
        assert snapshot.state is TaskRunState.IDLE

    def test_subscriber_notified(self) -> None:
        publisher = ProgressPublisher()
        seen: list[ProgressSnapshot] = []
        publisher.subscribe(seen.append)
        publisher.publish(current_step=1)
        publisher.publish(current_step=2)
        assert [s.current_step for s in seen] == [1, 2]

    def test_unsubscribe(self) -> None:
        publisher = ProgressPublisher()
        seen: list[ProgressSnapshot] = []
        unsubscribe = publisher.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        publisher.publish(current_step=1)
        assert seen == []

    def test_failing_subscriber_isolated(self) -> None:
        """A raising subscriber does not stop others or the publisher."""
        publisher = ProgressPublisher()
        seen: list[int] = []

        def broken(_: ProgressSnapshot) -> None:
            raise ValueError("observer bug")

        publisher.subscribe(broken)
        publisher.subscribe(lambda s: seen.append(s.current_step))
        publisher.publish(current_step=4)
        assert seen == [4]


class TestFormatStepDetail:
    """Tests for format_step_detail."""

    def test_success(self) -> None:
        result = StepResult(
            success=True, finished=False, action=Tap(point=Point(1, 2)), thinking="",
        )
        assert format_step_detail(3, result) == "Step 3: Tap at [1, 2] (ok)"

    def test_failure_includes_message(self) -> None:
        result = StepResult(
            success=False,
            finished=False,
            action=None,
            thinking="",
            message="Failed to parse action",
        )
        detail = format_step_detail(1, result)
        assert detail == "Step 1: No action (failed) - Failed to parse action"
