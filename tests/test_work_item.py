import logging
from datetime import datetime, timedelta, timezone

import pytest

from agileflow.core.clock import FixedClock
from agileflow.core.exceptions import InvalidStateError
from agileflow.domain.records import Task, UserStory
from agileflow.domain.status import WorkItemStatus
from agileflow.workflow import work_item


@pytest.fixture
def clock():
    return FixedClock()


def story(status=WorkItemStatus.TODO):
    return UserStory(id=1, backlog_id=1, title="Login", status=status)


class TestStart:
    def test_start_moves_todo_to_in_progress(self, clock):
        item = story()
        assert work_item.start(item, clock) is True
        assert item.status is WorkItemStatus.IN_PROGRESS
        assert item.updated_at == clock.now()

    @pytest.mark.parametrize(
        "status",
        [WorkItemStatus.IN_PROGRESS, WorkItemStatus.IN_REVIEW, WorkItemStatus.DONE, WorkItemStatus.BLOCKED],
    )
    def test_start_is_a_no_op_outside_todo(self, clock, status):
        item = story(status)
        assert work_item.start(item, clock) is False
        assert item.status is status
        assert item.updated_at is None


class TestComplete:
    @pytest.mark.parametrize(
        "status",
        [WorkItemStatus.IN_PROGRESS, WorkItemStatus.IN_REVIEW, WorkItemStatus.TESTING],
    )
    def test_complete_from_active_states(self, clock, status):
        item = Task(id=1, story_id=1, title="Write tests", status=status)
        work_item.complete(item, clock)
        assert item.status is WorkItemStatus.DONE

    @pytest.mark.parametrize("status", [WorkItemStatus.TODO, WorkItemStatus.DONE, WorkItemStatus.BLOCKED])
    def test_complete_rejected_elsewhere(self, clock, status):
        item = story(status)
        with pytest.raises(InvalidStateError) as excinfo:
            work_item.complete(item, clock)
        assert excinfo.value.details["current_status"] == status.value
        assert item.status is status


class TestUpdateStatus:
    def test_can_move_backwards_and_logs_reason(self, clock, caplog):
        item = story(WorkItemStatus.DONE)
        with caplog.at_level(logging.INFO, logger="agileflow.workflow.work_item"):
            work_item.update_status(item, WorkItemStatus.IN_PROGRESS, clock, reason="review rejected")
        assert item.status is WorkItemStatus.IN_PROGRESS
        assert "review rejected" in caplog.text

    def test_updated_at_never_moves_backwards(self, clock):
        item = story()
        later = clock.now() + timedelta(days=1)
        item.updated_at = later
        work_item.update_status(item, WorkItemStatus.IN_PROGRESS, clock)
        assert item.updated_at == later


def test_can_transition_follows_forward_edges():
    assert work_item.can_transition(WorkItemStatus.TODO, WorkItemStatus.IN_PROGRESS)
    assert work_item.can_transition(WorkItemStatus.IN_REVIEW, WorkItemStatus.TESTING)
    assert work_item.can_transition(WorkItemStatus.TESTING, WorkItemStatus.BLOCKED)
    assert not work_item.can_transition(WorkItemStatus.TODO, WorkItemStatus.DONE)
    assert not work_item.can_transition(WorkItemStatus.TESTING, WorkItemStatus.IN_REVIEW)
    assert not work_item.can_transition(WorkItemStatus.DONE, WorkItemStatus.BLOCKED)


def test_progress_by_status():
    assert work_item.progress(story(WorkItemStatus.TODO)) == 0
    assert work_item.progress(story(WorkItemStatus.TESTING)) == 50
    assert work_item.progress(story(WorkItemStatus.DONE)) == 100


def test_fixed_clock_treats_naive_datetimes_as_utc():
    clock = FixedClock(datetime(2024, 3, 1, 12, 0))
    assert clock.now().tzinfo is timezone.utc
    clock.advance(days=2)
    assert clock.today().day == 3
