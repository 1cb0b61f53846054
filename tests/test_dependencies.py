import pytest

from agileflow.core.exceptions import ValidationError
from agileflow.domain.records import UserStory
from agileflow.domain.status import WorkItemStatus
from agileflow.workflow.dependencies import (
    are_dependencies_completed,
    can_be_started,
    find_dependency_cycle,
    unmet_dependencies,
    validate_new_dependency,
)


def story(story_id, status=WorkItemStatus.TODO, depends_on=()):
    return UserStory(
        id=story_id,
        backlog_id=1,
        title=f"Story {story_id}",
        status=status,
        dependency_ids=list(depends_on),
    )


def test_no_dependencies_is_vacuously_complete():
    assert are_dependencies_completed(story(1), [])
    assert can_be_started(story(1), [])


def test_unfinished_dependency_is_reported():
    blocker = story(2, WorkItemStatus.IN_PROGRESS)
    dependent = story(1, depends_on=[2, 3])
    done = story(3, WorkItemStatus.DONE)

    assert unmet_dependencies(dependent, [blocker, done]) == [blocker]
    assert not are_dependencies_completed(dependent, [blocker, done])
    assert not can_be_started(dependent, [blocker, done])


def test_missing_dependency_counts_as_unmet():
    dependent = story(1, depends_on=[42])
    unmet = unmet_dependencies(dependent, [])
    assert [dep.id for dep in unmet] == [42]


def test_can_be_started_requires_todo():
    dependent = story(1, WorkItemStatus.IN_PROGRESS, depends_on=[2])
    assert are_dependencies_completed(dependent, [story(2, WorkItemStatus.DONE)])
    assert not can_be_started(dependent, [story(2, WorkItemStatus.DONE)])


def test_self_dependency_rejected():
    with pytest.raises(ValidationError):
        validate_new_dependency(story(1), story(1))
    validate_new_dependency(story(1), story(2))


class TestFindDependencyCycle:
    def test_cycle_path_is_returned(self):
        graph = {1: [2], 2: [3], 3: [1]}
        assert find_dependency_cycle(1, graph) == [1, 2, 3, 1]

    def test_cycle_further_down_the_graph(self):
        graph = {1: [2], 2: [3], 3: [2]}
        assert find_dependency_cycle(1, graph) == [2, 3, 2]

    def test_diamond_is_not_a_cycle(self):
        graph = {1: [2, 3], 2: [4], 3: [4], 4: []}
        assert find_dependency_cycle(1, graph) is None

    def test_unknown_nodes_are_leaves(self):
        assert find_dependency_cycle(1, {1: [7]}) is None
