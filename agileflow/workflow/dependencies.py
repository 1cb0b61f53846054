"""Depends-on graph over user stories.

Cycles are not prevented here: a story caught in one never satisfies
``are_dependencies_completed``. ``find_dependency_cycle`` exists so callers
that want strictness (or a diagnostic) can look for one.
"""
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..core.exceptions import ValidationError
from ..domain.records import StoryId, UserStory
from ..domain.status import WorkItemStatus


def unmet_dependencies(story: UserStory, dependencies: Iterable[UserStory]) -> List[UserStory]:
    """Dependencies of ``story`` that are not DONE.

    ``dependencies`` must be the loaded records for ``story.dependency_ids``;
    ids that failed to load count as unmet.
    """
    by_id: Dict[StoryId, UserStory] = {dep.id: dep for dep in dependencies}
    unmet: List[UserStory] = []
    for dep_id in story.dependency_ids:
        dep = by_id.get(dep_id)
        if dep is None:
            unmet.append(UserStory(id=dep_id, backlog_id=story.backlog_id, title=f"#{dep_id}"))
        elif dep.status is not WorkItemStatus.DONE:
            unmet.append(dep)
    return unmet


def are_dependencies_completed(story: UserStory, dependencies: Iterable[UserStory]) -> bool:
    return not unmet_dependencies(story, dependencies)


def can_be_started(story: UserStory, dependencies: Iterable[UserStory]) -> bool:
    return story.status is WorkItemStatus.TODO and are_dependencies_completed(story, dependencies)


def validate_new_dependency(story: UserStory, dependency: UserStory) -> None:
    if story.id is not None and story.id == dependency.id:
        raise ValidationError(
            f"Story '{story.title}' cannot depend on itself",
            {"story_id": story.id},
        )


def find_dependency_cycle(
    start_id: StoryId,
    graph: Mapping[StoryId, Sequence[StoryId]],
) -> Optional[List[StoryId]]:
    """Return a cycle reachable from ``start_id`` as a list of ids, or None.

    ``graph`` maps story id to the ids it depends on. The returned path starts
    and ends with the same id.
    """
    path: List[StoryId] = []
    on_path = set()
    visited = set()

    def visit(node: StoryId) -> Optional[List[StoryId]]:
        if node in on_path:
            return path[path.index(node):] + [node]
        if node in visited:
            return None
        visited.add(node)
        on_path.add(node)
        path.append(node)
        for nxt in graph.get(node, ()):
            cycle = visit(nxt)
            if cycle:
                return cycle
        path.pop()
        on_path.discard(node)
        return None

    return visit(start_id)
