"""Backlog prioritization strategies.

Each ``PrioritizationMethod`` maps to one scoring function. Higher scores are
more urgent; after sorting, stories receive priority numbers 1..N where 1 is
the most urgent.
"""
from typing import Callable, Dict, List, Sequence

from ..core.exceptions import ValidationError
from ..domain.records import UserStory
from ..domain.status import MoSCoWCategory, PrioritizationMethod

Score = float


def moscow_score(story: UserStory) -> Score:
    business_value = story.business_value or 0
    urgency = story.urgency or 0
    return business_value * 2 + urgency * 1.5 - len(story.dependency_ids) * 0.5


def wsjf_score(story: UserStory) -> Score:
    cost_of_delay = (
        (story.business_value or 0)
        + (story.time_criticality or 0)
        + (story.risk_reduction or 0)
    )
    return cost_of_delay / max(1, story.story_points)


def value_effort_score(story: UserStory) -> Score:
    # scaled by 100 to keep integer precision
    return (story.business_value or 0) * 100 // max(1, story.story_points)


SCORERS: Dict[PrioritizationMethod, Callable[[UserStory], Score]] = {
    PrioritizationMethod.MOSCOW: moscow_score,
    PrioritizationMethod.WSJF: wsjf_score,
    PrioritizationMethod.VALUE_EFFORT: value_effort_score,
}


def calculate_priority(story: UserStory, method: PrioritizationMethod) -> Score:
    try:
        scorer = SCORERS[PrioritizationMethod(method)]
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown prioritization method: {method}", {"method": str(method)})
    return scorer(story)


def moscow_category(story: UserStory) -> MoSCoWCategory:
    score = moscow_score(story)
    if score >= 15:
        return MoSCoWCategory.MUST_HAVE
    if score >= 10:
        return MoSCoWCategory.SHOULD_HAVE
    if score >= 5:
        return MoSCoWCategory.COULD_HAVE
    return MoSCoWCategory.WONT_HAVE


def prioritize_backlog(
    stories: Sequence[UserStory],
    method: PrioritizationMethod = PrioritizationMethod.MOSCOW,
) -> List[UserStory]:
    """Order stories by descending score; equal scores keep input order."""
    return sorted(stories, key=lambda story: calculate_priority(story, method), reverse=True)


def validate_for_prioritization(stories: Sequence[UserStory], action: str = "prioritize") -> None:
    """Fail on the first story that cannot be scored, before anything is written."""
    for story in stories:
        if not story.has_description():
            raise ValidationError(
                f"Cannot {action}: user story must have a description (story id: {story.id})",
                {"story_id": story.id},
            )
        if story.story_points <= 0:
            raise ValidationError(
                f"Cannot {action}: user story must have positive story points (story id: {story.id})",
                {"story_id": story.id},
            )


def assign_priorities(ordered: Sequence[UserStory]) -> None:
    for rank, story in enumerate(ordered, start=1):
        story.priority = rank


def apply_prioritization(
    stories: Sequence[UserStory],
    method: PrioritizationMethod = PrioritizationMethod.MOSCOW,
) -> List[UserStory]:
    """Validate, order and number a backlog snapshot in one all-or-nothing pass."""
    if not stories:
        return []
    validate_for_prioritization(stories)
    ordered = prioritize_backlog(stories, method)
    assign_priorities(ordered)
    return ordered
