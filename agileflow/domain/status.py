from enum import Enum


class WorkItemStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    TESTING = "testing"
    DONE = "done"
    BLOCKED = "blocked"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_final(self) -> bool:
        return self is WorkItemStatus.DONE


# States from which a task may be completed or resumed after a block
ACTIVE_STATUSES = frozenset({
    WorkItemStatus.IN_PROGRESS,
    WorkItemStatus.IN_REVIEW,
    WorkItemStatus.TESTING,
})


class SprintStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_finished(self) -> bool:
        return self in (SprintStatus.COMPLETED, SprintStatus.CANCELLED)

    def can_transition_to(self, new: "SprintStatus") -> bool:
        return new in SPRINT_TRANSITIONS[self]


SPRINT_TRANSITIONS = {
    SprintStatus.PLANNED: (SprintStatus.ACTIVE, SprintStatus.CANCELLED),
    SprintStatus.ACTIVE: (SprintStatus.COMPLETED, SprintStatus.CANCELLED),
    SprintStatus.COMPLETED: (),
    SprintStatus.CANCELLED: (),
}


class PrioritizationMethod(str, Enum):
    MOSCOW = "moscow"
    WSJF = "wsjf"
    VALUE_EFFORT = "value_effort"


class MoSCoWCategory(str, Enum):
    MUST_HAVE = "must_have"
    SHOULD_HAVE = "should_have"
    COULD_HAVE = "could_have"
    WONT_HAVE = "wont_have"
