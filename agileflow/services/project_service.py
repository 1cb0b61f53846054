from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel

from ..core.exceptions import InvalidStateError, ValidationError
from ..core.store import Stores
from ..domain.records import (
    BacklogId,
    Epic,
    EpicId,
    ProductBacklog,
    Project,
    ProjectId,
    Task,
    User,
    UserId,
)
from ..domain.status import ACTIVE_STATUSES, PrioritizationMethod, WorkItemStatus
from ..utils.logging import get_logger


class UserStatistics(BaseModel):
    user_id: int
    username: str
    todo_tasks: int
    in_progress_tasks: int
    done_tasks: int
    total_tasks: int
    completion_rate: float


class UserWorkload(BaseModel):
    user_id: int
    username: str
    active_tasks: int


def count_open_tasks(tasks: List[Task]) -> int:
    """Tasks still on the user's plate: todo or in an active status."""
    return sum(1 for task in tasks if task.status is not WorkItemStatus.DONE)


class ProjectService:
    """Projects with their product backlog, epics and users."""

    def __init__(
        self,
        stores: Stores,
        default_prioritization_method: PrioritizationMethod = PrioritizationMethod.MOSCOW,
    ) -> None:
        self.stores = stores
        self.default_prioritization_method = default_prioritization_method
        self._logger = get_logger(__name__)

    async def create_project(
        self,
        name: str,
        description: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Project:
        """Create a project together with its product backlog."""
        if not name or not name.strip():
            raise ValidationError("Project name must not be empty")
        name = name.strip()
        if await self.stores.projects.count_by(name=name):
            raise ValidationError(f"A project named '{name}' already exists", {"name": name})
        if start_date and end_date and end_date < start_date:
            raise ValidationError(
                "Project end date must not be before its start date",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        project = Project(name=name, description=description, start_date=start_date, end_date=end_date)
        await self.stores.projects.save(project)
        backlog = ProductBacklog(
            project_id=project.id,
            name=f"{name} Backlog",
            prioritization_method=self.default_prioritization_method,
        )
        await self.stores.backlogs.save(backlog)
        self._logger.info("Created project %d with backlog %d", project.id, backlog.id)
        return project

    async def get_project(self, project_id: ProjectId) -> Project:
        return await self.stores.projects.get(project_id)

    async def list_projects(self) -> List[Project]:
        return await self.stores.projects.find_by()

    async def get_project_backlog(self, project_id: ProjectId) -> ProductBacklog:
        project = await self.stores.projects.get(project_id)
        backlogs = await self.stores.backlogs.find_by(project_id=project.id)
        if not backlogs:
            # Projects saved straight into a store may lack one
            backlog = ProductBacklog(project_id=project.id, name=f"{project.name} Backlog")
            await self.stores.backlogs.save(backlog)
            return backlog
        return backlogs[0]

    # Epics

    async def create_epic(
        self,
        backlog_id: BacklogId,
        title: str,
        description: Optional[str] = None,
    ) -> Epic:
        if not title or not title.strip():
            raise ValidationError("Epic title must not be empty", {"backlog_id": backlog_id})
        backlog = await self.stores.backlogs.get(backlog_id)
        epic = Epic(backlog_id=backlog.id, title=title.strip(), description=description)
        await self.stores.epics.save(epic)
        self._logger.info("Created epic %d in backlog %d", epic.id, backlog.id)
        return epic

    async def get_epic(self, epic_id: EpicId) -> Epic:
        return await self.stores.epics.get(epic_id)

    async def get_backlog_epics(self, backlog_id: BacklogId) -> List[Epic]:
        await self.stores.backlogs.get(backlog_id)
        return await self.stores.epics.find_by(backlog_id=backlog_id)

    async def delete_epic(self, epic_id: EpicId) -> None:
        """Delete the epic; its stories stay in the backlog without an epic."""
        epic = await self.stores.epics.get(epic_id)
        for story in await self.stores.stories.find_by(epic_id=epic.id):
            story.epic_id = None
            await self.stores.stories.save(story)
        await self.stores.epics.delete(epic)
        self._logger.info("Deleted epic %d", epic.id)

    # Users

    async def create_user(self, username: str, email: Optional[str] = None) -> User:
        if not username or not username.strip():
            raise ValidationError("Username must not be empty")
        username = username.strip()
        if await self.stores.users.count_by(username=username):
            raise ValidationError(f"Username '{username}' is already taken", {"username": username})
        user = User(username=username, email=email)
        await self.stores.users.save(user)
        self._logger.info("Created user %d (%s)", user.id, user.username)
        return user

    async def get_user(self, user_id: UserId) -> User:
        return await self.stores.users.get(user_id)

    async def list_users(self) -> List[User]:
        return await self.stores.users.find_by()

    async def deactivate_user(self, user_id: UserId) -> User:
        """Refused while the user still has tasks in progress."""
        user = await self.stores.users.get(user_id)
        in_progress = await self.stores.tasks.find_by(
            assignee_id=user.id, status=WorkItemStatus.IN_PROGRESS
        )
        if in_progress:
            raise InvalidStateError(
                f"User '{user.username}' has tasks in progress and cannot be deactivated",
                {"user_id": user.id, "tasks_in_progress": [task.id for task in in_progress]},
            )
        user.is_active = False
        await self.stores.users.save(user)
        self._logger.info("Deactivated user %d", user.id)
        return user

    # Workload

    async def count_user_active_tasks(self, user_id: UserId) -> int:
        user = await self.stores.users.get(user_id)
        return count_open_tasks(await self.stores.tasks.find_by(assignee_id=user.id))

    async def get_user_statistics(self, user_id: UserId) -> UserStatistics:
        user = await self.stores.users.get(user_id)
        tasks = await self.stores.tasks.find_by(assignee_id=user.id)
        todo = sum(1 for task in tasks if task.status is WorkItemStatus.TODO)
        in_progress = sum(1 for task in tasks if task.status in ACTIVE_STATUSES)
        done = sum(1 for task in tasks if task.status is WorkItemStatus.DONE)
        return UserStatistics(
            user_id=user.id,
            username=user.username,
            todo_tasks=todo,
            in_progress_tasks=in_progress,
            done_tasks=done,
            total_tasks=len(tasks),
            completion_rate=done * 100.0 / len(tasks) if tasks else 0.0,
        )

    async def is_user_available(self, user_id: UserId, max_active_tasks: int = 3) -> bool:
        user = await self.stores.users.get(user_id)
        if not user.is_active:
            return False
        return await self.count_user_active_tasks(user.id) < max_active_tasks

    async def get_available_users(self, max_active_tasks: int = 3) -> List[User]:
        """Active users with fewer than ``max_active_tasks`` open tasks."""
        available = []
        for user in await self.stores.users.find_by(is_active=True):
            if count_open_tasks(await self.stores.tasks.find_by(assignee_id=user.id)) < max_active_tasks:
                available.append(user)
        return available

    async def get_most_loaded_users(self, limit: int = 5) -> List[UserWorkload]:
        workloads = [
            UserWorkload(
                user_id=user.id,
                username=user.username,
                active_tasks=count_open_tasks(await self.stores.tasks.find_by(assignee_id=user.id)),
            )
            for user in await self.stores.users.find_by()
        ]
        workloads.sort(key=lambda workload: workload.active_tasks, reverse=True)
        return workloads[:limit]
