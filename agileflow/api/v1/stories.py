from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from ...domain.records import SprintBacklog, Task, UserStory
from ...domain.status import MoSCoWCategory, WorkItemStatus
from ...services import Services
from ...workflow.task_flow import StoryTaskMetrics
from ..deps import get_services

router = APIRouter()


class StoryCreateRequest(BaseModel):
    backlog_id: int
    title: str
    description: Optional[str] = None
    story_points: int = 0
    epic_id: Optional[int] = None
    acceptance_criteria: List[str] = Field(default_factory=list)
    business_value: Optional[int] = None
    urgency: Optional[int] = None
    time_criticality: Optional[int] = None
    risk_reduction: Optional[int] = None


class StoryUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    acceptance_criteria: Optional[List[str]] = None
    story_points: Optional[int] = None
    priority: Optional[int] = None
    business_value: Optional[int] = None
    urgency: Optional[int] = None
    time_criticality: Optional[int] = None
    risk_reduction: Optional[int] = None


class StatusUpdateRequest(BaseModel):
    status: WorkItemStatus
    reason: Optional[str] = None


class StoryProgressResponse(BaseModel):
    story_id: int
    progress_percentage: float
    all_tasks_completed: bool
    ready_for_sprint: bool


class MoSCoWResponse(BaseModel):
    story_id: int
    category: MoSCoWCategory


@router.post("", response_model=UserStory, status_code=201)
async def create_story(request: StoryCreateRequest, services: Services = Depends(get_services)):
    scores = request.model_dump(
        exclude={"backlog_id", "title", "description", "story_points", "epic_id"},
        exclude_none=True,
    )
    return await services.stories.create_story(
        backlog_id=request.backlog_id,
        title=request.title,
        description=request.description,
        story_points=request.story_points,
        epic_id=request.epic_id,
        **scores,
    )


@router.get("/{story_id}", response_model=UserStory)
async def get_story(story_id: int, services: Services = Depends(get_services)):
    return await services.stories.get_story(story_id)


@router.patch("/{story_id}", response_model=UserStory)
async def update_story(
    story_id: int,
    request: StoryUpdateRequest,
    services: Services = Depends(get_services),
):
    return await services.stories.update_story(story_id, **request.model_dump(exclude_unset=True))


@router.delete("/{story_id}", status_code=204)
async def delete_story(story_id: int, services: Services = Depends(get_services)):
    await services.stories.delete_story(story_id)
    return Response(status_code=204)


@router.post("/{story_id}/dependencies/{dependency_id}", response_model=UserStory)
async def add_dependency(story_id: int, dependency_id: int, services: Services = Depends(get_services)):
    return await services.stories.add_dependency(story_id, dependency_id)


@router.delete("/{story_id}/dependencies/{dependency_id}", response_model=UserStory)
async def remove_dependency(story_id: int, dependency_id: int, services: Services = Depends(get_services)):
    return await services.stories.remove_dependency(story_id, dependency_id)


@router.get("/{story_id}/dependencies", response_model=List[UserStory])
async def get_dependencies(story_id: int, services: Services = Depends(get_services)):
    return await services.stories.get_dependencies(story_id)


@router.post("/{story_id}/start", response_model=UserStory)
async def start_story(story_id: int, services: Services = Depends(get_services)):
    return await services.stories.start_story(story_id)


@router.post("/{story_id}/complete", response_model=UserStory)
async def complete_story(story_id: int, services: Services = Depends(get_services)):
    """Complete a story that has no unfinished tasks"""
    return await services.stories.complete_story(story_id)


@router.post("/{story_id}/status", response_model=UserStory)
async def update_story_status(
    story_id: int,
    request: StatusUpdateRequest,
    services: Services = Depends(get_services),
):
    return await services.stories.update_status(story_id, request.status, request.reason)


@router.get("/{story_id}/progress", response_model=StoryProgressResponse)
async def get_story_progress(story_id: int, services: Services = Depends(get_services)):
    return StoryProgressResponse(
        story_id=story_id,
        progress_percentage=await services.stories.get_story_progress(story_id),
        all_tasks_completed=await services.stories.are_all_tasks_completed(story_id),
        ready_for_sprint=await services.stories.is_ready_for_sprint(story_id),
    )


@router.get("/{story_id}/tasks", response_model=List[Task])
async def get_story_tasks(story_id: int, services: Services = Depends(get_services)):
    return await services.tasks.get_story_tasks(story_id)


@router.get("/{story_id}/task-metrics", response_model=StoryTaskMetrics)
async def get_story_task_metrics(story_id: int, services: Services = Depends(get_services)):
    return await services.tasks.get_story_task_metrics(story_id)


@router.get("/{story_id}/moscow", response_model=MoSCoWResponse)
async def get_moscow_category(story_id: int, services: Services = Depends(get_services)):
    return MoSCoWResponse(
        story_id=story_id,
        category=await services.backlogs.get_moscow_category(story_id),
    )


@router.post("/{story_id}/epic/{epic_id}", response_model=UserStory)
async def assign_to_epic(story_id: int, epic_id: int, services: Services = Depends(get_services)):
    return await services.stories.assign_to_epic(story_id, epic_id)


@router.delete("/{story_id}/epic/{epic_id}", response_model=UserStory)
async def remove_from_epic(story_id: int, epic_id: int, services: Services = Depends(get_services)):
    return await services.stories.remove_from_epic(story_id, epic_id)


@router.post("/{story_id}/sprint/{sprint_id}", response_model=SprintBacklog)
async def move_story_to_sprint(story_id: int, sprint_id: int, services: Services = Depends(get_services)):
    """Move a backlog story into a sprint after checking it is sprint-worthy"""
    return await services.backlogs.move_story_to_sprint(story_id, sprint_id)
