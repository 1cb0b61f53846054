from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from ...domain.records import SprintBacklog, Task, UserStory
from ...services import Services
from ...workflow.sprint_flow import SprintBurndown, SprintHealthReport, SprintMetrics
from ..deps import get_services

router = APIRouter()


class SprintCreateRequest(BaseModel):
    project_id: int
    start_date: date
    end_date: date
    sprint_number: Optional[int] = None
    name: Optional[str] = None
    goal: Optional[str] = None
    capacity: Optional[int] = None


class SprintUpdateRequest(BaseModel):
    name: Optional[str] = None
    goal: Optional[str] = None
    capacity: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SprintCloneRequest(BaseModel):
    start_date: date
    end_date: date
    name: Optional[str] = None


class MoveStoryRequest(BaseModel):
    story_id: int
    from_sprint_id: int
    to_sprint_id: int


class StartCheckResponse(BaseModel):
    sprint_id: int
    can_start: bool
    errors: List[str]
    offending_story_ids: List[int]


class VelocityResponse(BaseModel):
    sprint_id: int
    velocity: int


@router.post("", response_model=SprintBacklog, status_code=201)
async def create_sprint(request: SprintCreateRequest, services: Services = Depends(get_services)):
    """Create a planned sprint"""
    return await services.sprints.create_sprint(**request.model_dump())


@router.post("/move-story", response_model=SprintBacklog)
async def move_story_between_sprints(
    request: MoveStoryRequest,
    services: Services = Depends(get_services),
):
    return await services.sprints.move_story_between_sprints(
        request.story_id, request.from_sprint_id, request.to_sprint_id
    )


@router.get("/{sprint_id}", response_model=SprintBacklog)
async def get_sprint(sprint_id: int, services: Services = Depends(get_services)):
    """Get sprint details"""
    return await services.sprints.get_sprint(sprint_id)


@router.patch("/{sprint_id}", response_model=SprintBacklog)
async def update_sprint(
    sprint_id: int,
    request: SprintUpdateRequest,
    services: Services = Depends(get_services),
):
    return await services.sprints.update_sprint(sprint_id, **request.model_dump())


@router.delete("/{sprint_id}", status_code=204)
async def delete_sprint(sprint_id: int, services: Services = Depends(get_services)):
    await services.sprints.delete_sprint(sprint_id)
    return Response(status_code=204)


@router.get("/{sprint_id}/start-check", response_model=StartCheckResponse)
async def validate_sprint_can_start(sprint_id: int, services: Services = Depends(get_services)):
    check = await services.sprints.validate_sprint_can_start(sprint_id)
    return StartCheckResponse(
        sprint_id=sprint_id,
        can_start=check.is_valid,
        errors=check.errors,
        offending_story_ids=check.offending_story_ids,
    )


@router.post("/{sprint_id}/start", response_model=SprintBacklog)
async def start_sprint(sprint_id: int, services: Services = Depends(get_services)):
    return await services.sprints.start_sprint(sprint_id)


@router.post("/{sprint_id}/complete", response_model=SprintBacklog)
async def complete_sprint(sprint_id: int, services: Services = Depends(get_services)):
    """Complete the sprint; unfinished stories return to the backlog"""
    return await services.sprints.complete_sprint(sprint_id)


@router.post("/{sprint_id}/cancel", response_model=SprintBacklog)
async def cancel_sprint(sprint_id: int, services: Services = Depends(get_services)):
    return await services.sprints.cancel_sprint(sprint_id)


@router.post("/{sprint_id}/clone", response_model=SprintBacklog, status_code=201)
async def clone_sprint(
    sprint_id: int,
    request: SprintCloneRequest,
    services: Services = Depends(get_services),
):
    return await services.sprints.clone_sprint(
        sprint_id, request.start_date, request.end_date, request.name
    )


@router.post("/{sprint_id}/stories/{story_id}", response_model=SprintBacklog)
async def add_user_story(sprint_id: int, story_id: int, services: Services = Depends(get_services)):
    return await services.sprints.add_user_story(sprint_id, story_id)


@router.delete("/{sprint_id}/stories/{story_id}", response_model=SprintBacklog)
async def remove_user_story(sprint_id: int, story_id: int, services: Services = Depends(get_services)):
    return await services.sprints.remove_user_story(sprint_id, story_id)


@router.get("/{sprint_id}/stories", response_model=List[UserStory])
async def get_sprint_stories(sprint_id: int, services: Services = Depends(get_services)):
    return await services.sprints.get_sprint_stories(sprint_id)


@router.get("/{sprint_id}/tasks", response_model=List[Task])
async def get_sprint_tasks(
    sprint_id: int,
    unassigned: bool = False,
    over_estimate: bool = False,
    services: Services = Depends(get_services),
):
    if unassigned:
        return await services.tasks.get_unassigned_tasks(sprint_id)
    if over_estimate:
        return await services.tasks.get_over_estimated_tasks(sprint_id)
    return await services.tasks.get_sprint_tasks(sprint_id)


@router.get("/{sprint_id}/velocity", response_model=VelocityResponse)
async def get_velocity(sprint_id: int, services: Services = Depends(get_services)):
    return VelocityResponse(sprint_id=sprint_id, velocity=await services.sprints.get_velocity(sprint_id))


@router.get("/{sprint_id}/metrics", response_model=SprintMetrics)
async def get_sprint_metrics(sprint_id: int, services: Services = Depends(get_services)):
    return await services.sprints.get_metrics(sprint_id)


@router.get("/{sprint_id}/burndown", response_model=SprintBurndown)
async def get_sprint_burndown(sprint_id: int, services: Services = Depends(get_services)):
    """Get burndown chart data for sprint"""
    return await services.sprints.get_burndown(sprint_id)


@router.get("/{sprint_id}/health", response_model=SprintHealthReport)
async def get_sprint_health(sprint_id: int, services: Services = Depends(get_services)):
    return await services.sprints.get_health_report(sprint_id)
