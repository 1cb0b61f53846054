from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from ...domain.records import Task
from ...domain.status import WorkItemStatus
from ...services import Services
from ..deps import get_services

router = APIRouter()


class TaskCreateRequest(BaseModel):
    story_id: int
    title: str
    description: Optional[str] = None
    estimated_hours: float = 0.0


class AssignRequest(BaseModel):
    user_id: int


class HoursRequest(BaseModel):
    hours: float


class BlockRequest(BaseModel):
    reason: str
    blocked_by: Optional[int] = None


class ReasonRequest(BaseModel):
    reason: str


class StatusUpdateRequest(BaseModel):
    status: WorkItemStatus
    reason: Optional[str] = None


@router.post("", response_model=Task, status_code=201)
async def create_task(request: TaskCreateRequest, services: Services = Depends(get_services)):
    """Create a task; it joins its story's sprint"""
    return await services.tasks.create_task(
        story_id=request.story_id,
        title=request.title,
        description=request.description,
        estimated_hours=request.estimated_hours,
    )


@router.get("/{task_id}", response_model=Task)
async def get_task(task_id: int, services: Services = Depends(get_services)):
    return await services.tasks.get_task(task_id)


@router.delete("/{task_id}", status_code=204)
async def delete_task(task_id: int, services: Services = Depends(get_services)):
    await services.tasks.delete_task(task_id)
    return Response(status_code=204)


@router.post("/{task_id}/assign", response_model=Task)
async def assign_task(task_id: int, request: AssignRequest, services: Services = Depends(get_services)):
    return await services.tasks.assign_task(task_id, request.user_id)


@router.post("/{task_id}/reassign", response_model=Task)
async def reassign_task(task_id: int, request: AssignRequest, services: Services = Depends(get_services)):
    return await services.tasks.reassign_task(task_id, request.user_id)


@router.post("/{task_id}/unassign", response_model=Task)
async def unassign_task(task_id: int, services: Services = Depends(get_services)):
    return await services.tasks.unassign_task(task_id)


@router.post("/{task_id}/start", response_model=Task)
async def start_task(task_id: int, services: Services = Depends(get_services)):
    return await services.tasks.start_task(task_id)


@router.post("/{task_id}/hours", response_model=Task)
async def log_hours(task_id: int, request: HoursRequest, services: Services = Depends(get_services)):
    return await services.tasks.log_hours(task_id, request.hours)


@router.post("/{task_id}/estimate", response_model=Task)
async def update_estimated_hours(
    task_id: int,
    request: HoursRequest,
    services: Services = Depends(get_services),
):
    return await services.tasks.update_estimated_hours(task_id, request.hours)


@router.post("/{task_id}/review", response_model=Task)
async def move_to_review(task_id: int, services: Services = Depends(get_services)):
    return await services.tasks.move_to_review(task_id)


@router.post("/{task_id}/testing", response_model=Task)
async def move_to_testing(task_id: int, services: Services = Depends(get_services)):
    return await services.tasks.move_to_testing(task_id)


@router.post("/{task_id}/complete", response_model=Task)
async def complete_task(task_id: int, services: Services = Depends(get_services)):
    return await services.tasks.complete_task(task_id)


@router.post("/{task_id}/block", response_model=Task)
async def block_task(task_id: int, request: BlockRequest, services: Services = Depends(get_services)):
    return await services.tasks.block_task(task_id, request.reason, request.blocked_by)


@router.post("/{task_id}/unblock", response_model=Task)
async def unblock_task(task_id: int, services: Services = Depends(get_services)):
    return await services.tasks.unblock_task(task_id)


@router.post("/{task_id}/backward", response_model=Task)
async def move_backward(task_id: int, request: ReasonRequest, services: Services = Depends(get_services)):
    return await services.tasks.move_backward(task_id, request.reason)


@router.post("/{task_id}/status", response_model=Task)
async def update_task_status(
    task_id: int,
    request: StatusUpdateRequest,
    services: Services = Depends(get_services),
):
    """Administrative status change; skips the workflow gates"""
    return await services.tasks.update_status(task_id, request.status, request.reason)
