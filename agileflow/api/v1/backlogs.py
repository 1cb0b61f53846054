from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from ...domain.records import Epic, ProductBacklog, UserStory
from ...domain.status import PrioritizationMethod
from ...services import Services
from ..deps import get_services

router = APIRouter()


class PrioritizeRequest(BaseModel):
    method: Optional[PrioritizationMethod] = None


class ReorderRequest(BaseModel):
    story_ids: List[int]


class EpicCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None


class BusinessValueResponse(BaseModel):
    backlog_id: int
    total_business_value: int


class EpicProgressResponse(BaseModel):
    epic_id: int
    progress_percentage: int


@router.get("/epics/{epic_id}", response_model=Epic)
async def get_epic(epic_id: int, services: Services = Depends(get_services)):
    return await services.projects.get_epic(epic_id)


@router.delete("/epics/{epic_id}", status_code=204)
async def delete_epic(epic_id: int, services: Services = Depends(get_services)):
    await services.projects.delete_epic(epic_id)
    return Response(status_code=204)


@router.get("/epics/{epic_id}/progress", response_model=EpicProgressResponse)
async def get_epic_progress(epic_id: int, services: Services = Depends(get_services)):
    return EpicProgressResponse(
        epic_id=epic_id,
        progress_percentage=await services.stories.get_epic_progress(epic_id),
    )


@router.get("/{backlog_id}", response_model=ProductBacklog)
async def get_backlog(backlog_id: int, services: Services = Depends(get_services)):
    return await services.backlogs.get_backlog(backlog_id)


@router.get("/{backlog_id}/stories", response_model=List[UserStory])
async def get_backlog_stories(
    backlog_id: int,
    unassigned: bool = False,
    services: Services = Depends(get_services),
):
    """All stories of the backlog; ``unassigned`` keeps those outside any sprint"""
    if unassigned:
        return await services.backlogs.get_unassigned_stories(backlog_id)
    return await services.backlogs.get_all_stories(backlog_id)


@router.post("/{backlog_id}/epics", response_model=Epic, status_code=201)
async def create_epic(
    backlog_id: int,
    request: EpicCreateRequest,
    services: Services = Depends(get_services),
):
    return await services.projects.create_epic(backlog_id, request.title, request.description)


@router.get("/{backlog_id}/epics", response_model=List[Epic])
async def get_backlog_epics(backlog_id: int, services: Services = Depends(get_services)):
    return await services.projects.get_backlog_epics(backlog_id)


@router.post("/{backlog_id}/prioritize", response_model=List[UserStory])
async def prioritize_backlog(
    backlog_id: int,
    request: PrioritizeRequest,
    services: Services = Depends(get_services),
):
    """Apply a prioritization method; stories come back in their new order"""
    return await services.backlogs.apply_prioritization(backlog_id, request.method)


@router.post("/{backlog_id}/reorder", response_model=List[UserStory])
async def reorder_stories(
    backlog_id: int,
    request: ReorderRequest,
    services: Services = Depends(get_services),
):
    return await services.backlogs.reorder_stories(backlog_id, request.story_ids)


@router.get("/{backlog_id}/top", response_model=List[UserStory])
async def get_top_priority_stories(
    backlog_id: int,
    limit: int = 10,
    services: Services = Depends(get_services),
):
    return await services.backlogs.get_top_priority_stories(backlog_id, limit)


@router.get("/{backlog_id}/ready", response_model=List[UserStory])
async def get_ready_stories(backlog_id: int, services: Services = Depends(get_services)):
    return await services.backlogs.get_ready_stories(backlog_id)


@router.get("/{backlog_id}/business-value", response_model=BusinessValueResponse)
async def get_business_value(backlog_id: int, services: Services = Depends(get_services)):
    return BusinessValueResponse(
        backlog_id=backlog_id,
        total_business_value=await services.backlogs.calculate_total_business_value(backlog_id),
    )
