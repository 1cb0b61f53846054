from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...domain.records import ProductBacklog, Project, SprintBacklog
from ...services import Services
from ..deps import get_services

router = APIRouter()


class ProjectCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class VelocityResponse(BaseModel):
    project_id: int
    average_velocity: float
    sprints_considered: int


@router.post("", response_model=Project, status_code=201)
async def create_project(
    request: ProjectCreateRequest,
    services: Services = Depends(get_services),
):
    """Create a project and its product backlog"""
    return await services.projects.create_project(
        name=request.name,
        description=request.description,
        start_date=request.start_date,
        end_date=request.end_date,
    )


@router.get("", response_model=List[Project])
async def list_projects(services: Services = Depends(get_services)):
    return await services.projects.list_projects()


@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: int, services: Services = Depends(get_services)):
    return await services.projects.get_project(project_id)


@router.get("/{project_id}/backlog", response_model=ProductBacklog)
async def get_project_backlog(project_id: int, services: Services = Depends(get_services)):
    return await services.projects.get_project_backlog(project_id)


@router.get("/{project_id}/sprints", response_model=List[SprintBacklog])
async def get_project_sprints(project_id: int, services: Services = Depends(get_services)):
    return await services.sprints.get_project_sprints(project_id)


@router.get("/{project_id}/active-sprint", response_model=Optional[SprintBacklog])
async def get_active_sprint(project_id: int, services: Services = Depends(get_services)):
    """The project's active sprint, or null when none is running"""
    await services.projects.get_project(project_id)
    return await services.sprints.get_active_sprint(project_id)


@router.get("/{project_id}/velocity", response_model=VelocityResponse)
async def get_average_velocity(
    project_id: int,
    last: int = 3,
    services: Services = Depends(get_services),
):
    await services.projects.get_project(project_id)
    return VelocityResponse(
        project_id=project_id,
        average_velocity=await services.sprints.get_average_velocity(project_id, last=last),
        sprints_considered=last,
    )
