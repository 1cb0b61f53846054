from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...domain.records import Task, User
from ...domain.status import WorkItemStatus
from ...services import Services
from ...services.project_service import UserStatistics, UserWorkload
from ..deps import get_services

router = APIRouter()


class UserCreateRequest(BaseModel):
    username: str
    email: Optional[str] = None


class AvailabilityResponse(BaseModel):
    user_id: int
    available: bool
    active_tasks: int


@router.post("", response_model=User, status_code=201)
async def create_user(request: UserCreateRequest, services: Services = Depends(get_services)):
    return await services.projects.create_user(request.username, request.email)


@router.get("", response_model=List[User])
async def list_users(services: Services = Depends(get_services)):
    return await services.projects.list_users()


@router.get("/available", response_model=List[User])
async def get_available_users(max_active_tasks: int = 3, services: Services = Depends(get_services)):
    """Active users with spare room for more tasks"""
    return await services.projects.get_available_users(max_active_tasks)


@router.get("/workload", response_model=List[UserWorkload])
async def get_most_loaded_users(limit: int = 5, services: Services = Depends(get_services)):
    return await services.projects.get_most_loaded_users(limit)


@router.get("/{user_id}", response_model=User)
async def get_user(user_id: int, services: Services = Depends(get_services)):
    return await services.projects.get_user(user_id)


@router.post("/{user_id}/deactivate", response_model=User)
async def deactivate_user(user_id: int, services: Services = Depends(get_services)):
    return await services.projects.deactivate_user(user_id)


@router.get("/{user_id}/tasks", response_model=List[Task])
async def get_user_tasks(
    user_id: int,
    status: Optional[WorkItemStatus] = None,
    services: Services = Depends(get_services),
):
    return await services.tasks.get_user_tasks(user_id, status)


@router.get("/{user_id}/statistics", response_model=UserStatistics)
async def get_user_statistics(user_id: int, services: Services = Depends(get_services)):
    return await services.projects.get_user_statistics(user_id)


@router.get("/{user_id}/availability", response_model=AvailabilityResponse)
async def get_user_availability(
    user_id: int,
    max_active_tasks: int = 3,
    services: Services = Depends(get_services),
):
    return AvailabilityResponse(
        user_id=user_id,
        available=await services.projects.is_user_available(user_id, max_active_tasks),
        active_tasks=await services.projects.count_user_active_tasks(user_id),
    )
