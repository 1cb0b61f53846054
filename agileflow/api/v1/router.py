from fastapi import APIRouter
from .backlogs import router as backlogs_router
from .projects import router as projects_router
from .sprints import router as sprints_router
from .stories import router as stories_router
from .tasks import router as tasks_router
from .users import router as users_router

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
api_router.include_router(backlogs_router, prefix="/backlogs", tags=["backlogs"])
api_router.include_router(stories_router, prefix="/stories", tags=["stories"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
api_router.include_router(sprints_router, prefix="/sprints", tags=["sprints"])
api_router.include_router(users_router, prefix="/users", tags=["users"])
