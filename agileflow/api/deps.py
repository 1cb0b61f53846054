from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..core.clock import Clock, SystemClock
from ..core.store import Stores
from ..database import get_db
from ..services import Services, build_services
from ..stores.sql import build_sql_stores

_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


async def get_stores(db: AsyncSession = Depends(get_db)) -> AsyncGenerator[Stores, None]:
    """One transaction per request: commit on success, roll back on any error."""
    try:
        yield build_sql_stores(db)
        await db.commit()
    except Exception:
        await db.rollback()
        raise


def get_services(
    stores: Stores = Depends(get_stores),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> Services:
    return build_services(stores, clock, settings)
