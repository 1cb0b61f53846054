#!/usr/bin/env python3
"""
Initialize database with all tables
"""
import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agileflow.database import engine
from agileflow.models import Base


async def init_database():
    """Create all tables"""
    print("Initializing database...")
    print(f"Creating tables: {', '.join([t.name for t in Base.metadata.sorted_tables])}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    print("Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
