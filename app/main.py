"""
FastAPI application factory.

The schema is owned by Alembic (`alembic upgrade head`); startup only
seeds the default permissions and roles.
"""

import logging

from fastapi import FastAPI

from app.controllers import (
    assignment_controller,
    auth_controller,
    catalog_controller,
    location_controller,
    lock_controller,
    population_controller,
)
from app.core.config import settings
from app.core.database import SessionLocal, engine
from app.rbac.permission_seed import seed

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

CONTROLLERS = (
    auth_controller,
    catalog_controller,
    location_controller,
    assignment_controller,
    lock_controller,
    population_controller,
)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, version="0.1.0")
    for controller in CONTROLLERS:
        app.include_router(controller.router)

    @app.on_event("startup")
    async def seed_permissions() -> None:
        async with SessionLocal() as session:
            await seed(session)

    @app.on_event("shutdown")
    async def dispose_engine() -> None:
        await engine.dispose()
        logger.info("Database engine disposed")

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
