"""
Users CRUD API Server
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from users_service import __version__
from users_service.config.settings import ALLOWED_ORIGINS
from users_service.database.connection import init_database, close_database
from users_service.api.routes import health, users
from users_service.utils.error_handling import setup_error_handling

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    await init_database()
    yield
    await close_database()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Users CRUD Service",
        description="List, read, create, replace and delete user documents",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    setup_error_handling(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(users.router, prefix="/users", tags=["Users"])
    return app


# FastAPI app instance is exported for use by uvicorn
app = create_app()
