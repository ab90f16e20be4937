from contextlib import asynccontextmanager

from fastapi import FastAPI

from .database import init_db
from .routes import router


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    init_db()
    yield


def create_app() -> FastAPI:
    """Application factory for the Americano scheduler."""
    app = FastAPI(title="Americano Scheduler", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
