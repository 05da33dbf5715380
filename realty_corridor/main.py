"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from realty_corridor.config import get_settings
from realty_corridor.db.session import dispose_engine
from realty_corridor.errors import PersistenceError
from realty_corridor.taskiq_app.broker import broker
from realty_corridor.web.router import router as api_router

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Start the Taskiq broker for the API process only."""

    if not broker.is_worker_process:
        await broker.startup()
    yield
    if not broker.is_worker_process:
        await broker.shutdown()
    await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(api_router)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(_: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Storage failure: %s", exc)
    return JSONResponse(status_code=503, content={"detail": exc.to_dict()})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
