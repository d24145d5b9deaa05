import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .api.exceptions import register_exception_handlers
from .api.routes import router, users_router
from .core.config import get_settings
from .core.db import init_db

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("ledger.startup", extra={"app_name": settings.app_name})
    yield

app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)

for api_router in (router, users_router):
    app.include_router(api_router)
register_exception_handlers(app)

@app.get("/health")
def read_health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}
