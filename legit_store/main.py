import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .api.exceptions import register_exception_handlers
from .api.routes import admin_router, router as payments_router
from .core.config import get_settings
from .core.db import init_db
from .core.dependencies import get_gateway

settings = get_settings()
logging.basicConfig(level=settings.log_level)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    get_gateway().close()

app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)

app.include_router(payments_router)
app.include_router(admin_router)
register_exception_handlers(app)

@app.get("/health")
def read_health() -> dict[str, str]:
    return {"status": "ok"}
