import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agrisync.api.routers import export, measurements, sync, tracking
from agrisync.config import get_settings
from agrisync.db import init_db
from agrisync.errors import register_exception_handlers

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health")
def health():
    return {"ok": True}


# create the schema on first start
@app.on_event("startup")
def on_startup():
    logger.info("starting %s v%s", settings.app_name, settings.app_version)
    init_db()

app.include_router(sync.router,         prefix="/sync",         tags=["sync"])
app.include_router(measurements.router, prefix="/measurements", tags=["measurements"])
app.include_router(tracking.router,     prefix="/tracking",     tags=["tracking"])
app.include_router(export.router,       prefix="/export",       tags=["export"])
