"""FastAPI application entrypoint."""

import logging

from fastapi import FastAPI

from clinic_sync.routers import get_api_router
from clinic_sync.routers.errors import register_error_handlers
from clinic_sync.utils.config import get_settings


settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title=settings.app_name, version=settings.app_version)
app.include_router(get_api_router())
register_error_handlers(app)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Return service health status."""

    return {"status": "ok"}


@app.get("/version")
def version() -> dict[str, str]:
    """Return application version metadata."""

    return {"version": settings.app_version}
