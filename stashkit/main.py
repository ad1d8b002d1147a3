import logging

from fastapi import FastAPI

from stashkit.api.errors import register_error_handlers
from stashkit.api.files import router as files_router
from stashkit.config import settings
from stashkit.logging import configure_logging
from stashkit.services.factory import get_file_storage

logger = logging.getLogger(__name__)

app = FastAPI(title="stashkit API")

configure_logging()

register_error_handlers(app)

app.include_router(files_router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "ok", "provider": settings.provider}


@app.on_event("startup")
def _init_storage():
    try:
        get_file_storage()
    except Exception:
        logger.exception("Storage provider initialization failed")
