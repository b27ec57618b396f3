import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from backend.config import (
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
    LOG_LEVEL,
    UPLOADS_DIR,
)
from backend.errors import TrackerError
from backend.logging_config import setup_logging
from backend.routers import auth, core, exam_scheduler, exam_tracker
from database.db import create_tables

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Exam Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)


@app.on_event("startup")
def _startup():
    create_tables()
    UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
    logger.info("Exam tracker API ready")


@app.exception_handler(TrackerError)
async def _tracker_error_handler(request: Request, exc: TrackerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


app.include_router(core.router)
app.include_router(auth.router)
app.include_router(exam_scheduler.router)
app.include_router(exam_tracker.router)
app.mount("/uploads", StaticFiles(directory=UPLOADS_DIR, check_dir=False), name="uploads")
