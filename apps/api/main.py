from __future__ import annotations

import logging
import os
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException

from apps.api.observability import init_observability
from apps.api.reminders_scheduler import start_scheduler
from apps.api.routes.notifications import router as notifications_router
from apps.api.routes.reminders import router as reminders_router
from packages.core.logging_config import configure_logging
from packages.core.reminders.config import db_path, load_reminder_settings
from packages.core.reminders.errors import ReminderError
from packages.core.storage.sqlite import SQLiteReminderStore


configure_logging()

logger = logging.getLogger("crm_reminders.api")

init_observability()
app = FastAPI(title="CRM Reminders API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
        if origin.strip()
    ],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
FastAPIInstrumentor.instrument_app(app)
app.include_router(reminders_router)
app.include_router(notifications_router)

ERROR_STATUS = {
    "validation_error": 400,
    "not_found": 404,
    "invalid_transition": 409,
    "version_conflict": 409,
}

HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": None, "message": message, "code": code},
    )


@app.exception_handler(ReminderError)
async def _reminder_error(request: Request, exc: ReminderError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, 400)
    logger.info(
        "request_rejected path=%s code=%s message=%s", request.url.path, exc.code, exc.message
    )
    return _error(status_code, exc.code, exc.message)


@app.exception_handler(HTTPException)
async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    response = _error(exc.status_code, code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return _error(400, "validation_error", message)


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_failed path=%s error=%s", request.url.path, exc)
    return _error(500, "server_error", "Server error")


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"success": True, "data": {"status": "ok"}, "message": None}


_SCHEDULER = None


@app.on_event("startup")
def _start_reminder_scheduler() -> None:
    global _SCHEDULER
    settings = load_reminder_settings()
    if not settings.scheduler_enabled:
        logger.info("reminders_scheduler_disabled")
        return
    if _SCHEDULER is not None:
        return
    _SCHEDULER = start_scheduler(SQLiteReminderStore(db_path=db_path()), settings)


@app.on_event("shutdown")
def _stop_reminder_scheduler() -> None:
    global _SCHEDULER
    if _SCHEDULER is None:
        return
    _SCHEDULER.shutdown(wait=False)
    _SCHEDULER = None
