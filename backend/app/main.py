import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.routes import (
    admin, analytics, attendance, auth, bookings, chats, leave, notifications, realtime, services, tasks, upload,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("app")

app = FastAPI(title="IT Services Desk API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    msg = str(errors[0].get("msg", "Invalid request"))
    # pydantic prefixes messages raised from validators
    for prefix in ("Value error, ", "Assertion failed, "):
        if msg.startswith(prefix):
            msg = msg[len(prefix):]
    return msg


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": first_validation_message(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[App] Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth.router,          prefix="/auth",                  tags=["Auth"])
app.include_router(services.router,      prefix="/services",              tags=["Services"])
app.include_router(bookings.router,      prefix="/bookings",              tags=["Bookings"])
app.include_router(chats.router,         prefix="/chats",                 tags=["Chats"])
app.include_router(tasks.router,         prefix="/tasks",                 tags=["Tasks"])
app.include_router(notifications.router, prefix="/notifications",         tags=["Notifications"])
app.include_router(attendance.router,    prefix="/attendance",            tags=["Attendance"])
app.include_router(leave.router,                                          tags=["Leave"])
app.include_router(upload.router,        prefix="/upload",                tags=["Upload"])
app.include_router(admin.router,         prefix="/admin",                 tags=["Admin"])
app.include_router(analytics.router,     prefix="/admin/analytics",       tags=["Analytics"])
app.include_router(attendance.admin_router, prefix="/admin/attendance",   tags=["Attendance"])
app.include_router(leave.admin_router,   prefix="/admin/leave-requests",  tags=["Leave"])
app.include_router(admin.system_router,  prefix="/system",                tags=["System"])
app.include_router(realtime.router,                                       tags=["Realtime"])
