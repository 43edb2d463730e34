# caredoc/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from caredoc.config import settings
from caredoc.core.bootstrap import ensure_required_settings
from caredoc.core.db import init_db, close_db
from caredoc.core.errors import AppError

from caredoc.api.v1.routers import access, admin, auth, billing, usage, webhooks

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title=settings.APP_NAME)

# CORS (with Cookie)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Translate service-layer errors into {"detail": {"code", "message", ...}}."""
    if exc.status_code >= 500:
        logger.error("[api] %s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed input is a 400 naming the first offending field."""
    errors = exc.errors()
    first_error = errors[0] if errors else {}
    loc = [str(part) for part in first_error.get("loc", []) if part not in ("body", "query", "path", "header")]
    field = ".".join(loc) or None
    msg = first_error.get("msg", "Validation error")
    return JSONResponse(
        status_code=400,
        content={"detail": {"code": "BAD_REQUEST", "message": f"Invalid field '{field}': {msg}", "field": field}},
    )


@app.on_event("startup")
async def on_startup():
    # Refuse to serve without the admin and webhook secrets
    ensure_required_settings()
    await init_db()


@app.on_event("shutdown")
async def on_shutdown():
    await close_db()


# REST
app.include_router(auth.router, prefix="/api/v1")
app.include_router(access.router, prefix="/api/v1")
app.include_router(usage.router, prefix="/api/v1")
app.include_router(billing.router, prefix="/api/v1")
app.include_router(webhooks.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/healthz")
def healthz():
    return {"ok": True}
