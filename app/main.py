import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import models
from app.config import settings
from app.database import SessionLocal, engine
from app.exceptions import SimulatorError

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    models.Base.metadata.create_all(bind=engine)
    logger.info(
        f"Starting {settings.project_name} ({settings.environment}); "
        f"default destination: {settings.notification_url or 'none'}"
    )
    if settings.seed_on_startup:
        db = SessionLocal()
        try:
            count = db.query(models.Transaction).count()
            if count == 0:
                import subprocess
                import sys
                subprocess.run([sys.executable, "scripts/generate_test_data.py"], check=False)
        finally:
            db.close()
    yield


app = FastAPI(
    title=settings.project_name,
    description="Simulates payment outcomes and delivers outcome notifications to an external consumer",
    version=settings.version,
    lifespan=lifespan,
)


@app.exception_handler(SimulatorError)
async def simulator_error_handler(request: Request, exc: SimulatorError):
    logger.warning(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Pydantic request errors are reported as 400 with a readable message."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    logger.warning(f"Validation error on {request.url.path}: {problems}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "; ".join(problems) or "invalid request"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    error = "route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": error})


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    content = {"success": False, "error": "internal server error"}
    if settings.is_development:
        content["message"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "pagador-simulator",
    }


@app.get("/api")
def api_info():
    return {
        "name": settings.project_name,
        "version": settings.version,
        "endpoints": {
            "POST /api/payments": "create a payment",
            "GET /api/payments": "list payments with filters",
            "GET /api/payments/pending-notifications": "payments not yet notified",
            "POST /api/payments/bulk/test": "create N test payments and notify them",
            "POST /api/payments/bulk/test-approved": "create N approved payments, half without tokens",
            "POST /api/payments/bulk/test-duplicates": "duplicate-delivery scenario",
            "PATCH /api/payments/bulk/notified": "mark many payments as notified",
            "GET /api/payments/:transactionId": "get one payment",
            "PATCH /api/payments/:transactionId/notified": "mark a payment as notified",
            "PATCH /api/payments/:transactionId/status": "override the status",
            "POST /api/payments/:transactionId/resend-notification": "resend the notification",
            "POST /api/payments/:transactionId/refund": "refund an approved payment",
        },
    }


from app.routers import bulk, payments  # noqa: E402
app.include_router(bulk.router, prefix="/api/payments", tags=["bulk"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
