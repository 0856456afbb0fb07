"""Main FastAPI application entry point."""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.database import engine, Base
from app.api.middleware import LoggingMiddleware, configure_structlog
from app.api.routes import router
from app.services.errors import MeetingRequestError
# Import models to register them with SQLAlchemy Base
from app.models.domain import MeetingRequest, Attachment
from app.models.audit import AuditEntry

configure_structlog()
logger = structlog.get_logger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="Meeting Requests",
    description="Intake and review workflow for meeting requests: submit, approve, confirm, announce, cancel.",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)

# Include API routes
app.include_router(router, prefix="/api", tags=["Meeting Requests"])


@app.exception_handler(MeetingRequestError)
async def handle_meeting_request_error(request: Request, exc: MeetingRequestError):
    """Render service errors as {kind, message} with their HTTP status."""
    log_method = logger.error if exc.status_code >= 500 else logger.warning
    log_method(
        "request_refused",
        kind=exc.kind,
        message=exc.message,
        method=request.method,
        path=request.url.path
    )
    return JSONResponse(status_code=exc.status_code, content={"kind": exc.kind, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters are validation errors like any other."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    message = "; ".join(problems) or "Invalid request"
    logger.warning("request_invalid", message=message, method=request.method, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"kind": "validation_error", "message": message}
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors in the same {kind, message} shape as service errors."""
    if isinstance(exc.detail, dict) and "kind" in exc.detail:
        content = {"kind": exc.detail["kind"], "message": exc.detail.get("message", "")}
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        content = {"kind": "not_found", "message": str(exc.detail)}
    else:
        content = {"kind": "http_error", "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Meeting Requests"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
