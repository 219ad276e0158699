"""Main FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cortapau import config
from cortapau.database import engine, Base
from cortapau.errors import (
    AuthenticationError,
    ConflictError,
    CortaPauError,
    IllegalTransitionError,
    NotFoundError,
    RejectionReason,
    ValidationError
)
from cortapau.api.routes import router
# Import models to register them with SQLAlchemy Base
from cortapau.models.domain import User, Solicitation, Attachment
from cortapau.models.audit import Event

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="CortaPau API",
    description="Citizen-reported tree hazard tickets with an append-only history.",
    version="0.1.0"
)

# CORS open for the mobile app running in the simulator
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, tags=["CortaPau"])

if config.DEBUG_ROUTES_ENABLED:
    from cortapau.api.debug import router as debug_router
    app.include_router(debug_router, tags=["Debug"])


def _error(status_code: int, message: str, reason: str = None) -> JSONResponse:
    content = {"status": "error", "message": message}
    if reason:
        content["reason"] = reason
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    logger.info("Invalid body for %s %s: %s", request.method, request.url.path, exc.errors())
    return _error(status.HTTP_400_BAD_REQUEST, "Invalid request data.")


@app.exception_handler(CortaPauError)
def handle_domain_error(request: Request, exc: CortaPauError):
    if isinstance(exc, IllegalTransitionError):
        code = (
            status.HTTP_400_BAD_REQUEST
            if exc.reason == RejectionReason.MISSING_REQUIRED_FIELD
            else status.HTTP_409_CONFLICT
        )
        return _error(code, exc.message, exc.reason.value)
    if isinstance(exc, ValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, exc.message)
    if isinstance(exc, NotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, exc.message)
    if isinstance(exc, ConflictError):
        return _error(status.HTTP_409_CONFLICT, exc.message, "revisionConflict")
    if isinstance(exc, AuthenticationError):
        return _error(status.HTTP_401_UNAUTHORIZED, exc.message)

    logger.error("Unhandled domain error on %s %s: %s", request.method, request.url.path, exc.message)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)


# Health check
@app.get("/health")
def health_check():
    return {"status": "ok", "service": "CortaPau API"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3333)
