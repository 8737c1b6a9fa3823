# lugx_common/errors.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from lugx_common.logging import get_logger

logger = get_logger(__name__)

GENERIC_MESSAGE = "Internal server error"


class ServiceError(Exception):
    """
    Base of the error taxonomy shared by all services.
    `extra` is merged into the JSON body next to "error".
    """

    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.message, **self.extra}


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class StorageError(ServiceError):
    # Callers only ever see the generic message; the cause goes to the log.
    status_code = 500

    def __init__(self, message: str = GENERIC_MESSAGE):
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": GENERIC_MESSAGE}


class StartupError(ServiceError):
    """Schema initialisation gave up; the service must not start."""


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception(f"{request.method} {request.url.path} storage failure", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": GENERIC_MESSAGE})
