from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class DirectoryError(Exception):
    """Base class for errors raised by the directory services."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DirectoryError):
    status_code = 404


class ValidationError(DirectoryError):
    """Input that breaks a constraint: missing references, depth bound, etc."""

    status_code = 422


class BadRequestError(DirectoryError):
    status_code = 400


def setup_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(DirectoryError)
    async def directory_error_handler(request: Request, exc: DirectoryError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
