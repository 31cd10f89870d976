import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GameError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GameNotFoundError(GameError):
    def __init__(self, game_id: str):
        super().__init__(f"Game with id '{game_id}' not found", status_code=404)
        self.game_id = game_id


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def game_error_handler(request: Request, exc: GameError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors onto JSON responses carrying their status code."""
    app.add_exception_handler(GameError, game_error_handler)
    app.add_exception_handler(AuthError, auth_error_handler)
