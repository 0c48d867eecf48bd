from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
import logging
import traceback
from typing import Callable

from core.exceptions import (
    ChatStreamError,
    ConversationNotFoundError,
    InvalidPayloadError,
    StorageFailureError,
)
from models.chat import ErrorResponse

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID", "unknown")


def _error_response(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, request_id=_request_id(request))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def invalid_payload_handler(request: Request, exc: InvalidPayloadError):
    logger.info(f"Rejected payload on {request.url.path}: {exc}")
    return _error_response(request, 400, "Invalid payload", str(exc))


async def not_found_handler(request: Request, exc: ConversationNotFoundError):
    return _error_response(request, 404, "Chat not found", str(exc))


async def storage_failure_handler(request: Request, exc: StorageFailureError):
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return _error_response(request, 500, "Internal Server Error", "Storage is unavailable")


async def chat_stream_error_handler(request: Request, exc: ChatStreamError):
    logger.error(f"Unhandled chat error on {request.url.path}: {exc}")
    return _error_response(request, 500, "Internal Server Error", "An unexpected error occurred")


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors raised before streaming starts to JSON error bodies"""
    app.add_exception_handler(InvalidPayloadError, invalid_payload_handler)
    app.add_exception_handler(ConversationNotFoundError, not_found_handler)
    app.add_exception_handler(StorageFailureError, storage_failure_handler)
    app.add_exception_handler(ChatStreamError, chat_stream_error_handler)


async def error_handler_middleware(request: Request, call_next: Callable):
    """Function-based error handler middleware"""
    try:
        response = await call_next(request)
        return response

    except HTTPException as e:
        raise e

    except Exception as e:
        logger.error(f"Unhandled exception: {e}")
        logger.error(traceback.format_exc())

        return _error_response(request, 500, "Internal server error", "An unexpected error occurred")
