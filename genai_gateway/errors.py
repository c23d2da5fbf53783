from __future__ import annotations

from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse

SERVER_CONFIG_ERROR = "server_config_error"
API_ERROR = "api_error"
PROXY_ERROR = "proxy_error"
INVALID_REQUEST_ERROR = "invalid_request_error"
SERVER_ERROR = "server_error"

MISSING_API_KEY_MESSAGE = "OpenAI API key is not configured"


def error_body(message: str, error_type: str) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type}}


def error_response(
    message: str,
    error_type: str,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(message, error_type))


def missing_api_key_response() -> JSONResponse:
    return error_response(MISSING_API_KEY_MESSAGE, SERVER_CONFIG_ERROR)


def extract_upstream_error_message(payload: Any, default: str) -> str:
    if not isinstance(payload, dict):
        return default
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message
    elif isinstance(error, str) and error.strip():
        return error
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message
    return default
