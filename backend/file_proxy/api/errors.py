"""Exception handlers rendering pipeline errors as plain text."""

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from file_proxy.core.exceptions import FileProxyError, UpstreamError
from file_proxy.core.logging import get_logger
from file_proxy.middleware.correlation import REQUEST_ID_HEADER

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error while processing the file."


async def file_proxy_error_handler(
    request: Request, exc: FileProxyError
) -> PlainTextResponse:
    """Render a classified pipeline error."""
    log_data = {
        "path": request.url.path,
        "error_type": type(exc).__name__,
        "status_code": exc.status_code,
        "error": str(exc),
    }
    if isinstance(exc, UpstreamError):
        log_data["upstream_status"] = exc.upstream_status
        log_data["upstream_url"] = exc.url

    if exc.status_code >= 500:
        logger.error("request_failed", **log_data)
    else:
        logger.info("request_rejected", **log_data)

    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Render anything that escaped classification as a generic 500.

    This handler runs outside the correlation middleware, so the request
    id is read from the request state instead of the logging context.
    """
    request_id = getattr(request.state, "request_id", None)
    logger.error(
        "request_unhandled_error",
        path=request.url.path,
        request_id=request_id,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    response = PlainTextResponse(INTERNAL_ERROR_MESSAGE, status_code=500)
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Install the plain-text exception handlers on an application."""
    app.add_exception_handler(FileProxyError, file_proxy_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
