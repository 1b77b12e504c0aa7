import logging

from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework.exceptions import NotAuthenticated, PermissionDenied
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """
    Domain failure surfaced to the caller as an explicit outcome.

    code / message end up in the response envelope (HTTP) or in the
    {"type": "error"} frame (websocket).
    """

    code = "SERVICE_ERROR"
    default_message = "Something went wrong. Please try again."
    http_status = 400

    def __init__(self, message: str = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class StoreUnavailable(ServiceError):
    code = "STORE_UNAVAILABLE"
    default_message = "Error connecting to session. Please try again."
    http_status = 503


class ValidationFailed(ServiceError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


def fail_payload(code: str, message: str) -> dict:
    return {"success": False, "data": None, "error": {"code": code, "message": message}}


def custom_exception_handler(exc, context):
    if isinstance(exc, ServiceError):
        if isinstance(exc, StoreUnavailable):
            logger.error("store unavailable while handling %s: %s", context.get("view"), exc)
        else:
            logger.warning("%s: %s", exc.code, exc.message)
        return Response(fail_payload(exc.code, exc.message), status=exc.http_status)

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(exc, NotAuthenticated):
        response.data = fail_payload("UNAUTHORIZED", "Authorization header missing")
    elif isinstance(exc, PermissionDenied):
        response.data = fail_payload("FORBIDDEN", "Permission denied")
    elif isinstance(exc, (InvalidToken, TokenError)):
        response.data = fail_payload("INVALID_TOKEN", "Invalid token")

    return response
