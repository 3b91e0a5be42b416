import structlog
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


class DomainError(ValueError):
    """Business rule violation raised by service code, rendered by `api_exception_handler`."""

    status_code = 400
    default_code = "invalid"
    default_detail = "Request failed"

    def __init__(self, detail=None, fields=None):
        self.detail = detail or self.default_detail
        self.fields = fields or {}
        super().__init__(self.detail)


def api_exception_handler(exc, context):
    if isinstance(exc, DomainError):
        view = context.get("view")
        logger.info(
            "api.domain_error",
            code=exc.default_code,
            detail=exc.detail,
            view=type(view).__name__ if view else None,
        )
        return Response(
            {"code": exc.default_code, "detail": exc.detail, "fields": exc.fields},
            status=exc.status_code,
        )

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}

    response.data = {
        "code": getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
    }
    return response
