"""DRF exception handler for fulfillment errors."""
import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import FulfillmentError

logger = logging.getLogger("fulfillment")


def fulfillment_exception_handler(exc, context):
    """Render :class:`~core.exceptions.FulfillmentError` as ``{"detail", "code"}``.

    Everything else is left to DRF's default handler.
    """
    if isinstance(exc, FulfillmentError):
        view = context.get("view")
        logger.info(
            "%s in %s: %s",
            exc.__class__.__name__, view.__class__.__name__ if view else "-", exc.message,
        )
        data = {"detail": exc.message, "code": exc.code}
        current = exc.context.get("current")
        if current:
            data["current_status"] = current
        return Response(data, status=exc.status_code)
    return exception_handler(exc, context)
