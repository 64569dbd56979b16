"""Error taxonomy of the fulfillment core.

Services raise these and never swallow or retry them; the API layer maps
each one to an HTTP response through ``status_code`` and ``code``.
"""


class FulfillmentError(Exception):
    """Base class for every error surfaced by the fulfillment core."""

    status_code = 400
    code = "fulfillment_error"
    default_message = "The request could not be processed."

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class ValidationError(FulfillmentError):
    """Malformed or out-of-tolerance evidence, expired or mismatched code."""

    status_code = 400
    code = "validation_error"
    default_message = "The submitted evidence is not valid."


class AuthorizationError(FulfillmentError):
    """The actor is not entitled to act on this record."""

    status_code = 403
    code = "authorization_error"
    default_message = "You are not allowed to perform this action."


class NotFoundError(FulfillmentError):
    status_code = 404
    code = "not_found"
    default_message = "The requested record does not exist."


class ConflictError(FulfillmentError):
    """The stored state no longer matches what the caller expected.

    Callers must re-read the record before retrying.
    """

    status_code = 409
    code = "conflict"
    default_message = "The record was modified concurrently. Reload and retry."


class CapacityExceededError(FulfillmentError):
    status_code = 409
    code = "capacity_exceeded"
    default_message = "The pickup site is at full capacity."


class PolicyViolationError(FulfillmentError):
    """The requested transition or operation is not allowed by policy."""

    status_code = 422
    code = "policy_violation"
    default_message = "This operation is not allowed."
