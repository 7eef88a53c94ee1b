from enum import Enum


class ErrorType(Enum):
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"
    INVALID_RESPONSE = "invalid_response"
    NOT_CONFIGURED = "not_configured"
    INTERNAL_ERROR = "internal_error"

    # Input handling
    PARSE_ERROR = "parse_error"
    UNPARSABLE_INPUT = "unparsable_input"
    TEMPLATE_ERROR = "template_error"
    NOT_FOUND = "not_found"

    # Transport
    HTTP_ERROR = "http_error"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    SERVER_ERROR = "server_error"
    BAD_GATEWAY = "bad_gateway"
    SERVICE_UNAVAILABLE = "service_unavailable"
    GATEWAY_TIMEOUT = "gateway_timeout"
    NETWORK_ERROR = "network_error"
    STREAM_ERROR = "stream_error"

    # Request lifecycle
    TIMEOUT = "timeout"
    REQUEST_CANCELLED = "request_cancelled"
    CIRCUIT_OPEN = "circuit_open"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"


# Map error types to HTTP status codes
ERROR_STATUS_MAP = {
    ErrorType.RATE_LIMIT: 429,
    ErrorType.NOT_CONFIGURED: 503,
    ErrorType.INVALID_RESPONSE: 502,
    ErrorType.API_ERROR: 503,
    ErrorType.INTERNAL_ERROR: 500,
    ErrorType.PARSE_ERROR: 502,
    ErrorType.UNPARSABLE_INPUT: 422,
    ErrorType.TEMPLATE_ERROR: 400,
    ErrorType.NOT_FOUND: 404,
    ErrorType.HTTP_ERROR: 502,
    ErrorType.BAD_REQUEST: 502,
    ErrorType.UNAUTHORIZED: 502,
    ErrorType.FORBIDDEN: 502,
    ErrorType.SERVER_ERROR: 502,
    ErrorType.BAD_GATEWAY: 502,
    ErrorType.SERVICE_UNAVAILABLE: 503,
    ErrorType.GATEWAY_TIMEOUT: 504,
    ErrorType.NETWORK_ERROR: 503,
    ErrorType.STREAM_ERROR: 502,
    ErrorType.TIMEOUT: 504,
    ErrorType.REQUEST_CANCELLED: 499,
    ErrorType.CIRCUIT_OPEN: 503,
    ErrorType.MAX_RETRIES_EXCEEDED: 503,
}

# Upstream HTTP status -> error type
STATUS_ERROR_TYPES = {
    400: ErrorType.BAD_REQUEST,
    401: ErrorType.UNAUTHORIZED,
    403: ErrorType.FORBIDDEN,
    404: ErrorType.NOT_FOUND,
    429: ErrorType.RATE_LIMIT,
    500: ErrorType.SERVER_ERROR,
    502: ErrorType.BAD_GATEWAY,
    503: ErrorType.SERVICE_UNAVAILABLE,
    504: ErrorType.GATEWAY_TIMEOUT,
}

RETRYABLE_ERRORS = {
    ErrorType.RATE_LIMIT,
    ErrorType.SERVER_ERROR,
    ErrorType.BAD_GATEWAY,
    ErrorType.SERVICE_UNAVAILABLE,
    ErrorType.GATEWAY_TIMEOUT,
    ErrorType.NETWORK_ERROR,
}


def error_type_for_status(status: int) -> ErrorType:
    """Classify an upstream HTTP status code."""
    if status in STATUS_ERROR_TYPES:
        return STATUS_ERROR_TYPES[status]
    if status >= 500:
        return ErrorType.SERVER_ERROR
    return ErrorType.HTTP_ERROR


def is_retryable(error_type: ErrorType, status: int | None = None) -> bool:
    """5xx and rate limiting are worth retrying, other 4xx are not."""
    if error_type in RETRYABLE_ERRORS:
        return True
    return status is not None and 500 <= status < 600
