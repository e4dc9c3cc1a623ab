from farmstand.schemas.common import ErrorOut


_ERROR_EXAMPLES: dict[int, tuple[str, str]] = {
    400: ("bad_request", "Bad request"),
    401: ("unauthorized", "Unauthorized"),
    403: ("forbidden", "Forbidden"),
    404: ("not_found", "Resource not found"),
    422: ("validation_error", "Validation error"),
    500: ("internal_error", "Internal server error"),
}

# Engine errors that share status 400 are told apart by their code.
_ENGINE_400_CODES = [
    "unavailable",
    "insufficient_stock",
    "invalid_argument",
    "missing_field",
    "invalid_transition",
    "empty_cart",
]


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error"))
        description = message
        if status_code == 400:
            description = f"{message} ({', '.join(_ENGINE_400_CODES)})"
        responses[status_code] = {
            "model": ErrorOut,
            "description": description,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "request-id",
                            "path": "/example",
                            "details": None,
                        }
                    }
                }
            },
        }
    return responses
