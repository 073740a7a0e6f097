from .request_id import RequestIDMiddleware, get_request_id, get_client_ip
from .logging import LoggingMiddleware
from .locale import LocaleMiddleware, normalize_locale

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "LocaleMiddleware",
    "normalize_locale",
    "get_request_id",
    "get_client_ip",
]
