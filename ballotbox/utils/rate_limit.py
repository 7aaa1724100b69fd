from functools import wraps
from flask import request
from flask_jwt_extended import get_jwt_identity

from ..services.rate_limiter import check_rate_limit


def client_ip() -> str:
    # Behind a proxy, remote_addr is rewritten by ProxyFix (PROXY_FIX_X_FOR)
    return request.remote_addr or "unknown"


def operator_identity() -> str:
    """Use with @jwt_required() above the rate limit."""
    return f"user:{get_jwt_identity()}"


def rate_limited(action: str, identifier=client_ip):
    """Count one attempt for `action` before the view runs; 429 when over the limit."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            check_rate_limit(identifier(), action)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
