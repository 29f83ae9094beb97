"""
Rate limiting for the GameDiss HTTP surface (Flask-Limiter).

Tiers:
- Heavy: /api/games/lookup (resolution + upstream fan-out)
- Light: /api/games/resolve, /api/catalog/status (in-memory work)

Upstream APIs are throttled separately by each source fetcher's
RateLimiter; these limits only protect the service itself.
"""

import os

from flask import jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

HEAVY_LIMIT = "30 per minute"
LIGHT_LIMIT = "120 per minute"
DEFAULT_LIMITS = ["2000 per day", "300 per hour"]

# Attached to the app in init_rate_limiting()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=DEFAULT_LIMITS,
    storage_uri=os.environ.get("RATELIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
    headers_enabled=True,
)


def limit_heavy(f):
    """Lookups that fan out to upstream sources."""
    return limiter.limit(HEAVY_LIMIT)(f)


def limit_light(f):
    """Resolution-only and status reads."""
    return limiter.limit(LIGHT_LIMIT)(f)


def _too_many_requests(e):
    retry_after = getattr(e, 'retry_after', None) or 60
    response = jsonify({
        "error": "Rate limit exceeded",
        "limit": str(e.description),
        "path": request.path,
        "retry_after": retry_after,
    })
    response.status_code = 429
    response.headers['Retry-After'] = str(retry_after)
    return response


def init_rate_limiting(app):
    """Bind the limiter to `app`; DISABLE_RATE_LIMITING turns it off."""
    # Flask-Limiter reads RATELIMIT_ENABLED on init_app
    app.config['RATELIMIT_ENABLED'] = not app.config.get('DISABLE_RATE_LIMITING', False)
    limiter.init_app(app)
    app.register_error_handler(429, _too_many_requests)
    return limiter
