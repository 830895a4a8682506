"""
Velociti Security Utilities

CORS policy, security headers (CSP), and per-client rate limiting.
"""

import structlog
from fastapi import Request
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from core.config import Settings
from core.errors import RateLimitError

logger = structlog.get_logger()

# ─── CORS ──────────────────────────────────────────────────────────────────

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
CORS_HEADERS = [
    "Origin",
    "X-Requested-With",
    "Content-Type",
    "Accept",
    "Authorization",
    "Cache-Control",
    "X-API-Key",
]


def cors_options(settings: Settings) -> dict:
    """Keyword arguments for CORSMiddleware, strict in production."""
    if settings.is_production:
        origins = list(settings.production_origins)
    else:
        origins = list(settings.cors_origins)
    return {
        "allow_origins": origins,
        "allow_origin_regex": settings.cors_origin_regex or None,
        "allow_credentials": True,
        "allow_methods": CORS_METHODS,
        "allow_headers": CORS_HEADERS,
    }


# ─── Security Headers ──────────────────────────────────────────────────────

HOSTED_SOURCES = ["*.replit.dev", "*.replit.app"]

CSP_DIRECTIVES: dict[str, list[str]] = {
    "default-src": ["'self'"],
    "script-src": ["'self'", "'unsafe-inline'", "'unsafe-eval'", *HOSTED_SOURCES],
    "style-src": ["'self'", "'unsafe-inline'", *HOSTED_SOURCES],
    "img-src": ["'self'", "data:", "https:", *HOSTED_SOURCES],
    "connect-src": [
        "'self'",
        "wss:",
        *HOSTED_SOURCES,
        "api.openai.com",
        "api.writer.com",
        "api.fireworks.ai",
    ],
    "font-src": ["'self'", "data:", *HOSTED_SOURCES],
    "object-src": ["'none'"],
    "media-src": ["'self'", *HOSTED_SOURCES],
    "frame-src": ["'none'"],
}


def build_csp(directives: dict[str, list[str]] | None = None) -> str:
    directives = directives or CSP_DIRECTIVES
    return "; ".join(f"{name} {' '.join(sources)}" for name, sources in directives.items())


def security_headers(settings: Settings) -> dict[str, str]:
    """
    Headers attached to every HTTP response.

    The CSP is report-only in development so the Vite dev server keeps working.
    """
    csp_header = (
        "Content-Security-Policy-Report-Only"
        if settings.app_env.strip().lower() in {"dev", "development"}
        else "Content-Security-Policy"
    )
    return {
        csp_header: build_csp(),
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Cross-Origin-Resource-Policy": "cross-origin",
    }


# ─── Rate Limiting ─────────────────────────────────────────────────────────


class RateLimiter:
    """Moving-window limiter keyed by scope and client address."""

    def __init__(self, limits: dict[str, str], enabled: bool = True):
        self.enabled = enabled
        self._storage = MemoryStorage()
        self._strategy = MovingWindowRateLimiter(self._storage)
        self._items: dict[str, RateLimitItem] = {scope: parse(value) for scope, value in limits.items()}
        self._windows = {scope: value.split("/", 1)[-1].strip() for scope, value in limits.items()}

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(
            {"api": settings.api_rate_limit, "llm": settings.llm_rate_limit},
            enabled=settings.rate_limit_enabled,
        )

    def hit(self, scope: str, key: str) -> None:
        """Consume one request for key; raise RateLimitError when over quota."""
        if not self.enabled:
            return
        item = self._items[scope]
        if not self._strategy.hit(item, scope, key):
            logger.warning("rate_limit.exceeded", scope=scope, key=key)
            raise RateLimitError(
                "Too many requests from this IP, please try again later.",
                retry_after=self._windows[scope],
            )

    def reset(self) -> None:
        self._storage.reset()


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"
