"""
Velociti API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from agents.service import AgentService
from alerts.websocket import router as ws_router
from api.routers import activities, agents, alerts, competitive, dashboard, llm, routes
from core.config import Settings, get_settings
from core.context import AppContext
from core.errors import VelocitiError
from core.logging import configure_logging
from core.security import cors_options, security_headers

logger = structlog.get_logger()


def error_body(request: Request, message: str, details=None) -> dict:
    body = {"error": message}
    if details is not None:
        body["details"] = details
    body["path"] = request.url.path
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    return body


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    if context is None:
        context = AppContext.from_settings(settings or get_settings())
    settings = context.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        configure_logging(settings)
        logger.info("Velociti API starting up", version=settings.app_version, env=settings.app_env)
        await context.create_tables()
        async with context.session_factory() as db:
            await AgentService(db, context.relay, settings).initialize_agents()
        yield
        logger.info("Velociti API shutting down", clients=context.relay.connection_count)
        await context.aclose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Revenue-management intelligence for airline analysts",
        lifespan=lifespan,
    )
    app.state.context = context

    @app.exception_handler(VelocitiError)
    async def velociti_error_handler(request: Request, exc: VelocitiError):
        if exc.status_code >= 500:
            logger.error("request.failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(request, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
        return JSONResponse(status_code=400, content=error_body(request, "Validation failed", details))

    @app.middleware("http")
    async def error_boundary(request: Request, call_next):
        """Render anything unhandled as a 500 instead of dropping the connection."""
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("request.unhandled_error", path=request.url.path, method=request.method)
            body = error_body(request, "Internal Server Error")
            if not settings.is_production:
                body["detail"] = str(exc)
            return JSONResponse(status_code=500, content=body)

    headers = security_headers(settings)

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(CORSMiddleware, **cors_options(settings))

    app.include_router(alerts.router)
    app.include_router(agents.router)
    app.include_router(dashboard.router)
    app.include_router(routes.router)
    app.include_router(competitive.router)
    app.include_router(activities.router)
    app.include_router(llm.router)
    app.include_router(ws_router)

    @app.get("/health")
    @app.get("/api/health")
    async def health_check():
        """Health check endpoint for load balancers."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.app_env,
            "websocketClients": context.relay.connection_count,
        }

    return app


app = create_app()
