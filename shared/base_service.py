"""
Base service class for the GitHub Backend API.
"""

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import platform
import time

from shared.config import ServiceSettings, get_settings
from shared.logging import clear_context, configure_logging, get_logger, redact_query, set_request_id
from shared.metrics import get_metrics_collector
from shared.errors import (
    ErrorResponse,
    NotFoundError,
    ProxyError,
    ValidationError,
    internal_error_response,
    utc_timestamp,
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
}


def error_response(exc: ProxyError, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """Render a ProxyError as its JSON envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
        headers=headers,
    )


class BaseService:
    """Base service class with common functionality."""

    version = "1.0.0"

    def __init__(self, service_name: str, settings: Optional[ServiceSettings] = None):
        self.service_name = service_name
        self.config = settings or get_settings()
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self._init_components()

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _init_components(self):
        """Build service collaborators before the app exists. Override in subclasses."""

    async def on_startup(self):
        """Startup hook. Override in subclasses."""

    async def on_shutdown(self):
        """Shutdown hook. Override in subclasses."""

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.on_startup()
            try:
                yield
            finally:
                self.logger.info("Shutting down gracefully", service=self.service_name)
                await self.on_shutdown()

        return FastAPI(
            title="GitHub Backend API",
            description="Password-gated proxy for the GitHub REST API",
            version=self.version,
            docs_url="/docs" if self.config.env != "production" else None,
            redoc_url=None,
            lifespan=lifespan,
        )

    def _setup_service_middleware(self):
        """Innermost middleware, run closest to the routes. Override in subclasses."""

    def _setup_middleware(self):
        """Set up middleware. Registered innermost first."""
        self._setup_service_middleware()

        @self.app.middleware("http")
        async def add_security_headers(request: Request, call_next):
            response = await call_next(request)
            for header, value in SECURITY_HEADERS.items():
                response.headers.setdefault(header, value)
            return response

        # Request timing middleware
        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

            try:
                response = await call_next(request)

                duration = time.time() - start_time
                route = request.scope.get("route")
                endpoint = getattr(route, "path", None) or "unmatched"

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration=duration
                )

                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    query=redact_query(request.query_params),
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2),
                    client_ip=request.client.host if request.client else None,
                    auth_method=getattr(request.state, "auth_method", None),
                )

                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

        # CORS outermost
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "x-password", "x-api-key"],
        )

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/status")
        async def status():
            """Liveness and configuration summary."""
            return {
                "status": "healthy",
                "service": self.service_name,
                "timestamp": utc_timestamp(),
                "uptime": self._get_uptime(),
                "environment": self.config.env,
                **self._status_details(),
            }

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint. Always answers 200; degradation is reported in the body."""
            checks = {"server": "ok", **self._health_checks()}
            healthy = all(value in ("ok", "configured", "secure") for value in checks.values())
            if not healthy:
                self.logger.warning("Health check degraded", checks=checks)

            return {
                "status": "healthy" if healthy else "degraded",
                "timestamp": utc_timestamp(),
                "checks": checks,
                **self._status_details(),
                "system": {
                    "uptime": self._get_uptime(),
                    "python_version": platform.python_version(),
                    "platform": platform.system().lower(),
                },
            }

        if self.config.enable_metrics:
            @self.app.get("/metrics")
            async def metrics_endpoint():
                """Prometheus metrics endpoint."""
                from prometheus_client import CONTENT_TYPE_LATEST
                return Response(
                    content=self.metrics.render(),
                    media_type=CONTENT_TYPE_LATEST
                )

    def _setup_exception_handlers(self):
        """Map every failure onto the error envelope."""

        @self.app.exception_handler(ProxyError)
        async def proxy_exception_handler(request: Request, exc: ProxyError):
            """Handle ProxyError."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Request failed",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )
            return error_response(exc)

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Unknown routes and other framework-level HTTP errors."""
            if exc.status_code == 404:
                return error_response(NotFoundError(request.method, request.url.path))

            body = ErrorResponse(
                code="HTTP_ERROR",
                error=str(exc.detail),
                message=f"{request.method} {request.url.path}: {exc.detail}",
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=body.model_dump(exclude_none=True),
                headers=getattr(exc, "headers", None),
            )

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            """Malformed path or query values."""
            error = ValidationError(
                "Invalid request parameters",
                details={"errors": jsonable_encoder(exc.errors())},
            )
            return error_response(error)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=True)
            return JSONResponse(
                status_code=500,
                content=internal_error_response().model_dump(exclude_none=True),
            )

    def _health_checks(self) -> Dict[str, str]:
        """Dependency checks reported by /health. Override in subclasses."""
        return {}

    def _status_details(self) -> Dict[str, Any]:
        """Extra fields reported by /status and /health. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service. Uvicorn drains in-flight requests on SIGTERM/SIGINT."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
            timeout_graceful_shutdown=self.config.shutdown_grace_seconds,
        )
