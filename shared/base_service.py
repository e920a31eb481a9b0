"""
FastAPI skeleton shared by Eligibility Screening services.

A subclass passes its name and port, registers its own routes after
``super().__init__`` and may override ``_check_dependencies`` to report
reference data health. The base installs:

- request-id propagation through ``X-Request-ID``;
- HTTP timing metrics labelled by route template;
- ``/health`` and ``/metrics``;
- error handlers rendering every failure as an ``ErrorResponse`` body.
"""

import os
import time
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from shared.config import ServiceConfig, get_config
from shared.errors import EligibilityException, ErrorResponse
from shared.logging import clear_context, configure_logging, get_logger, request_id_var, set_request_id
from shared.metrics import get_metrics_collector

SERVICE_VERSION = "1.0.0"
REQUEST_ID_HEADER = "X-Request-ID"


def _error_body(code: str, message: str, details: Optional[Dict] = None) -> Dict:
    return ErrorResponse(
        request_id=request_id_var.get(),
        code=code,
        message=message,
        details=details or {}
    ).model_dump()


def _route_label(request: Request) -> str:
    """Route template for metric labels; raw paths would carry ids."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(f"{service_name}.http")
        self.metrics = get_metrics_collector(service_name)
        self._started = time.monotonic()

        local = self.config.env == "local"
        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"Eligibility Screening - {service_name.title()} Service",
            version=SERVICE_VERSION,
            docs_url="/docs" if local else None,
            redoc_url="/redoc" if local else None,
        )
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if local else [],
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER],
        )
        self.app.middleware("http")(self._request_context)
        self._register_error_handlers()
        self._register_operational_routes()

    async def _request_context(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            response.headers[REQUEST_ID_HEADER] = request_id

            if self.config.enable_metrics:
                self.metrics.record_http_request(request.method, _route_label(request), response.status_code, elapsed)
            self.logger.info(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(elapsed * 1000, 2)
            )
            return response
        finally:
            clear_context()

    def _register_error_handlers(self):
        app = self.app

        @app.exception_handler(EligibilityException)
        async def eligibility_error(request: Request, exc: EligibilityException):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log("Request failed", code=exc.code, message=exc.message, path=request.url.path)
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @app.exception_handler(RequestValidationError)
        async def validation_error(request: Request, exc: RequestValidationError):
            fields = [".".join(str(part) for part in error["loc"] if part != "body") for error in exc.errors()]
            self.logger.info("Request rejected", path=request.url.path, fields=fields)
            self.metrics.record_error("VALIDATION_ERROR")
            return JSONResponse(
                status_code=422,
                content=_error_body("VALIDATION_ERROR", "Request validation failed", {"fields": fields})
            )

        @app.exception_handler(Exception)
        async def unexpected_error(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=repr(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", "Internal server error"))

    def _register_operational_routes(self):
        app = self.app

        @app.get("/health")
        async def health():
            """Liveness plus the state of reference data dependencies."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=repr(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            status = "ok" if all(value == "ok" for value in dependencies.values()) else "degraded"
            self.metrics.record_health_check(status)
            return {
                "service": self.service_name,
                "status": status,
                "uptime_seconds": round(time.monotonic() - self._started, 3),
                "dependencies": dependencies,
                "version": SERVICE_VERSION,
                "commit": os.getenv("GIT_COMMIT", "unknown"),
            }

        @app.get("/metrics")
        async def metrics():
            """Prometheus exposition of this service's registry."""
            return Response(content=generate_latest(self.metrics.registry), media_type=CONTENT_TYPE_LATEST)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report dependency states; anything other than ``"ok"`` degrades health."""
        return {}

    def run(self):
        """Serve the app with uvicorn."""
        import uvicorn
        uvicorn.run(self.app, host=self.config.host, port=self.config.port, log_level=self.config.log_level.lower())
