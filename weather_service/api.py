"""HTTP surface for the weather cache service.

Endpoints are plain ``def`` functions, so FastAPI runs each request on its
threadpool and the orchestrator's blocking calls never share an event loop.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from prometheus_client import CONTENT_TYPE_LATEST

from .error_mapping import (
    AuthFailedError,
    ValidationError,
    WeatherServiceError,
    http_status_for,
    marshal_exception,
    root_cause,
)
from .logging_utils import get_logger
from .metrics import render_latest
from .models import ForecastRecord, HourlyTemperatureRecord, TemperatureRecord
from .orchestrator import CacheOrchestrator
from .security import Principal, UserStore

_logger = get_logger(__name__)


def _problem(request: Request, exc: Exception) -> JSONResponse:
    status = http_status_for(exc)
    payload = {**marshal_exception(exc), "path": request.url.path}
    headers = {"WWW-Authenticate": "Basic"} if isinstance(root_cause(exc), AuthFailedError) else None
    if status >= 500:
        _logger.error("request_failed", path=request.url.path, status=status, error=payload["error"])
    return JSONResponse(payload, status_code=status, headers=headers)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
        return _problem(request, ValidationError(messages))

    @app.exception_handler(WeatherServiceError)
    async def handle_service_error(request: Request, exc: WeatherServiceError) -> JSONResponse:
        return _problem(request, exc)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        return _problem(request, exc)


def create_app(orchestrator: CacheOrchestrator, users: UserStore) -> FastAPI:
    app = FastAPI(title="Weather Cache Service", version="1.0.0")
    basic = HTTPBasic(auto_error=False)

    def current_principal(credentials: HTTPBasicCredentials | None = Depends(basic)) -> Principal:
        if credentials is None:
            raise AuthFailedError("authentication required")
        return users.authenticate(credentials.username, credentials.password)

    weather = APIRouter(prefix="/weather", tags=["weather"])

    @weather.get("/current", response_model=TemperatureRecord)
    def get_current(
        city: str = Query(...),
        on_date: date | None = Query(None, alias="date"),
        principal: Principal = Depends(current_principal),
    ) -> TemperatureRecord:
        return orchestrator.get_current(city, on_date, principal=principal)

    @weather.get("/hourly", response_model=list[HourlyTemperatureRecord])
    def get_hourly(
        city: str = Query(...),
        on_date: date | None = Query(None, alias="date"),
        principal: Principal = Depends(current_principal),
    ) -> list[HourlyTemperatureRecord]:
        return orchestrator.get_short_range_series(city, on_date, principal=principal)

    @weather.get("/forecast", response_model=list[ForecastRecord])
    def get_forecast(
        city: str = Query(...),
        principal: Principal = Depends(current_principal),
    ) -> list[ForecastRecord]:
        return orchestrator.get_extended_series(city, principal=principal)

    @weather.post("/cache/purge", status_code=204)
    def purge_weather_caches(principal: Principal = Depends(current_principal)) -> Response:
        orchestrator.purge(principal=principal)
        return Response(status_code=204)

    cache = APIRouter(prefix="/cache", tags=["cache"])

    @cache.get("/l1")
    def inspect_l1(principal: Principal = Depends(current_principal)) -> dict:
        return orchestrator.inspect_tier1(principal=principal)

    @cache.get("/l2")
    def inspect_l2(principal: Principal = Depends(current_principal)) -> dict:
        return orchestrator.inspect_tier2(principal=principal)

    @cache.post("/purge", status_code=204)
    def purge_all_caches(principal: Principal = Depends(current_principal)) -> Response:
        orchestrator.purge_all(principal=principal)
        return Response(status_code=204)

    @app.get("/health", tags=["ops"])
    def health() -> dict:
        return orchestrator.health()

    @app.get("/metrics", tags=["ops"])
    def metrics() -> Response:
        return Response(render_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(weather)
    app.include_router(cache)
    _install_error_handlers(app)
    return app
