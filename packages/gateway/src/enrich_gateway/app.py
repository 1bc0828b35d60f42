"""FastAPI application factory for the HTTP gateway.

The gateway is the pipeline's public surface: the dashboard triggers runs
through it, providers post callbacks to it, and storage workers and loggers
named in workflow config may point back at it. Everything durable happens in
Temporal workers or the storage engine; the gateway only translates HTTP.

Design choices:
  - PipelineError subclasses become JSON error bodies with their own status
    code, so the storage path can raise instead of threading status through.
  - Request validation failures answer 400, not FastAPI's default 422; the
    callers are edge functions and webhooks that only distinguish 4xx/5xx.
  - CORS is fully permissive: the dashboard calls from the browser, and
    providers call from anywhere.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from enrich_data_access.client import reset_engine
from enrich_gateway.routes import router
from enrich_shared.errors import PipelineError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Gateway starting")
    yield
    reset_engine()
    logger.info("Gateway stopped")


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in e["loc"][1:]), "message": e["msg"]}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"error": "Invalid request body", "details": errors}
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Enrichment Pipeline Gateway",
        description="Dispatch, callback routing and storage for the enrichment pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)
    return app
