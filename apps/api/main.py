from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .health import HealthReporter

logger = logging.getLogger('golem_indexer.api')


def create_app(reporter: HealthReporter, title: str = 'golem-indexer') -> FastAPI:
    app = FastAPI(title=title, docs_url=None, redoc_url=None, openapi_url=None)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        if exc.status_code == 404:
            return PlainTextResponse('Not found', status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.api_route('/healthcheck', methods=['GET', 'HEAD', 'POST'], response_class=PlainTextResponse)
    def healthcheck() -> PlainTextResponse:
        status = reporter.check_health()
        if status.healthy:
            return PlainTextResponse('ok', status_code=200)
        return PlainTextResponse(status.reason or 'unhealthy', status_code=500)

    return app
